"""
Per-clinic settings documents.

GET returns the stored document of a category (or its defaults when
nothing has been saved); PUT validates and upserts it and records an
admin action in the audit trail.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics import roles
from clinics.models import ClinicSetting
from clinics.responses import success_response
from clinics.serializers.customers import ClinicQuerySerializer
from clinics.serializers.settings import DEFAULT_SETTINGS, SettingsQuerySerializer, SettingsUpdateSerializer
from clinics.services import audit
from clinics.services.guards import process_api_request


def _get(request):
    q = SettingsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    clinic_id = str(q.validated_data['clinic_id'])
    category = q.validated_data['category']

    guard = process_api_request(request, clinic_id=clinic_id, allowed_roles=roles.STAFF_ROLES)
    if not guard.success:
        return guard.error

    row = ClinicSetting.objects.filter(clinic_id=clinic_id, category=category).first()
    return success_response({
        'settings': row.settings if row else DEFAULT_SETTINGS[category],
        'updated_at': row.updated_at.isoformat() if row else None,
        'updated_by': str(row.updated_by_id) if row and row.updated_by_id else None,
    })


def _put(request):
    # authenticate and check the role before looking at the body
    pre = process_api_request(request, allowed_roles=roles.CLINIC_ADMIN_ROLES, require_body=True)
    if not pre.success:
        return pre.error

    # the clinic gate runs on the canonical UUID, before the document is validated
    target = ClinicQuerySerializer(data=pre.body)
    target.is_valid(raise_exception=True)
    clinic_id = str(target.validated_data['clinic_id'])

    guard = process_api_request(
        request,
        clinic_id=clinic_id,
        allowed_roles=roles.CLINIC_ADMIN_ROLES,
        require_clinic_match=True,
    )
    if not guard.success:
        return guard.error

    s = SettingsUpdateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    ClinicSetting.objects.update_or_create(
        clinic_id=clinic_id,
        category=vd['category'],
        defaults={'settings': vd['settings'], 'updated_by_id': guard.auth['id']},
    )
    ip, _ = audit.get_request_info(request)
    audit.log_admin_action(guard.auth['id'], guard.auth['email'], 'update_settings', None,
                           {'category': vd['category'], 'clinic_id': clinic_id, 'settingsUpdated': True}, ip)
    return success_response({'message': '設定を保存しました'})


@api_view(['GET', 'PUT'])
@permission_classes([AllowAny])
def admin_settings(request):
    if request.method == 'GET':
        return _get(request)
    return _put(request)
