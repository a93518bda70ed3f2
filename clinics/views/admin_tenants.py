"""
Clinic (tenant) management for HQ administrators.

Listing is limited to the clinics in the administrator's scope.  A new
clinic may only be attached to a parent inside that scope, and it is
added to the creator's explicit scope so that it stays manageable.
"""
from __future__ import annotations

from django.db import transaction
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics import roles
from clinics.models import Clinic
from clinics.responses import error_response, success_response
from clinics.serializers.admin import (
    ClinicCreateSerializer,
    ClinicUpdateSerializer,
    TenantsQuerySerializer,
    clinic_to_dict,
)
from clinics.services import audit
from clinics.services.analytics import generate_clinic_kpi
from clinics.services.guards import get_clinic_scope, process_api_request

HQ_ONLY = [roles.ADMIN]

CLINIC_FIELDS = ('name', 'address', 'phone_number', 'is_active', 'parent_id')


def _is_descendant_or_self(candidate_id, clinic_id) -> bool:
    seen = set()
    current = candidate_id
    while current and current not in seen:
        if current == clinic_id:
            return True
        seen.add(current)
        parent = Clinic.objects.filter(id=current).values_list('parent_id', flat=True).first()
        current = str(parent) if parent else None
    return False


def _list(request):
    q = TenantsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data

    guard = process_api_request(request, allowed_roles=HQ_ONLY)
    if not guard.success:
        return guard.error

    qs = Clinic.objects.filter(id__in=list(get_clinic_scope(guard.permissions))).order_by('-created_at')
    if vd.get('search'):
        qs = qs.filter(name__icontains=vd['search'].strip())
    if vd.get('is_active') is not None:
        qs = qs.filter(is_active=vd['is_active'])

    items = []
    for clinic in qs:
        item = clinic_to_dict(clinic)
        if vd['include_kpi']:
            item['kpi'] = generate_clinic_kpi(guard.store, clinic.id)
        items.append(item)
    return success_response({'items': items, 'total': len(items)})


def _create(request):
    pre = process_api_request(request, allowed_roles=HQ_ONLY, require_body=True)
    if not pre.success:
        return pre.error
    s = ClinicCreateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    parent_id = str(vd['parent_id']) if vd.get('parent_id') else None
    if parent_id:
        guard = process_api_request(request, clinic_id=parent_id, allowed_roles=HQ_ONLY,
                                    require_clinic_match=True)
        if not guard.success:
            return guard.error

    with transaction.atomic():
        clinic = Clinic.objects.create(
            name=vd['name'],
            address=vd.get('address'),
            phone_number=vd.get('phone_number'),
            is_active=vd.get('is_active', True),
            parent_id=parent_id,
        )
        perm = pre.permissions
        perm.clinic_scope_ids = sorted(get_clinic_scope(perm) | {str(clinic.id)})
        perm.save(update_fields=['clinic_scope_ids', 'updated_at'])

    ip, _ = audit.get_request_info(request)
    audit.log_admin_action(pre.auth['id'], pre.auth['email'], 'clinic_create', clinic.id,
                           {'name': clinic.name, 'parent_id': parent_id}, ip)
    return success_response(clinic_to_dict(clinic), status=201)


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def admin_tenants(request):
    if request.method == 'GET':
        return _list(request)
    return _create(request)


@api_view(['PATCH'])
@permission_classes([AllowAny])
def admin_tenant_detail(request, clinic_id):
    clinic_id = str(clinic_id)
    guard = process_api_request(request, clinic_id=clinic_id, allowed_roles=HQ_ONLY,
                                require_clinic_match=True, require_body=True)
    if not guard.success:
        return guard.error
    s = ClinicUpdateSerializer(data=guard.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    clinic = Clinic.objects.filter(id=clinic_id).first()
    if clinic is None:
        return error_response('クリニックが見つかりません', 404)

    parent_id = str(vd['parent_id']) if vd.get('parent_id') else None
    if parent_id:
        if _is_descendant_or_self(parent_id, clinic_id):
            return error_response('入力値にエラーがあります', 400,
                                  details={'parent_id': ['自身または配下のクリニックを親に指定できません']})
        parent_guard = process_api_request(request, clinic_id=parent_id, allowed_roles=HQ_ONLY,
                                           require_clinic_match=True)
        if not parent_guard.success:
            return parent_guard.error

    changes = {}
    for field in CLINIC_FIELDS:
        if field in vd:
            value = parent_id if field == 'parent_id' else vd[field]
            setattr(clinic, field, value)
            changes[field] = value
    clinic.save()

    ip, _ = audit.get_request_info(request)
    audit.log_admin_action(guard.auth['id'], guard.auth['email'], 'clinic_update', clinic.id, changes, ip)
    return success_response(clinic_to_dict(clinic))
