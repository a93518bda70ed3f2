from __future__ import annotations

import secrets

from django.db import transaction
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics import roles
from clinics.models import User, UserPermission
from clinics.responses import success_response
from clinics.serializers.analytics import StaffCreateSerializer
from clinics.serializers.customers import ClinicQuerySerializer
from clinics.services import audit
from clinics.services.analytics import generate_staff_analysis
from clinics.services.guards import ensure_clinic_access

PATH = '/api/staff'
STAFF_CREATE_ROLES = [roles.ADMIN, 'clinic_manager']


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def staff(request):
    if request.method == 'GET':
        q = ClinicQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        clinic_id = str(q.validated_data['clinic_id'])
        ctx = ensure_clinic_access(request, PATH, clinic_id, require_clinic_match=True)
        return success_response(generate_staff_analysis(ctx.store, clinic_id))

    s = StaffCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])
    ctx = ensure_clinic_access(request, PATH, clinic_id,
                               allowed_roles=STAFF_CREATE_ROLES, require_clinic_match=True)

    with transaction.atomic():
        user = User.objects.create_user(
            username=vd['username'],
            email=vd.get('email') or '',
            password=vd.get('password') or secrets.token_urlsafe(12),
            first_name=vd['name'],
        )
        UserPermission.objects.create(staff=user, role=vd['role'], clinic_id=clinic_id)

    ip, _ = audit.get_request_info(request)
    audit.log_admin_action(ctx.user.pk, ctx.user.email or '', 'create_staff', str(user.pk),
                           {'clinic_id': clinic_id, 'role': vd['role']}, ip)
    return success_response({
        'id': str(user.pk),
        'username': user.username,
        'name': user.first_name,
        'email': user.email,
        'role': vd['role'],
        'clinic_id': clinic_id,
    }, status=201)
