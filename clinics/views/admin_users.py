"""
Staff permission management (HQ administrators only).

An HQ administrator can list, assign, change and revoke the role and
clinic binding of staff users, but only for clinics inside their own
scope.  Every change is recorded as an admin action.
"""
from __future__ import annotations

from django.db.models import Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics import roles
from clinics.models import User, UserPermission
from clinics.responses import error_response, success_response
from clinics.serializers.admin import (
    PermissionAssignSerializer,
    PermissionUpdateSerializer,
    UsersQuerySerializer,
    permission_to_dict,
)
from clinics.services import audit
from clinics.services.guards import get_clinic_scope, process_api_request

HQ_ONLY = [roles.ADMIN]


def _guard_clinics(request, clinic_ids):
    """Run the clinic gate for every id; return the first refusal."""
    for clinic_id in clinic_ids:
        if not clinic_id:
            continue
        guard = process_api_request(request, clinic_id=str(clinic_id), allowed_roles=HQ_ONLY,
                                    require_clinic_match=True)
        if not guard.success:
            return guard.error
    return None


def _list(request):
    q = UsersQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    clinic_id = str(vd['clinic_id']) if vd.get('clinic_id') else None

    guard = process_api_request(request, clinic_id=clinic_id, allowed_roles=HQ_ONLY)
    if not guard.success:
        return guard.error

    scope = get_clinic_scope(guard.permissions)
    qs = (
        UserPermission.objects.select_related('staff', 'clinic')
        .filter(clinic_id__in=[clinic_id] if clinic_id else list(scope))
        .order_by('-created_at')
    )
    if vd.get('role'):
        qs = qs.filter(role=vd['role'])
    term = (vd.get('search') or '').strip()
    if term:
        qs = qs.filter(
            Q(staff__username__icontains=term)
            | Q(staff__email__icontains=term)
            | Q(staff__first_name__icontains=term)
            | Q(staff__last_name__icontains=term)
        )
    items = [permission_to_dict(p) for p in qs]
    return success_response({'items': items, 'total': len(items)})


def _assign(request):
    pre = process_api_request(request, allowed_roles=HQ_ONLY, require_body=True)
    if not pre.success:
        return pre.error
    s = PermissionAssignSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id']) if vd.get('clinic_id') else None
    scope_ids = [str(c) for c in vd.get('clinic_scope_ids', [])]

    user = User.objects.filter(pk=vd['user_id']).first()
    if user is None:
        return error_response('対象ユーザーが見つかりません', 404)
    existing = UserPermission.objects.filter(staff=user).first()

    # the current binding must be ours to change as well
    refused = _guard_clinics(request, [clinic_id, *scope_ids, existing.clinic_id_str if existing else None])
    if refused is not None:
        return refused

    perm, created = UserPermission.objects.update_or_create(
        staff=user,
        defaults={'role': vd['role'], 'clinic_id': clinic_id, 'clinic_scope_ids': scope_ids},
    )
    ip, _ = audit.get_request_info(request)
    audit.log_admin_action(pre.auth['id'], pre.auth['email'], 'permission_assign', perm.id,
                           {'user_id': str(user.pk), 'role': vd['role'], 'clinic_id': clinic_id}, ip)
    perm = UserPermission.objects.select_related('staff', 'clinic').get(pk=perm.pk)
    return success_response(permission_to_dict(perm), status=201 if created else 200)


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def admin_users(request):
    if request.method == 'GET':
        return _list(request)
    return _assign(request)


@api_view(['PATCH'])
@permission_classes([AllowAny])
def admin_user_detail(request, permission_id):
    pre = process_api_request(request, allowed_roles=HQ_ONLY, require_body=True)
    if not pre.success:
        return pre.error
    s = PermissionUpdateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    perm = UserPermission.objects.select_related('staff', 'clinic').filter(pk=permission_id).first()
    if perm is None:
        return error_response('権限情報が見つかりません', 404)

    new_clinic = str(vd['clinic_id']) if vd.get('clinic_id') else None
    scope_ids = [str(c) for c in vd.get('clinic_scope_ids', [])]
    refused = _guard_clinics(request, [perm.clinic_id_str, new_clinic, *scope_ids])
    if refused is not None:
        return refused

    ip, _ = audit.get_request_info(request)
    if vd.get('revoke'):
        perm.delete()
        audit.log_admin_action(pre.auth['id'], pre.auth['email'], 'permission_revoke', permission_id, None, ip)
        return success_response({'id': permission_id, 'revoked': True})

    changes = {}
    if 'role' in vd:
        perm.role = changes['role'] = vd['role']
    if 'clinic_id' in vd:
        perm.clinic_id = changes['clinic_id'] = new_clinic
    if 'clinic_scope_ids' in vd:
        perm.clinic_scope_ids = changes['clinic_scope_ids'] = scope_ids
    if perm.role != roles.ADMIN and not perm.clinic_id:
        return error_response('clinic_id が必須です', 400)
    perm.save()

    audit.log_admin_action(pre.auth['id'], pre.auth['email'], 'permission_update', perm.id, changes, ip)
    perm = UserPermission.objects.select_related('staff', 'clinic').get(pk=perm.pk)
    return success_response(permission_to_dict(perm))
