"""
Treatment menu catalogue of a clinic.

Every staff role of the clinic can read the catalogue; only clinic
administrators (and HQ) may change it.  Deleting a menu hides it but
keeps the row, because past visits and reservations still refer to it.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics import roles
from clinics.models import Menu
from clinics.responses import error_response, success_response
from clinics.serializers.menus import (
    MENU_FIELDS,
    MenuCreateSerializer,
    MenuDeleteQuerySerializer,
    MenusQuerySerializer,
    MenuUpdateSerializer,
    menu_to_dict,
)
from clinics.services import audit
from clinics.services.guards import process_api_request

NOT_FOUND = 'メニューが見つかりません'


def _list(request):
    q = MenusQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    clinic_id = str(q.validated_data['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    rows = Menu.objects.filter(clinic_id=clinic_id, is_deleted=False).order_by('display_order', 'name')
    return success_response([menu_to_dict(m) for m in rows])


def _create(request):
    pre = process_api_request(request, allowed_roles=roles.CLINIC_ADMIN_ROLES, require_body=True)
    if not pre.success:
        return pre.error
    s = MenuCreateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, allowed_roles=roles.CLINIC_ADMIN_ROLES,
                                require_clinic_match=True)
    if not guard.success:
        return guard.error

    menu = Menu(clinic_id=clinic_id, created_by=guard.user)
    for field, attr in MENU_FIELDS:
        if field in vd:
            setattr(menu, attr, vd[field])
    menu.save()

    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(guard.auth['id'], guard.auth['email'], 'menus', menu.id,
                          {'created': True}, clinic_id, ip)
    return success_response(menu_to_dict(menu), status=201)


def _update(request):
    pre = process_api_request(request, allowed_roles=roles.CLINIC_ADMIN_ROLES, require_body=True)
    if not pre.success:
        return pre.error
    s = MenuUpdateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, allowed_roles=roles.CLINIC_ADMIN_ROLES,
                                require_clinic_match=True)
    if not guard.success:
        return guard.error

    menu = Menu.objects.filter(clinic_id=clinic_id, id=vd['id'], is_deleted=False).first()
    if menu is None:
        return error_response(NOT_FOUND, 404)

    changes = {}
    for field, attr in MENU_FIELDS:
        if field in vd:
            setattr(menu, attr, vd[field])
            changes[attr] = vd[field]
    menu.save()

    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(guard.auth['id'], guard.auth['email'], 'menus', menu.id, changes, clinic_id, ip)
    return success_response(menu_to_dict(menu))


def _delete(request):
    q = MenuDeleteQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    clinic_id = str(q.validated_data['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, allowed_roles=roles.CLINIC_ADMIN_ROLES,
                                require_clinic_match=True)
    if not guard.success:
        return guard.error

    updated = Menu.objects.filter(
        clinic_id=clinic_id, id=q.validated_data['id'], is_deleted=False
    ).update(is_deleted=True)
    if not updated:
        return error_response(NOT_FOUND, 404)

    ip, _ = audit.get_request_info(request)
    audit.log_data_delete(guard.auth['id'], guard.auth['email'], 'menus', q.validated_data['id'], clinic_id, ip)
    return success_response({'deleted': True})


@api_view(['GET', 'POST', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def menus(request):
    if request.method == 'GET':
        return _list(request)
    if request.method == 'POST':
        return _create(request)
    if request.method == 'PATCH':
        return _update(request)
    return _delete(request)
