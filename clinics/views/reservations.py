"""
Reservation CRUD.

A staff member cannot hold two active reservations whose time ranges
overlap; cancelled and no-show reservations do not block a slot.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics.models import Menu, Patient, Reservation, UserPermission
from clinics.responses import error_response, success_response
from clinics.serializers.reservations import (
    ReservationCreateSerializer,
    ReservationDeleteQuerySerializer,
    ReservationsQuerySerializer,
    ReservationUpdateSerializer,
    reservation_to_dict,
)
from clinics.services import audit
from clinics.services.guards import get_clinic_scope, process_api_request

NOT_FOUND = '予約が見つかりません'
CONFLICT = '同時間帯に既存予約があります'


def has_reservation_conflict(clinic_id, staff_id, start_time, end_time, exclude_id=None) -> bool:
    qs = (
        Reservation.objects.filter(
            clinic_id=clinic_id,
            staff_id=staff_id,
            start_time__lt=end_time,
            end_time__gt=start_time,
        )
        .exclude(status__in=Reservation.INACTIVE_STATUSES)
    )
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    return qs.exists()


def _base_queryset(clinic_id):
    return Reservation.objects.filter(clinic_id=clinic_id).select_related('customer', 'menu', 'staff')


def _list_or_detail(request):
    q = ReservationsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    qs = _base_queryset(clinic_id)
    if vd.get('id'):
        r = qs.filter(id=vd['id']).first()
        if r is None:
            return error_response(NOT_FOUND, 404)
        return success_response(reservation_to_dict(r))

    if vd.get('start_date'):
        qs = qs.filter(start_time__gte=vd['start_date'])
    if vd.get('end_date'):
        qs = qs.filter(start_time__lte=vd['end_date'])
    if vd.get('staff_id'):
        qs = qs.filter(staff_id=vd['staff_id'])
    return success_response([reservation_to_dict(r) for r in qs.order_by('start_time')])


def _staff_in_clinic(clinic_id, staff_id) -> bool:
    perm = UserPermission.objects.filter(staff_id=staff_id).first()
    return perm is not None and str(clinic_id) in get_clinic_scope(perm)


def _related_in_clinic(clinic_id, customer_id=None, menu_id=None, staff_id=None) -> dict:
    """Field errors for referenced rows that do not belong to the clinic."""
    errors = {}
    if customer_id and not Patient.objects.filter(id=customer_id, clinic_id=clinic_id, is_deleted=False).exists():
        errors['customerId'] = ['顧客が見つかりません']
    if menu_id and not Menu.objects.filter(id=menu_id, clinic_id=clinic_id, is_deleted=False).exists():
        errors['menuId'] = ['メニューが見つかりません']
    if staff_id and not _staff_in_clinic(clinic_id, staff_id):
        errors['staffId'] = ['スタッフが見つかりません']
    return errors


def _create(request):
    pre = process_api_request(request, require_body=True)
    if not pre.success:
        return pre.error
    s = ReservationCreateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    errors = _related_in_clinic(clinic_id, vd['customerId'], vd['menuId'], vd['staffId'])
    if errors:
        return error_response('入力値にエラーがあります', 400, details=errors)

    if has_reservation_conflict(clinic_id, vd['staffId'], vd['startTime'], vd['endTime']):
        return error_response(CONFLICT, 409)

    r = Reservation.objects.create(
        clinic_id=clinic_id,
        customer_id=vd['customerId'],
        menu_id=vd['menuId'],
        staff_id=vd['staffId'],
        start_time=vd['startTime'],
        end_time=vd['endTime'],
        channel=vd['channel'],
        notes=vd.get('notes') or None,
        selected_options=vd.get('selectedOptions') or [],
        status='unconfirmed',
        created_by=guard.user,
    )
    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(guard.auth['id'], guard.auth['email'], 'reservations', r.id,
                          {'created': True}, clinic_id, ip)
    r = _base_queryset(clinic_id).get(id=r.id)
    return success_response(reservation_to_dict(r), status=201)


def _update(request):
    pre = process_api_request(request, require_body=True)
    if not pre.success:
        return pre.error
    s = ReservationUpdateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    r = _base_queryset(clinic_id).filter(id=vd['id']).first()
    if r is None:
        return error_response(NOT_FOUND, 404)

    slot_changed = any(k in vd for k in ('staffId', 'startTime', 'endTime'))
    staff_id = vd.get('staffId', r.staff_id)
    start = vd.get('startTime', r.start_time)
    end = vd.get('endTime', r.end_time)
    if slot_changed:
        if end <= start:
            return error_response('入力値にエラーがあります', 400,
                                  details={'endTime': ['終了時刻は開始時刻より後にしてください']})
        errors = _related_in_clinic(clinic_id, staff_id=vd.get('staffId'))
        if errors:
            return error_response('入力値にエラーがあります', 400, details=errors)

    # a reservation leaving cancelled/no_show occupies its slot again
    reactivated = r.status in Reservation.INACTIVE_STATUSES and 'status' in vd
    if vd.get('status', r.status) not in Reservation.INACTIVE_STATUSES and (slot_changed or reactivated):
        if has_reservation_conflict(clinic_id, staff_id, start, end, exclude_id=r.id):
            return error_response(CONFLICT, 409)

    changes = {}
    for field, attr in (('status', 'status'), ('startTime', 'start_time'), ('endTime', 'end_time'),
                        ('staffId', 'staff_id'), ('notes', 'notes'), ('selectedOptions', 'selected_options')):
        if field in vd:
            setattr(r, attr, vd[field])
            changes[attr] = str(vd[field]) if field in ('startTime', 'endTime', 'staffId') else vd[field]
    r.save()

    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(guard.auth['id'], guard.auth['email'], 'reservations', r.id,
                          changes, clinic_id, ip)
    return success_response(reservation_to_dict(_base_queryset(clinic_id).get(id=r.id)))


def _delete(request):
    q = ReservationDeleteQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    clinic_id = str(q.validated_data['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    deleted, _ = Reservation.objects.filter(clinic_id=clinic_id, id=q.validated_data['id']).delete()
    if not deleted:
        return error_response(NOT_FOUND, 404)

    ip, _ = audit.get_request_info(request)
    audit.log_data_delete(guard.auth['id'], guard.auth['email'], 'reservations',
                          q.validated_data['id'], clinic_id, ip)
    return success_response({'deleted': True})


@api_view(['GET', 'POST', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def reservations(request):
    if request.method == 'GET':
        return _list_or_detail(request)
    if request.method == 'POST':
        return _create(request)
    if request.method == 'PATCH':
        return _update(request)
    return _delete(request)
