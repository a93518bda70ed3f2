"""
Customer (patient record) CRUD.

All operations are scoped to the ``clinic_id`` given in the query or
body, which must be inside the caller's clinic scope.  Deletion is a
soft delete; deleted customers are invisible to every read.
"""
from __future__ import annotations

from django.db.models import Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from clinics.models import Patient
from clinics.responses import error_response, success_response
from clinics.serializers.customers import (
    CustomerCreateSerializer,
    CustomerDeleteQuerySerializer,
    CustomersQuerySerializer,
    CustomerUpdateSerializer,
    customer_to_dict,
)
from clinics.services import audit
from clinics.services.guards import process_api_request

SEARCH_LIMIT = 50
NOT_FOUND = '顧客が見つかりません'


def _list_or_detail(request):
    q = CustomersQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    qs = Patient.objects.filter(clinic_id=clinic_id, is_deleted=False)
    if vd.get('id'):
        patient = qs.filter(id=vd['id']).first()
        if patient is None:
            return error_response(NOT_FOUND, 404)
        return success_response(customer_to_dict(patient))

    term = vd.get('q')
    if term:
        qs = qs.filter(Q(name__icontains=term) | Q(phone__icontains=term))
    rows = qs.order_by('-created_at')[:SEARCH_LIMIT]
    return success_response([customer_to_dict(p) for p in rows])


def _create(request):
    # authenticate before looking at the body
    pre = process_api_request(request, require_body=True)
    if not pre.success:
        return pre.error
    s = CustomerCreateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    patient = Patient.objects.create(
        clinic_id=clinic_id,
        name=vd['name'],
        phone=vd['phone'],
        email=vd.get('email'),
        notes=vd.get('notes'),
        custom_attributes=vd.get('customAttributes'),
        created_by=guard.user,
    )
    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(guard.auth['id'], guard.auth['email'], 'customers', patient.id,
                          {'created': True}, clinic_id, ip)
    return success_response(customer_to_dict(patient), status=201)


def _update(request):
    pre = process_api_request(request, require_body=True)
    if not pre.success:
        return pre.error
    s = CustomerUpdateSerializer(data=pre.body)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic_id = str(vd['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    patient = Patient.objects.filter(clinic_id=clinic_id, id=vd['id'], is_deleted=False).first()
    if patient is None:
        return error_response(NOT_FOUND, 404)

    changes = {}
    for field, attr in (('name', 'name'), ('phone', 'phone'), ('email', 'email'),
                        ('notes', 'notes'), ('customAttributes', 'custom_attributes')):
        if field in vd:
            setattr(patient, attr, vd[field])
            changes[attr] = vd[field]
    patient.save()

    ip, _ = audit.get_request_info(request)
    audit.log_data_modify(guard.auth['id'], guard.auth['email'], 'customers', patient.id,
                          changes, clinic_id, ip)
    return success_response(customer_to_dict(patient))


def _delete(request):
    q = CustomerDeleteQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    clinic_id = str(q.validated_data['clinic_id'])

    guard = process_api_request(request, clinic_id=clinic_id, require_clinic_match=True)
    if not guard.success:
        return guard.error

    updated = Patient.objects.filter(
        clinic_id=clinic_id, id=q.validated_data['id'], is_deleted=False
    ).update(is_deleted=True)
    if not updated:
        return error_response(NOT_FOUND, 404)

    ip, _ = audit.get_request_info(request)
    audit.log_data_delete(guard.auth['id'], guard.auth['email'], 'customers',
                          q.validated_data['id'], clinic_id, ip)
    return success_response({'deleted': True})


@api_view(['GET', 'POST', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def customers(request):
    if request.method == 'GET':
        return _list_or_detail(request)
    if request.method == 'POST':
        return _create(request)
    if request.method == 'PATCH':
        return _update(request)
    return _delete(request)
