from datetime import datetime, timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from clinics.models import AuditLog, Menu, Patient, Reservation

pytestmark = pytest.mark.django_db


def _at(hour, minute=0):
    tz = timezone.get_current_timezone()
    day = timezone.localdate() + timedelta(days=1)
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)


def _body(clinic, patient, menu, staff, start, end, **extra):
    return {
        'clinic_id': str(clinic.id),
        'customerId': str(patient.id),
        'menuId': str(menu.id),
        'staffId': str(staff.pk),
        'startTime': start.isoformat(),
        'endTime': end.isoformat(),
        'channel': 'web',
        **extra,
    }


@pytest.fixture
def booked(clinic_a, patient_a, menu_a, therapist_a):
    return Reservation.objects.create(
        clinic=clinic_a, customer=patient_a, menu=menu_a, staff=therapist_a,
        start_time=_at(10), end_time=_at(10, 30), status='confirmed', channel='phone',
    )


def test_create_reservation(client_for, staff_a, clinic_a, patient_a, menu_a, therapist_a):
    body = _body(clinic_a, patient_a, menu_a, therapist_a, _at(14), _at(14, 30), notes='初回')
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['status'] == 'unconfirmed'
    assert data['customerName'] == '山田太郎'
    assert data['menuName'] == '整体 30分'
    assert data['notes'] == '初回'
    assert AuditLog.objects.filter(event_type='data_modify', target_table='reservations').exists()


def test_overlapping_reservation_conflicts(client_for, staff_a, clinic_a, patient_a, menu_a, therapist_a, booked):
    body = _body(clinic_a, patient_a, menu_a, therapist_a, _at(10, 15), _at(10, 45))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 409
    assert r.data['error']['code'] == 'RESOURCE_CONFLICT'
    assert r.data['error']['message'] == '同時間帯に既存予約があります'
    assert Reservation.objects.count() == 1


def test_adjacent_reservation_does_not_conflict(client_for, staff_a, clinic_a, patient_a, menu_a, therapist_a, booked):
    body = _body(clinic_a, patient_a, menu_a, therapist_a, _at(10, 30), _at(11))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 201


def test_cancelled_reservation_frees_the_slot(client_for, staff_a, clinic_a, patient_a, menu_a, therapist_a, booked):
    booked.status = 'cancelled'
    booked.save()
    body = _body(clinic_a, patient_a, menu_a, therapist_a, _at(10), _at(10, 30))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 201


def test_end_before_start_is_rejected(client_for, staff_a, clinic_a, patient_a, menu_a, therapist_a):
    body = _body(clinic_a, patient_a, menu_a, therapist_a, _at(12), _at(11))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 400
    assert 'endTime' in r.data['error']['details']


def test_related_rows_must_belong_to_clinic(client_for, staff_a, clinic_a, clinic_b, menu_a, therapist_a):
    outsider = Patient.objects.create(clinic=clinic_b, name='他院患者')
    body = _body(clinic_a, outsider, menu_a, therapist_a, _at(15), _at(15, 30))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 400
    assert 'customerId' in r.data['error']['details']


def test_list_filters_by_staff(client_for, staff_a, clinic_a, patient_a, menu_a, therapist_a, booked):
    other_menu = Menu.objects.create(clinic=clinic_a, name='鍼灸', price=5000, duration_minutes=45)
    Reservation.objects.create(clinic=clinic_a, customer=patient_a, menu=other_menu, staff=staff_a,
                               start_time=_at(9), end_time=_at(9, 45), channel='line')
    client = client_for(staff_a)

    r = client.get(reverse('reservations'), {'clinic_id': str(clinic_a.id)})
    assert r.status_code == 200
    assert [x['menuName'] for x in r.data['data']] == ['鍼灸', '整体 30分']

    r = client.get(reverse('reservations'), {'clinic_id': str(clinic_a.id), 'staff_id': str(therapist_a.pk)})
    assert [x['id'] for x in r.data['data']] == [str(booked.id)]


def test_update_moves_reservation_and_detects_conflict(client_for, staff_a, clinic_a, patient_a, menu_a,
                                                       therapist_a, booked):
    other = Reservation.objects.create(clinic=clinic_a, customer=patient_a, menu=menu_a, staff=therapist_a,
                                       start_time=_at(13), end_time=_at(13, 30), channel='web')
    client = client_for(staff_a)

    body = {'clinic_id': str(clinic_a.id), 'id': str(other.id),
            'startTime': _at(10, 10).isoformat(), 'endTime': _at(10, 40).isoformat()}
    r = client.patch(reverse('reservations'), body, format='json')
    assert r.status_code == 409

    body = {'clinic_id': str(clinic_a.id), 'id': str(booked.id), 'status': 'arrived'}
    r = client.patch(reverse('reservations'), body, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'arrived'


def test_delete_reservation(client_for, staff_a, clinic_a, booked):
    url = reverse('reservations')
    client = client_for(staff_a)
    r = client.delete(f'{url}?clinic_id={clinic_a.id}&id={booked.id}')
    assert r.status_code == 200
    assert not Reservation.objects.exists()
    r = client.delete(f'{url}?clinic_id={clinic_a.id}&id={booked.id}')
    assert r.status_code == 404


def test_reservations_of_other_clinic_are_forbidden(client_for, staff_a, clinic_b):
    r = client_for(staff_a).get(reverse('reservations'), {'clinic_id': str(clinic_b.id)})
    assert r.status_code == 403


def test_staff_of_another_clinic_cannot_be_booked(client_for, make_user, staff_a, clinic_a, clinic_b,
                                                  patient_a, menu_a):
    outsider = make_user('therapist_b', 'therapist', clinic_b)
    body = _body(clinic_a, patient_a, menu_a, outsider, _at(15), _at(15, 30))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 400
    assert 'staffId' in r.data['error']['details']
    assert not Reservation.objects.exists()


def test_staff_without_permission_record_cannot_be_booked(client_for, make_user, staff_a, clinic_a,
                                                          patient_a, menu_a):
    nobody = make_user('no_role')
    body = _body(clinic_a, patient_a, menu_a, nobody, _at(15), _at(15, 30))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 400
    assert 'staffId' in r.data['error']['details']


def test_staff_with_clinic_in_scope_can_be_booked(client_for, staff_a, hq_admin, clinic_a, patient_a, menu_a):
    body = _body(clinic_a, patient_a, menu_a, hq_admin, _at(16), _at(16, 30))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 201


def test_moving_to_staff_of_another_clinic_is_rejected(client_for, make_user, staff_a, clinic_a, clinic_b, booked):
    outsider = make_user('therapist_b', 'therapist', clinic_b)
    body = {'clinic_id': str(clinic_a.id), 'id': str(booked.id), 'staffId': str(outsider.pk)}
    r = client_for(staff_a).patch(reverse('reservations'), body, format='json')
    assert r.status_code == 400
    assert 'staffId' in r.data['error']['details']
    booked.refresh_from_db()
    assert booked.staff_id != outsider.pk


def test_restoring_cancelled_reservation_into_taken_slot_conflicts(client_for, staff_a, clinic_a, patient_a,
                                                                   menu_a, therapist_a, booked):
    cancelled = Reservation.objects.create(clinic=clinic_a, customer=patient_a, menu=menu_a, staff=therapist_a,
                                           start_time=_at(10, 15), end_time=_at(10, 45),
                                           status='cancelled', channel='web')
    client = client_for(staff_a)
    body = {'clinic_id': str(clinic_a.id), 'id': str(cancelled.id), 'status': 'confirmed'}
    r = client.patch(reverse('reservations'), body, format='json')
    assert r.status_code == 409
    cancelled.refresh_from_db()
    assert cancelled.status == 'cancelled'

    body['status'] = 'no_show'
    r = client.patch(reverse('reservations'), body, format='json')
    assert r.status_code == 200


def test_restoring_cancelled_reservation_into_free_slot(client_for, staff_a, clinic_a, patient_a, menu_a,
                                                        therapist_a):
    cancelled = Reservation.objects.create(clinic=clinic_a, customer=patient_a, menu=menu_a, staff=therapist_a,
                                           start_time=_at(11), end_time=_at(11, 30),
                                           status='cancelled', channel='web')
    body = {'clinic_id': str(clinic_a.id), 'id': str(cancelled.id), 'status': 'confirmed'}
    r = client_for(staff_a).patch(reverse('reservations'), body, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'confirmed'


def test_deleted_menu_cannot_be_booked(client_for, staff_a, clinic_a, patient_a, menu_a, therapist_a):
    Menu.objects.filter(id=menu_a.id).update(is_deleted=True)
    body = _body(clinic_a, patient_a, menu_a, therapist_a, _at(17), _at(17, 30))
    r = client_for(staff_a).post(reverse('reservations'), body, format='json')
    assert r.status_code == 400
    assert 'menuId' in r.data['error']['details']
