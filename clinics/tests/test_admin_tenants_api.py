from datetime import timedelta
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone

from clinics.models import AuditLog, Clinic, Revenue, UserPermission, Visit

pytestmark = pytest.mark.django_db


def test_list_is_limited_to_scope(client_for, hq_admin, hq, clinic_a, clinic_b):
    client = client_for(hq_admin)
    r = client.get(reverse('admin_tenants'))
    assert r.status_code == 200
    assert {c['id'] for c in r.data['data']['items']} == {str(hq.id), str(clinic_a.id)}
    assert 'kpi' not in r.data['data']['items'][0]

    r = client.get(reverse('admin_tenants'), {'search': '渋谷'})
    assert [c['name'] for c in r.data['data']['items']] == ['渋谷院']

    Clinic.objects.filter(id=clinic_a.id).update(is_active=False)
    r = client.get(reverse('admin_tenants'), {'is_active': 'false'})
    assert [c['id'] for c in r.data['data']['items']] == [str(clinic_a.id)]


def test_list_with_kpi(client_for, hq_admin, clinic_a, patient_a, therapist_a, menu_a):
    visit = Visit.objects.create(clinic=clinic_a, patient=patient_a, staff=therapist_a, menu=menu_a,
                                 visit_date=timezone.localdate() - timedelta(days=1))
    Revenue.objects.create(clinic=clinic_a, patient=patient_a, visit=visit, menu=menu_a,
                           revenue_date=visit.visit_date, amount=Decimal('250000'))
    r = client_for(hq_admin).get(reverse('admin_tenants'), {'include_kpi': 'true', 'search': '渋谷'})
    kpi = r.data['data']['items'][0]['kpi']
    assert kpi == {'revenue': 250000.0, 'patients': 1, 'staff_performance_score': 2.5}


def test_tenants_are_hq_only(client_for, clinic_admin_a):
    r = client_for(clinic_admin_a).get(reverse('admin_tenants'))
    assert r.status_code == 403


def test_create_clinic_under_parent_in_scope(client_for, hq_admin, hq):
    r = client_for(hq_admin).post(reverse('admin_tenants'),
                                  {'name': '池袋院', 'parent_id': str(hq.id), 'phone_number': '03-0000-0000'},
                                  format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['parent_id'] == str(hq.id)
    assert data['is_active'] is True
    assert data['phone_number'] == '03-0000-0000'
    assert data['id'] in UserPermission.objects.get(staff=hq_admin).clinic_scope_ids
    entry = AuditLog.objects.get(event_type='admin_action')
    assert entry.details['action'] == 'clinic_create'
    assert entry.target_id == data['id']


def test_create_clinic_under_foreign_parent_is_forbidden(client_for, hq_admin, clinic_b):
    r = client_for(hq_admin).post(reverse('admin_tenants'), {'name': '池袋院', 'parent_id': str(clinic_b.id)},
                                  format='json')
    assert r.status_code == 403
    assert not Clinic.objects.filter(name='池袋院').exists()


def test_create_clinic_requires_name(client_for, hq_admin):
    r = client_for(hq_admin).post(reverse('admin_tenants'), {'name': '  '}, format='json')
    assert r.status_code == 400
    assert 'name' in r.data['error']['details']


def test_update_clinic(client_for, hq_admin, clinic_a):
    url = reverse('admin_tenant_detail', args=[clinic_a.id])
    r = client_for(hq_admin).patch(url, {'name': '渋谷本院', 'is_active': False}, format='json')
    assert r.status_code == 200
    clinic_a.refresh_from_db()
    assert clinic_a.name == '渋谷本院'
    assert clinic_a.is_active is False
    entry = AuditLog.objects.get(event_type='admin_action')
    assert entry.details == {'action': 'clinic_update', 'name': '渋谷本院', 'is_active': False}


def test_update_clinic_outside_scope_is_forbidden(client_for, hq_admin, clinic_b):
    url = reverse('admin_tenant_detail', args=[clinic_b.id])
    r = client_for(hq_admin).patch(url, {'name': '乗っ取り'}, format='json')
    assert r.status_code == 403
    clinic_b.refresh_from_db()
    assert clinic_b.name == '新宿院'


def test_parent_cannot_become_its_own_descendant(client_for, hq_admin, hq, clinic_a):
    client = client_for(hq_admin)
    r = client.patch(reverse('admin_tenant_detail', args=[hq.id]), {'parent_id': str(clinic_a.id)}, format='json')
    assert r.status_code == 400
    assert 'parent_id' in r.data['error']['details']

    r = client.patch(reverse('admin_tenant_detail', args=[hq.id]), {'parent_id': str(hq.id)}, format='json')
    assert r.status_code == 400
    hq.refresh_from_db()
    assert hq.parent_id is None


def test_update_requires_a_change(client_for, hq_admin, clinic_a):
    r = client_for(hq_admin).patch(reverse('admin_tenant_detail', args=[clinic_a.id]), {}, format='json')
    assert r.status_code == 400
