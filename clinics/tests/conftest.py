import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from clinics.models import Clinic, Menu, Patient, User, UserPermission


@pytest.fixture(autouse=True)
def _reset_throttles():
    # throttle counters live in the default cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def hq(db):
    return Clinic.objects.create(name='本部')


@pytest.fixture
def clinic_a(hq):
    return Clinic.objects.create(name='渋谷院', parent=hq)


@pytest.fixture
def clinic_b(hq):
    return Clinic.objects.create(name='新宿院', parent=hq)


@pytest.fixture
def make_user(db):
    def _make(username, role=None, clinic=None, scope=None, password='P@ssw0rd1'):
        user = User.objects.create_user(username=username, password=password,
                                        email=f'{username}@example.com')
        if role is not None:
            UserPermission.objects.create(staff=user, role=role, clinic=clinic,
                                          clinic_scope_ids=scope or [])
        return user
    return _make


@pytest.fixture
def staff_a(make_user, clinic_a):
    return make_user('staff_a', 'staff', clinic_a)


@pytest.fixture
def therapist_a(make_user, clinic_a):
    return make_user('therapist_a', 'therapist', clinic_a)


@pytest.fixture
def clinic_admin_a(make_user, clinic_a):
    return make_user('clinic_admin_a', 'clinic_admin', clinic_a)


@pytest.fixture
def hq_admin(make_user, hq, clinic_a):
    return make_user('hq_admin', 'admin', hq, scope=[str(hq.id), str(clinic_a.id)])


@pytest.fixture
def client_for():
    def _client(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return _client


@pytest.fixture
def menu_a(clinic_a):
    return Menu.objects.create(clinic=clinic_a, name='整体 30分', price=3000, duration_minutes=30)


@pytest.fixture
def patient_a(clinic_a):
    return Patient.objects.create(clinic=clinic_a, name='山田太郎', phone='090-1111-2222')
