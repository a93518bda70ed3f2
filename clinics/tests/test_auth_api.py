import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from clinics.models import AuditLog

pytestmark = pytest.mark.django_db


def login(client, username, password):
    return client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')


def test_login_returns_tokens_and_profile(make_user, clinic_a):
    user = make_user('legacy_mgr', 'clinic_manager', clinic_a)
    r = login(APIClient(), 'legacy_mgr', 'P@ssw0rd1')
    assert r.status_code == 200
    data = r.data['data']
    assert data['token'] and data['jwt_access'] and data['jwt_refresh']
    assert data['user']['id'] == str(user.pk)
    assert data['user']['role'] == 'clinic_admin'
    assert data['user']['clinicId'] == str(clinic_a.id)
    assert data['user']['clinicScopeIds'] == [str(clinic_a.id)]
    assert AuditLog.objects.filter(event_type='login', user=user).exists()


def test_failed_login_is_audited(make_user):
    make_user('someone', 'staff')
    r = login(APIClient(), 'someone', 'wrong-password')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'INVALID_CREDENTIALS'
    entry = AuditLog.objects.get(event_type='failed_login')
    assert entry.user_email == 'someone'
    assert entry.success is False


def test_login_requires_fields():
    r = APIClient().post(reverse('login_view'), {'username': 'x'}, format='json')
    assert r.status_code == 400
    assert 'password' in r.data['error']['details']


def test_drf_token_works_with_both_keywords(staff_a, clinic_a):
    token = login(APIClient(), 'staff_a', 'P@ssw0rd1').data['data']['token']
    for keyword in ('Token', 'Bearer'):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'{keyword} {token}')
        r = client.get(reverse('profile_view'))
        assert r.status_code == 200
        assert r.data['data']['username'] == 'staff_a'


def test_jwt_access_token_authenticates(staff_a, clinic_a):
    access = login(APIClient(), 'staff_a', 'P@ssw0rd1').data['data']['jwt_access']
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
    r = client.get(reverse('customers'), {'clinic_id': str(clinic_a.id)})
    assert r.status_code == 200


def test_profile_requires_authentication():
    r = APIClient().get(reverse('profile_view'))
    assert r.status_code == 401
    assert r.data['error']['code'] == 'UNAUTHORIZED'


def test_refresh_and_logout(staff_a):
    client = APIClient()
    tokens = login(client, 'staff_a', 'P@ssw0rd1').data['data']

    r = client.post(reverse('jwt_refresh_view'), {'refresh': tokens['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['data']['jwt_access']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['jwt_access']}")
    r = client.post(reverse('jwt_logout_view'), {'refresh': tokens['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['data'] == {'blacklisted': 1}
    assert AuditLog.objects.filter(event_type='logout', user=staff_a).exists()

    client.credentials()
    r = client.post(reverse('jwt_refresh_view'), {'refresh': tokens['jwt_refresh']}, format='json')
    assert r.status_code == 401


def test_refresh_with_garbage_token():
    r = APIClient().post(reverse('jwt_refresh_view'), {'refresh': 'garbage'}, format='json')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'UNAUTHORIZED'


@pytest.mark.parametrize('header', ['Token ' + 'x' * 40, 'Bearer ' + 'y' * 40, 'Bearer not.a.jwt'])
def test_rejected_credentials_on_guarded_view_are_audited(header, clinic_a):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=header)
    r = client.get(reverse('customers_analysis'), {'clinic_id': str(clinic_a.id)})
    assert r.status_code == 401
    assert r.data['error']['code'] == 'UNAUTHORIZED'
    entry = AuditLog.objects.get(event_type='unauthorized_access')
    assert entry.error_message == 'Authentication required'
    assert entry.user_id is None and entry.user_email is None
    assert entry.details == {'attempted_resource': reverse('customers_analysis')}


def test_missing_credentials_on_guarded_view_are_audited_once(clinic_a):
    r = APIClient().get(reverse('customers_analysis'), {'clinic_id': str(clinic_a.id)})
    assert r.status_code == 401
    assert AuditLog.objects.filter(event_type='unauthorized_access').count() == 1


def test_logout_cannot_revoke_another_users_refresh_token(staff_a, therapist_a):
    own = login(APIClient(), 'staff_a', 'P@ssw0rd1').data['data']
    other = login(APIClient(), 'therapist_a', 'P@ssw0rd1').data['data']

    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {own['jwt_access']}")
    r = client.post(reverse('jwt_logout_view'), {'refresh': other['jwt_refresh']}, format='json')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'FORBIDDEN'
    assert not AuditLog.objects.filter(event_type='logout').exists()

    r = APIClient().post(reverse('jwt_refresh_view'), {'refresh': other['jwt_refresh']}, format='json')
    assert r.status_code == 200
