import uuid

import pytest
from django.contrib.auth.models import AnonymousUser
from django.test import RequestFactory

from clinics.exceptions import AppError
from clinics.models import AuditLog, UserPermission
from clinics.services import audit
from clinics.services.guards import (
    ensure_clinic_access,
    get_clinic_scope,
    verify_admin_auth,
)

pytestmark = pytest.mark.django_db


def _request(user=None, path='/api/test'):
    request = RequestFactory().get(path, HTTP_USER_AGENT='pytest-agent')
    request.user = user if user is not None else AnonymousUser()
    return request


def _unauthorized_entries():
    return AuditLog.objects.filter(event_type='unauthorized_access').order_by('created_at')


def test_anonymous_request_is_rejected_and_audited():
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(), '/api/test', None)
    assert exc.value.status_code == 401
    entry = _unauthorized_entries().get()
    assert entry.success is False
    assert entry.error_message == 'Authentication required'
    assert entry.user_id is None and entry.user_email is None
    assert entry.details == {'attempted_resource': '/api/test'}
    assert entry.user_agent == 'pytest-agent'


def test_user_without_permission_record_is_forbidden(make_user):
    user = make_user('no_perm')
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(user), '/api/test', None)
    assert exc.value.status_code == 403
    entry = _unauthorized_entries().get()
    assert entry.error_message == 'Permissions not found'
    assert entry.user_id == user.pk


def test_role_outside_allowed_set_is_forbidden(staff_a, clinic_a):
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(staff_a), '/api/test', str(clinic_a.id), allowed_roles=['clinic_admin'])
    assert exc.value.status_code == 403
    assert _unauthorized_entries().get().error_message == 'Forbidden role for requested operation'


def test_admin_bypasses_role_gate(hq_admin, clinic_a):
    ctx = ensure_clinic_access(_request(hq_admin), '/api/test', str(clinic_a.id), allowed_roles=['therapist'])
    assert ctx.role == 'admin'
    assert not _unauthorized_entries().exists()


def test_legacy_role_matches_canonical_allowed_role(make_user, clinic_a):
    user = make_user('legacy', 'clinic_manager', clinic_a)
    ctx = ensure_clinic_access(_request(user), '/api/test', str(clinic_a.id), allowed_roles=['clinic_admin'])
    assert ctx.role == 'clinic_admin'
    assert ctx.permissions.role == 'clinic_manager'


def test_foreign_clinic_is_forbidden_and_audited_with_clinic(staff_a, clinic_b):
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(staff_a), '/api/test', str(clinic_b.id), require_clinic_match=True)
    assert exc.value.status_code == 403
    entry = _unauthorized_entries().get()
    assert entry.error_message == 'Forbidden clinic access (parent-scope violation)'
    assert entry.details['attempted_resource'] == f'/api/test?clinic_id={clinic_b.id}'


def test_hq_admin_is_still_bound_by_scope(hq_admin, clinic_a, clinic_b):
    assert ensure_clinic_access(_request(hq_admin), '/api/test', str(clinic_a.id)).role == 'admin'
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(hq_admin), '/api/test', str(clinic_b.id))
    assert exc.value.status_code == 403


def test_missing_clinic_id_is_a_validation_error_without_audit(staff_a):
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(staff_a), '/api/test', None, require_clinic_match=True)
    assert exc.value.status_code == 400
    assert exc.value.code == 'VALIDATION_ERROR'
    assert not _unauthorized_entries().exists()


def test_clinic_check_is_skipped_without_clinic(staff_a):
    ctx = ensure_clinic_access(_request(staff_a), '/api/test', None)
    assert ctx.user == staff_a
    assert ctx.store.user == staff_a


def test_unknown_clinic_id_is_forbidden(staff_a):
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(staff_a), '/api/test', str(uuid.uuid4()))
    assert exc.value.status_code == 403


def test_clinic_scope_prefers_explicit_list(hq_admin, staff_a, hq, clinic_a):
    assert get_clinic_scope(hq_admin.permission) == frozenset({str(hq.id), str(clinic_a.id)})
    assert get_clinic_scope(staff_a.permission) == frozenset({str(clinic_a.id)})
    assert get_clinic_scope(UserPermission(role='staff')) == frozenset()


def test_verify_admin_auth_accepts_legacy_manager(make_user, clinic_a):
    user = make_user('mgr', 'clinic_manager', clinic_a)
    result = verify_admin_auth(_request(user))
    assert result.success
    assert result.user == {'id': str(user.pk), 'email': user.email, 'role': 'clinic_admin'}


def test_verify_admin_auth_rejects_staff(staff_a):
    result = verify_admin_auth(_request(staff_a))
    assert not result.success
    assert result.error == 'アクセス権限がありません'


def test_request_info_prefers_forwarded_header():
    request = RequestFactory().get('/', HTTP_X_FORWARDED_FOR='203.0.113.5, 10.0.0.1', HTTP_X_REAL_IP='10.0.0.2')
    assert audit.get_request_info(request) == ('203.0.113.5', None)
    request = RequestFactory().get('/', HTTP_X_REAL_IP='10.0.0.2')
    assert audit.get_request_info(request)[0] == '10.0.0.2'
    assert audit.get_request_info(RequestFactory().get('/'))[0] == '127.0.0.1'


def test_role_gate_is_reported_when_both_gates_fail(staff_a, clinic_b):
    with pytest.raises(AppError) as exc:
        ensure_clinic_access(_request(staff_a), '/api/test', str(clinic_b.id),
                             require_clinic_match=True, allowed_roles=['clinic_admin'])
    assert exc.value.status_code == 403
    entry = _unauthorized_entries().get()
    assert entry.error_message == 'Forbidden role for requested operation'
    assert entry.details == {'attempted_resource': '/api/test'}
