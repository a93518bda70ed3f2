import logging

import pytest
from django.db import DatabaseError

from clinics.models import AuditLog
from clinics.services import audit
from clinics.services.sanitize import sanitize_input

pytestmark = pytest.mark.django_db


def test_data_modify_wraps_changes(staff_a, clinic_a):
    entry = audit.log_data_modify(staff_a.pk, staff_a.email, 'customers', 'abc', {'name': 'x'},
                                  clinic_a.id, '192.0.2.1')
    entry.refresh_from_db()
    assert entry.event_type == 'data_modify'
    assert entry.details == {'changes': {'name': 'x'}}
    assert entry.clinic_id == str(clinic_a.id)
    assert entry.success is True


def test_admin_action_merges_details(staff_a):
    entry = audit.log_admin_action(staff_a.pk, staff_a.email, 'update_settings', None, {'category': 'clinic_hours'})
    assert entry.details == {'action': 'update_settings', 'category': 'clinic_hours'}
    assert entry.target_id is None


def test_failed_login_is_unsuccessful():
    entry = audit.log_failed_login('nobody', '192.0.2.9', 'ua', 'invalid credentials')
    assert entry.success is False
    assert entry.user_id is None
    assert entry.user_email == 'nobody'


def test_write_failure_falls_back_to_logger(monkeypatch, caplog):
    def broken(**kwargs):
        raise DatabaseError('audit table missing')

    monkeypatch.setattr(AuditLog.objects, 'create', broken)
    with caplog.at_level(logging.ERROR, logger='clinics.audit'):
        assert audit.log_logout(None, 'someone@example.com', '192.0.2.1') is None
    assert 'audit log write failed' in caplog.text


def test_sanitize_strips_markup_and_dangerous_keys():
    payload = {
        'name': '<script>alert(1)</script>山田',
        '__proto__': {'admin': True},
        'tags': ['<b>a</b>', 3],
        'nested': {'constructor': 'x', 'ok': '<i>y</i>'},
    }
    assert sanitize_input(payload) == {
        'name': 'alert(1)山田',
        'tags': ['a', 3],
        'nested': {'ok': 'y'},
    }
