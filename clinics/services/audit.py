"""
Audit trail writers.

All writers funnel into :func:`record_event`, which persists an
:class:`~clinics.models.AuditLog` row.  If the database write fails the
entry is emitted on the ``clinics.audit`` logger instead and the caller
carries on; auditing never turns a successful request into a failure.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from django.db import DatabaseError, transaction

from clinics.models import AuditLog

logger = logging.getLogger('clinics.audit')

LOGIN = 'login'
LOGOUT = 'logout'
FAILED_LOGIN = 'failed_login'
DATA_ACCESS = 'data_access'
DATA_MODIFY = 'data_modify'
DATA_DELETE = 'data_delete'
ADMIN_ACTION = 'admin_action'
UNAUTHORIZED_ACCESS = 'unauthorized_access'


def get_request_info(request) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(ip_address, user_agent)`` for a Django or DRF request."""
    meta = getattr(request, 'META', {}) or {}
    forwarded = meta.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        ip = forwarded.split(',')[0].strip() or None
    else:
        ip = meta.get('HTTP_X_REAL_IP') or meta.get('REMOTE_ADDR') or None
    return ip, meta.get('HTTP_USER_AGENT') or None


def record_event(
    *,
    event_type: str,
    success: bool = True,
    user_id: Any = None,
    user_email: Optional[str] = None,
    target_table: Optional[str] = None,
    target_id: Any = None,
    clinic_id: Any = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    error_message: Optional[str] = None,
) -> Optional[AuditLog]:
    data = {
        'event_type': event_type,
        'user_id': user_id or None,
        'user_email': user_email or None,
        'target_table': target_table,
        'target_id': str(target_id) if target_id is not None else None,
        'clinic_id': str(clinic_id) if clinic_id is not None else None,
        'ip_address': ip_address,
        'user_agent': user_agent,
        'details': details or {},
        'success': success,
        'error_message': error_message,
    }
    try:
        with transaction.atomic():
            return AuditLog.objects.create(**data)
    except (DatabaseError, ValueError) as exc:
        logger.error('audit log write failed, falling back to log output: %s', exc,
                     extra={'audit': {k: str(v) if v is not None else None for k, v in data.items()}})
        return None


def log_login(user_id, user_email, ip_address=None, user_agent=None):
    return record_event(event_type=LOGIN, user_id=user_id, user_email=user_email,
                        ip_address=ip_address, user_agent=user_agent)


def log_failed_login(email, ip_address=None, user_agent=None, error_message=None):
    return record_event(event_type=FAILED_LOGIN, success=False, user_email=email,
                        ip_address=ip_address, user_agent=user_agent, error_message=error_message)


def log_logout(user_id, user_email, ip_address=None):
    return record_event(event_type=LOGOUT, user_id=user_id, user_email=user_email,
                        ip_address=ip_address)


def log_data_access(user_id, user_email, target_table, target_id, clinic_id=None,
                    ip_address=None, details=None):
    return record_event(event_type=DATA_ACCESS, user_id=user_id, user_email=user_email,
                        target_table=target_table, target_id=target_id, clinic_id=clinic_id,
                        ip_address=ip_address, details=details)


def log_data_modify(user_id, user_email, target_table, target_id, changes, clinic_id=None,
                    ip_address=None):
    return record_event(event_type=DATA_MODIFY, user_id=user_id, user_email=user_email,
                        target_table=target_table, target_id=target_id, clinic_id=clinic_id,
                        ip_address=ip_address, details={'changes': changes})


def log_data_delete(user_id, user_email, target_table, target_id, clinic_id=None,
                    ip_address=None, deleted_data=None):
    return record_event(event_type=DATA_DELETE, user_id=user_id, user_email=user_email,
                        target_table=target_table, target_id=target_id, clinic_id=clinic_id,
                        ip_address=ip_address, details={'deleted_data': deleted_data})


def log_unauthorized_access(path, reason, user_id=None, user_email=None, ip_address=None,
                            user_agent=None):
    entry = record_event(event_type=UNAUTHORIZED_ACCESS, success=False, user_id=user_id,
                         user_email=user_email, ip_address=ip_address, user_agent=user_agent,
                         details={'attempted_resource': path}, error_message=reason)
    logger.warning('Unauthorized access attempt: %s (%s) user=%s ip=%s', path, reason, user_id, ip_address)
    return entry


def log_admin_action(user_id, user_email, action, target_id=None, details=None, ip_address=None):
    return record_event(event_type=ADMIN_ACTION, user_id=user_id, user_email=user_email,
                        target_id=target_id, ip_address=ip_address,
                        details={'action': action, **(details or {})})
