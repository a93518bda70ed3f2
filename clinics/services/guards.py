"""
Authorization and tenant-boundary checks for API requests.

:func:`ensure_clinic_access` is the single place where a request is
checked for an authenticated principal, a permission record, an
acceptable role and a clinic inside the principal's scope.  Every
refusal except a missing ``clinic_id`` is written to the audit trail.

:func:`process_api_request` wraps the guard for views: it never raises
and instead returns an :class:`ApiRequestResult` carrying either the
access context (and the sanitised JSON body) or a ready error response.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from rest_framework.exceptions import AuthenticationFailed, ParseError
from rest_framework.response import Response

from clinics import roles
from clinics.exceptions import AppError, ErrorCode
from clinics.models import UserPermission
from clinics.responses import error_response
from clinics.services import audit
from clinics.services.datastore import ClinicDataStore
from clinics.services.sanitize import sanitize_input

logger = logging.getLogger(__name__)

REASON_AUTH_REQUIRED = 'Authentication required'
REASON_NO_PERMISSIONS = 'Permissions not found'
REASON_FORBIDDEN_ROLE = 'Forbidden role for requested operation'
REASON_FORBIDDEN_CLINIC = 'Forbidden clinic access (parent-scope violation)'


@dataclass
class ClinicAccessContext:
    store: ClinicDataStore
    user: Any
    permissions: UserPermission

    @property
    def role(self) -> Optional[str]:
        return roles.normalize_role(self.permissions.role)


@dataclass
class ApiRequestResult:
    success: bool
    auth: Optional[dict] = None
    permissions: Optional[UserPermission] = None
    store: Optional[ClinicDataStore] = None
    body: Any = None
    error: Optional[Response] = None
    user: Any = field(default=None, repr=False)


@dataclass
class AuthResult:
    success: bool
    user: Optional[dict] = None
    error: Optional[str] = None


def _current_user(request):
    try:
        user = getattr(request, 'user', None)
    except AuthenticationFailed:
        return None
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return user


def _load_permissions(user) -> Optional[UserPermission]:
    return UserPermission.objects.select_related('clinic').filter(staff_id=user.pk).first()


def get_clinic_scope(permissions: UserPermission) -> frozenset[str]:
    """Clinic ids the principal may act on.

    An explicit ``clinic_scope_ids`` list wins; otherwise the scope is the
    home clinic alone (or empty when there is none).
    """
    explicit = [str(c) for c in (permissions.clinic_scope_ids or []) if c]
    if explicit:
        return frozenset(explicit)
    if permissions.clinic_id:
        return frozenset({str(permissions.clinic_id)})
    return frozenset()


def ensure_clinic_access(
    request,
    path: str,
    clinic_id: Optional[str],
    *,
    require_clinic_match: Optional[bool] = None,
    allowed_roles: Optional[Iterable[str]] = None,
) -> ClinicAccessContext:
    ip, user_agent = audit.get_request_info(request)

    user = _current_user(request)
    if user is None:
        audit.log_unauthorized_access(path, REASON_AUTH_REQUIRED, None, None, ip, user_agent)
        raise AppError(ErrorCode.UNAUTHORIZED, status_code=401)

    email = user.email or ''
    permissions = _load_permissions(user)
    if permissions is None:
        audit.log_unauthorized_access(path, REASON_NO_PERMISSIONS, user.pk, email, ip, user_agent)
        raise AppError(ErrorCode.FORBIDDEN, status_code=403)

    role = roles.normalize_role(permissions.role)
    allowed = roles.normalize_roles(allowed_roles)
    if allowed and role not in allowed and not roles.can_access_cross_clinic(role):
        audit.log_unauthorized_access(path, REASON_FORBIDDEN_ROLE, user.pk, email, ip, user_agent)
        raise AppError(ErrorCode.FORBIDDEN, status_code=403)

    if require_clinic_match is None:
        require_clinic_match = clinic_id is not None
    if require_clinic_match:
        if not clinic_id:
            raise AppError(ErrorCode.VALIDATION_ERROR, 'clinic_idは必須です', 400)
        # HQ roles are bound by their scope as well
        if str(clinic_id) not in get_clinic_scope(permissions):
            audit.log_unauthorized_access(f'{path}?clinic_id={clinic_id}', REASON_FORBIDDEN_CLINIC,
                                          user.pk, email, ip, user_agent)
            raise AppError(ErrorCode.FORBIDDEN, status_code=403)

    return ClinicAccessContext(store=ClinicDataStore(user), user=user, permissions=permissions)


def process_api_request(
    request,
    *,
    clinic_id: Optional[str] = None,
    allowed_roles: Optional[Iterable[str]] = None,
    require_clinic_match: Optional[bool] = None,
    require_body: bool = False,
    sanitize: bool = True,
) -> ApiRequestResult:
    try:
        ctx = ensure_clinic_access(
            request,
            request.path,
            clinic_id,
            require_clinic_match=require_clinic_match,
            allowed_roles=allowed_roles,
        )

        body = None
        if require_body:
            try:
                raw = request.data
            except ParseError:
                return ApiRequestResult(success=False, error=error_response('無効なJSONデータです', 400))
            body = sanitize_input(raw) if sanitize else raw

        return ApiRequestResult(
            success=True,
            auth={'id': str(ctx.user.pk), 'email': ctx.user.email or '', 'role': ctx.role},
            permissions=ctx.permissions,
            store=ctx.store,
            body=body,
            user=ctx.user,
        )
    except AppError as exc:
        return ApiRequestResult(
            success=False,
            error=error_response(exc.message, exc.status_code, code=exc.code),
        )
    except Exception:
        logger.exception('process_api_request failed for %s', getattr(request, 'path', ''))
        return ApiRequestResult(success=False, error=error_response('サーバーエラーが発生しました', 500))


def verify_admin_auth(request) -> AuthResult:
    """Check that the caller holds an administrative role (no clinic binding)."""
    try:
        ctx = ensure_clinic_access(
            request,
            request.path,
            None,
            require_clinic_match=False,
            allowed_roles=[roles.ADMIN, 'clinic_manager'],
        )
    except AppError as exc:
        return AuthResult(success=False, error=exc.message)
    return AuthResult(
        success=True,
        user={'id': str(ctx.user.pk), 'email': ctx.user.email or '', 'role': ctx.role},
    )
