"""
Application errors and the DRF exception handler.

Every failure leaving the API is rendered as::

    {"success": false, "error": {"code": ..., "message": ..., "details"?: ...}}

Unexpected exceptions are logged with the request context and replaced
by a generic message so that internal detail never reaches the client.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from django.http import Http404
from django.utils import timezone
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response

from clinics.services import audit

logger = logging.getLogger(__name__)


class ErrorCode:
    UNKNOWN_ERROR = 'UNKNOWN_ERROR'
    INTERNAL_SERVER_ERROR = 'INTERNAL_SERVER_ERROR'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    REQUIRED_FIELD_MISSING = 'REQUIRED_FIELD_MISSING'
    INVALID_FORMAT = 'INVALID_FORMAT'
    UNAUTHORIZED = 'UNAUTHORIZED'
    FORBIDDEN = 'FORBIDDEN'
    INVALID_CREDENTIALS = 'INVALID_CREDENTIALS'
    RESOURCE_NOT_FOUND = 'RESOURCE_NOT_FOUND'
    RESOURCE_CONFLICT = 'RESOURCE_CONFLICT'
    DATABASE_ERROR = 'DATABASE_ERROR'
    CLINIC_NOT_FOUND = 'CLINIC_NOT_FOUND'
    PATIENT_NOT_FOUND = 'PATIENT_NOT_FOUND'
    STAFF_NOT_FOUND = 'STAFF_NOT_FOUND'
    INVALID_DATE_RANGE = 'INVALID_DATE_RANGE'


ERROR_MESSAGES = {
    ErrorCode.UNKNOWN_ERROR: '不明なエラーが発生しました',
    ErrorCode.INTERNAL_SERVER_ERROR: 'サーバー内部エラーが発生しました',
    ErrorCode.VALIDATION_ERROR: '入力値にエラーがあります',
    ErrorCode.REQUIRED_FIELD_MISSING: '必須フィールドが不足しています',
    ErrorCode.INVALID_FORMAT: '入力形式が正しくありません',
    ErrorCode.UNAUTHORIZED: '認証が必要です',
    ErrorCode.FORBIDDEN: 'アクセス権限がありません',
    ErrorCode.INVALID_CREDENTIALS: '認証情報が正しくありません',
    ErrorCode.RESOURCE_NOT_FOUND: 'リソースが見つかりません',
    ErrorCode.RESOURCE_CONFLICT: 'リソースの競合が発生しました',
    ErrorCode.DATABASE_ERROR: 'データベースエラーが発生しました',
    ErrorCode.CLINIC_NOT_FOUND: '店舗が見つかりません',
    ErrorCode.PATIENT_NOT_FOUND: '患者が見つかりません',
    ErrorCode.STAFF_NOT_FOUND: 'スタッフが見つかりません',
    ErrorCode.INVALID_DATE_RANGE: '日付範囲が無効です',
}

ERROR_STATUS = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.REQUIRED_FIELD_MISSING: 400,
    ErrorCode.INVALID_FORMAT: 400,
    ErrorCode.INVALID_DATE_RANGE: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.CLINIC_NOT_FOUND: 404,
    ErrorCode.PATIENT_NOT_FOUND: 404,
    ErrorCode.STAFF_NOT_FOUND: 404,
    ErrorCode.RESOURCE_CONFLICT: 409,
}


def error_code_for_status(status: int) -> str:
    return {
        400: ErrorCode.VALIDATION_ERROR,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.RESOURCE_NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        500: ErrorCode.INTERNAL_SERVER_ERROR,
    }.get(status, ErrorCode.UNKNOWN_ERROR)


class AppError(Exception):
    """An error with a stable code, a client-safe message and an HTTP status."""

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code) or ERROR_MESSAGES[ErrorCode.UNKNOWN_ERROR]
        self.status_code = status_code or ERROR_STATUS.get(code, 500)
        self.details = details
        super().__init__(self.message)

    def to_api_error(self, path: Optional[str] = None) -> dict[str, Any]:
        error: dict[str, Any] = {
            'code': self.code,
            'message': self.message,
            'timestamp': timezone.now().isoformat(),
        }
        if self.details is not None:
            error['details'] = self.details
        if path is not None:
            error['path'] = path
        return error

    def to_response(self) -> Response:
        error: dict[str, Any] = {'code': self.code, 'message': self.message}
        if self.details is not None:
            error['details'] = self.details
        return Response({'success': False, 'error': error}, status=self.status_code)


def log_error(
    exc: BaseException,
    *,
    endpoint: str,
    user_id: Any = None,
    method: Optional[str] = None,
    params: Any = None,
) -> None:
    logger.error(
        'API error at %s: %s',
        endpoint,
        exc,
        exc_info=exc,
        extra={'endpoint': endpoint, 'user_id': str(user_id) if user_id else None,
               'method': method, 'params': params},
    )


def _envelope(code: str, message: Any, status: int, details: Any = None) -> Response:
    error: dict[str, Any] = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return Response({'success': False, 'error': error}, status=status)


def _audit_unauthenticated(context):
    # rejected credentials fail before the view runs, so the guard never sees them
    request = context.get('request') if context else None
    if request is None:
        return
    ip, user_agent = audit.get_request_info(request)
    audit.log_unauthorized_access(request.path, 'Authentication required', None, None, ip, user_agent)


def api_exception_handler(exc, context):
    """Render any exception raised by a view in the uniform error envelope."""
    if isinstance(exc, AppError):
        return exc.to_response()

    if isinstance(exc, drf_exceptions.ValidationError):
        return _envelope(ErrorCode.VALIDATION_ERROR, ERROR_MESSAGES[ErrorCode.VALIDATION_ERROR],
                         400, details=exc.detail)

    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        _audit_unauthenticated(context)
        return _envelope(ErrorCode.UNAUTHORIZED, ERROR_MESSAGES[ErrorCode.UNAUTHORIZED], 401)

    if isinstance(exc, drf_exceptions.PermissionDenied):
        return _envelope(ErrorCode.FORBIDDEN, ERROR_MESSAGES[ErrorCode.FORBIDDEN], 403)

    if isinstance(exc, (drf_exceptions.NotFound, Http404)):
        return _envelope(ErrorCode.RESOURCE_NOT_FOUND, ERROR_MESSAGES[ErrorCode.RESOURCE_NOT_FOUND], 404)

    if isinstance(exc, drf_exceptions.APIException):
        # MethodNotAllowed, ParseError, Throttled, ...
        return _envelope(error_code_for_status(exc.status_code), exc.detail, exc.status_code)

    request = context.get('request') if context else None
    log_error(
        exc,
        endpoint=getattr(request, 'path', '') if request is not None else '',
        user_id=getattr(getattr(request, 'user', None), 'pk', None),
        method=getattr(request, 'method', None),
        params=dict(request.query_params) if request is not None and hasattr(request, 'query_params') else None,
    )
    return _envelope(ErrorCode.INTERNAL_SERVER_ERROR, ERROR_MESSAGES[ErrorCode.INTERNAL_SERVER_ERROR], 500)
