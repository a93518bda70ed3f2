"""
Uniform JSON envelope used by every API endpoint.

Success: ``{"success": true, "data": ..., "message"?}``
Failure: ``{"success": false, "error": {"code", "message", "details"?}}``
"""
from __future__ import annotations

from typing import Any, Optional

from rest_framework.response import Response


def success_response(data: Any, status: int = 200, message: Optional[str] = None) -> Response:
    payload: dict[str, Any] = {'success': True, 'data': data}
    if message is not None:
        payload['message'] = message
    return Response(payload, status=status)


def error_response(
    message: str,
    status: int = 500,
    details: Any = None,
    code: Optional[str] = None,
) -> Response:
    from .exceptions import error_code_for_status

    error: dict[str, Any] = {
        'code': code or error_code_for_status(status),
        'message': message,
    }
    if details is not None:
        error['details'] = details
    return Response({'success': False, 'error': error}, status=status)
