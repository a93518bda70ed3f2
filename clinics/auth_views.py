"""
Authentication views.

Login issues both a DRF token (``Authorization: Token <key>``) and a
simplejwt pair; logout blacklists refresh tokens.  Successful and
failed logins are written to the audit trail.  The profile endpoint
reports the caller's normalised role and clinic scope.
"""
from __future__ import annotations

from django.contrib.auth import authenticate
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings as jwt_settings
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView

from clinics import roles
from clinics.exceptions import AppError, ErrorCode
from clinics.models import UserPermission
from clinics.responses import error_response, success_response
from clinics.serializers.auth import LoginSerializer, LogoutSerializer
from clinics.services import audit
from clinics.services.guards import get_clinic_scope


def _permission_payload(user) -> dict:
    perm = UserPermission.objects.filter(staff_id=user.pk).first()
    if perm is None:
        return {'role': None, 'clinicId': None, 'clinicScopeIds': []}
    return {
        'role': roles.normalize_role(perm.role),
        'clinicId': perm.clinic_id_str,
        'clinicScopeIds': sorted(get_clinic_scope(perm)),
    }


def _user_payload(user) -> dict:
    return {
        'id': str(user.pk),
        'username': user.username,
        'email': user.email,
        'name': user.get_full_name() or user.username,
        **_permission_payload(user),
    }


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']
    password = s.validated_data['password']
    ip, user_agent = audit.get_request_info(request)

    user = authenticate(request, username=username, password=password)
    if not user:
        audit.log_failed_login(username, ip, user_agent, 'invalid credentials')
        raise AppError(ErrorCode.INVALID_CREDENTIALS, status_code=401)

    audit.log_login(user.pk, user.email or '', ip, user_agent)

    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return success_response({
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
        'user': _user_payload(user),
    })

# DRF ScopedRateThrottle uses throttle_scope on the view function
login_view.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from a refresh token."""
    resp = TokenRefreshView.as_view()(request._request)
    if resp.status_code != 200:
        return error_response('セッションが期限切れです', 401, code=ErrorCode.UNAUTHORIZED)
    data = dict(resp.data)
    data['jwt_access'] = data.pop('access')
    if 'refresh' in data:
        data['jwt_refresh'] = data.pop('refresh')
    return success_response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist the given refresh token, or every outstanding one of the user."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    count = 0
    if refresh:
        try:
            token = RefreshToken(refresh)
        except TokenError:
            return error_response('無効なトークンです', 400)
        # only the owner may revoke a refresh token
        if str(token.payload.get(jwt_settings.USER_ID_CLAIM)) != str(request.user.pk):
            return error_response('このトークンを無効化する権限がありません', 403, code=ErrorCode.FORBIDDEN)
        token.blacklist()
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)

    ip, _ = audit.get_request_info(request)
    audit.log_logout(request.user.pk, request.user.email or '', ip)
    return success_response({'blacklisted': count})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile_view(request):
    return success_response(_user_payload(request.user))
