"""
Token authentication backend.

Kept in its own module, away from the views, so that importing the
REST framework settings does not pull in view code (and cause circular
imports during initialisation).
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """Token authentication that also accepts the ``Bearer`` keyword for DRF tokens.

    simplejwt handles ``Bearer`` JWTs; a 40-character DRF token key sent as
    ``Bearer`` is recognised here so older clients keep working.
    """

    keyword = 'Token'

    def authenticate(self, request):
        auth = authentication.get_authorization_header(request).split()
        if len(auth) == 2 and auth[0].lower() == b'bearer' and len(auth[1]) == 40 and b'.' not in auth[1]:
            try:
                key = auth[1].decode()
            except UnicodeError:
                return None
            return self.authenticate_credentials(key)
        return super().authenticate(request)
