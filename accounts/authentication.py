"""
Bearer-token authentication.

Access tokens are HS256 JWTs signed with ``settings.JWT_SECRET_KEY``::

    {"sub": "<user id>", "type": "access", "iat": ..., "exp": ..., "jti": ...}

``sub`` is stored as a string because PyJWT rejects non-string subjects.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt
from django.conf import settings
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.request import Request

from .models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def generate_access_token(user: User) -> str:
    """Issue a signed access token for ``user``."""

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.pk),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=settings.JWT_ACCESS_EXPIRES),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify ``token`` and return its payload.

    Raises ``jwt.InvalidTokenError`` (or a subclass) on any failure.
    """

    payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload


class BearerTokenAuthentication(BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request: Request) -> Optional[Tuple[User, Dict[str, Any]]]:
        parts = get_authorization_header(request).split()
        if not parts or parts[0].lower() != self.keyword.lower().encode():
            return None
        if len(parts) != 2:
            raise AuthenticationFailed("Invalid token format")

        try:
            payload = decode_access_token(parts[1].decode())
        except UnicodeError:
            raise AuthenticationFailed("Invalid token format")
        except jwt.ExpiredSignatureError:
            raise AuthenticationFailed("Token expired")
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise AuthenticationFailed("Invalid token format")

        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise AuthenticationFailed("Invalid token format")

        user = User.objects.filter(pk=user_id, is_active=True).first()
        if user is None:
            raise AuthenticationFailed("User not found")
        return user, payload

    def authenticate_header(self, request: Request) -> str:
        return f'{self.keyword} realm="api"'
