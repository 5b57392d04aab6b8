"""Bearer-token authentication dependency."""

from __future__ import annotations

import jwt
from fastapi import Header, Request

from signalpress.errors import AuthError

ALGORITHM = "HS256"
USER_ROLE = "authenticated"


def decode_token(token: str, secret: str) -> str:
    """Verify a user JWT and return its subject."""
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM], options={"verify_aud": False})
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired") from None
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token format") from None

    # anon and service_role tokens are not user sessions
    if payload.get("role") != USER_ROLE:
        raise AuthError("User authentication required")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token: missing user ID")
    return str(user_id)


def current_user(request: Request, authorization: str | None = Header(None)) -> str:
    """Dependency: require a valid user token, return the user id."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")
    return decode_token(authorization[len("Bearer ") :].strip(), request.app.state.settings.jwt_secret)

