import datetime as dt
from typing import Any, Dict, Tuple

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from ninja.security import HttpBearer

User = get_user_model()


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _secret_and_alg() -> Tuple[str, str]:
    return (
        getattr(settings, "JWT_SECRET", settings.SECRET_KEY),
        getattr(settings, "JWT_ALGORITHM", "HS256"),
    )


def decode_token(token: str) -> Dict[str, Any]:
    secret, alg = _secret_and_alg()
    return jwt.decode(token, secret, algorithms=[alg])


class JWTAuth(HttpBearer):
    """Resolve the bearer token to an active user; billing calls key on `request.auth.id`."""

    def authenticate(self, request, token: str):
        try:
            payload = decode_token(token)
        except jwt.PyJWTError:
            return None
        if payload.get("type", "access") != "access":
            return None
        user_id = payload.get("user_id") or payload.get("sub")
        if not user_id:
            return None
        try:
            return User.objects.get(id=user_id, is_active=True)
        except (User.DoesNotExist, ValueError):
            return None


def create_tokens(user_id: int, email: str | None = None) -> Tuple[str, str, int, int]:
    access_ttl = int(getattr(settings, "JWT_ACCESS_TTL_MIN", 60))
    refresh_ttl_days = int(getattr(settings, "JWT_REFRESH_TTL_DAYS", 30))

    now = _now()
    base_claims: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
    }
    if email:
        base_claims["email"] = email

    access_exp = now + dt.timedelta(minutes=access_ttl)
    refresh_exp = now + dt.timedelta(days=refresh_ttl_days)
    secret, alg = _secret_and_alg()
    access = jwt.encode({**base_claims, "type": "access", "exp": int(access_exp.timestamp())}, secret, algorithm=alg)
    refresh = jwt.encode({**base_claims, "type": "refresh", "exp": int(refresh_exp.timestamp())}, secret, algorithm=alg)
    return access, refresh, access_ttl * 60, refresh_ttl_days * 24 * 3600


def create_jwt_token(user) -> str:
    """Signed access token for the given user (used by tests and service-to-service calls)."""
    access, _, _, _ = create_tokens(user_id=user.id, email=getattr(user, "email", None))
    return access
