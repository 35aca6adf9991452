"""JWT helpers for the authentication collaborator.

Credentials are issued elsewhere; this service only needs to read the
subject out of a bearer token, plus a way to mint tokens for tooling.
"""

from __future__ import annotations

from datetime import timedelta

from jose import JWTError, jwt

from quandary.core.settings import settings
from quandary.db.time import utcnow


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be decoded into a user id."""


def create_access_token(user_id: int, *, expires_minutes: int | None = None) -> str:
    """Return a signed bearer token whose subject is ``user_id``."""
    ttl = expires_minutes or settings.access_token_expire_minutes
    payload = {
        "sub": str(user_id),
        "exp": utcnow() + timedelta(minutes=ttl),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int:
    """Return the user id carried by ``token``.

    Raises:
        InvalidTokenError: If the token is malformed, expired or has no subject.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as err:
        raise InvalidTokenError("Could not validate credentials") from err

    subject = payload.get("sub")
    if subject is None:
        raise InvalidTokenError("Could not validate credentials")
    try:
        return int(subject)
    except (TypeError, ValueError) as err:
        raise InvalidTokenError("Could not validate credentials") from err
