"""JWT access tokens identifying the acting user."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from huddle_chat.core.settings import Settings, settings


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be validated."""


def create_access_token(
    subject: str,
    extra_claims: dict[str, str] | None = None,
    *,
    config: Settings | None = None,
) -> str:
    """Create a JWT access token for ``subject`` (a user id)."""
    config = config or settings
    to_encode: dict[str, object] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=config.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        config.secret_key,
        algorithm=config.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str, *, config: Settings | None = None) -> str:
    """Return the user id carried by a valid token.

    Raises:
        InvalidTokenError: If the token is malformed, expired or has no subject
    """
    config = config or settings
    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.jwt_algorithm])
    except JWTError as err:
        raise InvalidTokenError("Could not validate credentials") from err

    subject = payload.get("sub")
    if not subject:
        raise InvalidTokenError("Token has no subject")
    return str(subject)
