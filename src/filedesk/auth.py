"""JWT decoding for the identity supplied by the auth provider."""

import jwt

from filedesk.config import get_settings


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Raises jwt.PyJWTError on failure."""
    settings = get_settings()
    return jwt.decode(
        token, settings.secret_key, algorithms=[settings.jwt_algorithm]
    )


def create_access_token(owner_id: str) -> str:
    """Mint a token for an owner id (used by tooling and tests)."""
    settings = get_settings()
    return jwt.encode(
        {"sub": owner_id, "type": "access"},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
