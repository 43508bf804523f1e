"""FastAPI dependencies: caller identity and shared collaborators."""

import uuid
from dataclasses import dataclass

import jwt
from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from filedesk.auth import decode_token
from filedesk.db import async_session_factory
from filedesk.index_bridge import IndexBridge, get_index_bridge
from filedesk.storage import ObjectStore, get_object_store
from filedesk.upload_session import SessionRegistry


@dataclass
class Principal:
    """Authenticated caller identity; ``id`` is the owner id."""

    id: uuid.UUID


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return None


async def require_user(request: Request) -> Principal:
    token = _extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
        )
    try:
        payload = decode_token(token)
        return Principal(id=uuid.UUID(payload["sub"]))
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )


def get_store() -> ObjectStore:
    return get_object_store()


def get_bridge() -> IndexBridge:
    return get_index_bridge()


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.upload_sessions


def get_session_factory() -> async_sessionmaker:
    """Factory for work that outlives a request (upload session checks)."""
    return async_session_factory
