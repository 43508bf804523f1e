"""Audit trail for stored-file changes."""

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from filedesk.models import AuditLog, File


async def log_audit(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID | None = None,
    action: str,
    target_type: str | None = None,
    target_id: uuid.UUID | None = None,
    detail: dict[str, Any] | None = None,
) -> None:
    """Stage an audit row; it is written with the caller's next commit."""
    session.add(AuditLog(
        owner_id=owner_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        detail=detail or {},
    ))


async def log_file_action(
    session: AsyncSession, action: str, record: File, **detail: Any,
) -> None:
    await log_audit(
        session,
        owner_id=record.owner_id,
        action=action,
        target_type="file",
        target_id=record.id,
        detail={"name": record.name, **detail},
    )
