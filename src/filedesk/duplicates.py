"""Bulk name-existence checks scoped to an owner and workspace."""

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from filedesk.errors import TransientCheckError
from filedesk.models import File, FileWorkspace

logger = logging.getLogger(__name__)


async def check_duplicates(
    session: AsyncSession,
    owner_id: uuid.UUID,
    workspace_id: uuid.UUID,
    names: Iterable[str],
) -> dict[str, uuid.UUID]:
    """Return ``{name: file_id}`` for every candidate name already taken.

    Names must already be normalized. One query per call regardless of how
    many names are passed; an empty input never touches the database.
    """
    candidates = sorted(set(names))
    if not candidates:
        return {}

    try:
        result = await session.execute(
            select(File.name, File.id)
            .join(FileWorkspace, FileWorkspace.file_id == File.id)
            .where(
                File.owner_id == owner_id,
                FileWorkspace.workspace_id == workspace_id,
                File.name.in_(candidates),
            )
        )
    except SQLAlchemyError as e:
        logger.error("Duplicate check failed for %d names: %s", len(candidates), e)
        raise TransientCheckError(f"Error checking duplicate files: {e}") from e

    existing: dict[str, uuid.UUID] = {}
    for name, file_id in result.all():
        existing.setdefault(name, file_id)
    return existing


class DuplicateChecker:
    """Binds the detector to a session factory for use by upload sessions."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def __call__(
        self,
        owner_id: uuid.UUID,
        workspace_id: uuid.UUID,
        names: list[str],
    ) -> dict[str, uuid.UUID]:
        if not names:
            return {}
        async with self.session_factory() as session:
            return await check_duplicates(session, owner_id, workspace_id, names)
