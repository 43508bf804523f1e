"""Stored file queries, deletion and orphan cleanup."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from filedesk.audit import log_audit, log_file_action
from filedesk.errors import FileNotFound, StorageWriteError
from filedesk.index_bridge import IndexBridge
from filedesk.models import File, FileWorkspace, Workspace
from filedesk.storage import ObjectStore, storage_path_for

logger = logging.getLogger(__name__)


@dataclass
class DeleteReport:
    deleted: list[uuid.UUID] = field(default_factory=list)
    failed: dict[uuid.UUID, str] = field(default_factory=dict)


async def get_workspace(
    session: AsyncSession, owner_id: uuid.UUID, workspace_id: uuid.UUID,
) -> Workspace | None:
    result = await session.execute(
        select(Workspace).where(
            Workspace.id == workspace_id, Workspace.owner_id == owner_id,
        )
    )
    return result.scalar_one_or_none()


async def list_workspace_files(
    session: AsyncSession, owner_id: uuid.UUID, workspace_id: uuid.UUID,
) -> list[File]:
    result = await session.execute(
        select(File)
        .join(FileWorkspace, FileWorkspace.file_id == File.id)
        .where(File.owner_id == owner_id, FileWorkspace.workspace_id == workspace_id)
        .order_by(File.name)
    )
    return list(result.scalars().all())


async def get_file(
    session: AsyncSession, owner_id: uuid.UUID, file_id: uuid.UUID,
) -> File:
    result = await session.execute(
        select(File).where(File.id == file_id, File.owner_id == owner_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise FileNotFound(f"File {file_id} not found")
    return record


async def _delete_record(
    session: AsyncSession, store: ObjectStore, bridge: IndexBridge, record: File,
) -> None:
    # Index first; a failure there never blocks the real delete
    await bridge.notify_deleted(record.id)

    if record.storage_path:
        try:
            store.delete(record.storage_path)
        except StorageWriteError:
            logger.exception("Failed to remove blob %s", record.storage_path)

    await session.execute(delete(FileWorkspace).where(FileWorkspace.file_id == record.id))
    await session.execute(delete(File).where(File.id == record.id))


async def delete_files(
    session: AsyncSession,
    store: ObjectStore,
    bridge: IndexBridge,
    owner_id: uuid.UUID,
    file_ids: list[uuid.UUID],
) -> DeleteReport:
    """Delete files one by one; a failed file does not stop the rest."""
    report = DeleteReport()
    for file_id in file_ids:
        try:
            record = await get_file(session, owner_id, file_id)
            await log_file_action(session, "delete_file", record)
            await _delete_record(session, store, bridge, record)
            await session.commit()
        except Exception as e:
            logger.error("Error deleting file %s: %s", file_id, e)
            await session.rollback()
            report.failed[file_id] = str(e)
            continue
        report.deleted.append(file_id)
    logger.info(
        "Deleted %d file(s), %d failed", len(report.deleted), len(report.failed),
    )
    return report


def signed_download_url(store: ObjectStore, record: File, expires_seconds: int) -> str:
    if not record.storage_path:
        raise FileNotFound(f"File {record.id} has no stored content")
    return store.signed_url(record.storage_path, expires_seconds)


async def purge_orphaned_files(
    session: AsyncSession,
    store: ObjectStore,
    older_than: datetime,
    owner_id: uuid.UUID | None = None,
) -> list[uuid.UUID]:
    """Remove rows left behind by uploads that never finished.

    An upload is finished once its row has a storage path and a workspace
    link; both are written in the same commit.
    """
    unlinked = ~exists().where(FileWorkspace.file_id == File.id)
    query = select(File).where(
        or_(File.storage_path == "", unlinked), File.created_at < older_than,
    )
    if owner_id is not None:
        query = query.where(File.owner_id == owner_id)
    result = await session.execute(query)
    orphans = list(result.scalars().all())
    for record in orphans:
        # The write may have landed even though the path update did not
        try:
            store.delete(record.storage_path or storage_path_for(record.owner_id, record.id))
        except StorageWriteError:
            logger.debug("No blob to remove for orphan %s", record.id)
        await session.execute(delete(FileWorkspace).where(FileWorkspace.file_id == record.id))
        await session.execute(delete(File).where(File.id == record.id))
    if orphans:
        await log_audit(
            session, owner_id=owner_id, action="purge_orphaned_files",
            detail={"file_ids": [str(r.id) for r in orphans]},
        )
    await session.commit()
    logger.info("Purged %d orphaned file record(s)", len(orphans))
    return [r.id for r in orphans]
