"""Durable side effects for resolved upload operations.

Operations run strictly one after another. A failure is recorded against
the operation that caused it and the batch moves on, so the results always
line up one-to-one with the input.
"""

import logging
import mimetypes
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from filedesk.audit import log_file_action
from filedesk.duplicates import check_duplicates
from filedesk.errors import DuplicateName, MetadataWriteError, MissingTarget
from filedesk.index_bridge import IndexBridge
from filedesk.models import File, FileWorkspace
from filedesk.models.enums import CommitOutcome, CommitStatus, FileAction
from filedesk.naming import fallback_display_name, normalize_filename, split_extension
from filedesk.storage import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    filename: str
    content: bytes = field(repr=False)
    mime_type: str | None = None
    last_modified: int = 0  # ms since epoch, as reported by the client

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def content_type(self) -> str:
        return (
            self.mime_type
            or mimetypes.guess_type(self.filename)[0]
            or "application/octet-stream"
        )


@dataclass
class UploadOperation:
    local_file: LocalFile
    name: str
    description: str | None
    action: FileAction
    owner_id: uuid.UUID
    workspace_id: uuid.UUID
    existing_file_id: uuid.UUID | None = None


@dataclass
class CommitResult:
    index: int
    original_filename: str
    name: str
    action: FileAction
    status: CommitStatus
    file_id: uuid.UUID | None = None
    storage_path: str | None = None
    error: str | None = None
    error_code: str | None = None
    existing_file_id: uuid.UUID | None = None

    @property
    def ok(self) -> bool:
        return self.status == CommitStatus.success


@dataclass
class CommitSummary:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[CommitResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.skipped + self.failed

    @property
    def outcome(self) -> CommitOutcome:
        if self.failed == 0 and self.succeeded == 0:
            return CommitOutcome.nothing_to_do
        if self.failed == 0:
            return CommitOutcome.all_succeeded
        if self.succeeded == 0:
            return CommitOutcome.all_failed
        return CommitOutcome.partial

    @property
    def message(self) -> str:
        attempted = self.succeeded + self.failed
        if self.outcome == CommitOutcome.nothing_to_do:
            return "No files to upload"
        if self.outcome == CommitOutcome.all_succeeded:
            return f"All {attempted} file{'s' if attempted != 1 else ''} uploaded successfully"
        return f"{self.succeeded} of {attempted} files succeeded"


def summarize(results: list[CommitResult], skipped: int = 0) -> CommitSummary:
    """Aggregate results; ``skipped`` adds files that never became operations."""
    summary = CommitSummary(skipped=skipped, results=list(results))
    for r in results:
        if not r.ok:
            summary.failed += 1
        elif r.action == FileAction.skip:
            summary.skipped += 1
        else:
            summary.succeeded += 1
    return summary


class FileCommitExecutor:
    def __init__(self, session: AsyncSession, store: ObjectStore, bridge: IndexBridge):
        self.session = session
        self.store = store
        self.bridge = bridge

    async def commit(self, operations: list[UploadOperation]) -> list[CommitResult]:
        results: list[CommitResult] = []
        for index, op in enumerate(operations):
            results.append(await self._commit_one(index, op))
        return results

    async def _commit_one(self, index: int, op: UploadOperation) -> CommitResult:
        original = op.local_file.filename
        name = normalize_filename(
            fallback_display_name(op.name, original), split_extension(original),
        )
        result = CommitResult(
            index=index,
            original_filename=original,
            name=name,
            action=op.action,
            status=CommitStatus.success,
        )

        if op.action == FileAction.skip:
            logger.info("Skipping file: %s", original)
            return result

        try:
            if op.action == FileAction.upload:
                record = await self._upload(op, name)
            elif op.action == FileAction.overwrite:
                record = await self._overwrite(op, name)
            else:
                raise MissingTarget(f"Unsupported action '{op.action.value}' for '{original}'")
        except Exception as e:
            logger.error("Failed to process file %s: %s", original, e, exc_info=True)
            await self.session.rollback()
            result.status = CommitStatus.error
            result.error = str(e) or "Unknown error"
            result.error_code = getattr(e, "code", "unexpected_error")
            if isinstance(e, DuplicateName):
                result.existing_file_id = e.existing_file_id
            return result

        result.file_id = record.id
        result.storage_path = record.storage_path
        return result

    async def _save(
        self,
        what: str,
        op: UploadOperation | None = None,
        claimed_name: str | None = None,
    ) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if claimed_name is None:
                raise MetadataWriteError(f"Failed to {what}: {e}") from e
            # Another commit took the name after the authoritative check
            existing = await check_duplicates(
                self.session, op.owner_id, op.workspace_id, [claimed_name],
            )
            raise DuplicateName(claimed_name, existing.get(claimed_name)) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise MetadataWriteError(f"Failed to {what}: {e}") from e

    async def _upload(self, op: UploadOperation, name: str) -> File:
        local = op.local_file
        self.store.check_size(local.size)

        # Authoritative check: other sessions may have committed since the
        # advisory check ran.
        existing = await check_duplicates(self.session, op.owner_id, op.workspace_id, [name])
        if name in existing:
            raise DuplicateName(name, existing[name])

        record = File(
            owner_id=op.owner_id,
            name=name,
            description=op.description or "",
            mime_type=local.content_type,
            size_bytes=local.size,
            storage_path="",
            token_count=0,
        )
        self.session.add(record)
        await self._save("create file record")

        # A failure from here on leaves the row with an empty storage_path and
        # no workspace link, for purge_orphaned_files to collect.
        record.storage_path = self.store.upload(
            op.owner_id, record.id, local.content, local.content_type,
        )
        self.session.add(FileWorkspace(
            file_id=record.id,
            workspace_id=op.workspace_id,
            owner_id=op.owner_id,
            name=name,
        ))
        await log_file_action(
            self.session, "upload_file", record, workspace_id=str(op.workspace_id),
        )
        await self._save("link file to workspace", op, name)
        logger.info("Uploaded file %s as %s", record.id, name)

        await self.bridge.notify_upserted(record)
        return record

    async def _overwrite(self, op: UploadOperation, name: str) -> File:
        local = op.local_file
        if op.existing_file_id is None:
            raise MissingTarget(f"Missing existing file id for overwrite of '{local.filename}'")
        self.store.check_size(local.size)

        result = await self.session.execute(
            select(File)
            .join(FileWorkspace, FileWorkspace.file_id == File.id)
            .where(
                File.id == op.existing_file_id,
                File.owner_id == op.owner_id,
                FileWorkspace.workspace_id == op.workspace_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise MissingTarget(f"File {op.existing_file_id} not found in this workspace")

        links = await self.session.execute(
            select(FileWorkspace).where(FileWorkspace.file_id == record.id)
        )
        for link in links.scalars():
            link.name = name
        record.name = name
        if op.description is not None:
            record.description = op.description
        record.size_bytes = local.size
        record.mime_type = local.content_type
        await self._save("update file record", op, name)

        # Same {owner}/{file_id} key every time, so the path is stable
        path = self.store.upload(op.owner_id, record.id, local.content, local.content_type)
        if record.storage_path != path:
            record.storage_path = path
        await log_file_action(self.session, "overwrite_file", record)
        await self._save("update file path")
        logger.info("Overwrote file %s as %s", record.id, name)

        await self.bridge.notify_upserted(record)
        return record
