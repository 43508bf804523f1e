"""Upload session: per-dialog state machine for selected files.

Every selected file moves through::

    new -> checking -> unique | duplicate
    duplicate -> (rename) -> renaming_checking | new -> checking -> ...
    duplicate -> (skip | overwrite) -> unique

Mutating methods are synchronous and finish by calling ``_drive()``, which
starts one batched duplicate check for every pending file whenever no check
is already in flight. They must be called from inside a running event loop.
"""

import asyncio
import dataclasses
import hashlib
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from filedesk.commit import (
    CommitResult,
    CommitSummary,
    LocalFile,
    UploadOperation,
    summarize,
)
from filedesk.errors import (
    DuplicateName,
    InvalidTransition,
    MissingTarget,
    SessionClosed,
    SessionNotReady,
    UnknownFile,
)
from filedesk.models.enums import FileAction, FileStatus, ResolveAction
from filedesk.naming import candidate_name, default_display_name

logger = logging.getLogger(__name__)

Checker = Callable[[uuid.UUID, uuid.UUID, list[str]], Awaitable[dict[str, uuid.UUID]]]
Committer = Callable[[list[UploadOperation]], Awaitable[list[CommitResult]]]

PENDING_STATUSES = (FileStatus.new, FileStatus.renaming_checking)


def selection_id(local_file: LocalFile) -> str:
    """Stable id from (filename, modification time, size)."""
    key = f"{local_file.filename}\x00{local_file.last_modified}\x00{local_file.size}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


@dataclass
class SelectedFile:
    id: str
    local_file: LocalFile
    display_name: str
    original_filename: str
    description: str = ""
    status: FileStatus = FileStatus.new
    action: FileAction = FileAction.upload
    api_error: str | None = None
    existing_file_id: uuid.UUID | None = None
    commit_error: str | None = None
    checked_name: str | None = None

    @property
    def candidate_name(self) -> str:
        return candidate_name(self.display_name, self.original_filename)

    @property
    def size(self) -> int:
        return self.local_file.size


class UploadSession:
    def __init__(
        self,
        owner_id: uuid.UUID,
        workspace_id: uuid.UUID,
        checker: Checker,
        committer: Committer,
        retry_delay: float = 2.0,
    ):
        self.id = uuid.uuid4()
        self.owner_id = owner_id
        self.workspace_id = workspace_id
        self.checker = checker
        self.committer = committer
        self.retry_delay = retry_delay
        self.is_open = False
        self.is_loading = False
        self.last_summary: CommitSummary | None = None
        self._files: dict[str, SelectedFile] = {}
        self._check_task: asyncio.Task | None = None
        self._retry_handle: asyncio.TimerHandle | None = None

    # -- lifecycle --

    def open(self) -> None:
        self.is_open = True
        self.is_loading = False
        self.last_summary = None
        self._files = {}

    def close(self) -> None:
        """Discard all state. An in-flight check finishes but is ignored."""
        self.is_open = False
        self._files = {}
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    # -- observable state --

    @property
    def files(self) -> list[SelectedFile]:
        return [dataclasses.replace(f) for f in self._files.values()]

    @property
    def is_checking(self) -> bool:
        return self._check_task is not None

    def get_file(self, file_id: str) -> SelectedFile:
        return dataclasses.replace(self._get(file_id))

    async def wait_idle(self) -> None:
        """Wait until no duplicate check is in flight.

        Files whose last check failed are not waited for; they are retried
        after ``retry_delay`` or on the next mutation.
        """
        while self._check_task is not None:
            await asyncio.shield(self._check_task)

    # -- mutations --

    def select_files(self, local_files: list[LocalFile]) -> list[SelectedFile]:
        self._ensure_mutable()
        added = []
        for local in local_files:
            fid = selection_id(local)
            if fid in self._files:
                logger.info(
                    "Ignoring %s: same name, size and modification time as a selected file",
                    local.filename,
                )
                continue
            selected = SelectedFile(
                id=fid,
                local_file=local,
                display_name=default_display_name(local.filename),
                original_filename=local.filename,
            )
            self._files[fid] = selected
            added.append(dataclasses.replace(selected))
        self._drive(include_errored=True)
        return added

    def set_name(self, file_id: str, name: str) -> None:
        self._ensure_mutable()
        selected = self._get(file_id)
        selected.display_name = name
        selected.action = FileAction.upload
        selected.existing_file_id = None
        selected.commit_error = None
        selected.status = self._pending_status()
        self._drive(include_errored=True)

    def set_description(self, file_id: str, text: str) -> None:
        self._ensure_mutable()
        self._get(file_id).description = text

    def resolve_duplicate(
        self,
        file_id: str,
        action: ResolveAction | str,
        new_name: str | None = None,
    ) -> None:
        self._ensure_mutable()
        action = ResolveAction(action)
        selected = self._get(file_id)
        if selected.status != FileStatus.duplicate:
            raise InvalidTransition(
                f"File '{selected.original_filename}' is {selected.status.value}, not duplicate"
            )

        if action == ResolveAction.skip:
            selected.action = FileAction.skip
            selected.status = FileStatus.unique
        elif action == ResolveAction.overwrite:
            if selected.existing_file_id is None:
                raise MissingTarget(
                    f"No existing file recorded for '{selected.original_filename}'"
                )
            selected.action = FileAction.overwrite
            selected.status = FileStatus.unique
        elif new_name is None or not new_name.strip():
            # Rename chosen, new name still to come through set_name
            selected.action = FileAction.rename_initiate
        else:
            self.set_name(file_id, new_name)

    def remove_file(self, file_id: str) -> None:
        self._ensure_mutable()
        self._get(file_id)
        del self._files[file_id]

    def retry_checks(self) -> None:
        self._ensure_mutable()
        self._drive(include_errored=True)

    # -- commit --

    def can_commit(self) -> bool:
        if not self.is_open or self.is_loading or not self._files:
            return False
        if any(f.status != FileStatus.unique for f in self._files.values()):
            return False
        return any(f.action != FileAction.skip for f in self._files.values())

    async def commit(self) -> list[CommitResult]:
        if not self.can_commit():
            raise SessionNotReady("Files are not ready to upload")

        selected = [f for f in self._files.values() if f.action != FileAction.skip]
        skipped = [f for f in self._files.values() if f.action == FileAction.skip]
        operations = [
            UploadOperation(
                local_file=f.local_file,
                name=f.display_name,
                description=f.description,
                action=f.action,
                owner_id=self.owner_id,
                workspace_id=self.workspace_id,
                existing_file_id=(
                    f.existing_file_id if f.action == FileAction.overwrite else None
                ),
            )
            for f in selected
        ]

        self.is_loading = True
        try:
            results = await self.committer(operations)
        finally:
            self.is_loading = False

        if not self.is_open:
            return results

        for f, result in zip(selected, results):
            if result.ok:
                self._files.pop(f.id, None)
                continue
            f.commit_error = result.error
            if result.error_code == DuplicateName.code:
                f.status = FileStatus.duplicate
                f.action = FileAction.upload
                f.existing_file_id = result.existing_file_id
        for f in skipped:
            self._files.pop(f.id, None)

        self.last_summary = summarize(results, skipped=len(skipped))
        logger.info(
            "Upload session %s committed: %d succeeded, %d skipped, %d failed",
            self.id,
            self.last_summary.succeeded,
            self.last_summary.skipped,
            self.last_summary.failed,
        )
        return results

    # -- internals --

    def _get(self, file_id: str) -> SelectedFile:
        try:
            return self._files[file_id]
        except KeyError:
            raise UnknownFile(f"No selected file with id {file_id}") from None

    def _ensure_mutable(self) -> None:
        if not self.is_open:
            raise SessionClosed("Upload session is closed")
        if self.is_loading:
            raise InvalidTransition("Upload in progress")

    def _pending_status(self) -> FileStatus:
        if self._check_task is not None:
            return FileStatus.renaming_checking
        return FileStatus.new

    def _drive(self, include_errored: bool = False) -> None:
        if not self.is_open or self._check_task is not None:
            return
        pending = [f for f in self._files.values() if f.status in PENDING_STATUSES]
        errored = [f for f in pending if f.api_error is not None]
        if not include_errored:
            pending = [f for f in pending if f.api_error is None]
        if pending:
            if self._retry_handle is not None:
                self._retry_handle.cancel()
                self._retry_handle = None
            for f in pending:
                f.status = FileStatus.checking
                f.api_error = None
                f.checked_name = f.candidate_name
            self._check_task = asyncio.get_running_loop().create_task(
                self._run_check(pending)
            )
        elif errored and self._retry_handle is None:
            self._retry_handle = asyncio.get_running_loop().call_later(
                self.retry_delay, self._retry,
            )

    def _retry(self) -> None:
        self._retry_handle = None
        self._drive(include_errored=True)

    async def _run_check(self, batch: list[SelectedFile]) -> None:
        names = sorted({f.checked_name for f in batch})

        try:
            existing = await self.checker(self.owner_id, self.workspace_id, names)
        except Exception as e:
            logger.warning("Duplicate check failed for session %s: %s", self.id, e)
            self._apply_failure(batch, str(e) or "Duplicate check failed")
        else:
            self._apply_verdicts(batch, existing)
        finally:
            self._check_task = None

        self._drive()

    def _still_checking(self, f: SelectedFile) -> bool:
        # Removed, renamed or closed while the request was out
        return (
            self.is_open
            and self._files.get(f.id) is f
            and f.status == FileStatus.checking
        )

    def _apply_failure(self, batch: list[SelectedFile], message: str) -> None:
        for f in batch:
            if self._still_checking(f):
                f.status = FileStatus.new
                f.api_error = message

    def _apply_verdicts(
        self, batch: list[SelectedFile], existing: dict[str, uuid.UUID],
    ) -> None:
        for f in batch:
            if not self._still_checking(f):
                continue
            if f.checked_name in existing:
                f.status = FileStatus.duplicate
                f.existing_file_id = existing[f.checked_name]
            else:
                f.status = FileStatus.unique
                f.existing_file_id = None


class SessionRegistry:
    """Open upload sessions, keyed by id and scoped to their owner.

    Sessions untouched for ``ttl_seconds`` are closed and dropped the next
    time any session is opened or looked up. A session that is committing
    is never dropped.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._sessions: dict[uuid.UUID, UploadSession] = {}
        self._last_used: dict[uuid.UUID, float] = {}

    def open(self, session: UploadSession) -> UploadSession:
        self.expire_idle()
        session.open()
        self._sessions[session.id] = session
        self._last_used[session.id] = self.clock()
        logger.info(
            "Opened upload session %s for owner %s in workspace %s",
            session.id, session.owner_id, session.workspace_id,
        )
        return session

    def get(self, session_id: uuid.UUID, owner_id: uuid.UUID) -> UploadSession:
        self.expire_idle()
        session = self._sessions.get(session_id)
        if session is None or session.owner_id != owner_id:
            raise SessionClosed(f"No open upload session {session_id}")
        self._last_used[session_id] = self.clock()
        return session

    def close(self, session_id: uuid.UUID, owner_id: uuid.UUID) -> None:
        session = self.get(session_id, owner_id)
        session.close()
        del self._sessions[session_id]
        del self._last_used[session_id]
        logger.info("Closed upload session %s", session_id)

    def expire_idle(self) -> list[uuid.UUID]:
        if self.ttl_seconds is None:
            return []
        cutoff = self.clock() - self.ttl_seconds
        expired = [
            session_id
            for session_id, last_used in self._last_used.items()
            if last_used < cutoff and not self._sessions[session_id].is_loading
        ]
        for session_id in expired:
            self._sessions.pop(session_id).close()
            del self._last_used[session_id]
        if expired:
            logger.info("Expired %d idle upload session(s)", len(expired))
        return expired

    def __len__(self) -> int:
        return len(self._sessions)
