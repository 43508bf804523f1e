"""Upload session endpoints: select files, resolve duplicates, commit."""

import logging
import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filedesk.api.deps import (
    Principal,
    get_bridge,
    get_registry,
    get_session_factory,
    get_store,
    require_user,
)
from filedesk.api.schemas.uploads import (
    CommitResponse,
    CommitResultOut,
    CommitSummaryOut,
    OpenSessionRequest,
    ResolveDuplicateRequest,
    SelectedFileOut,
    SessionResponse,
    UpdateFileRequest,
)
from filedesk.commit import (
    CommitResult,
    CommitSummary,
    FileCommitExecutor,
    LocalFile,
    summarize,
)
from filedesk.config import get_settings
from filedesk.db import get_session
from filedesk.duplicates import DuplicateChecker
from filedesk.errors import (
    InvalidTransition,
    MissingTarget,
    SessionClosed,
    SessionNotReady,
    UnknownFile,
)
from filedesk.files import get_workspace
from filedesk.index_bridge import IndexBridge
from filedesk.storage import ObjectStore
from filedesk.upload_session import SessionRegistry, UploadSession, selection_id

logger = logging.getLogger(__name__)
router = APIRouter(tags=["uploads"])

READ_CHUNK = 64 * 1024


def _summary_out(summary: CommitSummary) -> CommitSummaryOut:
    return CommitSummaryOut(
        succeeded=summary.succeeded,
        skipped=summary.skipped,
        failed=summary.failed,
        outcome=summary.outcome.value,
        message=summary.message,
    )


def _result_out(r: CommitResult) -> CommitResultOut:
    return CommitResultOut(
        index=r.index,
        original_filename=r.original_filename,
        name=r.name,
        action=r.action.value,
        status=r.status.value,
        file_id=str(r.file_id) if r.file_id else None,
        storage_path=r.storage_path,
        error=r.error,
        error_code=r.error_code,
        existing_file_id=str(r.existing_file_id) if r.existing_file_id else None,
    )


def _session_out(upload: UploadSession, ignored_files: list[str] | None = None) -> SessionResponse:
    return SessionResponse(
        session_id=str(upload.id),
        workspace_id=str(upload.workspace_id),
        files=[
            SelectedFileOut(
                id=f.id,
                original_filename=f.original_filename,
                display_name=f.display_name,
                candidate_name=f.candidate_name,
                description=f.description,
                mime_type=f.local_file.content_type,
                size_bytes=f.size,
                status=f.status.value,
                action=f.action.value,
                api_error=f.api_error,
                existing_file_id=str(f.existing_file_id) if f.existing_file_id else None,
                commit_error=f.commit_error,
            )
            for f in upload.files
        ],
        is_loading=upload.is_loading,
        is_checking=upload.is_checking,
        can_commit=upload.can_commit(),
        last_summary=_summary_out(upload.last_summary) if upload.last_summary else None,
        ignored_files=ignored_files or [],
    )


def _lookup(
    registry: SessionRegistry, session_id: uuid.UUID, principal: Principal,
) -> UploadSession:
    try:
        return registry.get(session_id, principal.id)
    except SessionClosed as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _make_committer(
    session_factory: async_sessionmaker, store: ObjectStore, bridge: IndexBridge,
):
    async def committer(operations):
        async with session_factory() as session:
            executor = FileCommitExecutor(session, store, bridge)
            return await executor.commit(operations)

    return committer


@router.post("/upload-sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def open_session(
    body: OpenSessionRequest,
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    registry: SessionRegistry = Depends(get_registry),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    store: ObjectStore = Depends(get_store),
    bridge: IndexBridge = Depends(get_bridge),
):
    try:
        workspace_id = uuid.UUID(body.workspace_id)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid workspace_id: {body.workspace_id}")
    workspace = await get_workspace(session, principal.id, workspace_id)
    if workspace is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace not found")

    upload = UploadSession(
        owner_id=principal.id,
        workspace_id=workspace_id,
        checker=DuplicateChecker(session_factory),
        committer=_make_committer(session_factory, store, bridge),
        retry_delay=get_settings().duplicate_check_retry_seconds,
    )
    registry.open(upload)
    return _session_out(upload)


@router.get("/upload-sessions/{session_id}", response_model=SessionResponse)
async def get_upload_session(
    session_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    registry: SessionRegistry = Depends(get_registry),
):
    return _session_out(_lookup(registry, session_id, principal))


@router.post("/upload-sessions/{session_id}/files", response_model=SessionResponse)
async def select_files(
    session_id: uuid.UUID,
    files: list[UploadFile] = File(...),
    last_modified: list[int] = Form(default=[]),
    principal: Principal = Depends(require_user),
    registry: SessionRegistry = Depends(get_registry),
):
    upload = _lookup(registry, session_id, principal)
    settings = get_settings()
    max_file_bytes = settings.max_file_size_mb * 1_000_000

    local_files: list[LocalFile] = []
    for i, file in enumerate(files):
        chunks: list[bytes] = []
        total_size = 0
        while True:
            chunk = await file.read(READ_CHUNK)
            if not chunk:
                break
            chunks.append(chunk)
            total_size += len(chunk)
            if total_size > max_file_bytes:
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File '{file.filename}' exceeds {settings.max_file_size_mb}MB limit",
                )
        local_files.append(LocalFile(
            filename=file.filename or "file",
            content=b"".join(chunks),
            mime_type=file.content_type,
            last_modified=last_modified[i] if i < len(last_modified) else 0,
        ))

    # Same (name, mtime, size) as a file already in the session, or earlier
    # in this request
    seen = {f.id for f in upload.files}
    ignored = []
    for local in local_files:
        fid = selection_id(local)
        if fid in seen:
            ignored.append(local.filename)
        seen.add(fid)

    try:
        upload.select_files(local_files)
    except (SessionClosed, InvalidTransition) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _session_out(upload, ignored_files=ignored)


@router.patch("/upload-sessions/{session_id}/files/{file_id}", response_model=SessionResponse)
async def update_file(
    session_id: uuid.UUID,
    file_id: str,
    body: UpdateFileRequest,
    principal: Principal = Depends(require_user),
    registry: SessionRegistry = Depends(get_registry),
):
    upload = _lookup(registry, session_id, principal)
    try:
        if body.description is not None:
            upload.set_description(file_id, body.description)
        if body.name is not None:
            upload.set_name(file_id, body.name)
    except UnknownFile as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (SessionClosed, InvalidTransition) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _session_out(upload)


@router.post("/upload-sessions/{session_id}/files/{file_id}/resolve", response_model=SessionResponse)
async def resolve_duplicate(
    session_id: uuid.UUID,
    file_id: str,
    body: ResolveDuplicateRequest,
    principal: Principal = Depends(require_user),
    registry: SessionRegistry = Depends(get_registry),
):
    upload = _lookup(registry, session_id, principal)
    try:
        upload.resolve_duplicate(file_id, body.action, body.new_name)
    except ValueError:
        raise HTTPException(status_code=422, detail="action must be 'skip', 'overwrite' or 'rename'")
    except UnknownFile as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (SessionClosed, InvalidTransition, MissingTarget) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _session_out(upload)


@router.delete("/upload-sessions/{session_id}/files/{file_id}", response_model=SessionResponse)
async def remove_file(
    session_id: uuid.UUID,
    file_id: str,
    principal: Principal = Depends(require_user),
    registry: SessionRegistry = Depends(get_registry),
):
    upload = _lookup(registry, session_id, principal)
    try:
        upload.remove_file(file_id)
    except UnknownFile as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (SessionClosed, InvalidTransition) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _session_out(upload)


@router.post("/upload-sessions/{session_id}/commit", response_model=CommitResponse)
async def commit_session(
    session_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    registry: SessionRegistry = Depends(get_registry),
):
    upload = _lookup(registry, session_id, principal)
    try:
        results = await upload.commit()
    except SessionNotReady as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return CommitResponse(
        results=[_result_out(r) for r in results],
        summary=_summary_out(upload.last_summary or summarize(results)),
        session=_session_out(upload),
    )


@router.delete("/upload-sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    registry: SessionRegistry = Depends(get_registry),
):
    try:
        registry.close(session_id, principal.id)
    except SessionClosed as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
