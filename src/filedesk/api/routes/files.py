"""Stored file endpoints: duplicate check, listing, download, delete."""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from filedesk.api.deps import Principal, get_bridge, get_store, require_user
from filedesk.api.schemas.files import (
    CheckDuplicatesRequest,
    CheckDuplicatesResponse,
    DeleteFilesRequest,
    DeleteFilesResponse,
    DownloadUrlResponse,
    FileRecordOut,
)
from filedesk.config import get_settings
from filedesk.db import get_session
from filedesk.duplicates import check_duplicates
from filedesk.errors import FileNotFound, TransientCheckError
from filedesk.files import (
    delete_files,
    get_file,
    get_workspace,
    list_workspace_files,
    purge_orphaned_files,
    signed_download_url,
)
from filedesk.index_bridge import IndexBridge
from filedesk.models import File
from filedesk.storage import ObjectStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["files"])


def _record_out(record: File) -> FileRecordOut:
    return FileRecordOut(
        id=str(record.id),
        name=record.name,
        description=record.description,
        mime_type=record.mime_type,
        size_bytes=record.size_bytes,
        storage_path=record.storage_path,
        token_count=record.token_count,
        workspace_ids=[str(w) for w in record.workspace_ids],
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _parse_uuid(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {what}: {value}",
        )


@router.post("/files/check-duplicates", response_model=CheckDuplicatesResponse)
async def check_duplicate_names(
    body: CheckDuplicatesRequest,
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    workspace_id = _parse_uuid(body.workspace_id, "workspace_id")
    try:
        existing = await check_duplicates(session, principal.id, workspace_id, body.file_names)
    except TransientCheckError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return CheckDuplicatesResponse(
        conflicting_file_names=sorted(existing),
        conflicts={name: str(file_id) for name, file_id in existing.items()},
    )


@router.get("/workspaces/{workspace_id}/files", response_model=list[FileRecordOut])
async def list_files(
    workspace_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    workspace = await get_workspace(session, principal.id, workspace_id)
    if workspace is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace not found")
    records = await list_workspace_files(session, principal.id, workspace_id)
    return [_record_out(r) for r in records]


@router.get("/files/{file_id}", response_model=FileRecordOut)
async def get_file_record(
    file_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        record = await get_file(session, principal.id, file_id)
    except FileNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _record_out(record)


@router.get("/files/{file_id}/download", response_model=DownloadUrlResponse)
async def download_file(
    file_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_store),
):
    expires = get_settings().signed_url_expiry_seconds
    try:
        record = await get_file(session, principal.id, file_id)
        url = signed_download_url(store, record, expires)
    except FileNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return DownloadUrlResponse(file_id=str(file_id), url=url, expires_in=expires)


@router.delete("/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: uuid.UUID,
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_store),
    bridge: IndexBridge = Depends(get_bridge),
):
    try:
        await get_file(session, principal.id, file_id)
    except FileNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    report = await delete_files(session, store, bridge, principal.id, [file_id])
    if file_id in report.failed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=report.failed[file_id],
        )


@router.post("/files/delete", response_model=DeleteFilesResponse)
async def delete_many(
    body: DeleteFilesRequest,
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_store),
    bridge: IndexBridge = Depends(get_bridge),
):
    file_ids = [_parse_uuid(fid, "file_id") for fid in body.file_ids]
    report = await delete_files(session, store, bridge, principal.id, file_ids)
    return DeleteFilesResponse(
        deleted=[str(fid) for fid in report.deleted],
        failed={str(fid): err for fid, err in report.failed.items()},
    )


@router.post("/files/purge-orphans")
async def purge_orphans(
    principal: Principal = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_store),
) -> dict[str, list[str]]:
    """Drop records whose upload never reached the object store."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=get_settings().orphan_grace_minutes)
    purged = await purge_orphaned_files(session, store, cutoff, owner_id=principal.id)
    return {"purged": [str(fid) for fid in purged]}
