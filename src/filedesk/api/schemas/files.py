"""Stored file schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class FileRecordOut(BaseModel):
    id: str
    name: str
    description: str
    mime_type: str | None = None
    size_bytes: int
    storage_path: str
    token_count: int
    workspace_ids: list[str] = []
    created_at: datetime
    updated_at: datetime


class CheckDuplicatesRequest(BaseModel):
    workspace_id: str
    file_names: list[str] = Field(..., max_length=500)


class CheckDuplicatesResponse(BaseModel):
    conflicting_file_names: list[str]
    conflicts: dict[str, str]


class DeleteFilesRequest(BaseModel):
    file_ids: list[str] = Field(..., min_length=1, max_length=200)


class DeleteFilesResponse(BaseModel):
    deleted: list[str]
    failed: dict[str, str]


class DownloadUrlResponse(BaseModel):
    file_id: str
    url: str
    expires_in: int
