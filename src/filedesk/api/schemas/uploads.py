"""Upload session request/response schemas."""

from pydantic import BaseModel, Field


class OpenSessionRequest(BaseModel):
    workspace_id: str


class SelectedFileOut(BaseModel):
    id: str
    original_filename: str
    display_name: str
    candidate_name: str
    description: str
    mime_type: str
    size_bytes: int
    status: str  # new | checking | unique | duplicate | renaming_checking
    action: str  # upload | overwrite | skip | rename_initiate
    api_error: str | None = None
    existing_file_id: str | None = None
    commit_error: str | None = None


class CommitResultOut(BaseModel):
    index: int
    original_filename: str
    name: str
    action: str
    status: str  # success | error
    file_id: str | None = None
    storage_path: str | None = None
    error: str | None = None
    error_code: str | None = None
    existing_file_id: str | None = None


class CommitSummaryOut(BaseModel):
    succeeded: int
    skipped: int
    failed: int
    outcome: str
    message: str


class SessionResponse(BaseModel):
    session_id: str
    workspace_id: str
    files: list[SelectedFileOut]
    is_loading: bool
    is_checking: bool
    can_commit: bool
    last_summary: CommitSummaryOut | None = None
    # Filenames from the last selection that matched an already selected file
    ignored_files: list[str] = []


class UpdateFileRequest(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)


class ResolveDuplicateRequest(BaseModel):
    action: str  # "skip", "overwrite" or "rename"
    new_name: str | None = Field(default=None, max_length=100)


class CommitResponse(BaseModel):
    results: list[CommitResultOut]
    summary: CommitSummaryOut
    session: SessionResponse
