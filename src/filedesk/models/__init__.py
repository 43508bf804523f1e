"""SQLAlchemy ORM models - import all models here for Alembic discovery."""

from filedesk.models.base import Base
from filedesk.models.enums import (
    CommitOutcome,
    CommitStatus,
    FileAction,
    FileStatus,
    ResolveAction,
)
from filedesk.models.file import File
from filedesk.models.workspace import FileWorkspace, Workspace
from filedesk.models.audit_log import AuditLog

__all__ = [
    "Base",
    "CommitOutcome",
    "CommitStatus",
    "FileAction",
    "FileStatus",
    "ResolveAction",
    "File",
    "Workspace",
    "FileWorkspace",
    "AuditLog",
]
