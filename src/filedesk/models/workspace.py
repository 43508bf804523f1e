import uuid

from sqlalchemy import ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from filedesk.models.base import Base, uuid_pk, created_at


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[uuid_pk]
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[created_at]


class FileWorkspace(Base):
    __tablename__ = "file_workspaces"
    # Names are unique per owner and workspace; a losing concurrent commit
    # fails here even after passing the duplicate check.
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "workspace_id", "name",
            name="uq_file_workspaces_owner_workspace_name",
        ),
    )

    file_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("files.id", ondelete="CASCADE"),
        primary_key=True,
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        primary_key=True,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    # Copy of files.name, kept in step by the commit executor
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[created_at]
