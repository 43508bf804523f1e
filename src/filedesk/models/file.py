import uuid
from typing import Optional

from sqlalchemy import BigInteger, Index, Integer, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filedesk.models.base import Base, uuid_pk, created_at, updated_at


class File(Base):
    __tablename__ = "files"
    __table_args__ = (
        Index("ix_files_owner_name", "owner_id", "name"),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid_pk]
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(
        Text, nullable=False, server_default="",
    )
    mime_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    size_bytes: Mapped[int] = mapped_column(
        BigInteger, nullable=False, server_default=text("0"),
    )
    # Empty until the object store write succeeds
    storage_path: Mapped[str] = mapped_column(
        Text, nullable=False, server_default="",
    )
    token_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0"),
    )
    created_at: Mapped[created_at]
    updated_at: Mapped[updated_at]

    workspace_links = relationship(
        "FileWorkspace",
        lazy="selectin",
        viewonly=True,
    )

    @property
    def workspace_ids(self) -> list[uuid.UUID]:
        return [link.workspace_id for link in self.workspace_links]
