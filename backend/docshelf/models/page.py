"""
DocShelf Backend — Page SQLAlchemy Model
==========================================

What:  ORM model representing the `pages` table.
How:   Inherits from SQLAlchemy's DeclarativeBase; Alembic reads this for migrations.
Who:   Used by PageRepository for persistence and by Alembic for schema management.

Table Design:
    - UUID primary key, generated in Python at creation time
    - api_id: owning API; pages of one API form one ordering partition
    - position: 0-based ordinal, unique and contiguous within an api_id
    - type: copied from the stored page on update, never changed after creation

    Index on (api_id, position):
        Serves both the ordered sibling listing and MAX(position).
        Not UNIQUE: the reorder write plan is flushed one row at a time and
        the intermediate states hold duplicate positions.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, Text, Uuid, false, text
from sqlalchemy.orm import Mapped, mapped_column

from docshelf.database import Base


class PageType(str, enum.Enum):
    MARKDOWN = "MARKDOWN"
    RAML = "RAML"
    SWAGGER = "SWAGGER"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Page(Base):
    """
    A documentation page attached to an API.

    Lifecycle:
        1. Created with the next free position of its API (or an explicit one)
        2. Payload fields rewritten on update; position changes go through
           the reindexer's write plan
        3. Deleted explicitly; surviving siblings keep their positions
    """

    __tablename__ = "pages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier, immutable after creation",
    )

    api_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Owning API; partitions the ordering domain",
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Display name",
    )

    type: Mapped[PageType] = mapped_column(
        Enum(PageType, name="page_type", native_enum=False, length=16),
        nullable=False,
        default=PageType.MARKDOWN,
        comment="Content flavour: MARKDOWN, RAML, SWAGGER",
    )

    content: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        default=None,
        comment="Page body (Markdown, RAML, Swagger JSON/YAML)",
    )

    last_contributor: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        default=None,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="0-based display order within the API",
    )

    published: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        comment="When this page was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        comment="Last modification (UTC)",
    )

    __table_args__ = (
        Index("idx_pages_api_position", "api_id", "position"),
    )

    def __repr__(self) -> str:
        return (
            f"<Page(id={self.id}, api_id='{self.api_id}', "
            f"position={self.position})>"
        )
