from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blog_api.database import Base


def new_object_id() -> str:
    """Return a fresh 24-character lowercase hex identifier."""
    return secrets.token_hex(12)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared content columns
# ---------------------------------------------------------------------------
class ContentMixin:
    """
    Columns common to every content item.

    ``deleted_at`` is the soft-delete marker: NULL means the item is live.
    ``created_at`` is assigned in Python (microsecond resolution) so that
    items created in quick succession still sort deterministically.
    """

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    theme_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# ---------------------------------------------------------------------------
# Note
# ---------------------------------------------------------------------------
class Note(ContentMixin, Base):
    __tablename__ = "notes"

    __table_args__ = (
        Index("ix_notes_deleted_at_created_at", "deleted_at", "created_at"),
        Index("ix_notes_views", "views"),
    )


# ---------------------------------------------------------------------------
# Post
# ---------------------------------------------------------------------------
class Post(ContentMixin, Base):
    __tablename__ = "posts"

    __table_args__ = (
        Index("ix_posts_deleted_at_created_at", "deleted_at", "created_at"),
        Index("ix_posts_views", "views"),
    )

    image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # lazy="noload": services load tags explicitly with selectinload
    tag_rows: Mapped[List["PostTag"]] = relationship(
        "PostTag",
        back_populates="post",
        order_by="PostTag.position",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    @property
    def tags(self) -> list[str]:
        return [row.name for row in self.tag_rows]

    def set_tags(self, names: list[str]) -> None:
        self.tag_rows = [PostTag(position=i, name=name) for i, name in enumerate(names)]


# ---------------------------------------------------------------------------
# PostTag: one row per tag, position keeps the submitted order
# ---------------------------------------------------------------------------
class PostTag(Base):
    __tablename__ = "post_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    post: Mapped["Post"] = relationship("Post", back_populates="tag_rows", lazy="noload")
