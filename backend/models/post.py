"""Post model - scheduled and published posts per integration."""

import enum
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class PostState(str, enum.Enum):
    """Lifecycle state of a post."""
    QUEUE = "QUEUE"
    PUBLISHED = "PUBLISHED"
    ERROR = "ERROR"
    DRAFT = "DRAFT"


class Post(Base):
    """A post scheduled to (or published on) one integration."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    integration_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("integrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[PostState] = mapped_column(
        Enum(PostState, name="post_state"),
        default=PostState.QUEUE,
        nullable=False,
        index=True
    )
    publish_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    release_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    integration = relationship("Integration", back_populates="posts")

    def __repr__(self) -> str:
        return f"<Post {self.id}: {self.state.value} @ {self.publish_date}>"
