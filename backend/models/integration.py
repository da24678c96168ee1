"""Linked external accounts (social platforms and cloud storage)."""

import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class IntegrationType(str, enum.Enum):
    """What kind of account an integration links."""
    SOCIAL = "social"
    STORAGE = "storage"


class Integration(Base):
    """OAuth-linked account owned by a user.

    Tokens are stored encrypted (see services.token_store). An integration
    flagged ``refresh_needed`` must be refreshed before it is used for
    analytics again. Disconnecting sets ``deleted_at``; rows are never
    hard-deleted.
    """

    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("user_id", "internal_id", name="uix_integrations_user_internal"),
        Index("ix_integrations_provider", "provider_identifier"),
        Index("ix_integrations_refresh_needed", "refresh_needed"),
    )

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

    # External account identifiers
    internal_id: Mapped[str] = mapped_column(String(255), nullable=False)  # provider-side account id
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    picture: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    provider_identifier: Mapped[str] = mapped_column(String(50), nullable=False)  # twitter, youtube, dropbox, ...
    type: Mapped[str] = mapped_column(String(20), default=IntegrationType.SOCIAL.value, nullable=False)

    # OAuth tokens (encrypted)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # State flags
    refresh_needed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

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

    user = relationship("User", back_populates="integrations")
    posts = relationship("Post", back_populates="integration")

    @property
    def is_social(self) -> bool:
        return self.type == IntegrationType.SOCIAL.value

    def is_expired(self) -> bool:
        """Check if the access token is past its recorded expiry."""
        if not self.token_expires_at:
            return False
        expires_at = self.token_expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) >= expires_at

    def __repr__(self) -> str:
        return f"<Integration {self.provider_identifier}: {self.name}>"
