"""SQLAlchemy ORM models — single source of truth for the database schema.

Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic auto-generates migrations by comparing
these models to the actual DB.

Column types are portable: generic Uuid, and JSON that becomes JSONB on
PostgreSQL. Enum-valued columns are stored as plain strings; the enum
classes below are the allowed values.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# ══════════════════════════════════════════════════════════════
# Enumerations
# ══════════════════════════════════════════════════════════════


class SubscriptionTier(str, enum.Enum):
    STARTER = "STARTER"
    RISE = "RISE"
    BLAZE = "BLAZE"


class VerificationStatus(str, enum.Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"


class VerificationType(str, enum.Enum):
    IDENTITY = "IDENTITY"
    BUSINESS = "BUSINESS"
    SOCIAL = "SOCIAL"
    CELEBRITY = "CELEBRITY"
    ORGANIZATION = "ORGANIZATION"


class PageType(str, enum.Enum):
    HOME = "HOME"
    ABOUT = "ABOUT"
    GALLERY = "GALLERY"
    BOOKING = "BOOKING"
    CONTACT = "CONTACT"
    SERVICES = "SERVICES"
    CUSTOM = "CUSTOM"


# ══════════════════════════════════════════════════════════════
# Accounts
# ══════════════════════════════════════════════════════════════


class User(Base):
    """An account. Authenticates by password, Google OAuth, or both.

    Password and token columns are written by AuthService; the
    verification_* and badge columns only by VerificationService.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # nullable for OAuth
    google_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(50), unique=True, nullable=True
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tier: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionTier.STARTER.value
    )
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Email confirmation
    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    email_verification_token: Mapped[Optional[str]] = mapped_column(
        String(128), unique=True, nullable=True
    )
    email_verification_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Password reset
    password_reset_token: Mapped[Optional[str]] = mapped_column(
        String(128), unique=True, nullable=True
    )
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Verification badge
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VerificationStatus.NONE.value
    )
    has_verified_badge: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verification_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    profile: Mapped[Optional["Profile"]] = relationship(
        back_populates="user", uselist=False
    )
    verification_requests: Mapped[list["VerificationRequest"]] = relationship(
        back_populates="user", foreign_keys="VerificationRequest.user_id"
    )


class VerificationRequest(Base):
    """One submission of proof material for a verification badge.

    Status moves PENDING → APPROVED | REJECTED, and APPROVED → REVOKED.
    REVOKED and REJECTED are terminal for the request; a rejected user
    submits a new one.
    """

    __tablename__ = "verification_requests"
    __table_args__ = (
        Index("idx_verification_requests_user_status", "user_id", "status"),
        Index("idx_verification_requests_status", "status"),
        # At most one PENDING request per user
        Index(
            "uq_verification_requests_one_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VerificationStatus.PENDING.value
    )
    evidence: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(
        back_populates="verification_requests", foreign_keys=[user_id]
    )


# ══════════════════════════════════════════════════════════════
# Public profile
# ══════════════════════════════════════════════════════════════


class Profile(Base):
    """Public link-in-bio profile. Exactly one per user."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), unique=True, nullable=False
    )
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    theme: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_published: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    # [{"platform": "instagram", "url": "https://..."}]
    social_links: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="profile")
    pages: Mapped[list["Page"]] = relationship(
        back_populates="profile", order_by="Page.position"
    )


class Page(Base):
    """A page of a profile (home, about, gallery, booking, ...)."""

    __tablename__ = "pages"
    __table_args__ = (
        UniqueConstraint("profile_id", "slug", name="uq_pages_profile_slug"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PageType.CUSTOM.value
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    profile: Mapped["Profile"] = relationship(back_populates="pages")


# ══════════════════════════════════════════════════════════════
# Audit log
# ══════════════════════════════════════════════════════════════


class Event(Base):
    """Append-only audit event.

    Written by the auth and verification workflows in the same
    transaction as the state change they describe.
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_stream", "stream_id", "id"),
        Index("idx_events_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    meta: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
