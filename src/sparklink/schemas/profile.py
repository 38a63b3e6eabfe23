"""Pydantic schemas for profiles and pages."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from sparklink.db.models import PageType, SubscriptionTier

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class SocialLink(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)
    url: str = Field(..., min_length=1, max_length=500)


# ─── Profile ────────────────────────────────────────────


class ProfileUpdate(BaseModel):
    """Partial update — only fields present in the body are applied."""
    display_name: Optional[str] = Field(None, max_length=100)
    bio: Optional[str] = Field(None, max_length=1000)
    theme: Optional[str] = Field(None, max_length=50)
    is_published: Optional[bool] = None
    social_links: Optional[list[SocialLink]] = None


class ProfileRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    display_name: Optional[str]
    bio: Optional[str]
    theme: Optional[str]
    is_published: bool
    social_links: list[SocialLink]
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ─── Pages ──────────────────────────────────────────────


class PageCreate(BaseModel):
    type: PageType = PageType.CUSTOM
    title: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=1, max_length=100, pattern=SLUG_PATTERN)
    content: dict[str, Any] = Field(default_factory=dict)
    position: int = Field(0, ge=0)
    is_enabled: bool = True


class PageUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=100, pattern=SLUG_PATTERN)
    content: Optional[dict[str, Any]] = None
    position: Optional[int] = Field(None, ge=0)
    is_enabled: Optional[bool] = None


class PageRead(BaseModel):
    id: uuid.UUID
    type: PageType
    title: str
    slug: str
    content: dict[str, Any]
    position: int
    is_enabled: bool

    model_config = {"from_attributes": True}


# ─── Public view ────────────────────────────────────────


class PublicProfileRead(BaseModel):
    """What visitors of /{username} see."""
    username: str
    display_name: Optional[str]
    bio: Optional[str]
    theme: Optional[str]
    avatar_url: Optional[str]
    tier: SubscriptionTier
    has_verified_badge: bool
    social_links: list[SocialLink]
    pages: list[PageRead]
