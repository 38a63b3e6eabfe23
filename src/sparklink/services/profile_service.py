"""Profile service — a user's public profile and its pages.

Plain CRUD with ownership checks: every write is scoped to the profile
of the calling user, and someone else's page id behaves exactly like an
unknown one (PageNotFoundError).
"""

import uuid
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sparklink.db.models import Page, Profile, User
from sparklink.errors import (
    PageNotFoundError,
    PageSlugTakenError,
    ProfileNotFoundError,
)

Id = Union[str, uuid.UUID]

# Non-nullable columns a partial update may not clear
_REQUIRED_PROFILE_FIELDS = {"is_published", "social_links"}


def _to_uuid(value: Id) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class ProfileService:
    """Business logic for profiles and pages."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Profile ─────────────────────────────────────────

    async def get_profile(self, user_id: Id) -> Profile:
        q = select(Profile).where(Profile.user_id == _to_uuid(user_id))
        result = await self.db.execute(q)
        profile = result.scalars().first()
        if profile is None:
            raise ProfileNotFoundError()
        return profile

    async def update_profile(self, user_id: Id, fields: dict[str, Any]) -> Profile:
        """Apply a partial update to the caller's profile."""
        profile = await self.get_profile(user_id)
        for key, value in fields.items():
            if value is None and key in _REQUIRED_PROFILE_FIELDS:
                continue
            setattr(profile, key, value)
        await self.db.commit()
        await self.db.refresh(profile)
        return profile

    async def get_public_profile(self, username: str) -> tuple[User, Profile, list[Page]]:
        """Published profile by username, with enabled pages in order.

        Unpublished profiles are indistinguishable from missing ones.
        """
        q = (
            select(User)
            .where(User.username == username.lower())
            .options(selectinload(User.profile).selectinload(Profile.pages))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(q)
        user = result.scalars().first()
        if user is None or user.profile is None or not user.profile.is_published:
            raise ProfileNotFoundError()

        pages = [p for p in user.profile.pages if p.is_enabled]
        pages.sort(key=lambda p: (p.position, p.title))
        return user, user.profile, pages

    # ─── Pages ───────────────────────────────────────────

    async def list_pages(self, user_id: Id) -> list[Page]:
        profile = await self.get_profile(user_id)
        q = (
            select(Page)
            .where(Page.profile_id == profile.id)
            .order_by(Page.position, Page.created_at)
        )
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def create_page(self, user_id: Id, fields: dict[str, Any]) -> Page:
        profile = await self.get_profile(user_id)
        page = Page(profile_id=profile.id, **fields)
        self.db.add(page)
        await self._commit_page()
        await self.db.refresh(page)
        return page

    async def update_page(
        self, user_id: Id, page_id: Id, fields: dict[str, Any]
    ) -> Page:
        page = await self._get_own_page(user_id, page_id)
        for key, value in fields.items():
            if value is None:
                continue
            setattr(page, key, value)
        await self._commit_page()
        await self.db.refresh(page)
        return page

    async def delete_page(self, user_id: Id, page_id: Id) -> None:
        page = await self._get_own_page(user_id, page_id)
        await self.db.delete(page)
        await self.db.commit()

    # ─── Internals ───────────────────────────────────────

    async def _get_own_page(self, user_id: Id, page_id: Id) -> Page:
        try:
            page_uuid = _to_uuid(page_id)
        except ValueError:
            raise PageNotFoundError()
        q = (
            select(Page)
            .join(Profile, Page.profile_id == Profile.id)
            .where(Page.id == page_uuid)
            .where(Profile.user_id == _to_uuid(user_id))
        )
        result = await self.db.execute(q)
        page: Optional[Page] = result.scalars().first()
        if page is None:
            raise PageNotFoundError()
        return page

    async def _commit_page(self) -> None:
        # The only unique constraint on pages is (profile_id, slug).
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise PageSlugTakenError()
