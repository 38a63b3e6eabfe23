"""Profile and page API.

- GET /profile → own profile
- PUT /profile → partial update of own profile
- GET /profile/{username} → public view (published profiles only, no auth)
- GET /pages → own pages
- POST /pages → add a page
- PUT /pages/:id → update own page
- DELETE /pages/:id → remove own page
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from sparklink.auth.dependencies import CurrentIdentity, get_current_user
from sparklink.db.engine import get_db
from sparklink.schemas.profile import (
    PageCreate,
    PageRead,
    PageUpdate,
    ProfileRead,
    ProfileUpdate,
    PublicProfileRead,
)
from sparklink.services.profile_service import ProfileService

profile_router = APIRouter(prefix="/profile")
pages_router = APIRouter(prefix="/pages")


def _get_service(db: AsyncSession = Depends(get_db)) -> ProfileService:
    return ProfileService(db)


# ─── Own profile ────────────────────────────────────────


@profile_router.get("", response_model=ProfileRead)
async def get_my_profile(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProfileService = Depends(_get_service),
):
    return await svc.get_profile(identity.user_id)


@profile_router.put("", response_model=ProfileRead)
async def update_my_profile(
    body: ProfileUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProfileService = Depends(_get_service),
):
    return await svc.update_profile(
        identity.user_id, body.model_dump(exclude_unset=True)
    )


# ─── Public profile ─────────────────────────────────────


@profile_router.get("/{username}", response_model=PublicProfileRead)
async def get_public_profile(
    username: str,
    svc: ProfileService = Depends(_get_service),
):
    """Public link-in-bio view for a username."""
    user, profile, pages = await svc.get_public_profile(username)
    return PublicProfileRead(
        username=user.username,
        display_name=profile.display_name,
        bio=profile.bio,
        theme=profile.theme,
        avatar_url=user.avatar_url,
        tier=user.tier,
        has_verified_badge=user.has_verified_badge,
        social_links=profile.social_links,
        pages=[PageRead.model_validate(p) for p in pages],
    )


# ─── Pages ──────────────────────────────────────────────


@pages_router.get("", response_model=list[PageRead])
async def list_pages(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProfileService = Depends(_get_service),
):
    return await svc.list_pages(identity.user_id)


@pages_router.post("", response_model=PageRead, status_code=201)
async def create_page(
    body: PageCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProfileService = Depends(_get_service),
):
    return await svc.create_page(identity.user_id, body.model_dump(mode="json"))


@pages_router.put("/{page_id}", response_model=PageRead)
async def update_page(
    page_id: str,
    body: PageUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProfileService = Depends(_get_service),
):
    return await svc.update_page(
        identity.user_id, page_id, body.model_dump(exclude_unset=True)
    )


@pages_router.delete("/{page_id}", status_code=204)
async def delete_page(
    page_id: str,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProfileService = Depends(_get_service),
):
    await svc.delete_page(identity.user_id, page_id)
    return Response(status_code=204)
