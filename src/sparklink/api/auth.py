"""Auth API — registration, login, OAuth, email confirmation, password reset.

Learn: Routes for the account lifecycle:
- POST /auth/register → create a password account (no token yet)
- POST /auth/login → email/password → session token
- GET /auth/oauth/google → redirect to Google consent screen
- GET /auth/oauth/callback → provider redirect → session token
- GET /auth/verify-email?token= → confirm email address
- POST /auth/resend-verification → new confirmation token
- POST /auth/forgot-password → reset token
- POST /auth/reset-password → reset token + new password
- POST /auth/change-password → current + new password (authenticated)
- GET /auth/me → current user info

Workflow errors (duplicate email, bad credentials, expired token...)
propagate as SparkLinkError and are rendered by the app-level handler.
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from sparklink.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    get_settings,
    get_token_service,
)
from sparklink.auth.jwt import TokenService
from sparklink.auth.oauth import GoogleOAuthClient
from sparklink.config import Settings
from sparklink.db.engine import get_db
from sparklink.db.models import SubscriptionTier, VerificationStatus
from sparklink.errors import UserNotFoundError
from sparklink.services.auth_service import AuthService

router = APIRouter(prefix="/auth")

USERNAME_PATTERN = r"^[A-Za-z0-9_-]{3,30}$"


def _get_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(db=db, tokens=tokens, settings=settings)


def get_oauth_client(request: Request) -> GoogleOAuthClient:
    return request.app.state.oauth_client


# ─── Schemas ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    username: Optional[str] = Field(None, pattern=USERNAME_PATTERN)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


class RegisterResponse(BaseModel):
    id: uuid.UUID
    email: str
    username: Optional[str]
    is_verified: bool

    model_config = {"from_attributes": True}


class LoginRequest(BaseModel):
    email: str
    password: str


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    username: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    avatar_url: Optional[str]
    tier: SubscriptionTier
    is_verified: bool
    is_admin: bool
    verification_status: VerificationStatus
    has_verified_badge: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserRead


class OAuthSessionResponse(SessionResponse):
    created: bool


class EmailRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(min_length=8, max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8, max_length=128)


class MessageResponse(BaseModel):
    message: str


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(body: RegisterRequest, svc: AuthService = Depends(_get_service)):
    """Create a new account. The email must be confirmed separately."""
    return await svc.register(
        body.email,
        body.password,
        username=body.username,
        first_name=body.first_name,
        last_name=body.last_name,
    )


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=SessionResponse)
async def login(body: LoginRequest, svc: AuthService = Depends(_get_service)):
    """Login with email and password → session token."""
    user, token = await svc.login(body.email, body.password)
    return SessionResponse(token=token, user=UserRead.model_validate(user))


# ─── OAuth ───────────────────────────────────────────────


@router.get("/oauth/google")
async def oauth_start(
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
    tokens: TokenService = Depends(get_token_service),
):
    """Redirect the browser to Google's consent screen."""
    return RedirectResponse(oauth.authorization_url(tokens.issue_state()))


@router.get("/oauth/callback", response_model=OAuthSessionResponse)
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
    tokens: TokenService = Depends(get_token_service),
    svc: AuthService = Depends(_get_service),
):
    """Provider redirect target: exchange the code, then find-or-create."""
    if error:
        raise HTTPException(status_code=400, detail=f"OAuth error: {error}")
    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state")

    tokens.verify_state(state)
    profile = await oauth.fetch_profile(code)
    user, token, created = await svc.login_with_oauth(profile.subject, profile)
    return OAuthSessionResponse(
        token=token,
        user=UserRead.model_validate(user),
        created=created,
    )


# ─── Email confirmation ─────────────────────────────────


@router.get("/verify-email")
async def verify_email(
    token: str = Query(..., min_length=1),
    svc: AuthService = Depends(_get_service),
):
    """Confirm an email address with the token from the confirmation link."""
    user = await svc.confirm_email(token)
    return {"verified": user.is_verified, "email": user.email}


@router.post("/resend-verification", response_model=MessageResponse, status_code=202)
async def resend_verification(
    body: EmailRequest, svc: AuthService = Depends(_get_service)
):
    await svc.resend_verification(body.email)
    return MessageResponse(
        message="If the account exists and is unverified, a new link was sent"
    )


# ─── Password reset ─────────────────────────────────────


@router.post("/forgot-password", response_model=MessageResponse, status_code=202)
async def forgot_password(body: EmailRequest, svc: AuthService = Depends(_get_service)):
    await svc.request_password_reset(body.email)
    return MessageResponse(message="If the account exists, a reset link was sent")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest, svc: AuthService = Depends(_get_service)
):
    await svc.reset_password(body.token, body.password)
    return MessageResponse(message="Password updated")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: AuthService = Depends(_get_service),
):
    await svc.change_password(
        identity.user_id, body.current_password, body.new_password
    )
    return MessageResponse(message="Password updated")


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: AuthService = Depends(_get_service),
):
    """Get the current authenticated user's info."""
    user = await svc.get_user(identity.user_id)
    if not user:
        raise UserNotFoundError()
    return user
