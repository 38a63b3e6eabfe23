"""Auth service — registration, login, email confirmation, password reset.

Every operation is one transaction against the user table:
1. Validate (uniqueness, token match, token expiry)
2. Mutate the user row
3. Append an audit event
4. Commit — or roll back and raise, leaving nothing half-written

Uniqueness (email, username, google_id) is enforced by the database.
The up-front lookups give friendly errors; the IntegrityError handlers
cover two requests racing past those lookups at the same time.

Email confirmation and password reset share one token contract:
unknown token → InvalidTokenError, past expiry → TokenExpiredError,
success → token fields cleared (single use).
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sparklink.auth.jwt import SessionClaim, TokenService
from sparklink.auth.oauth import OAuthProfile
from sparklink.auth.password import hash_password, verify_password
from sparklink.config import Settings
from sparklink.db.models import Profile, User
from sparklink.errors import (
    DuplicateEmailError,
    DuplicateUsernameError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    OAuthAccountConflictError,
    ProviderEmailNotVerifiedError,
    TokenExpiredError,
)
from sparklink.events.store import EventStore
from sparklink.events.types import (
    USER_EMAIL_VERIFIED,
    USER_OAUTH_CREATED,
    USER_OAUTH_LINKED,
    USER_PASSWORD_CHANGED,
    USER_PASSWORD_RESET_REQUESTED,
    USER_REGISTERED,
)

logger = structlog.get_logger()

UserId = Union[str, uuid.UUID]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_username(username: Optional[str]) -> Optional[str]:
    # Usernames are case-insensitive and stored lower-cased.
    return username.strip().lower() if username else None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite drops tzinfo) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def token_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is None or as_utc(expires_at) <= now


def _to_uuid(user_id: UserId) -> uuid.UUID:
    return user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))


class AuthService:
    """Account lifecycle and session issuance."""

    def __init__(self, db: AsyncSession, tokens: TokenService, settings: Settings):
        self.db = db
        self.tokens = tokens
        self.settings = settings
        self.events = EventStore(db)

    # ─── Register ────────────────────────────────────────

    async def register(
        self,
        email: str,
        password: str,
        *,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """Create a password account with a pending email confirmation.

        No session token is issued here; the caller logs in separately.
        """
        email = normalize_email(email)
        username = normalize_username(username)
        if await self._get_by_email(email):
            raise DuplicateEmailError()
        if username and await self._get_by_username(username):
            raise DuplicateUsernameError()

        token, expires = self._new_token(
            timedelta(hours=self.settings.email_verification_ttl_hours)
        )
        user = User(
            email=email,
            password_hash=hash_password(password, rounds=self.settings.bcrypt_rounds),
            username=username,
            first_name=first_name,
            last_name=last_name,
            email_verification_token=token,
            email_verification_expires=expires,
        )
        self.db.add(user)
        try:
            await self.db.flush()
            self.db.add(Profile(user_id=user.id, display_name=_display_name(user)))
            await self.events.append(
                stream_id=f"user:{user.id}",
                event_type=USER_REGISTERED,
                data={"email": email, "username": username},
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise await self._duplicate_error(email)

        await self.db.refresh(user)
        logger.info("auth.registered", user_id=str(user.id))
        self._log_token("auth.email_verification_token", email, token)
        return user

    # ─── Password login ──────────────────────────────────

    async def login(self, email: str, password: str) -> tuple[User, str]:
        """Check credentials and issue a session token.

        Unknown email, OAuth-only account and wrong password all raise
        the same InvalidCredentialsError.
        """
        user = await self._get_by_email(normalize_email(email))
        if (
            user is None
            or not user.password_hash
            or not verify_password(password, user.password_hash)
        ):
            logger.info("auth.login_failed")
            raise InvalidCredentialsError()

        if not user.is_verified and not self.settings.allow_unverified_login:
            raise EmailNotVerifiedError()

        logger.info("auth.login", user_id=str(user.id), method="password")
        return user, self.issue_token(user)

    # ─── OAuth login ─────────────────────────────────────

    async def login_with_oauth(
        self,
        provider_subject_id: str,
        profile: OAuthProfile,
    ) -> tuple[User, str, bool]:
        """Find-or-create the user for a provider identity.

        Lookup order: google_id, then an existing account with the same
        email (which gets the google_id linked), then insert. The email
        paths require a provider-verified address, and an account already
        linked to another Google identity is never relinked. If a
        concurrent callback inserts the same google_id first, the unique
        constraint rejects ours and we return the row that won.

        Returns (user, token, created).
        """
        user = await self._get_by_google_id(provider_subject_id)
        if user is not None:
            logger.info("auth.login", user_id=str(user.id), method="google")
            return user, self.issue_token(user), False

        # Email-based linking and creation trust the address only when
        # the provider has verified it.
        if not profile.email_verified:
            raise ProviderEmailNotVerifiedError()

        email = normalize_email(profile.email)
        existing = await self._get_by_email(email)
        if existing is not None:
            user = await self._link_google(existing, provider_subject_id, profile)
            return user, self.issue_token(user), False

        user = User(
            email=email,
            google_id=provider_subject_id,
            first_name=profile.first_name,
            last_name=profile.last_name,
            avatar_url=profile.avatar_url,
            is_verified=True,
        )
        self.db.add(user)
        try:
            await self.db.flush()
            self.db.add(Profile(user_id=user.id, display_name=_display_name(user)))
            await self.events.append(
                stream_id=f"user:{user.id}",
                event_type=USER_OAUTH_CREATED,
                data={"email": email, "provider": "google"},
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            winner = await self._get_by_google_id(provider_subject_id)
            if winner is None:
                # Lost on the email column: link like any existing account.
                existing = await self._get_by_email(email)
                if existing is None:
                    raise
                winner = await self._link_google(existing, provider_subject_id, profile)
            logger.info("auth.oauth_upsert_conflict", user_id=str(winner.id))
            return winner, self.issue_token(winner), False

        await self.db.refresh(user)
        logger.info("auth.oauth_created", user_id=str(user.id), provider="google")
        return user, self.issue_token(user), True

    async def _link_google(
        self, user: User, provider_subject_id: str, profile: OAuthProfile
    ) -> User:
        if user.google_id and user.google_id != provider_subject_id:
            logger.warning("auth.oauth_link_conflict", user_id=str(user.id))
            raise OAuthAccountConflictError()
        user.google_id = provider_subject_id
        if not user.avatar_url:
            user.avatar_url = profile.avatar_url
        # The provider has confirmed ownership of the address.
        user.is_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_OAUTH_LINKED,
            data={"provider": "google"},
        )
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            winner = await self._get_by_google_id(provider_subject_id)
            if winner is None:
                raise
            return winner
        await self.db.refresh(user)
        logger.info("auth.oauth_linked", user_id=str(user.id), provider="google")
        return user

    # ─── Email confirmation ──────────────────────────────

    async def confirm_email(self, token: str) -> User:
        """Mark the account holding this token as verified."""
        user = await self._one(
            select(User).where(User.email_verification_token == token)
        ) if token else None
        if user is None:
            raise InvalidTokenError("Invalid verification token")
        if token_expired(user.email_verification_expires, _now()):
            raise TokenExpiredError("Verification token has expired")

        user.is_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_EMAIL_VERIFIED,
            data={"email": user.email},
        )
        await self.db.commit()
        logger.info("auth.email_verified", user_id=str(user.id))
        return user

    async def resend_verification(self, email: str) -> Optional[str]:
        """Issue a fresh confirmation token.

        Unknown or already verified emails are a silent no-op so the
        endpoint cannot be used to probe for accounts.
        """
        user = await self._get_by_email(normalize_email(email))
        if user is None or user.is_verified:
            return None

        token, expires = self._new_token(
            timedelta(hours=self.settings.email_verification_ttl_hours)
        )
        user.email_verification_token = token
        user.email_verification_expires = expires
        await self.db.commit()
        self._log_token("auth.email_verification_token", user.email, token)
        return token

    # ─── Password reset ──────────────────────────────────

    async def request_password_reset(self, email: str) -> Optional[str]:
        """Store a reset token for the account, if there is one."""
        user = await self._get_by_email(normalize_email(email))
        if user is None:
            return None

        token, expires = self._new_token(
            timedelta(minutes=self.settings.password_reset_ttl_minutes)
        )
        user.password_reset_token = token
        user.password_reset_expires = expires
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_PASSWORD_RESET_REQUESTED,
            data={},
        )
        await self.db.commit()
        self._log_token("auth.password_reset_token", user.email, token)
        return token

    async def reset_password(self, token: str, new_password: str) -> User:
        """Replace the password of the account holding a reset token."""
        user = await self._one(
            select(User).where(User.password_reset_token == token)
        ) if token else None
        if user is None:
            raise InvalidTokenError("Invalid password reset token")
        if token_expired(user.password_reset_expires, _now()):
            raise TokenExpiredError("Password reset token has expired")

        user.password_hash = hash_password(
            new_password, rounds=self.settings.bcrypt_rounds
        )
        user.password_reset_token = None
        user.password_reset_expires = None
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_PASSWORD_CHANGED,
            data={"via": "reset"},
        )
        await self.db.commit()
        logger.info("auth.password_reset", user_id=str(user.id))
        return user

    async def change_password(
        self, user_id: UserId, current_password: str, new_password: str
    ) -> User:
        user = await self.get_user(user_id)
        if (
            user is None
            or not user.password_hash
            or not verify_password(current_password, user.password_hash)
        ):
            raise InvalidCredentialsError()

        user.password_hash = hash_password(
            new_password, rounds=self.settings.bcrypt_rounds
        )
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_PASSWORD_CHANGED,
            data={"via": "change"},
        )
        await self.db.commit()
        return user

    # ─── Lookups ─────────────────────────────────────────

    async def get_user(self, user_id: UserId) -> Optional[User]:
        try:
            return await self.db.get(User, _to_uuid(user_id))
        except ValueError:
            return None

    def issue_token(self, user: User) -> str:
        return self.tokens.issue(
            SessionClaim(
                user_id=str(user.id),
                email=user.email,
                username=user.username,
            )
        )

    # ─── Internals ───────────────────────────────────────

    async def _one(self, query) -> Optional[User]:
        result = await self.db.execute(query)
        return result.scalars().first()

    async def _get_by_email(self, email: str) -> Optional[User]:
        return await self._one(select(User).where(User.email == email))

    async def _get_by_username(self, username: str) -> Optional[User]:
        return await self._one(select(User).where(User.username == username))

    async def _get_by_google_id(self, google_id: str) -> Optional[User]:
        return await self._one(select(User).where(User.google_id == google_id))

    async def _duplicate_error(self, email: str) -> Exception:
        """Work out which unique column a failed insert collided on."""
        if await self._get_by_email(email):
            return DuplicateEmailError()
        return DuplicateUsernameError()

    @staticmethod
    def _new_token(ttl: timedelta) -> tuple[str, datetime]:
        return secrets.token_urlsafe(32), _now() + ttl

    def _log_token(self, event: str, email: str, token: str) -> None:
        # No mailer yet: surface tokens in development logs only.
        if self.settings.is_development:
            logger.info(event, email=email, token=token)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _display_name(user: User) -> Optional[str]:
    name = " ".join(p for p in (user.first_name, user.last_name) if p)
    return name or user.username
