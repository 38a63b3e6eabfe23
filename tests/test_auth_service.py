"""AuthService tests — run directly against the service layer.

Learn: These cover the workflow rules that are awkward to reach over
HTTP: expired tokens, single-use tokens, OAuth find-or-create and
account linking, and the unverified-login policy.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from conftest import PASSWORD, unique_email
from sparklink.auth.jwt import TokenService
from sparklink.auth.oauth import OAuthProfile
from sparklink.db.models import Event, Profile, User
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
from sparklink.services.auth_service import AuthService


@pytest.fixture()
def svc(db_session, settings) -> AuthService:
    return AuthService(db_session, TokenService(settings), settings)


def _google(subject="g-123", email=None, **kw) -> OAuthProfile:
    kw.setdefault("email_verified", True)
    return OAuthProfile(subject=subject, email=email or unique_email("g"), **kw)


# ═══════════════════════════════════════════════════════════
# Register
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_creates_unverified_user_with_profile(svc, db_session):
    user = await svc.register("New.User@Example.com", PASSWORD, username="newuser")

    assert user.email == "new.user@example.com"
    assert user.is_verified is False
    assert user.email_verification_token
    assert user.password_hash != PASSWORD
    assert user.tier == "STARTER"
    assert user.verification_status == "NONE"

    profile = (
        await db_session.execute(select(Profile).where(Profile.user_id == user.id))
    ).scalars().first()
    assert profile is not None
    assert profile.is_published is False

    events = (
        await db_session.execute(
            select(Event).where(Event.stream_id == f"user:{user.id}")
        )
    ).scalars().all()
    assert [e.type for e in events] == ["user.registered"]


@pytest.mark.asyncio
async def test_register_duplicate_email_case_insensitive(svc):
    email = unique_email()
    await svc.register(email, PASSWORD)
    with pytest.raises(DuplicateEmailError):
        await svc.register(email.upper(), PASSWORD)


@pytest.mark.asyncio
async def test_register_duplicate_username(svc):
    await svc.register(unique_email(), PASSWORD, username="taken")
    with pytest.raises(DuplicateUsernameError):
        await svc.register(unique_email(), PASSWORD, username="taken")



@pytest.mark.asyncio
async def test_register_stores_username_lowercased(svc):
    user = await svc.register(unique_email(), PASSWORD, username="  Alice ")
    assert user.username == "alice"
    with pytest.raises(DuplicateUsernameError):
        await svc.register(unique_email(), PASSWORD, username="ALICE")

# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_returns_verifiable_token(svc):
    email = unique_email()
    created = await svc.register(email, PASSWORD, username="loginuser")

    user, token = await svc.login(email, PASSWORD)
    claim = svc.tokens.verify(token)

    assert user.id == created.id
    assert claim.user_id == str(created.id)
    assert claim.email == email
    assert claim.username == "loginuser"


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(svc):
    email = unique_email()
    await svc.register(email, PASSWORD)

    with pytest.raises(InvalidCredentialsError) as wrong_pw:
        await svc.login(email, "not-the-password")
    with pytest.raises(InvalidCredentialsError) as unknown:
        await svc.login(unique_email(), PASSWORD)
    assert wrong_pw.value.message == unknown.value.message


@pytest.mark.asyncio
async def test_login_oauth_only_account_has_no_password(svc):
    profile = _google()
    await svc.login_with_oauth(profile.subject, profile)
    with pytest.raises(InvalidCredentialsError):
        await svc.login(profile.email, PASSWORD)


@pytest.mark.asyncio
async def test_login_unverified_blocked_when_policy_disabled(db_session, settings):
    strict = settings.model_copy(update={"allow_unverified_login": False})
    svc = AuthService(db_session, TokenService(strict), strict)
    email = unique_email()
    user = await svc.register(email, PASSWORD)

    with pytest.raises(EmailNotVerifiedError):
        await svc.login(email, PASSWORD)

    await svc.confirm_email(user.email_verification_token)
    _, token = await svc.login(email, PASSWORD)
    assert token


# ═══════════════════════════════════════════════════════════
# Email confirmation
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_confirm_email_is_single_use(svc):
    user = await svc.register(unique_email(), PASSWORD)
    token = user.email_verification_token

    confirmed = await svc.confirm_email(token)
    assert confirmed.is_verified is True
    assert confirmed.email_verification_token is None
    assert confirmed.email_verification_expires is None

    with pytest.raises(InvalidTokenError):
        await svc.confirm_email(token)


@pytest.mark.asyncio
async def test_confirm_email_unknown_token(svc):
    with pytest.raises(InvalidTokenError) as exc:
        await svc.confirm_email("no-such-token")
    assert not isinstance(exc.value, TokenExpiredError)


@pytest.mark.asyncio
async def test_confirm_email_expired_leaves_user_unchanged(svc, db_session):
    user = await svc.register(unique_email(), PASSWORD)
    token = user.email_verification_token
    user.email_verification_expires = datetime.now(timezone.utc) - timedelta(minutes=1)
    await db_session.commit()

    with pytest.raises(TokenExpiredError):
        await svc.confirm_email(token)

    await db_session.refresh(user)
    assert user.is_verified is False
    assert user.email_verification_token == token


@pytest.mark.asyncio
async def test_resend_verification_replaces_token(svc):
    user = await svc.register(unique_email(), PASSWORD)
    old = user.email_verification_token

    new = await svc.resend_verification(user.email)
    assert new and new != old

    with pytest.raises(InvalidTokenError):
        await svc.confirm_email(old)
    assert (await svc.confirm_email(new)).is_verified


@pytest.mark.asyncio
async def test_resend_verification_noop_for_unknown_or_verified(svc):
    assert await svc.resend_verification(unique_email()) is None

    user = await svc.register(unique_email(), PASSWORD)
    await svc.confirm_email(user.email_verification_token)
    assert await svc.resend_verification(user.email) is None


# ═══════════════════════════════════════════════════════════
# Password reset / change
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_password_reset_flow(svc):
    email = unique_email()
    await svc.register(email, PASSWORD)

    token = await svc.request_password_reset(email)
    assert token

    await svc.reset_password(token, "brand_new_password")
    with pytest.raises(InvalidCredentialsError):
        await svc.login(email, PASSWORD)
    user, _ = await svc.login(email, "brand_new_password")
    assert user.password_reset_token is None

    with pytest.raises(InvalidTokenError):
        await svc.reset_password(token, "yet_another_password")


@pytest.mark.asyncio
async def test_password_reset_unknown_email_is_silent(svc):
    assert await svc.request_password_reset(unique_email()) is None


@pytest.mark.asyncio
async def test_password_reset_expired(svc, db_session):
    email = unique_email()
    user = await svc.register(email, PASSWORD)
    token = await svc.request_password_reset(email)
    user.password_reset_expires = datetime.now(timezone.utc) - timedelta(seconds=1)
    await db_session.commit()

    with pytest.raises(TokenExpiredError):
        await svc.reset_password(token, "brand_new_password")
    await svc.login(email, PASSWORD)


@pytest.mark.asyncio
async def test_change_password_requires_current(svc):
    email = unique_email()
    user = await svc.register(email, PASSWORD)

    with pytest.raises(InvalidCredentialsError):
        await svc.change_password(user.id, "wrong-password", "another_password")

    await svc.change_password(user.id, PASSWORD, "another_password")
    await svc.login(email, "another_password")


# ═══════════════════════════════════════════════════════════
# OAuth find-or-create
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_oauth_creates_verified_user_once(svc, db_session):
    profile = _google(first_name="Ada", last_name="Lovelace", avatar_url="https://img/a.png")

    user, token, created = await svc.login_with_oauth(profile.subject, profile)
    assert created is True
    assert user.google_id == profile.subject
    assert user.is_verified is True
    assert user.password_hash is None
    assert svc.tokens.verify(token).user_id == str(user.id)

    again, _, created_again = await svc.login_with_oauth(profile.subject, profile)
    assert created_again is False
    assert again.id == user.id

    count = len(
        (await db_session.execute(select(User).where(User.google_id == profile.subject)))
        .scalars()
        .all()
    )
    assert count == 1

    display = (
        await db_session.execute(select(Profile.display_name).where(Profile.user_id == user.id))
    ).scalar_one()
    assert display == "Ada Lovelace"


@pytest.mark.asyncio
async def test_oauth_links_existing_password_account(svc):
    email = unique_email()
    registered = await svc.register(email, PASSWORD)

    profile = _google(subject="g-link", email=email.upper())
    user, _, created = await svc.login_with_oauth(profile.subject, profile)

    assert created is False
    assert user.id == registered.id
    assert user.google_id == "g-link"
    assert user.is_verified is True
    assert user.email_verification_token is None
    # Password login still works on a linked account.
    await svc.login(email, PASSWORD)


@pytest.mark.asyncio
async def test_get_user_tolerates_bad_ids(svc):
    assert await svc.get_user("not-a-uuid") is None
    assert await svc.get_user(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_oauth_unverified_email_cannot_link(svc, db_session):
    """An unverified provider address must not take over a password account."""
    email = unique_email("victim")
    victim = await svc.register(email, PASSWORD)

    profile = _google(subject="g-attacker", email=email, email_verified=False)
    with pytest.raises(ProviderEmailNotVerifiedError):
        await svc.login_with_oauth(profile.subject, profile)

    await db_session.refresh(victim)
    assert victim.google_id is None
    assert victim.is_verified is False


@pytest.mark.asyncio
async def test_oauth_unverified_email_cannot_create(svc, db_session):
    profile = _google(subject="g-unverified", email_verified=False)
    with pytest.raises(ProviderEmailNotVerifiedError):
        await svc.login_with_oauth(profile.subject, profile)

    count = (
        await db_session.execute(
            select(func.count()).select_from(User).where(User.email == profile.email)
        )
    ).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_oauth_known_subject_logs_in_by_id(svc):
    """Once linked, the subject id alone identifies the account."""
    profile = _google(subject="g-known")
    user, _, _ = await svc.login_with_oauth(profile.subject, profile)

    later = _google(subject="g-known", email=profile.email, email_verified=False)
    again, _, created = await svc.login_with_oauth(later.subject, later)
    assert created is False
    assert again.id == user.id


@pytest.mark.asyncio
async def test_oauth_does_not_relink_other_google_identity(svc, db_session):
    email = unique_email("linked")
    first = _google(subject="g-first", email=email)
    user, _, _ = await svc.login_with_oauth(first.subject, first)

    second = _google(subject="g-second", email=email)
    with pytest.raises(OAuthAccountConflictError):
        await svc.login_with_oauth(second.subject, second)

    await db_session.refresh(user)
    assert user.google_id == "g-first"
    again, _, _ = await svc.login_with_oauth(first.subject, first)
    assert again.id == user.id


# ═══════════════════════════════════════════════════════════
# Races past the up-front lookups
# ═══════════════════════════════════════════════════════════


def miss_first_lookup(monkeypatch, svc, name):
    """Make the first call of a lookup miss, as if a concurrent insert
    landed between the check and the write."""
    real = getattr(svc, name)
    calls = []

    async def lookup(value):
        calls.append(value)
        if len(calls) == 1:
            return None
        return await real(value)

    monkeypatch.setattr(svc, name, lookup)


async def _count(db_session, model, *where):
    q = select(func.count()).select_from(model)
    for clause in where:
        q = q.where(clause)
    return (await db_session.execute(q)).scalar_one()


@pytest.mark.asyncio
async def test_register_email_race_hits_unique_constraint(svc, db_session, monkeypatch):
    email = unique_email("race")
    await svc.register(email, PASSWORD)
    miss_first_lookup(monkeypatch, svc, "_get_by_email")

    with pytest.raises(DuplicateEmailError):
        await svc.register(email, "another_password_1")

    assert await _count(db_session, User, User.email == email) == 1
    assert await _count(db_session, Profile) == await _count(db_session, User)
    assert await _count(db_session, Event, Event.type == "user.registered") == 1


@pytest.mark.asyncio
async def test_register_username_race_hits_unique_constraint(svc, db_session, monkeypatch):
    await svc.register(unique_email(), PASSWORD, username="racer")
    miss_first_lookup(monkeypatch, svc, "_get_by_username")

    with pytest.raises(DuplicateUsernameError):
        await svc.register(unique_email(), PASSWORD, username="racer")

    assert await _count(db_session, User) == 1
    assert await _count(db_session, Profile) == 1


@pytest.mark.asyncio
async def test_oauth_insert_race_returns_winner(svc, db_session, monkeypatch):
    profile = _google(subject="g-race")
    winner, _, created = await svc.login_with_oauth(profile.subject, profile)
    assert created is True

    miss_first_lookup(monkeypatch, svc, "_get_by_google_id")
    miss_first_lookup(monkeypatch, svc, "_get_by_email")
    user, token, created = await svc.login_with_oauth(profile.subject, profile)

    assert created is False
    assert user.id == winner.id
    assert svc.tokens.verify(token).user_id == str(winner.id)
    assert await _count(db_session, User, User.google_id == "g-race") == 1
    assert await _count(db_session, Profile) == 1
