"""JWT session tokens.

A session token carries a minimal claim (user id, email, username),
an issued-at and an expiry, signed with the configured secret. Tokens
are never stored server-side; a token exists for exactly as long as
its signature and exp are valid.

The same service also signs the short-lived OAuth `state` parameter,
so the callback can check it came from our own redirect.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from sparklink.config import Settings
from sparklink.errors import ConfigError, InvalidTokenError, TokenExpiredError

BEARER_PREFIX = "Bearer "

_SESSION = "session"
_OAUTH_STATE = "oauth_state"


@dataclass(frozen=True)
class SessionClaim:
    """Identity fields embedded in a session token."""

    user_id: str
    email: str
    username: Optional[str] = None


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header.

    Only the exact, case-sensitive "Bearer " prefix is recognized.
    Anything else (including a missing header) yields None rather
    than an error, so callers decide whether anonymous access is ok.
    """
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):]
    return token or None


class TokenService:
    """Issues and verifies signed session tokens. Stateless."""

    def __init__(self, settings: Settings):
        if not settings.jwt_secret:
            raise ConfigError(
                "SPARKLINK_JWT_SECRET must be set. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._expires = timedelta(minutes=settings.jwt_expire_minutes)
        self._state_expires = timedelta(minutes=settings.oauth_state_ttl_minutes)

    # ─── Session tokens ──────────────────────────────────

    def issue(
        self,
        claim: SessionClaim,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        """Sign a session token for the claim."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": claim.user_id,
            "email": claim.email,
            "username": claim.username,
            "typ": _SESSION,
            "iat": now,
            "exp": now + (expires_in if expires_in is not None else self._expires),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionClaim:
        """Verify a session token and return its claim.

        Raises TokenExpiredError past exp, InvalidTokenError for any
        other failure (bad signature, tampering, wrong token type).
        """
        payload = self._decode(token)
        if payload.get("typ") != _SESSION:
            raise InvalidTokenError("Not a session token")
        try:
            return SessionClaim(
                user_id=payload["sub"],
                email=payload["email"],
                username=payload.get("username"),
            )
        except KeyError as e:
            raise InvalidTokenError(f"Token is missing claim {e}")

    # ─── OAuth state ─────────────────────────────────────

    def issue_state(self) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "typ": _OAUTH_STATE,
            "nonce": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + self._state_expires,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_state(self, state: str) -> None:
        payload = self._decode(state)
        if payload.get("typ") != _OAUTH_STATE:
            raise InvalidTokenError("Invalid OAuth state")

    # ─── Internals ───────────────────────────────────────

    def _decode(self, token: str) -> dict:
        try:
            return jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")
