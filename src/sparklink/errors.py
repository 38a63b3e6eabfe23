"""Domain error taxonomy.

Every workflow failure is one of these. The HTTP layer maps them to
responses with a single exception handler (see main.py), using the
status_code and error_code carried on each class:

    SparkLinkError
    ├── DuplicateEmailError            409
    ├── DuplicateUsernameError         409
    ├── InvalidCredentialsError        401
    ├── EmailNotVerifiedError          403
    ├── InvalidTokenError              400
    │   └── TokenExpiredError          410
    ├── DuplicatePendingRequestError   409
    ├── InvalidTransitionError         409
    ├── VerificationRequestNotFoundError 404
    ├── ProfileNotFoundError           404
    ├── PageNotFoundError              404
    ├── PageSlugTakenError             409
    ├── OAuthProviderError             502
    ├── ProviderEmailNotVerifiedError  403
    ├── OAuthAccountConflictError      409
    └── UserNotFoundError              404

ConfigError sits outside the hierarchy: it is raised at
startup and never turned into a response.
"""

from __future__ import annotations

from typing import Any


class ConfigError(Exception):
    """Required configuration is missing or unusable."""


class SparkLinkError(Exception):
    """Base class for per-request workflow errors.

    Attributes:
        message: Human-readable description, returned as `detail`.
        error_code: Stable machine-readable code for clients.
        details: Optional extra context.
    """

    status_code: int = 400
    default_error_code: str = "APPLICATION_ERROR"
    default_message: str = "Request failed"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "detail": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result


# ─── Auth ────────────────────────────────────────────────


class DuplicateEmailError(SparkLinkError):
    status_code = 409
    default_error_code = "EMAIL_TAKEN"
    default_message = "Email already registered"


class DuplicateUsernameError(SparkLinkError):
    status_code = 409
    default_error_code = "USERNAME_TAKEN"
    default_message = "Username already taken"


class InvalidCredentialsError(SparkLinkError):
    # Same error for unknown email and wrong password.
    status_code = 401
    default_error_code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class EmailNotVerifiedError(SparkLinkError):
    status_code = 403
    default_error_code = "EMAIL_NOT_VERIFIED"
    default_message = "Email address has not been verified"


class InvalidTokenError(SparkLinkError):
    status_code = 400
    default_error_code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenExpiredError(InvalidTokenError):
    status_code = 410
    default_error_code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class OAuthProviderError(SparkLinkError):
    status_code = 502
    default_error_code = "OAUTH_PROVIDER_ERROR"
    default_message = "OAuth provider request failed"


class ProviderEmailNotVerifiedError(SparkLinkError):
    status_code = 403
    default_error_code = "PROVIDER_EMAIL_UNVERIFIED"
    default_message = "The provider has not verified this email address"


class OAuthAccountConflictError(SparkLinkError):
    # The email belongs to an account linked to another provider identity.
    status_code = 409
    default_error_code = "OAUTH_ACCOUNT_CONFLICT"
    default_message = "Account is already linked to a different Google identity"


class UserNotFoundError(SparkLinkError):
    status_code = 404
    default_error_code = "USER_NOT_FOUND"
    default_message = "User not found"


# ─── Verification ────────────────────────────────────────


class DuplicatePendingRequestError(SparkLinkError):
    status_code = 409
    default_error_code = "VERIFICATION_PENDING"
    default_message = "A verification request is already pending"


class InvalidTransitionError(SparkLinkError):
    status_code = 409
    default_error_code = "INVALID_TRANSITION"
    default_message = "Status transition not allowed"


class VerificationRequestNotFoundError(SparkLinkError):
    status_code = 404
    default_error_code = "VERIFICATION_REQUEST_NOT_FOUND"
    default_message = "Verification request not found"


# ─── Profiles & pages ────────────────────────────────────


class ProfileNotFoundError(SparkLinkError):
    status_code = 404
    default_error_code = "PROFILE_NOT_FOUND"
    default_message = "Profile not found"


class PageNotFoundError(SparkLinkError):
    status_code = 404
    default_error_code = "PAGE_NOT_FOUND"
    default_message = "Page not found"


class PageSlugTakenError(SparkLinkError):
    status_code = 409
    default_error_code = "PAGE_SLUG_TAKEN"
    default_message = "A page with this slug already exists"
