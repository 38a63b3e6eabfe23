"""Google OAuth 2.0 authorization-code exchange.

Flow:
1. GET /auth/oauth/google → redirect to Google with a signed `state`
2. Google redirects back to /auth/oauth/callback?code=...&state=...
3. The code is exchanged for an access token, then the OpenID userinfo
   endpoint gives us the subject id, email and name.

Only the provider round-trip lives here; find-or-create of the local
user is AuthService.login_with_oauth.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog

from sparklink.config import Settings
from sparklink.errors import OAuthProviderError

logger = structlog.get_logger()

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


@dataclass(frozen=True)
class OAuthProfile:
    """Profile fields supplied by the provider."""

    subject: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    # Whether the provider vouches for the address
    email_verified: bool = False


class GoogleOAuthClient:
    """Talks to Google's OAuth endpoints over httpx."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.redirect_uri = settings.oauth_redirect_uri
        self._transport = transport

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> OAuthProfile:
        """Exchange an authorization code for the user's profile."""
        async with httpx.AsyncClient(
            transport=self._transport, timeout=10.0
        ) as client:
            try:
                r = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
                r.raise_for_status()
                access_token = r.json().get("access_token")
                if not access_token:
                    raise OAuthProviderError("Provider returned no access token")

                r = await client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                r.raise_for_status()
                info = r.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("oauth.provider_error", provider="google", error=str(e))
                raise OAuthProviderError(f"Google OAuth request failed: {e}")

        if not info.get("sub") or not info.get("email"):
            raise OAuthProviderError("Google profile is missing sub or email")

        return OAuthProfile(
            subject=str(info["sub"]),
            email=info["email"],
            first_name=info.get("given_name"),
            last_name=info.get("family_name"),
            avatar_url=info.get("picture"),
            email_verified=info.get("email_verified") is True,
        )
