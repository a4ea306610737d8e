"""
OAuth 2.0 token refresh for platform-managed credentials.

Each OAuth platform exposes a token endpoint accepting
``grant_type=refresh_token``. Refreshers only talk to that endpoint; storing
the result and de-duplicating concurrent refreshes is the resolver's job.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import structlog

from ..core.config import Settings, settings as default_settings
from ..core.errors import ProviderError, json_object, provider_error_from_response, transient_from_httpx

logger = structlog.get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
X_TOKEN_URL = "https://api.x.com/2/oauth2/token"
REDDIT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"

DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class TokenGrant:
    """Result of a successful refresh."""
    access_token: str
    expires_in: int = DEFAULT_EXPIRES_IN
    refresh_token: Optional[str] = None

    def expires_at(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=self.expires_in)

    def __repr__(self) -> str:
        return f"TokenGrant(expires_in={self.expires_in}, rotated={bool(self.refresh_token)})"


class OAuthRefresher(ABC):
    """Exchanges a refresh token for a new access token."""

    provider_id: str = "base"

    @abstractmethod
    async def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Refresh an access token.

        Raises:
            ProviderError: The platform rejected the refresh token
            TransientNetworkError: The token endpoint was unreachable
        """


class FormOAuthRefresher(OAuthRefresher):
    """Standard form-encoded ``refresh_token`` grant."""

    def __init__(
        self,
        provider_id: str,
        token_url: str,
        client_id: str,
        client_secret: str,
        *,
        use_basic_auth: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.provider_id = provider_id
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.use_basic_auth = use_basic_auth
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _request_kwargs(self, refresh_token: str) -> dict:
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        if self.use_basic_auth:
            return {"data": data, "auth": (self.client_id, self.client_secret)}
        data["client_id"] = self.client_id
        data["client_secret"] = self.client_secret
        return {"data": data}

    async def refresh(self, refresh_token: str) -> TokenGrant:
        client = await self._get_client()
        try:
            response = await client.post(self.token_url, **self._request_kwargs(refresh_token))
        except httpx.HTTPError as e:
            raise transient_from_httpx(e, self.provider_id) from e

        if response.status_code >= 400:
            logger.warning(
                "oauth_refresh_rejected",
                provider_id=self.provider_id,
                status=response.status_code,
            )
            raise provider_error_from_response(response, self.provider_id)

        data = json_object(response, self.provider_id, provider_id=self.provider_id)
        access_token = data.get("access_token")
        if not access_token:
            raise ProviderError(
                f"{self.provider_id} token endpoint returned no access_token",
                status=response.status_code,
                code="EMPTY_RESPONSE",
            )
        try:
            expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN
        return TokenGrant(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=data.get("refresh_token"),
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


class GoogleOAuthRefresher(FormOAuthRefresher):
    """Google token endpoint, used for YouTube channels."""

    def __init__(self, client_id: str, client_secret: str, **kwargs):
        super().__init__("youtube", GOOGLE_TOKEN_URL, client_id, client_secret, **kwargs)


def default_refreshers(config: Optional[Settings] = None) -> dict[str, OAuthRefresher]:
    """Refreshers for every OAuth platform, keyed by provider id."""
    config = config or default_settings
    return {
        "youtube": GoogleOAuthRefresher(config.google_client_id, config.google_client_secret),
        "linkedin": FormOAuthRefresher(
            "linkedin",
            LINKEDIN_TOKEN_URL,
            config.linkedin_client_id,
            config.linkedin_client_secret,
        ),
        "x": FormOAuthRefresher(
            "x",
            X_TOKEN_URL,
            config.x_client_id,
            config.x_client_secret,
            use_basic_auth=True,
        ),
        "reddit": FormOAuthRefresher(
            "reddit",
            REDDIT_TOKEN_URL,
            config.reddit_client_id,
            config.reddit_client_secret,
            use_basic_auth=True,
        ),
    }
