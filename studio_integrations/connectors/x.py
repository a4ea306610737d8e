"""
X (Twitter) connector.

Posts through API v2 with OAuth 2.0 user tokens. Text over 280 characters is
split into a thread: each part is posted as a reply to the previous one.
"""
import logging
from typing import Optional

from ..core.errors import ProviderError
from .base import PlatformConnector, PublishContent, PublishResult, missing_post_id, nested, split_into_thread

logger = logging.getLogger(__name__)

X_API_BASE = "https://api.x.com/2"


class PartialThreadError(ProviderError):
    """A thread failed after some parts were already posted."""

    def __init__(self, cause: ProviderError, posted_ids: list[str]):
        super().__init__(
            f"{cause.message} (after {len(posted_ids)} posted)",
            status=cause.status,
            code=cause.code,
            provider_id=cause.provider_id,
        )
        self.posted_ids = posted_ids


class XConnector(PlatformConnector):
    platform = "x"
    display_name = "X"
    rate_limit_setting = "x_rate_limit"

    async def _check_token(self, token: str) -> None:
        response = await self._request("GET", f"{X_API_BASE}/users/me", token)
        if not nested(self._json(response), "data").get("id"):
            raise self._invalid(response, "users/me returned no user id")

    async def post_tweet(self, text: str, token: str, reply_to: Optional[str] = None) -> str:
        """Post a single tweet. Returns its id."""
        payload: dict = {"text": text}
        if reply_to:
            payload["reply"] = {"in_reply_to_tweet_id": reply_to}

        response = await self._request("POST", f"{X_API_BASE}/tweets", token, json=payload)
        tweet_id = nested(self._json(response), "data").get("id")
        if not tweet_id:
            raise missing_post_id(self.platform, self.display_name, response.status_code)
        return tweet_id

    async def _publish(self, content: PublishContent, token: str) -> PublishResult:
        parts = split_into_thread(content.text, self.platform_config.character_limit)
        tweet_ids: list[str] = []

        previous_id: Optional[str] = None
        for text in parts:
            try:
                previous_id = await self.post_tweet(text, token, reply_to=previous_id)
            except ProviderError as e:
                if tweet_ids:
                    logger.error(f"X thread broke at part {len(tweet_ids) + 1} of {len(parts)}")
                    raise PartialThreadError(e, tweet_ids) from e
                raise
            tweet_ids.append(previous_id)

        first_id = tweet_ids[0]
        return PublishResult.posted(
            self.platform,
            first_id,
            f"https://x.com/i/status/{first_id}",
            thread_ids=tweet_ids if len(tweet_ids) > 1 else [],
        )
