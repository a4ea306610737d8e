"""Reddit connector. Submits self or link posts to a subreddit."""
import logging

from ..core.errors import ProviderError
from .base import PlatformConnector, PublishContent, PublishResult, missing_post_id, nested, require_field

logger = logging.getLogger(__name__)

REDDIT_API_BASE = "https://oauth.reddit.com"
USER_AGENT = "studio-integrations/0.1"


class RedditConnector(PlatformConnector):
    platform = "reddit"
    display_name = "Reddit"
    rate_limit_setting = "reddit_rate_limit"

    async def _request(self, method, url, token, **kwargs):
        headers = {"User-Agent": USER_AGENT, **kwargs.pop("headers", {})}
        return await super()._request(method, url, token, headers=headers, **kwargs)

    async def _check_token(self, token: str) -> None:
        response = await self._request("GET", f"{REDDIT_API_BASE}/api/v1/me", token)
        if not self._json(response).get("name"):
            raise self._invalid(response, "api/v1/me returned no account name")

    async def _publish(self, content: PublishContent, token: str) -> PublishResult:
        subreddit = require_field(content.subreddit, "Reddit posts need a subreddit")
        title = require_field(content.title, "Reddit posts need a title")

        form = {"api_type": "json", "sr": subreddit, "title": title[:300]}
        if content.link_url:
            form.update(kind="link", url=content.link_url)
        else:
            form.update(kind="self", text=content.text)

        response = await self._request("POST", f"{REDDIT_API_BASE}/api/submit", token, data=form)
        body = nested(self._json(response), "json")

        # Reddit reports rejected submissions with HTTP 200 and an errors list
        errors = body.get("errors") or []
        if not isinstance(errors, list):
            errors = [errors]
        if errors:
            detail = "; ".join(
                " ".join(str(part) for part in error) if isinstance(error, list) else str(error)
                for error in errors
            )
            raise ProviderError(
                f"Reddit rejected the submission: {detail}",
                status=response.status_code,
                code="PAYLOAD",
                provider_id=self.platform,
            )

        data = nested(body, "data")
        post_id = data.get("name") or data.get("id")
        if not post_id:
            raise missing_post_id(self.platform, self.display_name, response.status_code)
        return PublishResult.posted(self.platform, post_id, data.get("url"))
