"""
LinkedIn connector.

Posts through the versioned REST Posts API. Requires scopes:
openid, profile, w_member_social.

Usage:
    connector = LinkedInConnector(access_token)
    if await connector.validate_token():
        result = await connector.publish(PublishContent(text="Hello LinkedIn!"), credential)
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .base import PlatformConnector, PublishContent, PublishResult, missing_post_id

logger = logging.getLogger(__name__)

LINKEDIN_API_BASE = "https://api.linkedin.com"
LINKEDIN_API_VERSION = "202601"


@dataclass
class LinkedInProfile:
    """The authenticated member, from OpenID userinfo."""
    id: str
    name: str = ""

    @property
    def urn(self) -> str:
        """Get LinkedIn URN for the profile."""
        return f"urn:li:person:{self.id}"


class LinkedInConnector(PlatformConnector):
    platform = "linkedin"
    display_name = "LinkedIn"
    rate_limit_setting = "linkedin_rate_limit"

    async def get_profile(self, token: str) -> LinkedInProfile:
        response = await self._request("GET", f"{LINKEDIN_API_BASE}/v2/userinfo", token)
        data = self._json(response)
        member_id = data.get("sub")
        if not member_id or not isinstance(member_id, str):
            raise self._invalid(response, "userinfo returned no member id")
        name = data.get("name")
        return LinkedInProfile(id=member_id, name=name if isinstance(name, str) else "")

    async def _check_token(self, token: str) -> None:
        await self.get_profile(token)

    def build_post(self, author_urn: str, content: PublishContent) -> dict:
        """Build the Posts API payload."""
        payload = {
            "author": author_urn,
            "commentary": content.text,
            "visibility": content.visibility.upper(),
            "distribution": {
                "feedDistribution": "MAIN_FEED",
                "targetEntities": [],
                "thirdPartyDistributionChannels": [],
            },
            "lifecycleState": "PUBLISHED",
            "isReshareDisabledByAuthor": False,
        }
        if content.link_url:
            payload["content"] = {
                "article": {
                    "source": content.link_url,
                    "title": content.title or content.link_url,
                }
            }
        return payload

    async def _publish(self, content: PublishContent, token: str) -> PublishResult:
        profile = await self.get_profile(token)
        response = await self._request(
            "POST",
            f"{LINKEDIN_API_BASE}/rest/posts",
            token,
            json=self.build_post(profile.urn, content),
            headers={
                "X-Restli-Protocol-Version": "2.0.0",
                "LinkedIn-Version": LINKEDIN_API_VERSION,
            },
        )

        post_id: Optional[str] = response.headers.get("x-restli-id")
        if not post_id:
            raise missing_post_id(self.platform, self.display_name, response.status_code)
        return PublishResult.posted(
            self.platform,
            post_id,
            f"https://www.linkedin.com/feed/update/{post_id}",
        )
