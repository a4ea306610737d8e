"""
YouTube connector.

Publishing a video means uploading it: ``publish`` hands the media URL and
metadata to the resumable upload client. The post text becomes the video
description.
"""
import logging
from typing import Optional

from ..upload.resumable import ResumableUploadClient, VideoMetadata
from .base import PlatformConnector, PublishContent, PublishResult, require_field

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
MAX_TITLE_LENGTH = 100


class YouTubeConnector(PlatformConnector):
    platform = "youtube"
    display_name = "YouTube"
    rate_limit_setting = "youtube_rate_limit"

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        uploader: Optional[ResumableUploadClient] = None,
        **kwargs,
    ):
        super().__init__(access_token, **kwargs)
        self.uploader = uploader or ResumableUploadClient(client=self._client, config=self.config)

    async def _check_token(self, token: str) -> None:
        response = await self._request(
            "GET",
            f"{YOUTUBE_API_BASE}/channels",
            token,
            params={"part": "id", "mine": "true"},
        )
        if not self._json(response).get("items"):
            raise self._invalid(response, "token has no channel")

    async def _publish(self, content: PublishContent, token: str) -> PublishResult:
        media_url = require_field(content.media_url, "YouTube uploads need a media URL")
        title = require_field(content.title, "YouTube uploads need a title")

        await self.rate_limiter.wait()
        metadata = VideoMetadata(
            title=title[:MAX_TITLE_LENGTH],
            description=content.text,
            tags=content.tags,
            privacy_status=content.visibility if content.visibility in ("public", "unlisted") else "private",
        )
        upload = await self.uploader.upload(token, metadata, media_url)
        return PublishResult.posted(self.platform, upload.video_id, upload.permalink)

    async def close(self) -> None:
        await super().close()
        await self.uploader.close()
