"""
Resumable video upload.

Implements the two-phase resumable protocol used by YouTube Data API v3:

    1. initiate: POST the video metadata, receive a session URL in ``Location``
    2. transfer: fetch the source media, PUT the bytes to the session URL
    3. finalize: read the new video id from the PUT response body

Usage:
    uploader = ResumableUploadClient()
    result = await uploader.upload(access_token, VideoMetadata(title="Launch"), source_url)
    print(result.permalink)

A failure between phases means starting over from ``initiate`` with a new
session. Session URLs are not persisted.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.errors import ProviderError, TransientNetworkError, classify_http_error

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"
DEFAULT_CATEGORY_ID = "22"  # People & Blogs


class UploadPhase(str, Enum):
    """Phase of the upload in which a failure happened."""
    INITIATE = "initiate"
    FETCH_SOURCE = "fetch_source"
    TRANSFER = "transfer"
    FINALIZE = "finalize"


class UploadError(ProviderError):
    """An upload failed. ``phase`` tells the platform apart from the asset store."""

    def __init__(
        self,
        message: str,
        *,
        phase: UploadPhase,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, status=status, code=code, provider_id="youtube")
        self.phase = phase

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["phase"] = self.phase.value
        return data


class UploadNetworkError(TransientNetworkError):
    """A phase timed out or could not connect. Retrying starts a new session."""

    def __init__(self, message: str, *, phase: UploadPhase, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.phase = phase

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["phase"] = self.phase.value
        return data


def _network_error(exc: httpx.HTTPError, phase: UploadPhase) -> UploadNetworkError:
    if phase == UploadPhase.FETCH_SOURCE:
        return UploadNetworkError(
            f"Could not reach your media: {exc}",
            phase=phase,
            code="SOURCE_UNREACHABLE",
        )
    if isinstance(exc, httpx.TimeoutException):
        return UploadNetworkError("YouTube upload request timed out", phase=phase, code="TIMEOUT")
    return UploadNetworkError(f"YouTube upload connection failed: {exc}", phase=phase)


@dataclass
class VideoMetadata:
    """Snippet and status sent when the upload session is created."""
    title: str
    description: str = ""
    tags: list[str] = field(default_factory=list)
    privacy_status: str = "private"
    category_id: str = DEFAULT_CATEGORY_ID

    def to_request_body(self) -> dict:
        return {
            "snippet": {
                "title": self.title,
                "description": self.description,
                "tags": list(self.tags),
                "categoryId": self.category_id,
            },
            "status": {
                "privacyStatus": self.privacy_status,
                "selfDeclaredMadeForKids": False,
            },
        }


@dataclass(frozen=True)
class UploadResult:
    video_id: str
    permalink: str

    def to_dict(self) -> dict:
        return {"video_id": self.video_id, "permalink": self.permalink}


@dataclass(frozen=True)
class SourceMedia:
    data: bytes
    content_type: str

    @property
    def content_length(self) -> int:
        return len(self.data)


class ResumableUploadClient:
    """Client for the YouTube resumable upload protocol."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.upload_url = self.config.youtube_upload_url
        self.permalink_template = self.config.youtube_watch_url
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.upload_timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    async def initiate(self, access_token: str, metadata: VideoMetadata) -> str:
        """
        Open an upload session.

        Returns:
            The session URL from the ``Location`` header

        Raises:
            UploadError: phase ``initiate``; the message carries the platform's text
        """
        client = await self._get_client()
        try:
            response = await client.post(
                self.upload_url,
                json=metadata.to_request_body(),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json; charset=UTF-8",
                },
            )
        except httpx.HTTPError as e:
            raise _network_error(e, UploadPhase.INITIATE) from e

        if response.status_code >= 400:
            error_type, _ = classify_http_error(response.status_code, response.text, "YouTube")
            logger.warning(f"YouTube upload init failed ({response.status_code})")
            raise UploadError(
                f"Upload init failed: {response.text}",
                phase=UploadPhase.INITIATE,
                status=response.status_code,
                code=error_type.value,
            )

        session_url = response.headers.get("Location")
        if not session_url:
            raise UploadError(
                "No upload URL returned",
                phase=UploadPhase.INITIATE,
                status=response.status_code,
                code="NO_SESSION_URL",
            )
        return session_url

    async def fetch_source(self, source_url: str) -> SourceMedia:
        """Download the media to upload from its source URL."""
        client = await self._get_client()
        try:
            response = await client.get(source_url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise _network_error(e, UploadPhase.FETCH_SOURCE) from e

        if not response.is_success:
            raise UploadError(
                f"Failed to fetch video from source URL ({response.status_code})",
                phase=UploadPhase.FETCH_SOURCE,
                status=response.status_code,
                code="SOURCE_UNAVAILABLE",
            )
        if not response.content:
            raise UploadError(
                "Source URL returned no media",
                phase=UploadPhase.FETCH_SOURCE,
                status=response.status_code,
                code="EMPTY_SOURCE",
            )
        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        return SourceMedia(data=response.content, content_type=content_type or DEFAULT_CONTENT_TYPE)

    async def transfer(self, session_url: str, media: SourceMedia) -> dict:
        """PUT the media bytes to the session URL. Returns the parsed response body."""
        client = await self._get_client()
        try:
            response = await client.put(
                session_url,
                content=media.data,
                headers={
                    "Content-Type": media.content_type,
                    "Content-Length": str(media.content_length),
                },
            )
        except httpx.HTTPError as e:
            raise _network_error(e, UploadPhase.TRANSFER) from e

        if response.status_code >= 400:
            error_type, _ = classify_http_error(response.status_code, response.text, "YouTube")
            raise UploadError(
                f"Upload failed: {response.text}",
                phase=UploadPhase.TRANSFER,
                status=response.status_code,
                code=error_type.value,
            )
        try:
            return response.json()
        except ValueError as e:
            raise UploadError(
                "Upload response was not JSON",
                phase=UploadPhase.FINALIZE,
                status=response.status_code,
                code="INVALID_RESPONSE",
            ) from e

    def finalize(self, body: dict) -> UploadResult:
        """Build the result from the transfer response body."""
        video_id = body.get("id") if isinstance(body, dict) else None
        if not video_id:
            raise UploadError(
                "Upload response did not include a video id",
                phase=UploadPhase.FINALIZE,
                code="MISSING_VIDEO_ID",
            )
        return UploadResult(
            video_id=video_id,
            permalink=self.permalink_template.format(video_id=video_id),
        )

    async def upload(self, access_token: str, metadata: VideoMetadata, source_url: str) -> UploadResult:
        """
        Run all phases in order.

        Raises:
            UploadError: tagged with the failing phase
            UploadNetworkError: a phase timed out or could not connect
        """
        session_url = await self.initiate(access_token, metadata)
        media = await self.fetch_source(source_url)
        logger.info(f"Uploading {media.content_length} bytes to YouTube")
        body = await self.transfer(session_url, media)
        result = self.finalize(body)
        logger.info(f"YouTube video uploaded: {result.video_id}")
        return result

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
