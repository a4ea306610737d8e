"""
Platform connector contract.

Every platform implements the same three operations:

    validate_token() -> bool          cheap liveness check, never raises
    dry_run(content) -> DryRunResult  validation only, no publish side effect
    publish(content, credential)      the real post, never retried here

Content validation is pure and driven by ``PLATFORM_CONFIGS``.
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Optional, Union

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    IntegrationError,
    ProviderError,
    ValidationError,
    invalid_response,
    json_object,
    provider_error_from_response,
    transient_from_httpx,
)
from ..core.rate_limiter import RateLimiter
from ..credentials.resolver import Credential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformConfig:
    """Per-platform publishing constraints."""
    character_limit: int
    estimated_reach: int
    supports_media: bool = False
    supports_hashtags: bool = False
    max_thread_parts: int = 1


PLATFORM_CONFIGS = MappingProxyType({
    "linkedin": PlatformConfig(3000, 500, supports_media=True, supports_hashtags=True),
    "youtube": PlatformConfig(5000, 1000, supports_media=True, supports_hashtags=True),
    "reddit": PlatformConfig(40000, 2000, supports_media=True),
    "x": PlatformConfig(280, 300, supports_media=True, supports_hashtags=True, max_thread_parts=25),
})

DEFAULT_PLATFORM_CONFIG = PlatformConfig(2000, 100)


def get_connector_config(platform: str) -> PlatformConfig:
    """Configuration for a platform, falling back to conservative defaults."""
    return PLATFORM_CONFIGS.get(platform.lower(), DEFAULT_PLATFORM_CONFIG)


_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def split_into_thread(text: str, limit: int = 280) -> list[str]:
    """
    Split text into thread parts of at most ``limit`` characters.

    Breaks on sentence boundaries first, then on words. A single word longer
    than the limit is cut into fixed-size chunks.
    """
    if len(text) <= limit:
        return [text]

    parts: list[str] = []
    current = ""

    def push_word(word: str) -> None:
        nonlocal current
        while len(word) > limit:
            if current:
                parts.append(current)
                current = ""
            parts.append(word[:limit])
            word = word[limit:]
        if not word:
            return
        if not current:
            current = word
        elif len(current) + len(word) + 1 <= limit:
            current = f"{current} {word}"
        else:
            parts.append(current)
            current = word

    for sentence in _SENTENCE_BREAK.split(text.strip()):
        if not current and len(sentence) <= limit:
            current = sentence
        elif len(current) + len(sentence) + 1 <= limit:
            current = f"{current} {sentence}"
        elif len(sentence) <= limit:
            parts.append(current)
            current = sentence
        else:
            for word in sentence.split():
                push_word(word)

    if current:
        parts.append(current)
    return parts


@dataclass(frozen=True)
class ContentValidation:
    character_limit_ok: bool
    format_ok: bool

    @property
    def ok(self) -> bool:
        return self.character_limit_ok and self.format_ok


def validate_content(platform: str, content: str) -> ContentValidation:
    """
    Validate text against a platform's rules. Pure.

    Platforms that thread long posts pass the limit check as long as the
    text fits in their maximum number of parts.
    """
    config = get_connector_config(platform)
    if config.max_thread_parts > 1:
        fits = len(split_into_thread(content, config.character_limit)) <= config.max_thread_parts
    else:
        fits = len(content) <= config.character_limit
    return ContentValidation(character_limit_ok=fits, format_ok=bool(content.strip()))


@dataclass
class PublishContent:
    """
    What to publish.

    Attributes:
        text: Post body (video description on YouTube)
        title: Post or video title
        link_url: Link to attach, where the platform supports it
        media_url: Source media URL (required for YouTube)
        tags: Hashtags or video tags
        visibility: Platform visibility setting
        subreddit: Target community (Reddit only)
    """
    text: str
    title: str = ""
    link_url: Optional[str] = None
    media_url: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    visibility: str = "public"
    subreddit: Optional[str] = None

    @classmethod
    def coerce(cls, content: Union[str, "PublishContent"]) -> "PublishContent":
        return content if isinstance(content, PublishContent) else cls(text=content)


@dataclass
class DryRunValidation:
    character_limit_ok: bool
    format_ok: bool
    # None when the token check was skipped
    oauth_valid: Optional[bool]

    def to_dict(self) -> dict:
        return {
            "character_limit_ok": self.character_limit_ok,
            "format_ok": self.format_ok,
            "oauth_valid": self.oauth_valid,
        }


@dataclass
class DryRunResult:
    """Outcome of validating a prospective publish. Never persisted."""
    success: bool
    platform: str
    estimated_reach: int
    validation: DryRunValidation
    message: str = ""
    character_count: int = 0
    character_limit: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "dry_run": True,
            "platform": self.platform,
            "estimated_reach": self.estimated_reach,
            "validation": self.validation.to_dict(),
            "message": self.message,
            "content_analysis": {
                "character_count": self.character_count,
                "character_limit": self.character_limit,
                "remaining_characters": max(0, self.character_limit - self.character_count),
            },
        }


@dataclass
class PublishResult:
    """Outcome of a publish attempt."""
    platform: str
    success: bool
    post_id: Optional[str] = None
    post_url: Optional[str] = None
    thread_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None
    http_status: Optional[int] = None
    published_at: Optional[datetime] = None

    @classmethod
    def posted(cls, platform: str, post_id: str, post_url: Optional[str], **kwargs) -> "PublishResult":
        return cls(
            platform=platform,
            success=True,
            post_id=post_id,
            post_url=post_url,
            published_at=datetime.now(timezone.utc),
            **kwargs,
        )

    @classmethod
    def failed(cls, platform: str, error: IntegrationError) -> "PublishResult":
        return cls(
            platform=platform,
            success=False,
            error=error.message,
            error_code=error.code,
            http_status=getattr(error, "status", None),
            thread_ids=list(getattr(error, "posted_ids", [])),
        )

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "success": self.success,
            "post_id": self.post_id,
            "post_url": self.post_url,
            "thread_ids": self.thread_ids,
            "error": self.error,
            "error_code": self.error_code,
            "http_status": self.http_status,
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }


class PlatformConnector(ABC):
    """
    Base class for platform connectors.

    A connector may be bound to an access token for ``validate_token`` and
    ``dry_run``; ``publish`` always uses the credential it is given.
    """

    platform: str = "base"
    display_name: str = "Platform"
    rate_limit_setting: Optional[str] = None

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[Settings] = None,
    ):
        self.access_token = access_token
        self.config = config or default_settings
        rate = getattr(self.config, self.rate_limit_setting) if self.rate_limit_setting else 60
        self.rate_limiter = rate_limiter or RateLimiter(rate)
        self._client = client

    @property
    def platform_config(self) -> PlatformConfig:
        return get_connector_config(self.platform)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._client

    async def _request(self, method: str, url: str, token: str, **kwargs) -> httpx.Response:
        """
        Issue an authenticated request.

        Raises:
            ProviderError: non-2xx response, classified by status
            TransientNetworkError: timeout or connection failure
        """
        await self.rate_limiter.wait()
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise transient_from_httpx(e, self.display_name) from e

        if response.status_code >= 400:
            error = provider_error_from_response(response, self.display_name)
            error.provider_id = self.platform
            logger.warning(f"{self.display_name} {method} {url} failed: {response.status_code} ({error.code})")
            raise error
        return response

    def _json(self, response: httpx.Response) -> dict:
        """Body of a successful response as a JSON object."""
        return json_object(response, self.display_name, provider_id=self.platform)

    def _invalid(self, response: httpx.Response, detail: str) -> ProviderError:
        return invalid_response(self.display_name, detail, response.status_code, provider_id=self.platform)

    @abstractmethod
    async def _check_token(self, token: str) -> None:
        """Make the platform's cheapest authenticated call. Raise on failure."""

    @abstractmethod
    async def _publish(self, content: PublishContent, token: str) -> PublishResult:
        """Perform the platform call for already-validated content."""

    async def validate_token(self) -> bool:
        """Check the bound token against the platform. Returns False on any failure."""
        if not self.access_token:
            return False
        try:
            await asyncio.wait_for(
                self._check_token(self.access_token),
                timeout=self.config.validate_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.info(f"{self.display_name} token validation timed out")
            return False
        except IntegrationError as e:
            logger.info(f"{self.display_name} token validation failed: {e}")
            return False
        return True

    async def dry_run(self, content: Union[str, PublishContent]) -> DryRunResult:
        """
        Validate content and token without publishing.

        When content validation fails the token is not checked and
        ``oauth_valid`` is None.
        """
        content = PublishContent.coerce(content)
        config = self.platform_config
        check = validate_content(self.platform, content.text)

        oauth_valid: Optional[bool] = None
        if not check.ok:
            message = self._validation_message(check, content.text)
        else:
            oauth_valid = await self.validate_token()
            if oauth_valid:
                message = f"{self.display_name} dry run passed, content is valid for publishing"
            else:
                message = f"{self.display_name} token is missing or invalid, reconnect the channel"

        logger.info(
            f"{self.display_name} dry run: limit_ok={check.character_limit_ok} "
            f"format_ok={check.format_ok} oauth_valid={oauth_valid}"
        )
        return DryRunResult(
            success=check.ok and bool(oauth_valid),
            platform=self.platform,
            estimated_reach=config.estimated_reach,
            validation=DryRunValidation(check.character_limit_ok, check.format_ok, oauth_valid),
            message=message,
            character_count=len(content.text),
            character_limit=config.character_limit * config.max_thread_parts,
        )

    def _validation_message(self, check: ContentValidation, text: str) -> str:
        if not check.format_ok:
            return f"{self.display_name} content is empty"
        return (
            f"{self.display_name} content is {len(text)} characters, "
            f"over the {self.platform_config.character_limit} character limit"
        )

    async def publish(self, content: Union[str, PublishContent], credential: Credential) -> PublishResult:
        """
        Publish content. Not retried on failure.

        Raises:
            ValidationError: content violates platform rules, nothing was sent
            ProviderError: the platform rejected the call
            TransientNetworkError: timeout or connection failure
        """
        content = PublishContent.coerce(content)
        check = validate_content(self.platform, content.text)
        if not check.ok:
            raise ValidationError(self._validation_message(check, content.text))
        result = await self._publish(content, credential.value)
        logger.info(f"Published to {self.display_name}: {result.post_id}")
        return result

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def require_field(value: Optional[str], message: str) -> str:
    if not value:
        raise ValidationError(message)
    return value


def missing_post_id(platform: str, display_name: str, status: int) -> ProviderError:
    return ProviderError(
        f"{display_name} accepted the post but returned no id",
        status=status,
        code="EMPTY_RESPONSE",
        provider_id=platform,
    )


def nested(data: dict, key: str) -> dict:
    """``data[key]`` when it is an object, otherwise an empty dict."""
    value = data.get(key)
    return value if isinstance(value, dict) else {}
