"""Platform connectors. The set is closed: one class per supported platform."""
from types import MappingProxyType
from typing import Optional

from ..core.errors import UnknownProviderError
from .base import (
    PLATFORM_CONFIGS,
    ContentValidation,
    DryRunResult,
    DryRunValidation,
    PlatformConfig,
    PlatformConnector,
    PublishContent,
    PublishResult,
    get_connector_config,
    split_into_thread,
    validate_content,
)
from .linkedin import LinkedInConnector
from .reddit import RedditConnector
from .x import PartialThreadError, XConnector
from .youtube import YouTubeConnector

CONNECTORS = MappingProxyType({
    "linkedin": LinkedInConnector,
    "x": XConnector,
    "reddit": RedditConnector,
    "youtube": YouTubeConnector,
})


def get_connector(platform: str, access_token: Optional[str] = None, **kwargs) -> PlatformConnector:
    """
    Create the connector for a platform.

    Raises:
        UnknownProviderError: platform is not supported
    """
    connector_cls = CONNECTORS.get(platform.lower())
    if connector_cls is None:
        raise UnknownProviderError(f"Unsupported platform: {platform}. Supported: {', '.join(CONNECTORS)}")
    return connector_cls(access_token, **kwargs)


__all__ = [
    "CONNECTORS",
    "PLATFORM_CONFIGS",
    "ContentValidation",
    "DryRunResult",
    "DryRunValidation",
    "LinkedInConnector",
    "PartialThreadError",
    "PlatformConfig",
    "PlatformConnector",
    "PublishContent",
    "PublishResult",
    "RedditConnector",
    "XConnector",
    "YouTubeConnector",
    "get_connector",
    "get_connector_config",
    "split_into_thread",
    "validate_content",
]
