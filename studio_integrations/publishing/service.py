"""
Publishing orchestration.

Resolves a workspace's credential for a platform, runs the connector and
records the outcome on the workspace's channel. Integration failures come
back as ``PublishResult`` error fields; nothing raised by a connector
escapes ``publish``.

Usage:
    service = PublishingService(resolver, channels)
    check = await service.dry_run("ws_1", "x", "Launch day!")
    result = await service.publish("ws_1", "x", "Launch day!")
"""
import logging
from datetime import datetime
from typing import Callable, Optional, Union

import httpx

from ..channels import ChannelRepository
from ..connectors import get_connector
from ..connectors.base import DryRunResult, PlatformConnector, PublishContent, PublishResult
from ..core.config import Settings, settings as default_settings
from ..core.errors import IntegrationError, NotConfigured
from ..core.rate_limiter import KeyedRateLimiter
from ..credentials.resolver import CredentialResolver

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[..., PlatformConnector]


class PublishingService:
    """Publishes content for a workspace across its connected channels."""

    def __init__(
        self,
        resolver: CredentialResolver,
        channels: ChannelRepository,
        connector_factory: ConnectorFactory = get_connector,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the publishing service.

        Args:
            resolver: Credential resolver shared with other services
            channels: Channel repository that receives publish outcomes
            connector_factory: Builds a connector for a platform name
            config: Settings (rate limits, timeouts)
            client: Shared HTTP client (optional, created lazily)
        """
        self.resolver = resolver
        self.channels = channels
        self.connector_factory = connector_factory
        self.config = config or default_settings
        self._client = client
        self._limiters: dict[str, KeyedRateLimiter] = {}

        if self.resolver.on_refresh is None:
            self.resolver.on_refresh = self.on_token_refresh

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._client

    def _limiter(self, platform: str, workspace_id: str):
        keyed = self._limiters.get(platform)
        if keyed is None:
            rate = getattr(self.config, f"{platform}_rate_limit", 60)
            keyed = KeyedRateLimiter(rate)
            self._limiters[platform] = keyed
        return keyed.for_key(workspace_id)

    async def _connector(self, platform: str, workspace_id: str, access_token: Optional[str]) -> PlatformConnector:
        return self.connector_factory(
            platform,
            access_token,
            client=await self._get_client(),
            rate_limiter=self._limiter(platform, workspace_id),
            config=self.config,
        )

    async def on_token_refresh(self, provider_id: str, workspace_id: str, expires_at: Optional[datetime]) -> None:
        """Keep channel token expiry in step with refreshed OAuth tokens."""
        updated = await self.channels.record_token_refresh(workspace_id, provider_id, expires_at)
        if updated:
            logger.info(f"Updated token expiry on {updated} {provider_id} channel(s) for {workspace_id}")

    async def dry_run(
        self,
        workspace_id: str,
        platform: str,
        content: Union[str, PublishContent],
    ) -> DryRunResult:
        """
        Validate content and the workspace's token without publishing.

        A missing or unrefreshable credential yields ``oauth_valid=False``.

        Raises:
            UnknownProviderError: platform is not supported
        """
        platform = platform.lower()
        try:
            credential = await self.resolver.resolve_or_none(platform, workspace_id)
        except IntegrationError as e:
            logger.warning(f"Credential lookup for {platform} dry run failed: {e.code}")
            credential = None

        connector = await self._connector(platform, workspace_id, credential.value if credential else None)
        return await connector.dry_run(content)

    async def publish(
        self,
        workspace_id: str,
        platform: str,
        content: Union[str, PublishContent],
    ) -> PublishResult:
        """
        Publish content to the workspace's active channel for a platform.

        Not retried. Every integration failure is returned as a failed
        ``PublishResult`` carrying the original error code.
        """
        platform = platform.lower()
        try:
            connector = await self._connector(platform, workspace_id, None)
            credential = await self.resolver.resolve(platform, workspace_id)
            result = await connector.publish(content, credential)
        except NotConfigured as e:
            logger.info(f"{platform} not connected for {workspace_id}: {e.code}")
            result = PublishResult.failed(platform, e)
        except IntegrationError as e:
            logger.error(f"Failed to publish to {platform} for {workspace_id}: {e.code} {e.message}")
            result = PublishResult.failed(platform, e)

        await self._record(workspace_id, platform, result)
        return result

    async def disconnect(self, workspace_id: str, channel_id: str) -> bool:
        """
        Remove a channel and the workspace's stored credential for its platform.

        Returns False when the channel does not exist in this workspace.
        """
        channel = await self.channels.get(channel_id)
        if channel is None or channel.workspace_id != workspace_id:
            return False
        await self.channels.disconnect(channel_id)
        await self.resolver.disconnect(channel.platform, workspace_id)
        logger.info(f"Disconnected {channel.platform} for {workspace_id}")
        return True

    async def _record(self, workspace_id: str, platform: str, result: PublishResult) -> None:
        channel = await self.channels.find_active(workspace_id, platform)
        if channel is None:
            return
        await self.channels.record_publish(channel.id, success=result.success, error=result.error)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
