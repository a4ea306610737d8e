"""
Publishing channels.

A Channel is a workspace's connection to one account on one platform. It is
created on connect, updated on every publish attempt and token refresh, and
removed on disconnect. At most one active channel exists per
(workspace, platform, account).
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .credentials.health import TokenHealth, token_health

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Channel:
    """
    A connected publishing destination.

    Attributes:
        workspace_id: Owning workspace
        platform: Connector id (linkedin, x, reddit, youtube)
        account_id: Remote account identity
        tier: Connection tier label shown to users
        display_name: Human-readable channel name
        is_active: False once superseded or disconnected
        last_error: Message of the most recent failed publish
        token_expires_at: OAuth access token expiry, None when unknown
    """
    workspace_id: str
    platform: str
    account_id: str
    tier: str = "standard"
    display_name: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_active: bool = True
    connected_at: datetime = field(default_factory=_now)
    last_published_at: Optional[datetime] = None
    last_error: Optional[str] = None
    token_expires_at: Optional[datetime] = None

    @property
    def token_health(self) -> TokenHealth:
        return token_health(self.token_expires_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "platform": self.platform,
            "account_id": self.account_id,
            "tier": self.tier,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "connected_at": self.connected_at.isoformat(),
            "last_published_at": self.last_published_at.isoformat() if self.last_published_at else None,
            "last_error": self.last_error,
            "token_expires_at": self.token_expires_at.isoformat() if self.token_expires_at else None,
            "token_health": self.token_health.value,
        }


class ChannelRepository:
    """In-memory channel storage guarded by a single asyncio lock."""

    def __init__(self):
        self._channels: dict[str, Channel] = {}
        self._lock = asyncio.Lock()

    async def connect(
        self,
        workspace_id: str,
        platform: str,
        account_id: str,
        *,
        tier: str = "standard",
        display_name: str = "",
        token_expires_at: Optional[datetime] = None,
    ) -> Channel:
        """
        Create an active channel, deactivating any active channel for the
        same (workspace, platform, account).
        """
        async with self._lock:
            for existing in self._channels.values():
                if (
                    existing.is_active
                    and existing.workspace_id == workspace_id
                    and existing.platform == platform
                    and existing.account_id == account_id
                ):
                    existing.is_active = False
                    logger.info(f"Replacing channel {existing.id} for {platform}:{account_id}")

            channel = Channel(
                workspace_id=workspace_id,
                platform=platform,
                account_id=account_id,
                tier=tier,
                display_name=display_name or account_id,
                token_expires_at=token_expires_at,
            )
            self._channels[channel.id] = channel
            logger.info(f"Connected {platform} channel {channel.id} for workspace {workspace_id}")
            return channel

    async def get(self, channel_id: str) -> Optional[Channel]:
        return self._channels.get(channel_id)

    async def list_for_workspace(self, workspace_id: str, active_only: bool = True) -> List[Channel]:
        """Channels for a workspace, most recently connected first."""
        channels = [
            c for c in self._channels.values()
            if c.workspace_id == workspace_id and (c.is_active or not active_only)
        ]
        return sorted(channels, key=lambda c: c.connected_at, reverse=True)

    async def find_active(self, workspace_id: str, platform: str) -> Optional[Channel]:
        for channel in await self.list_for_workspace(workspace_id):
            if channel.platform == platform:
                return channel
        return None

    async def record_publish(
        self,
        channel_id: str,
        *,
        success: bool,
        error: Optional[str] = None,
    ) -> Optional[Channel]:
        """Record the outcome of a publish attempt."""
        async with self._lock:
            channel = self._channels.get(channel_id)
            if channel is None:
                return None
            if success:
                channel.last_published_at = _now()
                channel.last_error = None
            else:
                channel.last_error = error or "Publish failed"
            return channel

    async def record_token_refresh(
        self,
        workspace_id: str,
        platform: str,
        expires_at: Optional[datetime],
    ) -> int:
        """Update token expiry on every active channel for the platform. Returns the count."""
        async with self._lock:
            updated = 0
            for channel in self._channels.values():
                if channel.is_active and channel.workspace_id == workspace_id and channel.platform == platform:
                    channel.token_expires_at = expires_at
                    updated += 1
            return updated

    async def disconnect(self, channel_id: str) -> bool:
        async with self._lock:
            channel = self._channels.pop(channel_id, None)
        if channel is None:
            return False
        logger.info(f"Disconnected {channel.platform} channel {channel_id}")
        return True
