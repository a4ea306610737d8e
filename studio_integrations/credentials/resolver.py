"""
Credential resolution.

Given a provider id and a workspace id, return a usable credential.

Priority:
    1. Workspace BYOK key
    2. Platform-managed OAuth token (refreshed when expired)
    3. Platform-wide key from settings, only when ``allow_platform_keys`` is on
    4. NotConfigured

Refresh rules:
    - An expired OAuth token gets exactly one refresh attempt.
    - At most one refresh is in flight per (provider, workspace); concurrent
      callers await the same outcome.
    - A rejected refresh deletes the stored token, so later calls report
      NotConfigured instead of refreshing again.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from ..core.config import Settings, settings as default_settings
from ..core.errors import NotConfigured, ProviderError
from .oauth import OAuthRefresher, TokenGrant
from .store import CredentialKind, CredentialRecord, CredentialStore, StoreKey

logger = structlog.get_logger(__name__)

RefreshListener = Callable[[str, str, Optional[datetime]], Awaitable[None]]


class CredentialSource(str, Enum):
    """Where a resolved credential came from."""
    BYOK = "byok"
    OAUTH = "oauth"
    PLATFORM = "platform"


@dataclass(frozen=True)
class Credential:
    """An opaque, usable credential. ``value`` is never included in repr."""
    provider_id: str
    workspace_id: str
    value: str = field(repr=False)
    source: CredentialSource
    expires_at: Optional[datetime] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialResolver:
    """Resolves workspace-scoped credentials, refreshing OAuth tokens on demand."""

    def __init__(
        self,
        store: CredentialStore,
        refreshers: Optional[dict[str, OAuthRefresher]] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        on_refresh: Optional[RefreshListener] = None,
    ):
        """
        Initialize the resolver.

        Args:
            store: Credential Store collaborator
            refreshers: provider_id -> OAuthRefresher for OAuth platforms
            config: Settings (refresh skew, platform keys)
            clock: Returns the current UTC time
            on_refresh: Awaited with (provider_id, workspace_id, expires_at)
                after a refresh is persisted
        """
        self.store = store
        self.refreshers = refreshers or {}
        self.config = config or default_settings
        self.clock = clock
        self.on_refresh = on_refresh
        self._inflight: dict[StoreKey, asyncio.Task] = {}

    @property
    def refresh_skew(self) -> timedelta:
        return timedelta(seconds=self.config.token_refresh_skew_seconds)

    def _needs_refresh(self, record: CredentialRecord) -> bool:
        if record.expires_at is None:
            return False
        return record.expires_at <= self.clock() + self.refresh_skew

    async def resolve(self, provider_id: str, workspace_id: str) -> Credential:
        """
        Resolve a usable credential.

        Raises:
            NotConfigured: Nothing usable is stored, or the OAuth refresh failed
            TransientNetworkError: The token endpoint was unreachable
        """
        record = await self.store.get(provider_id, workspace_id)

        if record is not None and record.kind == CredentialKind.BYOK and record.key:
            self._log_resolved(provider_id, workspace_id, CredentialSource.BYOK)
            return Credential(provider_id, workspace_id, record.key, CredentialSource.BYOK)

        if record is not None and record.kind == CredentialKind.OAUTH and record.access_token:
            if not self._needs_refresh(record):
                self._log_resolved(provider_id, workspace_id, CredentialSource.OAUTH)
                return self._from_oauth(provider_id, workspace_id, record)
            return await self._refresh_once(provider_id, workspace_id)

        platform_key = self._platform_key(provider_id)
        if platform_key:
            self._log_resolved(provider_id, workspace_id, CredentialSource.PLATFORM)
            return Credential(provider_id, workspace_id, platform_key, CredentialSource.PLATFORM)

        logger.info("credential_missing", provider_id=provider_id, workspace_id=workspace_id)
        raise NotConfigured(
            f"No credential configured for {provider_id}",
            provider_id=provider_id,
            workspace_id=workspace_id,
        )

    async def resolve_or_none(self, provider_id: str, workspace_id: str) -> Optional[Credential]:
        """Like ``resolve`` but returns None when not configured."""
        try:
            return await self.resolve(provider_id, workspace_id)
        except NotConfigured:
            return None

    async def disconnect(self, provider_id: str, workspace_id: str) -> bool:
        """Delete the stored credential. Returns True if one existed."""
        removed = await self.store.delete(provider_id, workspace_id)
        logger.info("credential_deleted", provider_id=provider_id, workspace_id=workspace_id, removed=removed)
        return removed

    def _platform_key(self, provider_id: str) -> Optional[str]:
        if not self.config.allow_platform_keys:
            return None
        return self.config.platform_keys.get(provider_id) or None

    def _from_oauth(self, provider_id: str, workspace_id: str, record: CredentialRecord) -> Credential:
        return Credential(
            provider_id,
            workspace_id,
            record.access_token,
            CredentialSource.OAUTH,
            expires_at=record.expires_at,
        )

    def _log_resolved(self, provider_id: str, workspace_id: str, source: CredentialSource) -> None:
        logger.debug(
            "credential_resolved",
            provider_id=provider_id,
            workspace_id=workspace_id,
            source=source.value,
        )

    async def _refresh_once(self, provider_id: str, workspace_id: str) -> Credential:
        key = (provider_id, workspace_id)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(provider_id, workspace_id))
            self._inflight[key] = task

            def _clear(done: asyncio.Task) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_clear)
        return await asyncio.shield(task)

    async def _refresh(self, provider_id: str, workspace_id: str) -> Credential:
        # Re-read: a refresh that finished before this task started may
        # already have stored a fresh token, or invalidated it.
        current = await self.store.get(provider_id, workspace_id)
        if current is None or current.kind != CredentialKind.OAUTH or not current.access_token:
            raise NotConfigured(
                f"{provider_id} is not connected",
                provider_id=provider_id,
                workspace_id=workspace_id,
            )
        if not self._needs_refresh(current):
            return self._from_oauth(provider_id, workspace_id, current)

        refresher = self.refreshers.get(provider_id)
        if refresher is None or not current.refresh_token:
            await self._invalidate(provider_id, workspace_id, current)
            raise NotConfigured(
                f"{provider_id} token expired and cannot be refreshed, reconnect required",
                provider_id=provider_id,
                workspace_id=workspace_id,
                code="TOKEN_EXPIRED",
            )

        logger.info("oauth_refresh_started", provider_id=provider_id, workspace_id=workspace_id)
        try:
            grant = await refresher.refresh(current.refresh_token)
        except ProviderError as e:
            await self._invalidate(provider_id, workspace_id, current)
            raise NotConfigured(
                f"{provider_id} token refresh failed, reconnect required",
                provider_id=provider_id,
                workspace_id=workspace_id,
                code="TOKEN_REFRESH_FAILED",
            ) from e

        stored = await self._persist(provider_id, workspace_id, current, grant)
        logger.info(
            "oauth_refresh_succeeded",
            provider_id=provider_id,
            workspace_id=workspace_id,
            expires_at=stored.expires_at.isoformat() if stored.expires_at else None,
        )
        if self.on_refresh is not None:
            await self.on_refresh(provider_id, workspace_id, stored.expires_at)
        return self._from_oauth(provider_id, workspace_id, stored)

    async def _persist(
        self,
        provider_id: str,
        workspace_id: str,
        previous: CredentialRecord,
        grant: TokenGrant,
    ) -> CredentialRecord:
        refreshed = previous.with_access_token(grant.access_token, grant.expires_at(self.clock()))
        if grant.refresh_token:
            refreshed = CredentialRecord.oauth(
                access_token=refreshed.access_token,
                refresh_token=grant.refresh_token,
                expires_at=refreshed.expires_at,
                account_id=refreshed.account_id,
            )

        def apply(current: Optional[CredentialRecord]) -> Optional[CredentialRecord]:
            # A reconnect or disconnect that landed mid-refresh wins.
            if current is None or current.refresh_token != previous.refresh_token:
                return current
            return refreshed

        stored = await self.store.update(provider_id, workspace_id, apply)
        if stored is None:
            logger.info("oauth_refresh_discarded", provider_id=provider_id, workspace_id=workspace_id)
            raise NotConfigured(
                f"{provider_id} was disconnected during token refresh",
                provider_id=provider_id,
                workspace_id=workspace_id,
            )
        return stored

    async def _invalidate(self, provider_id: str, workspace_id: str, previous: CredentialRecord) -> None:
        def apply(current: Optional[CredentialRecord]) -> Optional[CredentialRecord]:
            if current is not None and current.refresh_token == previous.refresh_token:
                return None
            return current

        await self.store.update(provider_id, workspace_id, apply)
        logger.warning("oauth_token_invalidated", provider_id=provider_id, workspace_id=workspace_id)
