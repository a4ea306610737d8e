"""
Credential Store access.

Per-workspace API keys and OAuth tokens, keyed by (provider_id, workspace_id).
All writes that depend on the current value go through ``update`` so
concurrent refresh/connect/disconnect calls cannot lose each other's writes.
"""
import asyncio
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import structlog

from ..core.config import Settings, settings as default_settings
from ..core.encryption import TokenCipher, load_key

logger = structlog.get_logger(__name__)

StoreKey = tuple[str, str]
Updater = Callable[[Optional["CredentialRecord"]], Optional["CredentialRecord"]]


class CredentialKind(str, Enum):
    """How a credential was obtained."""
    BYOK = "byok"
    OAUTH = "oauth"


@dataclass(frozen=True)
class CredentialRecord:
    """
    Stored credential for one (provider, workspace) pair.

    Attributes:
        kind: BYOK static key or OAuth token pair
        key: Static API key (BYOK only)
        access_token: OAuth access token
        refresh_token: OAuth refresh token, if the platform issued one
        expires_at: Access token expiry (UTC), None when unknown
        account_id: Remote account identity, when known
    """
    kind: CredentialKind
    key: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    account_id: Optional[str] = None

    @classmethod
    def byok(cls, key: str) -> "CredentialRecord":
        return cls(kind=CredentialKind.BYOK, key=key)

    @classmethod
    def oauth(
        cls,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        account_id: Optional[str] = None,
    ) -> "CredentialRecord":
        return cls(
            kind=CredentialKind.OAUTH,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            account_id=account_id,
        )

    @property
    def secret(self) -> Optional[str]:
        """The usable value: the key for BYOK, the access token for OAuth."""
        return self.key if self.kind == CredentialKind.BYOK else self.access_token

    def with_access_token(self, access_token: str, expires_at: Optional[datetime]) -> "CredentialRecord":
        return replace(self, access_token=access_token, expires_at=expires_at)

    def __repr__(self) -> str:
        return (
            f"CredentialRecord(kind={self.kind.value}, "
            f"has_refresh_token={bool(self.refresh_token)}, expires_at={self.expires_at})"
        )


class CredentialStore(ABC):
    """Key-value access to stored credentials."""

    @abstractmethod
    async def get(self, provider_id: str, workspace_id: str) -> Optional[CredentialRecord]:
        """Return the stored record or None."""

    @abstractmethod
    async def put(self, provider_id: str, workspace_id: str, record: CredentialRecord) -> None:
        """Insert or replace the record."""

    @abstractmethod
    async def delete(self, provider_id: str, workspace_id: str) -> bool:
        """Remove the record. Returns True if one existed."""

    @abstractmethod
    async def update(
        self,
        provider_id: str,
        workspace_id: str,
        fn: Updater,
    ) -> Optional[CredentialRecord]:
        """
        Atomically replace the record with ``fn(current)``.

        ``fn`` receives the current record (or None) and returns the new
        record, or None to delete it. No other write to the same key can
        interleave between the read and the write.

        Returns:
            The record now stored (None if deleted)
        """


class InMemoryCredentialStore(CredentialStore):
    """Process-local store with one asyncio lock per key."""

    def __init__(self):
        self._records: dict[StoreKey, CredentialRecord] = {}
        self._locks: dict[StoreKey, asyncio.Lock] = {}

    def _lock(self, key: StoreKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get(self, provider_id: str, workspace_id: str) -> Optional[CredentialRecord]:
        return self._records.get((provider_id, workspace_id))

    async def put(self, provider_id: str, workspace_id: str, record: CredentialRecord) -> None:
        key = (provider_id, workspace_id)
        async with self._lock(key):
            self._records[key] = record

    async def delete(self, provider_id: str, workspace_id: str) -> bool:
        key = (provider_id, workspace_id)
        async with self._lock(key):
            return self._records.pop(key, None) is not None

    async def update(
        self,
        provider_id: str,
        workspace_id: str,
        fn: Updater,
    ) -> Optional[CredentialRecord]:
        key = (provider_id, workspace_id)
        async with self._lock(key):
            new = fn(self._records.get(key))
            if new is None:
                self._records.pop(key, None)
            else:
                self._records[key] = new
            return new


_SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
    provider_id TEXT NOT NULL,
    workspace_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    secret_encrypted TEXT NOT NULL,
    refresh_token_encrypted TEXT,
    expires_at TEXT,
    account_id TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (provider_id, workspace_id)
)
"""


class SqliteCredentialStore(CredentialStore):
    """
    SQLite-backed store with secrets encrypted at rest.

    Each operation opens its own connection in a worker thread. ``update``
    runs inside ``BEGIN IMMEDIATE`` so the write lock is held from the read
    to the write.
    """

    def __init__(self, db_path: Path, cipher: TokenCipher):
        self.db_path = Path(db_path)
        self.cipher = cipher
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.execute(_SCHEMA)
        finally:
            conn.close()

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "SqliteCredentialStore":
        """Store at ``credential_db_path`` using the configured encryption key."""
        config = config or default_settings
        return cls(config.credential_db_path, TokenCipher(load_key(config.encryption_key)))

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _row_to_record(self, row: sqlite3.Row) -> Optional[CredentialRecord]:
        secret = self.cipher.safe_decrypt(row["secret_encrypted"])
        if secret is None:
            logger.warning(
                "credential_decrypt_failed",
                provider_id=row["provider_id"],
                workspace_id=row["workspace_id"],
            )
            return None
        kind = CredentialKind(row["kind"])
        expires_at = datetime.fromisoformat(row["expires_at"]) if row["expires_at"] else None
        if kind == CredentialKind.BYOK:
            return CredentialRecord.byok(secret)
        return CredentialRecord.oauth(
            access_token=secret,
            refresh_token=self.cipher.safe_decrypt(row["refresh_token_encrypted"]),
            expires_at=expires_at,
            account_id=row["account_id"],
        )

    def _select(self, conn: sqlite3.Connection, key: StoreKey) -> Optional[CredentialRecord]:
        row = conn.execute(
            "SELECT * FROM credentials WHERE provider_id = ? AND workspace_id = ?",
            key,
        ).fetchone()
        return self._row_to_record(row) if row else None

    def _upsert(self, conn: sqlite3.Connection, key: StoreKey, record: CredentialRecord) -> None:
        if not record.secret:
            raise ValueError("Credential record has no secret to store")
        conn.execute(
            """
            INSERT INTO credentials (
                provider_id, workspace_id, kind, secret_encrypted,
                refresh_token_encrypted, expires_at, account_id, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (provider_id, workspace_id) DO UPDATE SET
                kind = excluded.kind,
                secret_encrypted = excluded.secret_encrypted,
                refresh_token_encrypted = excluded.refresh_token_encrypted,
                expires_at = excluded.expires_at,
                account_id = excluded.account_id,
                updated_at = excluded.updated_at
            """,
            (
                *key,
                record.kind.value,
                self.cipher.encrypt(record.secret),
                self.cipher.encrypt(record.refresh_token) if record.refresh_token else None,
                record.expires_at.isoformat() if record.expires_at else None,
                record.account_id,
                datetime.now(timezone.utc).isoformat(),
            ),
        )

    def _delete(self, conn: sqlite3.Connection, key: StoreKey) -> bool:
        cursor = conn.execute(
            "DELETE FROM credentials WHERE provider_id = ? AND workspace_id = ?",
            key,
        )
        return cursor.rowcount > 0

    def _update_sync(self, key: StoreKey, fn: Updater) -> Optional[CredentialRecord]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                new = fn(self._select(conn, key))
                if new is None:
                    self._delete(conn, key)
                else:
                    self._upsert(conn, key, new)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            return new
        finally:
            conn.close()

    def _get_sync(self, key: StoreKey) -> Optional[CredentialRecord]:
        conn = self._connect()
        try:
            return self._select(conn, key)
        finally:
            conn.close()

    def _delete_sync(self, key: StoreKey) -> bool:
        conn = self._connect()
        try:
            return self._delete(conn, key)
        finally:
            conn.close()

    async def get(self, provider_id: str, workspace_id: str) -> Optional[CredentialRecord]:
        return await asyncio.to_thread(self._get_sync, (provider_id, workspace_id))

    async def put(self, provider_id: str, workspace_id: str, record: CredentialRecord) -> None:
        await self.update(provider_id, workspace_id, lambda _current: record)

    async def delete(self, provider_id: str, workspace_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, (provider_id, workspace_id))

    async def update(
        self,
        provider_id: str,
        workspace_id: str,
        fn: Updater,
    ) -> Optional[CredentialRecord]:
        return await asyncio.to_thread(self._update_sync, (provider_id, workspace_id), fn)
