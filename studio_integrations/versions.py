"""
Content versions with a single final version per content item.

``mark_final`` clears the previous final and sets the new one inside one
``BEGIN IMMEDIATE`` transaction, so concurrent requests always leave exactly
one final version.
"""
import asyncio
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .core.config import settings

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS content_versions (
    id TEXT PRIMARY KEY,
    content_id TEXT NOT NULL,
    version_number INTEGER NOT NULL,
    body TEXT NOT NULL,
    is_final INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE (content_id, version_number)
)
"""


@dataclass
class ContentVersion:
    content_id: str
    version_number: int
    body: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_final: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content_id": self.content_id,
            "version_number": self.version_number,
            "body": self.body,
            "is_final": self.is_final,
            "created_at": self.created_at.isoformat(),
        }


class VersionRepository:
    """SQLite storage for content versions. One connection per operation, run in a worker thread."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or settings.versions_db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.execute(_SCHEMA)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _row_to_version(row: sqlite3.Row) -> ContentVersion:
        return ContentVersion(
            id=row["id"],
            content_id=row["content_id"],
            version_number=row["version_number"],
            body=row["body"],
            is_final=bool(row["is_final"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _create_sync(self, content_id: str, body: str) -> ContentVersion:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT COALESCE(MAX(version_number), 0) FROM content_versions WHERE content_id = ?",
                    (content_id,),
                ).fetchone()
                version = ContentVersion(content_id=content_id, version_number=row[0] + 1, body=body)
                conn.execute(
                    "INSERT INTO content_versions (id, content_id, version_number, body, is_final, created_at) "
                    "VALUES (?, ?, ?, ?, 0, ?)",
                    (version.id, content_id, version.version_number, body, version.created_at.isoformat()),
                )
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            return version
        finally:
            conn.close()

    def _get_sync(self, version_id: str) -> Optional[ContentVersion]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM content_versions WHERE id = ?", (version_id,)).fetchone()
            return self._row_to_version(row) if row else None
        finally:
            conn.close()

    def _list_sync(self, content_id: str) -> list[ContentVersion]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM content_versions WHERE content_id = ? ORDER BY version_number",
                (content_id,),
            ).fetchall()
            return [self._row_to_version(row) for row in rows]
        finally:
            conn.close()

    def _mark_final_sync(self, version_id: str) -> Optional[ContentVersion]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute("SELECT * FROM content_versions WHERE id = ?", (version_id,)).fetchone()
                if row is None:
                    conn.execute("ROLLBACK")
                    return None
                conn.execute(
                    "UPDATE content_versions SET is_final = 0 WHERE content_id = ? AND is_final = 1",
                    (row["content_id"],),
                )
                conn.execute("UPDATE content_versions SET is_final = 1 WHERE id = ?", (version_id,))
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            version = self._row_to_version(row)
            version.is_final = True
            return version
        finally:
            conn.close()

    async def create_version(self, content_id: str, body: str) -> ContentVersion:
        """Append a new version, numbered after the latest one."""
        version = await asyncio.to_thread(self._create_sync, content_id, body)
        logger.info(f"Created version {version.version_number} of {content_id}")
        return version

    async def get(self, version_id: str) -> Optional[ContentVersion]:
        return await asyncio.to_thread(self._get_sync, version_id)

    async def list_for_content(self, content_id: str) -> list[ContentVersion]:
        return await asyncio.to_thread(self._list_sync, content_id)

    async def get_final(self, content_id: str) -> Optional[ContentVersion]:
        for version in await self.list_for_content(content_id):
            if version.is_final:
                return version
        return None

    async def mark_final(self, version_id: str) -> Optional[ContentVersion]:
        """
        Make a version the only final version of its content.

        Returns None when the version does not exist.
        """
        version = await asyncio.to_thread(self._mark_final_sync, version_id)
        if version is not None:
            logger.info(f"Marked version {version.version_number} of {version.content_id} final")
        return version
