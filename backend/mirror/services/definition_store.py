"""
Definition store
Durable storage for confirmed sheet definitions, one SQLite row per id.
"""

import asyncio
import json
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import aiosqlite
from pydantic import ValidationError

from shared.exceptions.mirror import StoreFailure
from shared.models.mirror_template import Fingerprint, SheetDefinition
from shared.utils.app_logger import get_logger

logger = get_logger(__name__)


class DefinitionStore:
    """
    Keyed store for confirmed ``SheetDefinition`` documents.

    ``upsert`` is an idempotent create-or-replace keyed by id. Every write runs
    in its own transaction. Any database error surfaces as ``StoreFailure``;
    nothing is retried here.
    """

    @staticmethod
    def _resolve_database_path(db_path: Optional[str] = None) -> str:
        """Absolute database path; relative paths are taken from the working directory."""
        path = db_path or os.getenv("MIRROR_DEFINITIONS_DB_PATH") or "data/mirror_templates.db"
        return str(Path(path).expanduser().resolve())

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = self._resolve_database_path(db_path)
        self._init_flag = False
        self._init_lock = asyncio.Lock()

    def _ensure_directory(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self) -> None:
        await self._init_database()

    async def _init_database(self):
        """Create the table and indexes once (double-checked under a lock)."""
        if self._init_flag:
            return

        async with self._init_lock:
            if self._init_flag:
                return

            try:
                self._ensure_directory()
            except OSError as e:
                raise StoreFailure(f"cannot create database directory: {e}", operation="initialize") from e

            async with self._get_connection("initialize") as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS mirror_templates (
                        id TEXT PRIMARY KEY,
                        client_key TEXT NOT NULL,
                        grid_hash TEXT,
                        definition_json TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_mirror_grid_hash ON mirror_templates(grid_hash)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_mirror_client_key ON mirror_templates(client_key)"
                )
                await conn.commit()
                self._init_flag = True
                logger.info(f"Definition store ready at {self.db_path}")

    @asynccontextmanager
    async def _get_connection(self, operation: str):
        """Connection context manager; database errors become StoreFailure."""
        conn = None
        try:
            conn = await aiosqlite.connect(self.db_path)
            conn.row_factory = aiosqlite.Row
            yield conn
        except (aiosqlite.Error, OSError) as e:
            logger.error(f"Definition store {operation} failed: {e}")
            raise StoreFailure(str(e), operation=operation) from e
        finally:
            if conn:
                await conn.close()

    async def upsert(self, definition: SheetDefinition) -> None:
        """Create or fully replace the definition stored under ``definition.id``."""
        await self._init_database()

        now = datetime.now(timezone.utc).isoformat()
        grid_hash = definition.fingerprint.grid_hash if definition.fingerprint else None
        payload = json.dumps(definition.to_wire(), ensure_ascii=False, sort_keys=True)

        async with self._get_connection("upsert") as conn:
            await conn.execute(
                """
                INSERT INTO mirror_templates (id, client_key, grid_hash, definition_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    client_key = excluded.client_key,
                    grid_hash = excluded.grid_hash,
                    definition_json = excluded.definition_json,
                    updated_at = excluded.updated_at
                """,
                (definition.id, definition.client_key, grid_hash, payload, now, now),
            )
            await conn.commit()

        logger.info(f"Stored definition {definition.id} ({len(definition.fields)} fields)")

    async def get(self, definition_id: str) -> Optional[SheetDefinition]:
        await self._init_database()

        async with self._get_connection("get") as conn:
            async with conn.execute(
                "SELECT definition_json FROM mirror_templates WHERE id = ?", (definition_id,)
            ) as cursor:
                row = await cursor.fetchone()

        if row is None:
            return None
        return self._decode(row["definition_json"], definition_id)

    async def get_timestamps(self, definition_id: str) -> Optional[Tuple[str, str]]:
        """(created_at, updated_at) for a stored definition."""
        await self._init_database()

        async with self._get_connection("get_timestamps") as conn:
            async with conn.execute(
                "SELECT created_at, updated_at FROM mirror_templates WHERE id = ?", (definition_id,)
            ) as cursor:
                row = await cursor.fetchone()

        return (row["created_at"], row["updated_at"]) if row else None

    async def list_fingerprints(self) -> List[Tuple[str, str, Fingerprint]]:
        """(id, clientKey, fingerprint) for every stored definition that has one."""
        await self._init_database()

        async with self._get_connection("list_fingerprints") as conn:
            async with conn.execute(
                "SELECT id, definition_json FROM mirror_templates WHERE grid_hash IS NOT NULL ORDER BY id"
            ) as cursor:
                rows = await cursor.fetchall()

        out: List[Tuple[str, str, Fingerprint]] = []
        for row in rows:
            definition = self._decode(row["definition_json"], row["id"])
            if definition.fingerprint is not None:
                out.append((definition.id, definition.client_key, definition.fingerprint))
        return out

    async def delete(self, definition_id: str) -> bool:
        await self._init_database()

        async with self._get_connection("delete") as conn:
            cursor = await conn.execute("DELETE FROM mirror_templates WHERE id = ?", (definition_id,))
            await conn.commit()
            return cursor.rowcount > 0

    async def close(self) -> None:
        """Connections are per operation; nothing stays open between calls."""
        self._init_flag = False

    @staticmethod
    def _decode(payload: str, definition_id: str) -> SheetDefinition:
        try:
            return SheetDefinition.model_validate(json.loads(payload))
        except (ValueError, ValidationError) as e:
            logger.error(f"Stored definition {definition_id} is corrupt: {e}")
            raise StoreFailure(f"stored definition {definition_id} is unreadable", operation="decode") from e
