# src/llmsentinel/storage/sqlite_store.py
"""
SQLite storage for enriched events and endpoint baselines using aiosqlite.

Events are stored as one flattened row per analyzed message (the same shape
the warehouse receives) plus the full JSON row for replay. Baselines are
stored one row per endpoint with the embedding serialized as JSON.
"""

import asyncio
import json
import logging
import os
import pathlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiosqlite

from ..exceptions import ConfigError, StorageError
from ..models import Baseline, EnrichedEvent
from .base import BaseTelemetryStore

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_TABLE = "llm_events"
DEFAULT_BASELINES_TABLE = "baselines"


def _parse_ts(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SqliteTelemetryStore(BaseTelemetryStore):
    """
    Persists enriched events and baselines in a single SQLite file.
    """
    _db_path: pathlib.Path
    _conn: Optional[aiosqlite.Connection] = None
    _events_table_name: str
    _baselines_table_name: str

    def __init__(self) -> None:
        self._conn = None
        self._write_lock = asyncio.Lock()

    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Open the database and create the tables if they don't exist.

        Args:
            config: Configuration dictionary. Expected keys:
                    'path': The database file path.
                    'events_table_name' (optional)
                    'baselines_table_name' (optional)

        Raises:
            ConfigError: If 'path' is not provided.
            StorageError: If the database cannot be initialized.
        """
        db_path_str = config.get("path")
        if not db_path_str:
            raise ConfigError("SQLite telemetry storage 'path' not specified in configuration.")

        self._db_path = pathlib.Path(os.path.expanduser(str(db_path_str)))
        self._events_table_name = config.get("events_table_name") or DEFAULT_EVENTS_TABLE
        self._baselines_table_name = config.get("baselines_table_name") or DEFAULT_BASELINES_TABLE

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(self._db_path)
            self._conn.row_factory = aiosqlite.Row

            await self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self._events_table_name} (
                    row_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    request_id TEXT NOT NULL, timestamp TEXT NOT NULL, endpoint TEXT NOT NULL,
                    model_name TEXT, status TEXT, tokens_total INTEGER, latency_ms REAL,
                    drift_score REAL, similarity_score REAL, baseline_ready INTEGER,
                    safety_label TEXT, safety_score REAL, is_high_risk INTEGER,
                    is_anomaly INTEGER, analyzed_at TEXT NOT NULL, payload TEXT NOT NULL
                )
            """)
            await self._conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self._events_table_name}_endpoint_ts "
                f"ON {self._events_table_name} (endpoint, timestamp);"
            )
            await self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self._baselines_table_name} (
                    endpoint TEXT PRIMARY KEY, embedding TEXT NOT NULL, sample_count INTEGER NOT NULL,
                    last_updated TEXT NOT NULL, created_at TEXT NOT NULL
                )
            """)
            await self._conn.commit()
            logger.info(f"SQLite telemetry storage initialized at: {self._db_path.resolve()} with tables: "
                        f"{self._events_table_name}, {self._baselines_table_name}")
        except aiosqlite.Error as e:
            logger.error(f"Failed to initialize aiosqlite database at {self._db_path}: {e}")
            await self._close_quietly()
            raise StorageError(f"Could not initialize SQLite database: {e}") from e

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise StorageError("Database connection not initialized.")
        return self._conn

    async def write_event(self, enriched: EnrichedEvent) -> None:
        conn = self._require_conn()
        event = enriched.event
        row = enriched.to_row()
        async with self._write_lock:
            try:
                await conn.execute(f"""
                    INSERT INTO {self._events_table_name} (
                        request_id, timestamp, endpoint, model_name, status, tokens_total, latency_ms,
                        drift_score, similarity_score, baseline_ready, safety_label, safety_score,
                        is_high_risk, is_anomaly, analyzed_at, payload
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    event.request_id, event.timestamp.isoformat(), event.endpoint, event.model_name,
                    event.status.value, event.tokens_total, event.latency_ms,
                    enriched.drift.drift_score, enriched.drift.similarity_score,
                    1 if enriched.drift.baseline_ready else 0,
                    enriched.safety.safety_label.value, enriched.safety.safety_score,
                    1 if enriched.safety.is_high_risk else 0,
                    1 if enriched.anomaly.is_anomaly else 0,
                    enriched.analyzed_at.isoformat(), json.dumps(row),
                ))
                await conn.commit()
                logger.debug(f"Enriched event '{event.request_id}' written to SQLite.")
            except aiosqlite.Error as e:
                logger.error(f"aiosqlite error writing event '{event.request_id}': {e}")
                raise StorageError(f"Database error writing event '{event.request_id}': {e}") from e

    async def upsert_baseline(self, baseline: Baseline) -> None:
        conn = self._require_conn()
        # delete + insert + commit must not interleave with another write on the shared connection
        async with self._write_lock:
            try:
                await conn.execute(f"DELETE FROM {self._baselines_table_name} WHERE endpoint = ?", (baseline.endpoint,))
                await conn.execute(f"""
                    INSERT INTO {self._baselines_table_name} (endpoint, embedding, sample_count, last_updated, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    baseline.endpoint, json.dumps(baseline.embedding), baseline.sample_count,
                    baseline.last_updated.isoformat(), baseline.created_at.isoformat(),
                ))
                await conn.commit()
                logger.debug(f"Baseline for endpoint '{baseline.endpoint}' saved (samples: {baseline.sample_count}).")
            except aiosqlite.Error as e:
                logger.error(f"aiosqlite error saving baseline '{baseline.endpoint}': {e}")
                try:
                    await conn.rollback()
                except aiosqlite.Error as rb_e:
                    logger.error(f"Rollback failed: {rb_e}")
                raise StorageError(f"Database error saving baseline '{baseline.endpoint}': {e}") from e

    async def load_baselines(self) -> List[Baseline]:
        conn = self._require_conn()
        baselines: List[Baseline] = []
        try:
            async with conn.execute(f"SELECT * FROM {self._baselines_table_name}") as cursor:
                async for row in cursor:
                    data = dict(row)
                    try:
                        baselines.append(Baseline(
                            endpoint=data["endpoint"],
                            embedding=json.loads(data["embedding"]),
                            sample_count=data["sample_count"],
                            last_updated=_parse_ts(data.get("last_updated")),
                            created_at=_parse_ts(data.get("created_at")),
                        ))
                    except (json.JSONDecodeError, ValueError, TypeError) as e:
                        logger.warning(f"Skipping invalid baseline row for endpoint {data.get('endpoint')}: {e}")
        except aiosqlite.Error as e:
            logger.error(f"aiosqlite error loading baselines: {e}")
            raise StorageError(f"Database error loading baselines: {e}") from e
        logger.debug(f"Loaded {len(baselines)} baselines from SQLite.")
        return baselines

    async def count_events(self) -> int:
        conn = self._require_conn()
        try:
            async with conn.execute(f"SELECT COUNT(*) FROM {self._events_table_name}") as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Database error counting events: {e}") from e
        return int(row[0]) if row else 0

    async def _close_quietly(self) -> None:
        if self._conn:
            try:
                await self._conn.close()
            except aiosqlite.Error as e:
                logger.warning(f"Error closing SQLite connection: {e}")
            self._conn = None

    async def close(self) -> None:
        """Closes the aiosqlite database connection."""
        if self._conn:
            await self._close_quietly()
            logger.info("aiosqlite telemetry storage connection closed.")
