"""Database integration for persistent guild configuration documents."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import certifi
import psycopg2
from psycopg2.extensions import connection as PsycopgConnection
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)


class Database:
    """Thread-safe psycopg2 wrapper that initialises tables and executes queries via asyncio."""

    def __init__(self, database_url: Optional[str]):
        self._url = database_url
        self._conn: Optional[PsycopgConnection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        if not self._url:
            logger.info("Database URL not configured; guild configuration kept in memory.")
            return
        async with self._lock:
            if self._conn and not self._conn.closed:
                return
            try:
                ssl_args = {}
                if "sslmode=verify" in self._url and "sslrootcert" not in self._url:
                    ssl_args = {"sslrootcert": certifi.where()}
                self._conn = await asyncio.to_thread(
                    lambda: psycopg2.connect(dsn=self._url, **ssl_args)
                )
                await self._initialise_schema()
            except Exception:
                logger.exception(
                    "Failed to initialise database connection; guild configuration kept in memory."
                )
                if self._conn and not self._conn.closed:
                    self._conn.close()
                self._conn = None

    async def close(self) -> None:
        async with self._lock:
            if self._conn and not self._conn.closed:
                await asyncio.to_thread(self._conn.close)
            self._conn = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    async def _ensure_connection(self) -> Optional[PsycopgConnection]:
        if not self._url:
            return None
        if not self.is_connected:
            await self.connect()
        return self._conn

    async def _initialise_schema(self) -> None:
        if self._conn is None:
            return
        await asyncio.to_thread(self._run_initial_schema_statements, self._conn)

    def _run_initial_schema_statements(self, conn: PsycopgConnection) -> None:
        with conn, conn.cursor() as cur:
            cur.execute(
                """
                create table if not exists guild_documents (
                    guild_id bigint primary key,
                    document jsonb not null,
                    updated_at timestamptz not null default now()
                );
                """
            )

    async def fetch_guild_document(self, guild_id: int) -> Optional[Dict[str, Any]]:
        row = await self._fetchone(
            "select document from guild_documents where guild_id = %s;", (guild_id,)
        )
        if not row:
            return None
        document = row["document"]
        if isinstance(document, str):
            try:
                return json.loads(document)
            except json.JSONDecodeError:
                logger.warning("Discarding unreadable configuration document for guild %s", guild_id)
                return None
        return document

    async def upsert_guild_document(self, guild_id: int, document: Dict[str, Any]) -> None:
        await self._execute_async(
            """
            insert into guild_documents (guild_id, document, updated_at)
            values (%s, %s::jsonb, now())
            on conflict (guild_id)
            do update set document = excluded.document, updated_at = now();
            """,
            (guild_id, json.dumps(document)),
        )

    async def count_guild_documents(self) -> int:
        row = await self._fetchone("select count(*) as total from guild_documents;", ())
        return int(row["total"]) if row else 0

    async def _execute_async(self, query: str, params: tuple[Any, ...] | tuple[()]) -> None:
        conn = await self._ensure_connection()
        if conn is None:
            return
        await asyncio.to_thread(self._execute, conn, query, params)

    def _execute(
        self, conn: PsycopgConnection, query: str, params: tuple[Any, ...] | tuple[()]
    ) -> None:
        with conn, conn.cursor() as cur:
            cur.execute(query, params)

    async def _fetchone(
        self, query: str, params: tuple[Any, ...] | tuple[()]
    ) -> Optional[dict[str, Any]]:
        conn = await self._ensure_connection()
        if conn is None:
            return None
        return await asyncio.to_thread(self._fetchone_sync, conn, query, params)

    def _fetchone_sync(
        self, conn: PsycopgConnection, query: str, params: tuple[Any, ...] | tuple[()]
    ) -> Optional[dict[str, Any]]:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        conn.commit()
        return dict(row) if row else None
