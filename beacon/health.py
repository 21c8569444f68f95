"""Lightweight HTTP health endpoint for deployment platforms."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import discord

from .db import Database
from .services.config_store import GuildConfigStore


async def build_health_payload(
    store: GuildConfigStore,
    database: Optional[Database],
    bot: Optional[discord.Client] = None,
    version: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "status": "ok",
        "version": version,
        "storage": store.storage,
        "database_connected": database.is_connected if database else False,
        "bot_ready": bot.is_ready() if bot else False,
        "guilds": len(bot.guilds) if bot and bot.is_ready() else 0,
        "configured_guilds": await store.count(),
    }


async def _handle_client(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    store: GuildConfigStore,
    database: Optional[Database],
    bot: Optional[discord.Client],
    version: Optional[str],
) -> None:
    try:
        data = await reader.readuntil(b"\r\n\r\n")
    except (asyncio.IncompleteReadError, asyncio.LimitOverrunError):
        writer.close()
        await writer.wait_closed()
        return

    request_line = data.decode(errors="ignore").split("\r\n", 1)[0]
    method, path, *_ = request_line.split(" ") + ["", ""]
    if method.upper() != "GET" or path not in {"/", "/health", "/healthz"}:
        response = "HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"
        writer.write(response.encode())
        await writer.drain()
        writer.close()
        await writer.wait_closed()
        return

    payload = await build_health_payload(store, database, bot, version)
    body = json.dumps(payload).encode()
    response = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode() + body
    writer.write(response)
    await writer.drain()
    writer.close()
    await writer.wait_closed()


async def start_health_server(
    host: str,
    port: int,
    store: GuildConfigStore,
    database: Optional[Database],
    bot: Optional[discord.Client] = None,
    version: Optional[str] = None,
) -> asyncio.AbstractServer:
    server = await asyncio.start_server(
        lambda r, w: _handle_client(r, w, store, database, bot, version),
        host,
        port,
    )
    return server
