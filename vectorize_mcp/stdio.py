from __future__ import annotations

"""Newline-delimited JSON-RPC over stdin/stdout.

stdout carries protocol messages only; all logging goes to stderr.
"""

import asyncio
import json
import sys
from typing import Any, Dict, Optional, Set

import structlog

from .config import Settings
from .providers.vectorize import VectorizeClient
from .router import ToolRouter
from .schemas import LogLevel
from .server import INVALID_REQUEST, PARSE_ERROR, McpProtocol, jsonrpc_error, log_notification

log = structlog.get_logger()

_SESSION = "stdio"


class StdioTransport:
    def __init__(self) -> None:
        self._reader: Optional[asyncio.StreamReader] = None
        self._stdout = None
        self._write_lock = asyncio.Lock()

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._reader = asyncio.StreamReader(limit=2**24)
        protocol = asyncio.StreamReaderProtocol(self._reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)
        # Writes go through the default executor; connect_write_pipe fails when stdout is not a real pipe.
        self._stdout = sys.stdout.buffer

    async def read_line(self) -> Optional[bytes]:
        if self._reader is None:
            raise RuntimeError("Transport not started")
        line = await self._reader.readline()
        return line or None

    async def write_message(self, message: Dict[str, Any]) -> None:
        if self._stdout is None:
            raise RuntimeError("Transport not started")
        raw = (json.dumps(message, separators=(",", ":"), ensure_ascii=False) + "\n").encode("utf-8")
        loop = asyncio.get_running_loop()
        async with self._write_lock:
            # A slow reader on stdout must not stall in-flight polls.
            await loop.run_in_executor(None, self._write_blocking, raw)

    def _write_blocking(self, raw: bytes) -> None:
        self._stdout.write(raw)
        self._stdout.flush()


async def serve_stdio(settings: Settings, *, client: Optional[VectorizeClient] = None) -> None:
    """Serve MCP over stdio until EOF.

    Each request runs as its own task, so a `notifications/cancelled` arriving on
    stdin can reach a tool call that is still polling.
    """

    transport = StdioTransport()

    async def _notify(level: LogLevel, data: Any) -> None:
        await transport.write_message(log_notification(level, data))

    client = client or VectorizeClient(settings)
    protocol = McpProtocol(ToolRouter(settings, client, notifier=_notify))
    tasks: Set[asyncio.Task] = set()

    async def _handle(msg: Dict[str, Any]) -> None:
        response = await protocol.handle(msg, session_id=_SESSION)
        if response is not None:
            await transport.write_message(response)

    await transport.start()
    log.info(
        "stdio server ready",
        org_id=settings.org_id,
        default_pipeline_id=settings.default_pipeline_id,
    )

    try:
        while True:
            line = await transport.read_line()
            if line is None:
                log.info("EOF on stdin, shutting down")
                break
            if not line.strip():
                continue

            try:
                msg = json.loads(line)
            except json.JSONDecodeError as e:
                log.warning("invalid JSON on stdin", error=str(e))
                await transport.write_message(jsonrpc_error(None, PARSE_ERROR, f"Parse error: {e}"))
                continue
            if not isinstance(msg, dict):
                await transport.write_message(jsonrpc_error(None, INVALID_REQUEST, "Invalid Request: expected an object"))
                continue

            task = asyncio.create_task(_handle(msg))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
    finally:
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await client.aclose()
