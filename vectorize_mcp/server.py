from __future__ import annotations

import asyncio
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional, TextIO, Tuple

import structlog
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from . import __version__
from .catalog import TOOL_NAMES
from .config import Settings, get_settings
from .providers.vectorize import VectorizeClient
from .router import ToolRouter
from .schemas import LogLevel, Notifier

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "vectorize-mcp"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def configure_logging(log_level: str, *, stream: Optional[TextIO] = None) -> None:
    """Configure stdlib logging + structlog (JSON lines).

    Pass `stream=sys.stderr` when stdout carries the protocol (stdio transport).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, stream=stream or sys.stderr)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=True,
    )


log = structlog.get_logger()


def jsonrpc_error(rpc_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}}


def jsonrpc_result(rpc_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "result": result}


def log_notification(level: LogLevel, data: Any) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "method": "notifications/message",
        "params": {"level": level, "logger": SERVER_NAME, "data": data},
    }


class McpProtocol:
    """JSON-RPC 2.0 handling for the MCP methods this server supports.

    Transport-agnostic: the SSE endpoints and the stdio loop both feed messages into
    `handle()`. In-flight tool calls are tracked per (session, request id) so that a
    `notifications/cancelled` can stop a polling job.
    """

    def __init__(self, router: ToolRouter) -> None:
        self.router = router
        self._inflight: Dict[Tuple[str, str], asyncio.Event] = {}
        self._lock = asyncio.Lock()

    async def _register(self, key: Tuple[str, str]) -> Optional[asyncio.Event]:
        """Track a new in-flight call; returns None when the id is already in flight."""
        async with self._lock:
            if key in self._inflight:
                return None
            ev = asyncio.Event()
            self._inflight[key] = ev
            return ev

    async def _release(self, key: Tuple[str, str]) -> None:
        async with self._lock:
            self._inflight.pop(key, None)

    async def cancel(self, session_id: str, request_id: Any) -> bool:
        async with self._lock:
            ev = self._inflight.get((session_id, str(request_id)))
        if ev is None:
            return False
        ev.set()
        log.info("tool call cancelled by client", session_id=session_id, request_id=request_id)
        return True

    async def handle(
        self,
        msg: Dict[str, Any],
        *,
        session_id: str = "default",
        notifier: Optional[Notifier] = None,
    ) -> Optional[Dict[str, Any]]:
        """Build a JSON-RPC response for an incoming message.

        Returns:
          - dict: JSON-RPC response object when the request has an `id`
          - None: for notifications (no `id`)
        """

        method = msg.get("method")
        rpc_id = msg.get("id", None)
        expects_response = rpc_id is not None

        if not isinstance(method, str) or not method.strip():
            if not expects_response:
                return None
            return jsonrpc_error(rpc_id, INVALID_REQUEST, "Invalid Request: missing method")

        try:
            if method == "initialize":
                params = msg.get("params") or {}
                log.info(
                    "client initialize",
                    client=(params.get("clientInfo") or {}).get("name"),
                    protocol=params.get("protocolVersion"),
                )
                response = jsonrpc_result(
                    rpc_id,
                    {
                        "protocolVersion": PROTOCOL_VERSION,
                        "capabilities": {"tools": {}, "logging": {}},
                        "serverInfo": {"name": SERVER_NAME, "version": __version__},
                    },
                )

            elif method in ("initialized", "notifications/initialized"):
                return None

            elif method == "notifications/cancelled":
                params = msg.get("params") or {}
                if params.get("requestId") is not None:
                    await self.cancel(session_id, params["requestId"])
                return None

            elif method == "ping":
                response = jsonrpc_result(rpc_id, {})

            elif method == "logging/setLevel":
                response = jsonrpc_result(rpc_id, {})

            elif method == "tools/list":
                response = jsonrpc_result(rpc_id, {"tools": self.router.list_tools_mcp()})

            elif method == "tools/call":
                params = msg.get("params") or {}
                tool_name = params.get("name")
                tool_args = params.get("arguments")

                if not isinstance(tool_name, str) or not tool_name.strip():
                    return jsonrpc_error(rpc_id, INVALID_PARAMS, "tools/call missing params.name") if expects_response else None
                if tool_args is not None and not isinstance(tool_args, dict):
                    return (
                        jsonrpc_error(rpc_id, INVALID_PARAMS, "tools/call params.arguments must be an object")
                        if expects_response
                        else None
                    )

                key = (session_id, str(rpc_id))
                cancel_event = await self._register(key)
                if cancel_event is None:
                    return (
                        jsonrpc_error(rpc_id, INVALID_REQUEST, f"Request id {rpc_id!r} is already in flight")
                        if expects_response
                        else None
                    )
                try:
                    result = await self.router.route(
                        tool_name,
                        tool_args,
                        cancel_event=cancel_event,
                        notifier=notifier,
                    )
                finally:
                    await self._release(key)
                response = jsonrpc_result(rpc_id, result.to_mcp())

            else:
                response = jsonrpc_error(rpc_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        except Exception as e:
            log.exception("jsonrpc handler error", method=method, error=str(e))
            response = jsonrpc_error(rpc_id, INTERNAL_ERROR, str(e))

        if not expects_response:
            return None
        return response


class SseSessions:
    """Outbound message queues for connected SSE clients, keyed by session id.

    `publish` drops messages for sessions without an open stream.
    """

    KEEPALIVE_S = 15.0

    def __init__(self) -> None:
        self._queues: Dict[str, asyncio.Queue[Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, session_id: str) -> asyncio.Queue[Dict[str, Any]]:
        async with self._lock:
            return self._queues.setdefault(session_id, asyncio.Queue())

    async def disconnect(self, session_id: str) -> None:
        async with self._lock:
            self._queues.pop(session_id, None)

    async def publish(self, session_id: str, message: Dict[str, Any]) -> bool:
        async with self._lock:
            q = self._queues.get(session_id)
        if q is None:
            return False
        await q.put(message)
        return True

    def notifier(self, session_id: str) -> Notifier:
        async def _notify(level: LogLevel, data: Any) -> None:
            await self.publish(session_id, log_notification(level, data))

        return _notify

    async def stream(self, session_id: str) -> AsyncIterator[Dict[str, str]]:
        """SSE events for one client: the message endpoint, then queued messages with keep-alives."""
        queue = await self.connect(session_id)
        try:
            yield {"event": "endpoint", "data": f"/messages?session_id={session_id}"}
            while True:
                try:
                    msg = await asyncio.wait_for(queue.get(), timeout=self.KEEPALIVE_S)
                except asyncio.TimeoutError:
                    yield {"event": "ping", "data": "keepalive"}
                    continue
                yield {"event": "message", "data": json.dumps(msg, ensure_ascii=False)}
        finally:
            await self.disconnect(session_id)


def create_app(settings: Optional[Settings] = None, client: Optional[VectorizeClient] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    client = client or VectorizeClient(settings)
    router = ToolRouter(settings, client)
    protocol = McpProtocol(router)
    sessions = SseSessions()

    app = FastAPI(title=SERVER_NAME, version=__version__)
    app.state.settings = settings
    app.state.router = router
    app.state.protocol = protocol

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup_log_config() -> None:
        log.info(
            "server startup",
            version=__version__,
            org_id=settings.org_id,
            default_pipeline_id=settings.default_pipeline_id,
            api_base_url=settings.api_base_url,
            tools=list(TOOL_NAMES),
        )

    @app.on_event("shutdown")
    async def _shutdown_client() -> None:
        await client.aclose()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": SERVER_NAME,
            "version": __version__,
            "default_pipeline_configured": bool(settings.default_pipeline_id),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # ------------------
    # Direct HTTP endpoints
    # ------------------

    @app.post("/tools/{tool_name}")
    async def http_call_tool(tool_name: str, payload: Optional[Dict[str, Any]] = Body(default=None)) -> Dict[str, Any]:
        if tool_name not in TOOL_NAMES:
            raise HTTPException(status_code=404, detail=f"Tool not found: {tool_name}")
        result = await router.route(tool_name, payload or {})
        return result.to_mcp()

    # ------------------
    # MCP over SSE transport
    # ------------------

    @app.get("/sse")
    async def sse(session_id: Optional[str] = Query(default=None)):
        return EventSourceResponse(sessions.stream(session_id or str(uuid.uuid4())))

    @app.post("/messages")
    async def messages(request: Request, session_id: str = Query(...)):
        try:
            payload = await request.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            return JSONResponse(jsonrpc_error(None, INVALID_REQUEST, "Invalid Request: body must be a JSON object"), status_code=400)

        response = await protocol.handle(payload, session_id=session_id, notifier=sessions.notifier(session_id))
        if response is None:
            return JSONResponse({"status": "ok"}, status_code=200)

        await sessions.publish(session_id, response)
        return JSONResponse(response, status_code=200)

    return app
