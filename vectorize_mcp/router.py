from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog

from .catalog import DEEP_RESEARCH, EXTRACT, RETRIEVE, TOOL_NAMES, build_tool_catalog
from .config import Settings
from .errors import InvalidArgumentsError, ToolNotFoundError, VectorizeMCPError
from .normalizer import normalize
from .providers.vectorize import VectorizeClient
from .schemas import (
    DeepResearchInput,
    ExtractInput,
    LogLevel,
    Notifier,
    RetrieveInput,
    ToolDefinition,
    ToolResult,
    parse_tool_input,
)
from .tools import deep_research, extract, retrieve


log = structlog.get_logger()


class ToolRouter:
    """Maps tool calls onto the Vectorize workflows.

    Settings and the HTTP client are injected, so separate routers can run with
    different configurations side by side. The catalog is computed once here.
    """

    def __init__(self, settings: Settings, client: VectorizeClient, *, notifier: Optional[Notifier] = None) -> None:
        self.settings = settings
        self.client = client
        self.notifier = notifier
        self._catalog: Tuple[ToolDefinition, ...] = build_tool_catalog(settings.default_pipeline_id)

    def list_tools(self) -> Tuple[ToolDefinition, ...]:
        return self._catalog

    def list_tools_mcp(self) -> List[Dict[str, Any]]:
        return [t.to_mcp() for t in self._catalog]

    def resolve_pipeline_id(self, requested: Optional[str]) -> str:
        pid = (requested or "").strip() or (self.settings.default_pipeline_id or "").strip()
        if not pid:
            raise InvalidArgumentsError(
                "pipelineId is required because no default pipeline (VECTORIZE_PIPELINE_ID) is configured"
            )
        return pid

    async def _notify(self, level: LogLevel, data: Any, notifier: Optional[Notifier]) -> None:
        target = notifier or self.notifier
        if target is None:
            return
        try:
            await target(level, data)
        except Exception as e:
            # Client-side logging must never fail the tool call.
            log.warning("mcp log notification failed", error=str(e))

    async def dispatch(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        notifier: Optional[Notifier] = None,
    ) -> str:
        """Validate and run a tool call, returning its text payload. Raises on any failure."""

        if name not in TOOL_NAMES:
            raise ToolNotFoundError(name)

        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise InvalidArgumentsError(f"Arguments for {name} must be an object")
        args = dict(arguments)

        ts = datetime.now(timezone.utc).isoformat()
        log.info("tool call received", tool=name, received_at=ts)
        await self._notify("info", f"[{ts}] Received request for tool: {name}", notifier)

        if name == RETRIEVE:
            r_inp = parse_tool_input(name, RetrieveInput, args)
            pipeline_id = self.resolve_pipeline_id(r_inp.pipelineId)
            return await retrieve(r_inp, pipeline_id, self.client)

        if name == EXTRACT:
            e_inp = parse_tool_input(name, ExtractInput, args)
            return await extract(e_inp, self.client, self.settings, cancel_event=cancel_event)

        if name == DEEP_RESEARCH:
            d_inp = parse_tool_input(name, DeepResearchInput, args)
            pipeline_id = self.resolve_pipeline_id(d_inp.pipelineId)

            async def _forward(level: LogLevel, data: Any) -> None:
                await self._notify(level, data, notifier)

            return await deep_research(
                d_inp,
                pipeline_id,
                self.client,
                self.settings,
                cancel_event=cancel_event,
                notify=_forward,
            )

        raise ToolNotFoundError(name)

    async def route(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        notifier: Optional[Notifier] = None,
    ) -> ToolResult:
        """Run a tool call and always return an MCP result envelope."""

        async def _call() -> str:
            try:
                return await self.dispatch(name, arguments, cancel_event=cancel_event, notifier=notifier)
            except VectorizeMCPError:
                raise
            except Exception:
                log.exception("tool handler crashed", tool=name)
                raise

        result = await normalize(_call)
        if result.is_error:
            message = result.text
            log.error("tool call failed", tool=name, error=message)
            await self._notify(
                "error",
                {
                    "message": message,
                    "tool": name,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
                notifier,
            )
        return result


__all__ = ["ToolRouter"]
