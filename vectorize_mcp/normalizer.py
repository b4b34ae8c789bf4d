from __future__ import annotations

from typing import Awaitable, Callable

from .errors import VectorizeMCPError
from .schemas import TextContent, ToolResult


def success_result(text: str) -> ToolResult:
    return ToolResult(content=[TextContent(text=text)], is_error=False)


def error_message(exc: BaseException) -> str:
    """Human-readable failure text. API errors carry their HTTP status and body via str()."""
    if isinstance(exc, VectorizeMCPError):
        details = str(exc)
    else:
        details = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
    return f"Request failed: {details}"


def error_result(exc: BaseException) -> ToolResult:
    return ToolResult(content=[TextContent(text=error_message(exc))], is_error=True)


async def normalize(call: Callable[[], Awaitable[str]]) -> ToolResult:
    """Run a tool call and wrap its outcome in the MCP result envelope.

    Every Exception becomes an `isError` result; task cancellation (BaseException) is
    left to propagate.
    """
    try:
        text = await call()
    except Exception as e:
        return error_result(e)
    return success_result(text)
