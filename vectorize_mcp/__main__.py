from __future__ import annotations

import argparse
import asyncio
import sys

import uvicorn

from .config import get_settings
from .errors import ConfigurationError


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="vectorize-mcp", description="Vectorize MCP server")
    parser.add_argument(
        "--transport",
        choices=("sse", "stdio"),
        default="sse",
        help="sse: HTTP server with /sse + /messages; stdio: JSON-RPC over stdin/stdout",
    )
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.transport == "stdio":
        from .server import configure_logging
        from .stdio import serve_stdio

        configure_logging(settings.log_level, stream=sys.stderr)
        try:
            asyncio.run(serve_stdio(settings))
        except KeyboardInterrupt:
            pass
        return

    uvicorn.run(
        "vectorize_mcp.server:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.uvicorn_log_level,
        reload=False,
    )


if __name__ == "__main__":
    main()
