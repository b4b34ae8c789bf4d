from __future__ import annotations

"""Tool handlers for the Vectorize MCP server.

Each handler takes a validated input model plus the Vectorize client (and settings
where needed) and returns the text payload of the tool result. Envelope wrapping and
error conversion happen in the router.
"""

from .deep_research import deep_research
from .extract import extract
from .retrieve import retrieve

__all__ = [
    "retrieve",
    "extract",
    "deep_research",
]
