from __future__ import annotations

from typing import List, Optional, Tuple

from .schemas import ToolDefinition

RETRIEVE = "retrieve"
EXTRACT = "extract"
DEEP_RESEARCH = "deep-research"

# Canonical tool names, in catalog order.
TOOL_NAMES: Tuple[str, ...] = (RETRIEVE, EXTRACT, DEEP_RESEARCH)


def _with_pipeline(required: List[str], default_pipeline_id: Optional[str]) -> List[str]:
    if default_pipeline_id:
        return list(required)
    return ["pipelineId", *required]


def build_tool_catalog(default_pipeline_id: Optional[str] = None) -> Tuple[ToolDefinition, ...]:
    """Build the fixed tool catalog.

    `pipelineId` is always accepted by retrieve and deep-research, but it is only
    required when the server has no default pipeline configured.
    """

    pipeline_property = {
        "type": "string",
        "description": (
            "The ID of the Vectorize pipeline to use."
            + (" Defaults to the server's configured pipeline." if default_pipeline_id else "")
        ),
    }

    return (
        ToolDefinition(
            name=RETRIEVE,
            description="Retrieve documents from a Vectorize pipeline.",
            inputSchema={
                "type": "object",
                "properties": {
                    "pipelineId": dict(pipeline_property),
                    "question": {"type": "string", "description": "The question to retrieve documents for."},
                    "k": {
                        "type": "number",
                        "description": "The number of documents to retrieve.",
                        "default": 4,
                        "minimum": 1,
                    },
                },
                "required": _with_pipeline(["question"], default_pipeline_id),
            },
        ),
        ToolDefinition(
            name=EXTRACT,
            description="Perform text extraction and chunking on a document.",
            inputSchema={
                "type": "object",
                "properties": {
                    "base64Document": {"type": "string", "description": "Document encoded in base64."},
                    "contentType": {"type": "string", "description": "Document content type (e.g. application/pdf)."},
                },
                "required": ["base64Document", "contentType"],
            },
        ),
        ToolDefinition(
            name=DEEP_RESEARCH,
            description="Generate a deep research report on a Vectorize pipeline, optionally using web search.",
            inputSchema={
                "type": "object",
                "properties": {
                    "pipelineId": dict(pipeline_property),
                    "query": {"type": "string", "description": "The deep research query."},
                    "webSearch": {"type": "boolean", "description": "Whether to perform a web search."},
                },
                "required": _with_pipeline(["query", "webSearch"], default_pipeline_id),
            },
        ),
    )
