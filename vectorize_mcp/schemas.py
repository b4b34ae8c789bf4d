from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidArgumentsError


T = TypeVar("T", bound=BaseModel)

JobKind = Literal["extraction", "deep_research"]

LogLevel = Literal["debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"]

# Async callback forwarding an MCP `notifications/message` (level, data) to the client.
Notifier = Callable[[LogLevel, Any], Awaitable[None]]


# -----------------------------
# Tool catalog
# -----------------------------


class ToolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str
    input_schema: Dict[str, Any] = Field(alias="inputSchema")

    def to_mcp(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# -----------------------------
# Tool inputs
# -----------------------------


def _non_blank(v: str, field: str) -> str:
    if not v.strip():
        raise ValueError(f"{field} must not be empty")
    return v


class RetrieveInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pipelineId: Optional[str] = None
    question: str
    k: int = Field(default=4, ge=1)

    @field_validator("question")
    @classmethod
    def _question(cls, v: str) -> str:
        return _non_blank(v, "question")

    @field_validator("k", mode="before")
    @classmethod
    def _k_default(cls, v: Any) -> Any:
        # Clients commonly send null for "use the default".
        return 4 if v is None else v


def decode_base64_document(value: str) -> bytes:
    """Decode base64 the way most encoders emit it: line-wrapped and/or without padding."""
    compact = "".join(value.split())
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True)


class ExtractInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    base64Document: str
    contentType: str

    @field_validator("base64Document")
    @classmethod
    def _base64(cls, v: str) -> str:
        try:
            decode_base64_document(v)
        except (binascii.Error, ValueError):
            raise ValueError("base64Document is not valid base64")
        return v

    @field_validator("contentType")
    @classmethod
    def _content_type(cls, v: str) -> str:
        return _non_blank(v, "contentType").strip()

    def document_bytes(self) -> bytes:
        return decode_base64_document(self.base64Document)


class DeepResearchInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pipelineId: Optional[str] = None
    query: str
    # Lax bool parsing: "false"/"0"/"no" -> False, unknown strings are rejected.
    webSearch: bool

    @field_validator("query")
    @classmethod
    def _query(cls, v: str) -> str:
        return _non_blank(v, "query")


def parse_tool_input(tool_name: str, model: Type[T], arguments: Dict[str, Any]) -> T:
    """Validate a raw argument bag, converting pydantic errors into InvalidArgumentsError."""
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'arguments'}: {err.get('msg')}"
            for err in e.errors()
        )
        raise InvalidArgumentsError(f"Invalid arguments for {tool_name}: {details}") from e


# -----------------------------
# Async jobs
# -----------------------------


@dataclass(frozen=True)
class AsyncJobHandle:
    job_id: str
    kind: JobKind


class JobStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ready: bool = False
    # Only meaningful once ready.
    success: bool = False
    payload: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[Any] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "JobStatus":
        """Build a status from the API's `{ready, data: {success, error, ...}}` shape."""
        ready = bool(data.get("ready"))
        inner = data.get("data") or {}
        if not isinstance(inner, dict):
            inner = {"value": inner}
        return cls(
            ready=ready,
            success=bool(inner.get("success")) if ready else False,
            payload=inner,
            error=inner.get("error"),
        )


# -----------------------------
# Tool results
# -----------------------------


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: List[TextContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    def to_mcp(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @property
    def text(self) -> str:
        return "".join(c.text for c in self.content)
