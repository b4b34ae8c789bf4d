from __future__ import annotations

from typing import Any, Optional


class VectorizeMCPError(RuntimeError):
    pass


class ConfigurationError(VectorizeMCPError):
    """Required server configuration is missing or invalid. Fatal at startup."""


class InvalidArgumentsError(VectorizeMCPError):
    """A tool call carried missing or malformed arguments."""


class ToolNotFoundError(VectorizeMCPError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class VectorizeAPIError(VectorizeMCPError):
    """A call to the Vectorize API (or the upload URL) failed.

    `status_code` and `body` are set when the failure came with an HTTP response;
    they are None for network-level errors.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message}. Server responded with {self.status_code}: {self.body or ''}".rstrip()


def _job_label(kind: str) -> str:
    return "Deep research" if kind == "deep_research" else "Extraction"


class JobFailedError(VectorizeMCPError):
    """The remote job reached a terminal state without success."""

    def __init__(self, kind: str, error: Any = None) -> None:
        self.kind = kind
        self.error = error
        super().__init__(f"{_job_label(kind)} failed: {error}")


class JobTimeoutError(VectorizeMCPError):
    def __init__(self, kind: str, *, attempts: int, elapsed_s: float) -> None:
        self.kind = kind
        self.attempts = attempts
        self.elapsed_s = elapsed_s
        super().__init__(f"{_job_label(kind)} did not complete after {attempts} polls ({elapsed_s:.1f}s)")


class JobCancelledError(VectorizeMCPError):
    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"{_job_label(kind)} was cancelled")
