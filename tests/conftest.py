from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from vectorize_mcp.config import Settings
from vectorize_mcp.errors import VectorizeAPIError
from vectorize_mcp.schemas import JobStatus


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "VECTORIZE_ORG_ID",
        "VECTORIZE_TOKEN",
        "VECTORIZE_PIPELINE_ID",
        "VECTORIZE_API_BASE_URL",
        "VECTORIZE_POLL_INTERVAL_S",
        "VECTORIZE_POLL_MAX_ATTEMPTS",
        "VECTORIZE_POLL_TIMEOUT_S",
        "LOG_LEVEL",
        "UVICORN_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "org_id": "org-1",
        "token": "tok-secret",
        "poll_interval_s": 0.01,
        "poll_max_attempts": 50,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _status(ready: bool, **data: Any) -> JobStatus:
    return JobStatus.from_response({"ready": ready, "data": data} if ready else {"ready": False})


class FakeVectorizeClient:
    """In-memory stand-in for VectorizeClient that records every call."""

    def __init__(
        self,
        *,
        documents: Optional[List[Dict[str, Any]]] = None,
        extraction_statuses: Optional[List[JobStatus]] = None,
        research_statuses: Optional[List[JobStatus]] = None,
        upload_ok: bool = True,
    ) -> None:
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.documents = documents if documents is not None else [{"id": "d1", "text": "hello"}]
        self.extraction_statuses = list(extraction_statuses or [_status(True, success=True, text="hi", chunks=["hi"])])
        self.research_statuses = list(research_statuses or [_status(True, success=True, markdown="# Report")])
        self.upload_ok = upload_ok
        self.closed = False

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]

    async def retrieve_documents(self, pipeline_id: str, question: str, num_results: int) -> Dict[str, Any]:
        self.calls.append(("retrieve_documents", (pipeline_id, question, num_results)))
        return {"question": question, "documents": self.documents, "average_relevancy": 0.9}

    async def start_file_upload(self, name: str, content_type: str) -> Dict[str, str]:
        self.calls.append(("start_file_upload", (name, content_type)))
        return {"fileId": "file-1", "uploadUrl": "https://uploads.example.com/file-1"}

    async def upload_file(self, upload_url: str, content: bytes, content_type: str) -> None:
        self.calls.append(("upload_file", (upload_url, content, content_type)))
        if not self.upload_ok:
            raise VectorizeAPIError("Failed to upload file (Forbidden)", status_code=403, body="denied")

    async def start_extraction(self, file_id: str, chunk_size: int) -> str:
        self.calls.append(("start_extraction", (file_id, chunk_size)))
        return "ext-1"

    async def get_extraction_result(self, extraction_id: str) -> JobStatus:
        self.calls.append(("get_extraction_result", (extraction_id,)))
        if len(self.extraction_statuses) > 1:
            return self.extraction_statuses.pop(0)
        return self.extraction_statuses[0]

    async def start_deep_research(self, pipeline_id: str, query: str, web_search: bool) -> str:
        self.calls.append(("start_deep_research", (pipeline_id, query, web_search)))
        return "research-1"

    async def get_deep_research_result(self, pipeline_id: str, research_id: str) -> JobStatus:
        self.calls.append(("get_deep_research_result", (pipeline_id, research_id)))
        if len(self.research_statuses) > 1:
            return self.research_statuses.pop(0)
        return self.research_statuses[0]

    async def aclose(self) -> None:
        self.closed = True


def pending() -> JobStatus:
    return _status(False)


def done(**data: Any) -> JobStatus:
    return _status(True, **data)
