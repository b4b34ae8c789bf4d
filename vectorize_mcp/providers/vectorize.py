from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import Settings
from ..errors import VectorizeAPIError
from ..schemas import JobStatus


logger = logging.getLogger(__name__)

_BODY_SNIPPET_CHARS = 1200


def _snippet(text: str) -> str:
    text = text or ""
    return text[:_BODY_SNIPPET_CHARS] + ("…" if len(text) > _BODY_SNIPPET_CHARS else "")


def _header_request_ids(headers: httpx.Headers) -> Dict[str, str]:
    """Extract common request/correlation IDs for easier debugging."""
    out: Dict[str, str] = {}
    for k in ("x-request-id", "x-correlation-id", "traceparent"):
        v = headers.get(k)
        if v:
            out[k] = v
    return out


class VectorizeClient:
    """Async client for the subset of the Vectorize API used by the MCP tools.

    Endpoints (relative to `api_base_url`, all scoped to the configured organization):
      POST /org/{org}/pipelines/{pipeline}/retrieval
      POST /org/{org}/files                              -> {fileId, uploadUrl}
      POST /org/{org}/extraction                         -> {extractionId}
      GET  /org/{org}/extraction/{extractionId}          -> {ready, data}
      POST /org/{org}/pipelines/{pipeline}/deep-research -> {researchId}
      GET  /org/{org}/pipelines/{pipeline}/deep-research/{researchId} -> {ready, data}

    The file upload itself is a plain PUT of the raw bytes to the pre-signed `uploadUrl`.

    No retries: every failure surfaces to the tool caller as VectorizeAPIError.
    """

    def __init__(self, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._org = settings.org_id or ""

        limits = httpx.Limits(max_connections=20, max_keepalive_connections=20, keepalive_expiry=30.0)

        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.http_timeout_s,
            headers={
                "Authorization": f"Bearer {settings.token}",
                "Accept": "application/json",
            },
            limits=limits,
            follow_redirects=True,
            trust_env=True,
            transport=transport,
        )
        # Pre-signed upload URLs must not receive our bearer token.
        self._upload_client = httpx.AsyncClient(
            timeout=settings.http_timeout_s,
            follow_redirects=True,
            trust_env=True,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._upload_client.aclose()

    # -------------------------
    # Plumbing
    # -------------------------

    async def _request(self, operation: str, method: str, path: str, *, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise VectorizeAPIError(f"{operation} request failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            req_ids = _header_request_ids(resp.headers)
            logger.warning(
                "vectorize %s failed (status=%s path=%s %s)",
                operation,
                resp.status_code,
                path,
                " ".join(f"{k}={v}" for k, v in req_ids.items()),
            )
            raise VectorizeAPIError(f"{operation} failed", status_code=resp.status_code, body=_snippet(resp.text))

        try:
            data = resp.json()
        except ValueError as e:
            ct = (resp.headers.get("content-type") or "").strip()
            raise VectorizeAPIError(
                f"{operation} returned a non-JSON response (content_type={ct!r}): {_snippet(resp.text)[:200]}"
            ) from e

        if not isinstance(data, dict):
            raise VectorizeAPIError(f"{operation} returned unexpected JSON: {type(data).__name__}")
        return data

    @staticmethod
    def _require(data: Dict[str, Any], key: str, operation: str) -> str:
        v = data.get(key)
        if not isinstance(v, str) or not v:
            raise VectorizeAPIError(f"{operation} response is missing {key!r}; keys={list(data.keys())}")
        return v

    # -------------------------
    # Retrieval
    # -------------------------

    async def retrieve_documents(self, pipeline_id: str, question: str, num_results: int) -> Dict[str, Any]:
        return await self._request(
            "retrieveDocuments",
            "POST",
            f"/org/{self._org}/pipelines/{pipeline_id}/retrieval",
            json={"question": question, "numResults": int(num_results)},
        )

    # -------------------------
    # Files + extraction
    # -------------------------

    async def start_file_upload(self, name: str, content_type: str) -> Dict[str, str]:
        data = await self._request(
            "startFileUpload",
            "POST",
            f"/org/{self._org}/files",
            json={"name": name, "contentType": content_type},
        )
        return {
            "fileId": self._require(data, "fileId", "startFileUpload"),
            "uploadUrl": self._require(data, "uploadUrl", "startFileUpload"),
        }

    async def upload_file(self, upload_url: str, content: bytes, content_type: str) -> None:
        try:
            resp = await self._upload_client.put(upload_url, content=content, headers={"Content-Type": content_type})
        except httpx.HTTPError as e:
            raise VectorizeAPIError(f"Failed to upload file: {type(e).__name__}: {e}") from e
        if not resp.is_success:
            raise VectorizeAPIError(
                f"Failed to upload file ({resp.reason_phrase or 'error'})",
                status_code=resp.status_code,
                body=_snippet(resp.text),
            )

    async def start_extraction(self, file_id: str, chunk_size: int) -> str:
        data = await self._request(
            "startExtraction",
            "POST",
            f"/org/{self._org}/extraction",
            json={"fileId": file_id, "chunkSize": int(chunk_size)},
        )
        return self._require(data, "extractionId", "startExtraction")

    async def get_extraction_result(self, extraction_id: str) -> JobStatus:
        data = await self._request(
            "getExtractionResult",
            "GET",
            f"/org/{self._org}/extraction/{extraction_id}",
        )
        return JobStatus.from_response(data)

    # -------------------------
    # Deep research
    # -------------------------

    async def start_deep_research(self, pipeline_id: str, query: str, web_search: bool) -> str:
        data = await self._request(
            "startDeepResearch",
            "POST",
            f"/org/{self._org}/pipelines/{pipeline_id}/deep-research",
            json={"query": query, "webSearch": bool(web_search)},
        )
        return self._require(data, "researchId", "startDeepResearch")

    async def get_deep_research_result(self, pipeline_id: str, research_id: str) -> JobStatus:
        data = await self._request(
            "getDeepResearchResult",
            "GET",
            f"/org/{self._org}/pipelines/{pipeline_id}/deep-research/{research_id}",
        )
        return JobStatus.from_response(data)
