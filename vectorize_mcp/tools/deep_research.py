from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import Settings
from ..errors import VectorizeAPIError
from ..providers.vectorize import VectorizeClient
from ..schemas import AsyncJobHandle, DeepResearchInput, JobStatus, Notifier
from ..workflows.polling import poll_until_ready


logger = logging.getLogger(__name__)


async def deep_research(
    input_data: DeepResearchInput,
    pipeline_id: str,
    client: VectorizeClient,
    settings: Settings,
    *,
    cancel_event: Optional[asyncio.Event] = None,
    notify: Optional[Notifier] = None,
) -> str:
    """Start a deep research job on the pipeline and wait for its markdown report."""

    async def _start() -> AsyncJobHandle:
        research_id = await client.start_deep_research(pipeline_id, input_data.query, input_data.webSearch)
        logger.info(
            "deep-research started (pipeline_id=%s, research_id=%s, web_search=%s)",
            pipeline_id,
            research_id,
            input_data.webSearch,
        )
        if notify is not None:
            await notify("info", f"Started deep research with ID: {research_id}")
        return AsyncJobHandle(job_id=research_id, kind="deep_research")

    async def _poll(handle: AsyncJobHandle) -> JobStatus:
        return await client.get_deep_research_result(pipeline_id, handle.job_id)

    status = await poll_until_ready(
        _start,
        _poll,
        kind="deep_research",
        interval_s=settings.poll_interval_s,
        max_attempts=settings.poll_max_attempts,
        timeout_s=settings.poll_timeout_s,
        cancel_event=cancel_event,
    )

    markdown = status.payload.get("markdown")
    if not isinstance(markdown, str):
        raise VectorizeAPIError(
            f"getDeepResearchResult reported success without markdown; keys={list(status.payload.keys())}"
        )
    return markdown
