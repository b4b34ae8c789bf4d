from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from ..config import Settings
from ..providers.vectorize import VectorizeClient
from ..schemas import AsyncJobHandle, ExtractInput, JobStatus
from ..workflows.polling import poll_until_ready


logger = logging.getLogger(__name__)


async def extract(
    input_data: ExtractInput,
    client: VectorizeClient,
    settings: Settings,
    *,
    cancel_event: Optional[asyncio.Event] = None,
) -> str:
    """Upload the document, run an extraction job and wait for it.

    Returns the extraction `data` object (text, chunks, metadata) as JSON text.
    """

    content = input_data.document_bytes()

    async def _start() -> AsyncJobHandle:
        upload = await client.start_file_upload(settings.upload_file_name, input_data.contentType)
        await client.upload_file(upload["uploadUrl"], content, input_data.contentType)
        logger.info("extract: uploaded %s bytes (file_id=%s)", len(content), upload["fileId"])

        extraction_id = await client.start_extraction(upload["fileId"], settings.extraction_chunk_size)
        logger.info("extract: started extraction (extraction_id=%s)", extraction_id)
        return AsyncJobHandle(job_id=extraction_id, kind="extraction")

    async def _poll(handle: AsyncJobHandle) -> JobStatus:
        return await client.get_extraction_result(handle.job_id)

    status = await poll_until_ready(
        _start,
        _poll,
        kind="extraction",
        interval_s=settings.poll_interval_s,
        max_attempts=settings.poll_max_attempts,
        timeout_s=settings.poll_timeout_s,
        cancel_event=cancel_event,
    )
    return json.dumps(status.payload, ensure_ascii=False)
