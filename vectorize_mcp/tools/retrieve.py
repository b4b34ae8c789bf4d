from __future__ import annotations

import json
import logging
from typing import Any, Dict

from ..providers.vectorize import VectorizeClient
from ..schemas import RetrieveInput


logger = logging.getLogger(__name__)


def _document_list(response: Dict[str, Any]) -> Any:
    # The list arrives under `documents` or `results`; any other shape is returned whole.
    for key in ("documents", "results"):
        if key in response:
            return response[key]
    return response


async def retrieve(input_data: RetrieveInput, pipeline_id: str, client: VectorizeClient) -> str:
    """Run a single retrieval against the pipeline; returns the documents as JSON text."""

    logger.info("retrieve called (pipeline_id=%s, k=%s)", pipeline_id, input_data.k)

    response = await client.retrieve_documents(pipeline_id, input_data.question, input_data.k)
    documents = _document_list(response)

    logger.info(
        "retrieve returning (pipeline_id=%s, documents=%s)",
        pipeline_id,
        len(documents) if isinstance(documents, list) else "n/a",
    )
    return json.dumps(documents, ensure_ascii=False)
