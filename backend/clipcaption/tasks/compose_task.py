"""Celery task for subtitle composition."""

import asyncio
import logging

from pydantic import ValidationError

from clipcaption.celery_app import celery_app
from clipcaption.exceptions import ClipCaptionError
from clipcaption.logging_config import setup_logging
from clipcaption.render.pipeline import CompositionPipeline
from clipcaption.schemas.compose import ComposeRequest
from clipcaption.services.job_status import CeleryTaskStatusSink
from clipcaption.services.storage_service import get_storage_service

logger = logging.getLogger(__name__)


def run_compose(request: ComposeRequest, pipeline: CompositionPipeline) -> dict:
    """Run the async pipeline to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(pipeline.run(request.to_job()))
    finally:
        loop.close()
    return result.to_dict()


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def compose_subtitled_clip(self, payload: dict) -> dict:
    """
    Burn subtitles into a clip as a Celery task.

    Args:
        payload: ComposeRequest as a dict

    Returns:
        dict with status and output information
    """
    setup_logging()

    try:
        request = ComposeRequest.model_validate(payload)
    except ValidationError as e:
        logger.error(f"[TASK] Invalid compose payload: {e}")
        return {"status": "failed", "error": {"code": "VALIDATION_ERROR", "message": str(e)}}

    pipeline = CompositionPipeline(
        store=get_storage_service(),
        sink=CeleryTaskStatusSink(self),
    )

    try:
        return run_compose(request, pipeline)
    except ClipCaptionError as e:
        # Retry the whole job only for transient failures
        if e.retryable and self.request.retries < self.max_retries:
            logger.warning(
                f"[TASK] Job {request.job_id} failed ({e.code}), "
                f"retry {self.request.retries + 1}/{self.max_retries}"
            )
            raise self.retry(exc=e)
        return {"job_id": request.job_id, "status": "failed", "error": e.to_dict()}
