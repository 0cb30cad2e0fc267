"""Celery application for composition workers."""

from celery import Celery

from clipcaption.config import get_settings

settings = get_settings()

celery_app = Celery(
    settings.app_name,
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["clipcaption.tasks.compose_task"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Tokyo",
    enable_utc=True,
    task_track_started=True,
    task_routes={"clipcaption.tasks.compose_task.*": {"queue": settings.compose_queue}},
    # Hard limit leaves headroom over the pipeline's own job timeout
    task_time_limit=int(settings.compose_timeout_seconds) + 300,
    task_soft_time_limit=int(settings.compose_timeout_seconds) + 120,
    result_expires=settings.signed_url_expiration_minutes * 60,
    worker_prefetch_multiplier=1,  # One encode per worker process
    task_acks_late=True,
    task_reject_on_worker_lost=True,  # Requeue if worker dies mid-encode
)
