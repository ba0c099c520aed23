"""
Celery application configuration.

Configures Celery for background statement processing with Redis as the
broker. The app is built by ``create_celery_app``; the worker entry point is
``banksheet.worker``.
"""
from typing import Optional

from celery import Celery

from banksheet.config import Settings, get_settings


def create_celery_app(settings: Optional[Settings] = None) -> Celery:
    """Build a configured Celery application."""
    settings = settings or get_settings()

    app = Celery(
        "banksheet",
        broker=settings.redis_url,
        backend=settings.redis_url,
        include=["banksheet.tasks.statement_tasks"],
    )

    hard_limit = settings.processing_timeout_seconds + 30

    app.conf.update(
        # Task settings
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task execution settings
        task_acks_late=True,  # Acknowledge after task completes (not before)
        task_reject_on_worker_lost=True,  # Requeue if worker dies
        task_soft_time_limit=settings.processing_timeout_seconds,
        task_time_limit=hard_limit,

        # A message stays invisible to other workers longer than any run
        broker_transport_options={"visibility_timeout": hard_limit * 4},

        # Result settings
        result_expires=86400,

        # Worker settings
        worker_prefetch_multiplier=1,
        worker_concurrency=settings.worker_concurrency,
    )

    app.conf.task_routes = {
        "banksheet.tasks.statement_tasks.process_statement": {"queue": "statement_processing"},
    }

    return app
