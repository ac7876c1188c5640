"""
Celery application for the order ledger export.

Redis is both broker and result backend. With CELERY_TASK_ALWAYS_EAGER
the export runs inline in the API process, which is how tests and
single-box installs run it.

    celery -A restaurante.celery_worker worker --loglevel=info
"""

from celery import Celery

from restaurante.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "restaurante_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["restaurante.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=True,
    # The ledger is one file behind a lock; more workers only queue on it
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.celery_worker_concurrency,
    result_expires=3600,
    # Redeliver an export if the worker dies mid-write
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_connection_retry_on_startup=True,
)
