from celery import Celery

from app.core.config import settings

PROCESS_WEBHOOK_TASK = "worker.tasks.process_webhook_event"

# API processes only send tasks by name; the worker imports worker.tasks itself
celery = Celery("catalog-worker", broker=settings.rabbitmq_url, include=["worker.tasks"])

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={PROCESS_WEBHOOK_TASK: {"queue": settings.webhook_queue}},
    broker_connection_timeout=settings.broker_connect_timeout_seconds,
)
