from celery import Celery

from trivia_duels.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "trivia_duels",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "trivia_duels.workers.tasks.duel_expiry",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)
