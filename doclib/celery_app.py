from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from doclib.config import settings
from doclib.logging import configure_logging

celery_app = Celery(
    "doclib",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "doclib.tasks.events",
        "doclib.tasks.audit",
        "doclib.tasks.notifications",
        "doclib.tasks.storage",
        "doclib.tasks.trash",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "purge-expired-trash": {
            "task": "doclib.tasks.trash.purge_expired_trash",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()
