from celery import Celery
from celery.signals import setup_logging

from cloudvault.core.config import settings
from cloudvault.core.logging import configure_logging

celery_app = Celery(
    "cloudvault",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["cloudvault.worker.tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    # Redeliver jobs whose worker died mid-processing
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
)


@setup_logging.connect
def setup_worker_logging(**kwargs):
    configure_logging()
