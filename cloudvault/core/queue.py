from typing import Any, Dict
import asyncio
import logging

from kombu.exceptions import KombuError

from cloudvault.utils.exceptions import CloudVaultException

logger = logging.getLogger(__name__)

THUMBNAIL_TOPIC = "cloudvault.thumbnails.generate"


class EnqueueError(CloudVaultException):
    """Job could not be handed to the queue"""
    code = "ENQUEUE_ERROR"


class JobQueue:
    """One-way, at-least-once message send to a worker pool"""

    async def enqueue(self, topic: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class CeleryJobQueue(JobQueue):
    """Publishes jobs to the Celery broker by task name"""

    def __init__(self, celery_app=None):
        if celery_app is None:
            from cloudvault.worker.celery_app import celery_app
        self.celery_app = celery_app

    async def enqueue(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            # send_task blocks on the broker connection
            result = await asyncio.to_thread(self.celery_app.send_task, topic, kwargs=payload)
        except KombuError as e:
            raise EnqueueError(f"Error enqueueing {topic}: {e}") from e
        logger.debug("Enqueued %s as task %s", topic, result.id)


_job_queue = None


def get_job_queue() -> JobQueue:
    """Dependency returning the shared job queue"""
    global _job_queue
    if _job_queue is None:
        _job_queue = CeleryJobQueue()
    return _job_queue
