from __future__ import annotations
from typing import Protocol
from uuid import UUID
import structlog
from redis import Redis
from rq import Queue
from goodgrid.config import settings

log = structlog.get_logger()

VERIFY_JOB = "goodgrid.jobs.verify_submission.verify_submission"


class Dispatcher(Protocol):
    def dispatch(self, submission_id: UUID) -> None: ...


class RQDispatcher:
    """Hands submissions to the RQ verification worker. Called only after the submit commit."""

    def __init__(self, queue: Queue, job_timeout: int = settings.rq_job_timeout_seconds):
        self.queue = queue
        self.job_timeout = job_timeout

    @classmethod
    def from_settings(cls) -> "RQDispatcher":
        redis = Redis.from_url(settings.redis_url)
        return cls(Queue(settings.rq_queue_name, connection=redis), settings.rq_job_timeout_seconds)

    def dispatch(self, submission_id: UUID) -> None:
        job = self.queue.enqueue(VERIFY_JOB, str(submission_id), job_timeout=self.job_timeout)
        log.info("verification_dispatched", submission_id=str(submission_id), job_id=job.id)
