from __future__ import annotations
from functools import lru_cache
from uuid import UUID
from fastapi import Header, HTTPException
from goodgrid.config import settings
from goodgrid.services.dispatch import RQDispatcher
from goodgrid.services.notifications import LogNotifier, Notifier, RedisNotifier
from goodgrid.services.payments import HttpPaymentProcessor
from goodgrid.services.review_queue import ReviewService
from goodgrid.services.submissions import SubmissionService
from goodgrid.services.verification_gateway import HttpVerificationGateway


def build_notifier() -> Notifier:
    if settings.notifications_mode == "log":
        return LogNotifier()
    return RedisNotifier.from_url(settings.redis_url, settings.notifications_channel)


def build_submission_service(notifier: Notifier) -> SubmissionService:
    return SubmissionService(
        gateway=HttpVerificationGateway(settings.verification_service_url, settings.verification_timeout_seconds),
        notifier=notifier,
        dispatcher=RQDispatcher.from_settings(),
        gateway_timeout=settings.verification_timeout_seconds,
    )


def build_payment_processor() -> HttpPaymentProcessor | None:
    if not settings.payment_service_url:
        return None
    return HttpPaymentProcessor(settings.payment_service_url, settings.payment_timeout_seconds)

# API process: one instance each, handed to routes through Depends so tests can override.

@lru_cache
def get_notifier() -> Notifier:
    return build_notifier()


@lru_cache
def get_submission_service() -> SubmissionService:
    return build_submission_service(get_notifier())


@lru_cache
def get_review_service() -> ReviewService:
    return ReviewService(get_submission_service(), notifier=get_notifier())


async def get_actor_id(x_user_id: str | None = Header(default=None)) -> UUID:
    """Identity is resolved upstream and forwarded as X-User-Id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header")
