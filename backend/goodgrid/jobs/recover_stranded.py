from __future__ import annotations
import asyncio
import structlog
from goodgrid.config import settings
from goodgrid.db import engine
from goodgrid.deps import build_notifier, build_submission_service
from goodgrid.logging_setup import configure_logging

log = structlog.get_logger()


async def _run(grace_minutes: int) -> int:
    notifier = build_notifier()
    try:
        recovered = await build_submission_service(notifier).recover_stranded(grace_minutes)
    finally:
        await notifier.close()
        await engine.dispose()
    return len(recovered)


def recover_stranded_submissions(grace_minutes: int | None = None) -> int:
    """RQ / cron entry point. Returns how many submissions were re-dispatched or escalated."""
    configure_logging()
    return asyncio.run(_run(grace_minutes if grace_minutes is not None else settings.stranded_grace_minutes))
