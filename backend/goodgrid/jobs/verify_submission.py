from __future__ import annotations
import asyncio
from uuid import UUID
import structlog
from goodgrid.db import engine
from goodgrid.deps import build_notifier, build_submission_service
from goodgrid.logging_setup import configure_logging

log = structlog.get_logger()


async def _run(submission_id: str):
    notifier = build_notifier()
    try:
        decision = await build_submission_service(notifier).process_verification(UUID(submission_id))
        log.info(
            "verification_job_done",
            submission_id=submission_id,
            action=decision.action.value if decision else None,
        )
    finally:
        await notifier.close()
        # pooled connections belong to this event loop
        await engine.dispose()


def verify_submission(submission_id: str):
    # RQ entry point (sync); run the async coroutine
    configure_logging()
    asyncio.run(_run(submission_id))
