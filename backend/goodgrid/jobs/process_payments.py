from __future__ import annotations
import asyncio
import structlog
from goodgrid.db import engine
from goodgrid.deps import build_payment_processor
from goodgrid.logging_setup import configure_logging
from goodgrid.services import rewards

log = structlog.get_logger()


async def _run() -> dict[str, int]:
    processor = build_payment_processor()
    if processor is None:
        log.info("payments_disabled")
        return {"processed": 0, "failed": 0}
    try:
        return await rewards.process_pending_payments(processor)
    finally:
        await engine.dispose()


def process_pending_payments() -> dict[str, int]:
    # RQ / cron entry point (sync)
    configure_logging()
    return asyncio.run(_run())
