"""Periodic report of pending tickets whose callback never arrived.

The sweep only looks; a stale ``pending`` ticket may still be resolved by a
late callback, so nothing here transitions it.
"""

import asyncio
from datetime import timedelta
from typing import Callable, List

import structlog
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from tikoyangu.services.ticket_store import TicketStore

logger = structlog.get_logger(__name__)


def report_stale_pending(session_factory: Callable[[], Session], older_than: timedelta) -> List[int]:
    db = session_factory()
    try:
        stale = TicketStore(db).stale_pending(older_than)
        for ticket in stale:
            logger.warning(
                "ticket_pending_stale",
                ticket_id=ticket.id,
                checkout_request_id=ticket.mpesa_checkout_request_id,
                created_at=ticket.created_at.isoformat() if ticket.created_at else None,
            )
        return [ticket.id for ticket in stale]
    finally:
        db.close()


async def run_pending_sweep(session_factory: Callable[[], Session], interval: timedelta, older_than: timedelta) -> None:
    logger.info("pending_sweep_started", interval_seconds=interval.total_seconds())
    while True:
        await asyncio.sleep(interval.total_seconds())
        try:
            stale = await run_in_threadpool(report_stale_pending, session_factory, older_than)
            logger.info("pending_sweep_finished", stale=len(stale))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("pending_sweep_failed")
