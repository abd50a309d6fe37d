"""
Split reconciliation loop - resolves checkout splits left in PENDING_SPLIT

A checkout whose process died between writing the split marker and marking it
COMPLETED (or whose rollback failed) leaves a stale marker behind. Every
SPLIT_RECONCILE_INTERVAL seconds this loop completes the splits whose orders
all exist and rolls back the rest.

Each sweep runs under its own trace so its log lines can be pulled together.
"""

import asyncio
from datetime import timedelta

from app.core.config import settings
from app.core.db import engine
from app.core.logging import get_logger
from app.core.tracing import TraceContext, trace_scope
from app.repositories.order_store import OrderStore
from app.repositories.sql_order_store import SqlOrderStore
from app.services.order_splitter import ReconcileReport, SplitReconciler

logger = get_logger(__name__)


async def start_split_reconciler(store: OrderStore | None = None):
    """
    Main reconciler loop - runs as background task
    """
    reconciler = SplitReconciler(store or SqlOrderStore(engine))
    grace = timedelta(seconds=settings.SPLIT_RECONCILE_GRACE_SECONDS)
    logger.info(
        "split_reconciler_starting",
        interval_seconds=settings.SPLIT_RECONCILE_INTERVAL,
        grace_seconds=settings.SPLIT_RECONCILE_GRACE_SECONDS,
    )

    try:
        while True:
            try:
                await run_reconcile_sweep(reconciler, grace)
                await asyncio.sleep(settings.SPLIT_RECONCILE_INTERVAL)
            except Exception as e:
                logger.error(
                    "split_reconciler_error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(settings.SPLIT_RECONCILE_ERROR_BACKOFF_SECONDS)

    except asyncio.CancelledError:
        logger.info("split_reconciler_cancelled")
        raise


async def run_reconcile_sweep(
    reconciler: SplitReconciler, grace: timedelta
) -> ReconcileReport:
    with trace_scope(TraceContext.start(), task="split-reconciler"):
        # Store calls are blocking; keep them off the event loop
        report = await asyncio.to_thread(reconciler.reconcile, grace)
        if report.completed or report.rolled_back or report.failed:
            logger.info(
                "split_reconcile_sweep_finished",
                completed=report.completed,
                rolled_back=report.rolled_back,
                failed=[str(split_id) for split_id in report.failed],
            )
        else:
            logger.debug("split_reconcile_sweep_finished", completed=0, rolled_back=0)
        return report
