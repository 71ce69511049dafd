"""Periodic jobs using APScheduler on the bot's event loop."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wagerbot.config import Settings

if TYPE_CHECKING:
    from wagerbot.runtime import Runtime

logger = logging.getLogger(__name__)


async def payout_check_job(runtime: Runtime) -> None:
    await runtime.payout_monitor.check()


async def stale_ticket_job(runtime: Runtime) -> None:
    removed = runtime.registry.cleanup()
    pruned = runtime.outbox.prune()
    logger.debug(f"Stale sweep removed {len(removed)} tickets, pruned {pruned} channel slots")


async def pending_wager_job(runtime: Runtime) -> None:
    runtime.registry.sweep_pending_wagers()


async def autosave_job(runtime: Runtime) -> None:
    runtime.persistence.request_save()


def build_scheduler(settings: Settings, runtime: Runtime) -> AsyncIOScheduler:
    """Create the scheduler with every periodic job registered (not started)."""
    scheduler = AsyncIOScheduler()
    intervals = settings.scheduler

    scheduler.add_job(
        payout_check_job,
        IntervalTrigger(seconds=intervals.payout_check_seconds),
        args=[runtime],
        id="payout-check",
        name="Payout: Receipt Sweep",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered job: Payout Check (every {intervals.payout_check_seconds} s)")

    scheduler.add_job(
        stale_ticket_job,
        IntervalTrigger(minutes=intervals.stale_sweep_minutes),
        args=[runtime],
        id="stale-ticket-sweep",
        name="Registry: Stale Ticket Sweep",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered job: Stale Ticket Sweep (every {intervals.stale_sweep_minutes} min)")

    scheduler.add_job(
        pending_wager_job,
        IntervalTrigger(minutes=intervals.pending_wager_sweep_minutes),
        args=[runtime],
        id="pending-wager-sweep",
        name="Registry: Pending Wager Expiry",
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        f"Registered job: Pending Wager Sweep (every {intervals.pending_wager_sweep_minutes} min)"
    )

    scheduler.add_job(
        autosave_job,
        IntervalTrigger(seconds=intervals.autosave_seconds),
        args=[runtime],
        id="autosave",
        name="Persistence: Autosave",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered job: Autosave (every {intervals.autosave_seconds} s)")

    return scheduler
