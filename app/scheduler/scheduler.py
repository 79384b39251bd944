# app/scheduler/scheduler.py
"""
Background jobs.

- reassignment_watchdog: SLA sweep and re-submit of unrouted leads,
  every WATCHDOG_INTERVAL_SECONDS.
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import WATCHDOG_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

WATCHDOG_JOB_ID = "reassignment_watchdog"

# Global scheduler instance
scheduler: AsyncIOScheduler = None


async def run_watchdog_job() -> dict:
    from app.services.engine import get_watchdog

    reports = await get_watchdog().sweep_all()
    return {
        "tenants": len(reports),
        "reassigned": sum(r.reassigned for r in reports),
        "escalated": sum(r.escalated for r in reports),
        "resubmitted": sum(r.resubmitted for r in reports),
    }


def create_scheduler(interval_seconds: int = WATCHDOG_INTERVAL_SECONDS) -> AsyncIOScheduler:
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already exists, returning the existing instance")
        return scheduler

    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,        # collapse missed runs
            "max_instances": 1,      # never overlap sweeps
            "misfire_grace_time": max(interval_seconds, 30),
        },
    )
    _register_watchdog_job(scheduler, interval_seconds)
    return scheduler


def _register_watchdog_job(sched: AsyncIOScheduler, interval_seconds: int):
    sched.add_job(
        run_watchdog_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id=WATCHDOG_JOB_ID,
        name="Reassignment watchdog",
        replace_existing=True,
    )
    logger.info("Job registered: reassignment watchdog (every %ss)", interval_seconds)


def start_scheduler():
    global scheduler

    if scheduler is None:
        logger.error("Scheduler was not created; call create_scheduler() first")
        return
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    scheduler.start()
    for job in scheduler.get_jobs():
        logger.info("Job %s scheduled, next run %s", job.name, job.next_run_time)


def stop_scheduler():
    global scheduler

    if scheduler is None or not scheduler.running:
        return
    scheduler.shutdown(wait=False)
    scheduler = None
    logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    if scheduler is None:
        return {"running": False, "jobs": []}

    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
            }
            for job in scheduler.get_jobs()
        ],
    }
