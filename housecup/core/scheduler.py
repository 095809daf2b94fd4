"""Scheduler for the challenge completion job."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from housecup.core.config import settings
from housecup.services.challenge_service import complete_expired_challenges


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

COMPLETION_JOB_ID = "complete_expired_challenges"


async def run_challenge_completion() -> None:
    """Run one completion pass, logging instead of raising."""
    try:
        completed = await complete_expired_challenges()
        if completed:
            logger.info("Challenge completion job finished", extra={"completed": len(completed)})
    except Exception as e:
        logger.error(f"Error in challenge completion job: {e}")


def start_scheduler() -> None:
    """Start the scheduler and register the completion job.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    interval = settings.challenge_completion_interval_minutes
    scheduler.add_job(
        run_challenge_completion,
        trigger=IntervalTrigger(minutes=interval),
        id=COMPLETION_JOB_ID,
        name="Complete Expired Challenges",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Scheduled challenge completion job: every {interval} minutes")

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
