"""
APScheduler Configuration

Background job scheduler started from the FastAPI lifespan.
Currently schedules the periodic commission reconciliation.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from revsplit.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_reconciliation_job():
    """Scheduler entry point for the reconciliation run."""
    from revsplit.jobs.reconciliation_jobs import reconcile_active_organizations

    try:
        await reconcile_active_organizations()
    except Exception as e:
        logger.error(f"Job 'commission_reconciliation' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if scheduler.running:
        return

    if settings.RECONCILIATION_ENABLED:
        scheduler.add_job(
            run_reconciliation_job,
            'interval',
            minutes=settings.RECONCILIATION_INTERVAL_MINUTES,
            id='commission_reconciliation',
            name='Commission Reconciliation',
            replace_existing=True,
        )

    scheduler.start()
    logger.info("Background job scheduler started")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
