from apscheduler.triggers.cron import CronTrigger
from .config import AUCTION_CLOSER_INTERVAL_SECONDS
from .utils import logger

TRENDING_SWEEP_JOB_ID = "trending-sweep"
AUCTION_CLOSER_JOB_ID = "auction-closer"


def register_jobs(scheduler, service):
    """Periodic jobs: the trending sweep on its crontab and the auction closer."""
    scheduler.add_job(
        service.run_scheduled_sweep,
        CronTrigger.from_crontab(service.schedule, timezone="UTC"),
        id=TRENDING_SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        service.close_expired_auctions,
        "interval",
        seconds=AUCTION_CLOSER_INTERVAL_SECONDS,
        id=AUCTION_CLOSER_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Trending sweep scheduled to run: %s", service.schedule)
