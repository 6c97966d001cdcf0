from apscheduler.schedulers.blocking import (  # type: ignore[import-untyped]
    BlockingScheduler,
)
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]
from loguru import logger
from sqlmodel import Session

from app.core.config import settings
from app.core.db import engine
from app.jobs.account_cleanup import run_account_cleanup
from app.logging_.logger import setup_logger


def cleanup_accounts() -> None:
    logger.info("Starting account cleanup")
    with Session(engine) as session:
        removed = run_account_cleanup(session=session)
    logger.info(f"Account cleanup finished, removed {len(removed)} account(s)")


def build_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(
        func=cleanup_accounts,
        trigger=CronTrigger(
            hour=settings.ACCOUNT_CLEANUP_HOUR,
            minute=settings.ACCOUNT_CLEANUP_MINUTE,
            timezone=settings.TIMEZONE,
        ),
        id="nightly_account_cleanup",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


if __name__ == "__main__":
    setup_logger("scheduler")
    build_scheduler().start()
