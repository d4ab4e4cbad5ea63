"""Background scheduler for periodic catalog synchronization.

Supports two modes:
  - **Standalone** (``python -m marketsync.scheduler``): runs its own event
    loop as a separate worker process.
  - **Embedded** (``create_async_scheduler()``): returns a scheduler that the
    FastAPI process starts in its ``lifespan`` handler, so jobs run on the
    server's event loop and share its adapters.
"""

import asyncio
import signal
import sys
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .bootstrap import AppContext, build_context
from .services.sync_service import SyncService
from .utils.config import get_config
from .utils.logger import get_scheduler_logger, get_sync_logger

JOB_ID = "marketplace_catalog_sync"


def _make_sync_job(context: AppContext):
    """Create and return the sync-job coroutine function."""
    logger = get_sync_logger()
    sync_service = SyncService(context)
    dry_run = context.config.sync.dry_run_default

    async def sync_job():
        logger.info("=" * 70)
        logger.info(f"Scheduled sync job started at {datetime.now()}")
        logger.info("=" * 70)

        try:
            results = await sync_service.sync_all(dry_run=dry_run)

            failed = [r for r in results if not r.success]
            logger.info(f"Sync job completed: {len(results)} shop(s), {len(failed)} with errors")
            for result in results:
                report = result.report
                logger.info(
                    f"  {result.shop_id}: fetched {result.fetched_count}, valid {report.valid}, "
                    f"invalid {report.invalid}, failed {report.failed} ({result.duration:.2f}s)"
                )
            for result in failed:
                if result.error:
                    logger.warning(f"  {result.shop_id} failed: {result.error}")

        except Exception as e:
            logger.error(f"Sync job failed with exception: {str(e)}", exc_info=True)

        logger.info("=" * 70)

    return sync_job


def create_async_scheduler(context: AppContext) -> AsyncIOScheduler:
    """Create a scheduler for embedding inside FastAPI.

    The scheduler is returned **not started**; the caller must invoke
    ``scheduler.start()`` from inside the running event loop.
    """
    config = context.config
    logger = get_sync_logger()
    get_scheduler_logger()
    sync_interval = config.env.sync_interval_minutes

    scheduler = AsyncIOScheduler(timezone=config.scheduler.timezone)
    sync_job = _make_sync_job(context)

    scheduler.add_job(
        func=sync_job,
        trigger=IntervalTrigger(minutes=sync_interval),
        id=JOB_ID,
        name="Marketplace catalog sync",
        max_instances=config.scheduler.max_instances,
        coalesce=config.scheduler.coalesce,
        misfire_grace_time=config.scheduler.misfire_grace_time,
        replace_existing=True
    )

    initial_delay = config.scheduler.initial_delay_seconds
    scheduler.add_job(
        func=sync_job,
        trigger="date",
        run_date=datetime.now() + timedelta(seconds=initial_delay),
        id="initial_sync",
        name="Initial sync on startup",
    )

    logger.info(
        f"Scheduler configured: sync every {sync_interval} min "
        f"(initial run in ~{initial_delay} s)"
    )
    return scheduler


class SyncScheduler:
    """Standalone worker running the periodic sync until signalled."""

    def __init__(self):
        self.config = get_config()
        self.logger = get_sync_logger()

    async def _run(self):
        context = build_context(config=self.config)
        scheduler = create_async_scheduler(context)
        stop = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        self.logger.info("=" * 70)
        self.logger.info("Marketplace Sync Scheduler Starting (standalone)")
        self.logger.info("=" * 70)
        self.logger.info(f"Environment:      {self.config.env.environment}")
        self.logger.info(f"Timezone:         {self.config.scheduler.timezone}")
        self.logger.info(f"Sync interval:    {self.config.env.sync_interval_minutes} minutes")
        self.logger.info(f"Shops:            {len(context.shop_store.list_shops())}")
        self.logger.info("=" * 70)

        scheduler.start()
        try:
            await stop.wait()
        finally:
            self.logger.info("Stopping scheduler...")
            scheduler.shutdown(wait=False)
            await context.close()
            self.logger.info("Scheduler stopped.")

    def start(self):
        """Run until SIGINT/SIGTERM."""
        asyncio.run(self._run())


def main():
    """Main entry point for standalone scheduler."""
    try:
        SyncScheduler().start()
    except Exception as e:
        logger = get_sync_logger()
        logger.error(f"Scheduler failed to start: {str(e)}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
