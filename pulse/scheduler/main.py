"""Batch recompute scheduler for town pulse models."""
import logging
import asyncio
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pulse.core.config import settings
from pulse.services.pulse_service import PulseService, build_pulse_service

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class PulseScheduler:
    """Runs the pulse batch recompute on a fixed cadence."""

    def __init__(self, service: Optional[PulseService] = None):
        logger.info("Initializing PulseScheduler...")
        self.scheduler = AsyncIOScheduler()
        self.service = service
        logger.info("PulseScheduler initialized")

    def _get_service(self) -> PulseService:
        if self.service is None:
            self.service = build_pulse_service()
        return self.service

    async def recompute_active_scopes(self):
        """Recompute every active scope, logging the batch outcome."""
        try:
            result = await self._get_service().run_batch(settings.batch_size)
            logger.info(
                f"Scheduled pulse batch: due={result.due} processed={result.processed} failed={result.failed}"
            )
        except Exception as e:
            logger.error(f"Error running pulse batch: {e}", exc_info=True)

    def start(self):
        """Start the scheduler with the batch job."""
        logger.info("="*60)
        logger.info("Starting pulse scheduler...")
        logger.info(f"Log level: {settings.log_level}")
        logger.info(f"Storage mode: {settings.storage_mode}")
        logger.info(f"Batch cadence: every {settings.batch_cadence_minutes} minutes")
        logger.info(f"Batch size: {settings.batch_size}, concurrency: {settings.batch_concurrency}")
        logger.info("="*60)

        self.scheduler.add_job(
            self.recompute_active_scopes,
            trigger=IntervalTrigger(minutes=settings.batch_cadence_minutes),
            id="pulse_batch_recompute",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info("Scheduler started successfully")

    async def run(self):
        """Run scheduler indefinitely."""
        self.start()

        try:
            # Keep running
            while True:
                await asyncio.sleep(1)
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutting down scheduler...")
            self.scheduler.shutdown()


async def main():
    """Main entry point for scheduler."""
    scheduler = PulseScheduler()
    await scheduler.run()


if __name__ == "__main__":
    asyncio.run(main())
