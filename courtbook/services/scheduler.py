"""Background scheduler purging expired recovery records and idle sessions."""
import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from courtbook.core.clock import Clock, system_clock
from courtbook.core.config import settings
from courtbook.services.booking_session import SessionRegistry, session_registry
from courtbook.services.recovery_store import RecoveryStore, recovery_store

logger = logging.getLogger(__name__)


class RecoverySweeper:
    """Periodically deletes expired recovery records and evicts idle sessions."""

    def __init__(
        self,
        store: Optional[RecoveryStore] = None,
        clock: Optional[Clock] = None,
        interval_minutes: Optional[int] = None,
        registry: Optional[SessionRegistry] = None,
    ):
        """Initialize the sweeper."""
        self.store = store or recovery_store
        self.registry = registry if registry is not None else session_registry
        self.clock = clock or system_clock
        self.interval_minutes = interval_minutes or settings.RECOVERY_SWEEP_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler()
        self.running = False

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Recovery sweeper is already running")
            return

        logger.info("Starting recovery sweeper")

        self.scheduler.add_job(
            self.sweep,
            IntervalTrigger(minutes=self.interval_minutes),
            id="recovery_sweep",
            name="Purge expired recovery records and idle sessions",
            replace_existing=True,
        )

        self.scheduler.start()
        self.running = True
        logger.info(f"Recovery sweeper started (every {self.interval_minutes} min)")

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping recovery sweeper")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Recovery sweeper stopped")

    async def sweep(self) -> int:
        """
        Purge expired recovery records and evict idle booking sessions.

        Failures are logged and retried on the next run.

        Returns:
            Number of records purged
        """
        logger.debug("Running recovery sweep")
        now = self.clock.now()
        self.registry.evict_idle(now)

        try:
            return await self.store.purge_expired(now)
        except SQLAlchemyError as e:
            logger.error(f"Recovery sweep failed: {e}", exc_info=True)
            return 0


# Singleton instance
recovery_sweeper = RecoverySweeper()
