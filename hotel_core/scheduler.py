"""
Background jobs - APScheduler backend
Runs the folio reconciliation sweep on an interval
"""
import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from hotel_core.config import settings

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "folio_reconciliation"


class APSchedulerBackend:
    """Thin wrapper around a BackgroundScheduler"""

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None):
        self._scheduler = scheduler or BackgroundScheduler()

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APScheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler shut down")

    def add_job(self, job_id: str, func: Callable, trigger: str, **trigger_args) -> None:
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            **trigger_args,
        )
        logger.info(f"Job added: {job_id}")

    def get_job(self, job_id: str):
        return self._scheduler.get_job(job_id)


def run_reconciliation(session_factory=None) -> None:
    """One sweep over every property, in its own session"""
    from hotel_core.database import SessionLocal
    from hotel_core.services.booking_service import BookingService

    db = (session_factory or SessionLocal)()
    try:
        report = BookingService(db).reconcile()
        if report.failed:
            logger.error(f"Reconciliation left {len(report.failed)} reservation(s) without folio")
    except Exception as e:
        logger.error(f"Reconciliation sweep failed: {e}", exc_info=True)
    finally:
        db.close()


def schedule_reconciliation(backend: APSchedulerBackend,
                            interval_seconds: Optional[int] = None,
                            session_factory=None) -> bool:
    """Register the sweep; returns False when the interval disables it"""
    interval = settings.RECONCILE_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
    if interval <= 0:
        logger.info("Folio reconciliation job disabled")
        return False
    backend.add_job(
        RECONCILE_JOB_ID,
        run_reconciliation,
        "interval",
        seconds=interval,
        kwargs={"session_factory": session_factory},
        max_instances=1,
        coalesce=True,
    )
    return True
