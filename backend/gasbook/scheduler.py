# backend/gasbook/scheduler.py
"""
Background retention timers (APScheduler).

- every BOOKING_SWEEP_INTERVAL_MINUTES: expired Paid + Delivered bookings
- daily at LENDING_SWEEP_HOUR:00: expired lending records

Both jobs sweep every owner and run inside an app context. They publish the
same change events as a manual delete. Started only when SCHEDULER_ENABLED.
"""

import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from .extensions import db
from .services import retention_service


logger = logging.getLogger("gasbook.scheduler")

BOOKING_JOB_ID = "retention-bookings"
LENDING_JOB_ID = "retention-lending-records"

scheduler = BackgroundScheduler()


def run_booking_sweep(app) -> int:
    """Timer job body; errors are logged, never raised into APScheduler."""
    with app.app_context():
        try:
            return retention_service.sweep_expired_bookings()
        except Exception:
            db.session.rollback()
            logger.exception("Scheduled booking retention sweep failed")
            return 0


def run_lending_sweep(app) -> int:
    with app.app_context():
        try:
            return retention_service.sweep_expired_lending_records()
        except Exception:
            db.session.rollback()
            logger.exception("Scheduled lending-record retention sweep failed")
            return 0


def init_scheduler(app) -> BackgroundScheduler:
    """Register both retention jobs and start the scheduler once per process."""
    scheduler.add_job(
        run_booking_sweep,
        "interval",
        minutes=app.config["BOOKING_SWEEP_INTERVAL_MINUTES"],
        args=[app],
        id=BOOKING_JOB_ID,
        replace_existing=True,
    )
    scheduler.add_job(
        run_lending_sweep,
        "cron",
        hour=app.config["LENDING_SWEEP_HOUR"],
        minute=0,
        args=[app],
        id=LENDING_JOB_ID,
        replace_existing=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info("Retention scheduler started")
        atexit.register(lambda: scheduler.shutdown(wait=False) if scheduler.running else None)
    else:
        logger.info("Retention scheduler already running (skipping duplicate start)")

    return scheduler
