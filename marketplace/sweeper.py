from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask
from pymongo.errors import PyMongoError

from .clock import utcnow
from .offers import delete_expired_offers


logger = logging.getLogger("marketplace.sweeper")

JOB_ID = "expired-offer-sweep"


class ExpirationSweeper:
    """Deletes expired offers on a fixed interval, starting immediately.

    Runs on its own scheduler thread and talks only to storage. Deletes are
    idempotent, so overlapping with request handlers or a manual sweep is safe.
    """

    def __init__(self, app: Flask, interval_seconds: int = 3600) -> None:
        self.app = app
        self.interval_seconds = interval_seconds
        self.scheduler = BackgroundScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def run_once(self) -> int:
        with self.app.app_context():
            deleted = delete_expired_offers(utcnow())
        if deleted:
            logger.info("Deleted %d expired offers", deleted)
        else:
            logger.debug("No expired offers to delete")
        return deleted

    def _scheduled_run(self) -> None:
        try:
            self.run_once()
        except PyMongoError as exc:
            logger.error("Expired offer sweep failed: %s", exc)

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self._scheduled_run,
            "interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Expired offer sweeper started (every %ss)", self.interval_seconds)

    def stop(self) -> None:
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=False)
        logger.info("Expired offer sweeper stopped")
