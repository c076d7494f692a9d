"""ABOUTME: Background maintenance thread for a running warden process
ABOUTME: Periodically clears the in-memory rate limiters and deletes expired requests"""

import logging
import threading
from datetime import UTC, datetime, timedelta

from warden.bootstrap import Warden
from warden.config import MaintenanceCfg
from warden.service_layer import email_verification_service, password_reset_service

logger = logging.getLogger(__name__)


def delete_expired_requests(warden: Warden, now: datetime | None = None) -> tuple[int, int]:
    """Returns the number of (email verification, password reset) requests deleted."""
    now = now or datetime.now(UTC)
    email_count = email_verification_service.delete_expired_requests(warden.new_uow(), now)
    reset_count = password_reset_service.delete_expired_requests(warden.new_uow(), now)
    if email_count or reset_count:
        logger.info(f"Deleted {email_count} expired email verification and {reset_count} password reset requests")
    return email_count, reset_count


class MaintenanceScheduler:
    """Runs the maintenance jobs on a daemon thread until stopped."""

    def __init__(self, warden: Warden, cfg: MaintenanceCfg, tick: timedelta = timedelta(seconds=30)) -> None:
        self.warden = warden
        self.cfg = cfg
        self.tick = tick
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_clear = datetime.now(UTC)
        self._last_cleanup = datetime.now(UTC)

    def run_pending(self, now: datetime | None = None) -> None:
        """Run whichever jobs are due at `now`."""
        now = now or datetime.now(UTC)
        if now - self._last_clear >= self.cfg.rate_limit_clear_interval:
            self.warden.limits.clear_all()
            self._last_clear = now
        if now - self._last_cleanup >= self.cfg.cleanup_interval:
            try:
                delete_expired_requests(self.warden, now)
            except Exception as e:
                # the thread must survive a database hiccup, the next run retries
                logger.exception(f"Expired request cleanup failed: {e}")
            self._last_cleanup = now

    def _run(self) -> None:
        while not self._stop_event.wait(self.tick.total_seconds()):
            self.run_pending()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="warden-maintenance", daemon=True)
        self._thread.start()
        logger.info("Started maintenance scheduler")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
