"""
Expiry Sweeper
Periodically closes open, unassigned help requests whose scheduled time
(IST) has passed. Runs once on start, then every interval.
"""

import logging
import threading

from db import HelpRequest, User
from services.clock import parse_schedule

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(self, notifier, clock, interval=300, app=None):
        self.notifier = notifier
        self.clock = clock
        self.interval = interval
        self.app = app
        self._stop = threading.Event()
        self._thread = None

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="expiry-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        while True:
            self.run_once()
            if self._stop.wait(self.interval):
                break

    def run_once(self):
        if self.app is None:
            return self.sweep()
        with self.app.app_context():
            return self.sweep()

    def sweep(self):
        """Expire what is due. Returns the number of requests cleared; never raises."""
        try:
            candidates = list(User.objects(role="citizen", help_request__status="open"))
        except Exception:
            logger.exception("[SWEEP] Could not load open help requests")
            return 0

        now = self.clock.now()
        expired = 0
        for citizen in candidates:
            try:
                if self._expire(citizen, now):
                    expired += 1
            except Exception:
                logger.exception("[SWEEP] Error clearing help request for %s", citizen.email)

        if expired:
            logger.info("[SWEEP] Expired %d help request(s)", expired)
        return expired

    def _expire(self, citizen, now):
        help_request = citizen.help_request
        if help_request.is_accepted:
            return False

        try:
            scheduled = parse_schedule(help_request.requested_date, help_request.requested_time)
        except ValueError:
            logger.warning(
                "[SWEEP] Unparseable schedule %r %r for %s",
                help_request.requested_date, help_request.requested_time, citizen.email,
            )
            return False

        if now <= scheduled:
            return False

        # only clear if nobody accepted it since it was read
        cleared = User.objects(
            pk=citizen.id,
            help_request__status="open",
        ).update_one(set__help_request=HelpRequest())
        if not cleared:
            return False

        self.notifier.request_expired(citizen, help_request)
        return True
