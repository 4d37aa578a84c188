# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Background Scheduler for the retry queue - processes due items on a fixed interval
"""
import logging
import threading
from threading import Lock
from typing import Optional

import schedule

import config
from utils.timezone import format_local_time, utc_now

logger = logging.getLogger(__name__)


class RetryScheduler:
    """Runs RetryQueue.process_due every few minutes on a daemon thread"""

    def __init__(self, retry_queue, interval_minutes: Optional[int] = None, poll_seconds: int = 30):
        self.retry_queue = retry_queue
        self.interval_minutes = interval_minutes or config.RETRY_INTERVAL_MIN
        self.poll_seconds = poll_seconds

        self.scheduler = schedule.Scheduler()
        self.scheduler_lock = Lock()
        self.scheduler_thread = None
        self._stop_event = threading.Event()

        self.last_run = None
        self.last_result = None
        self.run_count = 0

    def start(self):
        """Start the scheduler"""
        with self.scheduler_lock:
            if self.scheduler_thread is not None and self.scheduler_thread.is_alive():
                logger.info("Retry scheduler already running")
                return

            self.scheduler.clear()
            self.scheduler.every(self.interval_minutes).minutes.do(self.run_once)
            self._stop_event.clear()
            self.scheduler_thread = threading.Thread(target=self._run_scheduler, daemon=True)
            self.scheduler_thread.start()

        logger.info(f"Retry scheduler started at {format_local_time(utc_now())} - "
                    f"processing queue every {self.interval_minutes} minute(s)")

    def stop(self):
        """Stop the scheduler and wait briefly for the loop to exit"""
        self._stop_event.set()
        with self.scheduler_lock:
            thread = self.scheduler_thread
        if thread is not None:
            thread.join(timeout=self.poll_seconds + 5)
        logger.info(f"Retry scheduler stopped at {format_local_time(utc_now())}")

    def is_running(self) -> bool:
        with self.scheduler_lock:
            return bool(self.scheduler_thread and self.scheduler_thread.is_alive()
                        and not self._stop_event.is_set())

    def _run_scheduler(self):
        while not self._stop_event.is_set():
            self.scheduler.run_pending()
            self._stop_event.wait(self.poll_seconds)

    def run_once(self):
        """One processing pass; errors are logged so the loop keeps running"""
        try:
            result = self.retry_queue.process_due()
            self.last_result = result.to_dict()
            if result.skipped:
                logger.info("Retry pass skipped - previous pass still running")
            elif result.processed:
                logger.info(f"Retry pass: {result.to_dict()}")
            return result
        except Exception as e:
            logger.error(f"Retry pass failed: {type(e).__name__}: {e}")
            return None
        finally:
            self.last_run = utc_now()
            self.run_count += 1

    def get_scheduler_status(self):
        next_run = self.scheduler.next_run if self.scheduler.jobs else None
        return {
            'running': self.is_running(),
            'interval_minutes': self.interval_minutes,
            'run_count': self.run_count,
            'last_run': self.last_run.isoformat() if self.last_run else None,
            'last_run_display': format_local_time(self.last_run) if self.last_run else 'Never',
            'next_run': next_run.isoformat() if next_run else None,
            'last_result': self.last_result,
        }
