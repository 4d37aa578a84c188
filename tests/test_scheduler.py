"""
Retry scheduler tests - the loop itself is started and stopped but never waited on
"""
from unittest.mock import Mock

import pytest

from sync.retry_queue import ProcessResult
from sync.scheduler import RetryScheduler


class TestRetryScheduler:
    """Test RetryScheduler"""

    @pytest.mark.queue
    def test_run_once_processes_queue(self):
        queue = Mock()
        queue.process_due.return_value = ProcessResult()
        scheduler = RetryScheduler(queue, interval_minutes=5)

        result = scheduler.run_once()

        assert result is queue.process_due.return_value
        assert scheduler.run_count == 1
        assert scheduler.last_result['skipped'] is False

    @pytest.mark.queue
    def test_run_once_survives_errors(self):
        queue = Mock()
        queue.process_due.side_effect = RuntimeError("disk full")
        scheduler = RetryScheduler(queue, interval_minutes=5)

        assert scheduler.run_once() is None
        assert scheduler.run_count == 1
        assert scheduler.last_run is not None

    @pytest.mark.queue
    def test_start_and_stop(self):
        scheduler = RetryScheduler(Mock(), interval_minutes=5, poll_seconds=0.05)

        scheduler.start()
        try:
            assert scheduler.is_running()
            status = scheduler.get_scheduler_status()
            assert status['interval_minutes'] == 5
            assert status['next_run'] is not None
        finally:
            scheduler.stop()

        assert not scheduler.is_running()
