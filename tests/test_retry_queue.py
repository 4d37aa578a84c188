"""
Retry queue tests - backoff policy, processing, persistence merge and statistics
"""
from datetime import timedelta

import pytest

from conftest import RecordingNotifier
from models import AuthContext, QueueItem, RemoteRequest
from remote.errors import RemoteTransientFailure, UnknownOperationError
from remote.request_builder import RequestBuilder
from sync.retry_queue import OperationRegistry, RemoteRequestReplayer, RetryQueue
from utils.retry import MAX_RETRY_AGE, calculate_next_retry, is_expired

OPERATION = {'type': 'create', 'ride_url': 'https://x/events/1', 'ride_title': 'Sat A (1/17 09:00) Loop'}


def always_fail(item):
    raise RemoteTransientFailure("503 Service Unavailable", status_code=503)


def always_succeed(item):
    return 'ok'


class Recorder:
    def __init__(self):
        self.ids = []

    def __call__(self, item):
        self.ids.append(item.id)


@pytest.fixture
def queue(persistence, clock):
    return RetryQueue(persistence, executor=always_fail, clock=clock)


class TestBackoffPolicy:
    """Test calculate_next_retry"""

    @pytest.mark.queue
    def test_fast_phase(self, t0):
        assert calculate_next_retry(t0, t0 + timedelta(minutes=5)) == t0 + timedelta(minutes=10)
        assert calculate_next_retry(t0, t0 + timedelta(minutes=59)) == t0 + timedelta(minutes=64)

    @pytest.mark.queue
    def test_slow_phase(self, t0):
        assert calculate_next_retry(t0, t0 + timedelta(hours=1)) == t0 + timedelta(hours=2)
        now = t0 + timedelta(hours=47, minutes=59)
        assert calculate_next_retry(t0, now) == now + timedelta(hours=1)

    @pytest.mark.queue
    def test_expiry(self, t0):
        assert calculate_next_retry(t0, t0 + MAX_RETRY_AGE) is None
        assert is_expired(t0, t0 + timedelta(hours=49))
        assert not is_expired(t0, t0 + timedelta(hours=47))

    @pytest.mark.queue
    def test_next_retry_always_in_the_future(self, t0):
        for minutes in range(0, 48 * 60, 7):
            now = t0 + timedelta(minutes=minutes)
            assert calculate_next_retry(t0, now) > now


class TestEnqueue:
    """Test RetryQueue.enqueue"""

    @pytest.mark.queue
    def test_new_item_defaults(self, queue, t0):
        item = queue.enqueue(OPERATION)

        assert item.attempt_count == 0
        assert item.last_error is None
        assert item.enqueued_at == t0
        assert item.next_retry_at == t0 + timedelta(minutes=5)
        assert item.ride_url == 'https://x/events/1'

    @pytest.mark.queue
    def test_ids_are_unique(self, queue):
        ids = {queue.enqueue(OPERATION).id for _ in range(5)}
        assert len(ids) == 5

    @pytest.mark.queue
    def test_enqueue_persists_before_returning(self, queue, persistence):
        item = queue.enqueue(OPERATION)
        assert [loaded.id for loaded in persistence.load()] == [item.id]

    @pytest.mark.queue
    def test_operation_without_type_rejected(self, queue):
        with pytest.raises(ValueError):
            queue.enqueue({'ride_url': 'https://x/events/1'})


class TestProcessDue:
    """Test RetryQueue.process_due"""

    @pytest.mark.queue
    def test_end_to_end_failure_then_expiry(self, queue, t0):
        item = queue.enqueue(OPERATION, now=t0)

        result = queue.process_due(t0)
        assert result.processed == 0
        assert len(queue) == 1

        result = queue.process_due(t0 + timedelta(minutes=5))
        stored = queue.items()[0]
        assert [i.id for i in result.rescheduled] == [item.id]
        assert stored.attempt_count == 1
        assert stored.next_retry_at == t0 + timedelta(minutes=10)
        assert stored.last_error == "503 Service Unavailable"

        result = queue.process_due(t0 + timedelta(hours=49))
        assert [i.id for i in result.expired] == [item.id]
        assert len(queue) == 0

    @pytest.mark.queue
    def test_failure_after_first_hour_waits_an_hour(self, persistence, clock, t0):
        queue = RetryQueue(persistence, executor=always_fail, clock=clock)
        item = queue.enqueue(OPERATION, now=t0)
        item.attempt_count = 3
        item.next_retry_at = t0 + timedelta(minutes=90)
        persistence.save([item])

        result = queue.process_due(t0 + timedelta(minutes=90))

        stored = queue.items()[0]
        assert [i.id for i in result.rescheduled] == [item.id]
        assert stored.attempt_count == 4
        assert stored.next_retry_at == t0 + timedelta(minutes=150)

    @pytest.mark.queue
    def test_success_removes_item(self, persistence, clock, t0):
        notifier = RecordingNotifier()
        queue = RetryQueue(persistence, executor=always_succeed, clock=clock, notifier=notifier)
        queue.enqueue(OPERATION)

        result = queue.process_due(t0 + timedelta(minutes=5))

        assert len(result.succeeded) == 1
        assert len(queue) == 0
        assert 'succeeded' in notifier.messages[0]

    @pytest.mark.queue
    def test_expiry_notifies_with_row_and_operation(self, persistence, clock, t0):
        notifier = RecordingNotifier()
        queue = RetryQueue(persistence, executor=always_fail, clock=clock, notifier=notifier)
        queue.enqueue({**OPERATION, 'row_id': 'row-7'})

        queue.process_due(t0 + timedelta(hours=48))

        assert len(notifier.messages) == 1
        assert 'create' in notifier.messages[0]
        assert 'row-7' in notifier.messages[0]

    @pytest.mark.queue
    def test_item_past_ceiling_is_not_attempted(self, persistence, clock, t0):
        recorder = Recorder()
        queue = RetryQueue(persistence, executor=recorder, clock=clock)
        item = queue.enqueue(OPERATION, now=t0)

        result = queue.process_due(t0 + timedelta(hours=48))

        assert recorder.ids == []
        assert [i.id for i in result.expired] == [item.id]
        assert len(queue) == 0

    @pytest.mark.queue
    def test_due_items_processed_oldest_due_first(self, persistence, clock, t0):
        recorder = Recorder()
        queue = RetryQueue(persistence, executor=recorder, clock=clock)
        late = queue.enqueue(OPERATION, now=t0)
        early = queue.enqueue(OPERATION, now=t0 - timedelta(minutes=30))
        not_due = queue.enqueue(OPERATION, now=t0 + timedelta(minutes=20))

        queue.process_due(t0 + timedelta(minutes=10))

        assert recorder.ids == [early.id, late.id]
        assert [item.id for item in queue.items()] == [not_due.id]

    @pytest.mark.queue
    def test_executor_error_does_not_affect_other_items(self, persistence, clock, t0):
        first = None

        def flaky(item):
            if item.id == first.id:
                raise RuntimeError("boom")

        queue = RetryQueue(persistence, executor=flaky, clock=clock)
        first = queue.enqueue(OPERATION, now=t0)
        second = queue.enqueue(OPERATION, now=t0 + timedelta(seconds=1))

        result = queue.process_due(t0 + timedelta(minutes=6))

        assert [i.id for i in result.rescheduled] == [first.id]
        assert [i.id for i in result.succeeded] == [second.id]

    @pytest.mark.queue
    def test_enqueue_during_processing_is_kept(self, persistence, clock, t0):
        queue = RetryQueue(persistence, clock=clock)
        original = queue.enqueue(OPERATION, now=t0)
        added = []

        def enqueue_while_running(item):
            added.append(queue.enqueue(OPERATION, now=t0 + timedelta(minutes=5)))

        queue.process_due(t0 + timedelta(minutes=5), executor=enqueue_while_running)

        remaining = [item.id for item in queue.items()]
        assert original.id not in remaining
        assert remaining == [added[0].id]

    @pytest.mark.queue
    def test_overlapping_processing_is_skipped(self, persistence, clock, t0):
        queue = RetryQueue(persistence, clock=clock)
        queue.enqueue(OPERATION, now=t0)
        nested = []

        def reenter(item):
            nested.append(queue.process_due(t0 + timedelta(minutes=5), executor=reenter))

        result = queue.process_due(t0 + timedelta(minutes=5), executor=reenter)

        assert nested[0].skipped
        assert not result.skipped
        assert len(result.succeeded) == 1

    @pytest.mark.queue
    def test_no_executor_is_an_error_only_when_something_is_due(self, persistence, clock, t0):
        queue = RetryQueue(persistence, clock=clock)
        queue.enqueue(OPERATION, now=t0)

        assert queue.process_due(t0).processed == 0
        with pytest.raises(ValueError):
            queue.process_due(t0 + timedelta(minutes=5))


class TestMaintenance:
    """Test statistics and queue maintenance"""

    @pytest.mark.queue
    def test_statistics(self, queue, t0):
        queue.enqueue(OPERATION, now=t0 - timedelta(minutes=30))
        queue.enqueue(OPERATION, now=t0 - timedelta(hours=2))
        queue.enqueue(OPERATION, now=t0 - timedelta(hours=30))
        queue.enqueue(OPERATION, now=t0)

        stats = queue.get_statistics(t0)

        assert stats['total_items'] == 4
        assert stats['due_now'] == 3
        assert stats['by_age'] == {
            'less_than_1_hour': 2,
            'less_than_24_hours': 3,
            'more_than_24_hours': 1,
        }

    @pytest.mark.queue
    def test_status_lists_items(self, queue, t0):
        queue.enqueue(OPERATION)

        status = queue.get_status(t0 + timedelta(minutes=12))

        assert status['items'][0]['age_minutes'] == 12
        assert status['items'][0]['ride_title'] == OPERATION['ride_title']
        assert status['items'][0]['row_id'] == 'Unknown'

    @pytest.mark.queue
    def test_remove_where(self, queue):
        queue.enqueue({'type': 'create', 'params': {'event_id': '1'}})
        queue.enqueue({'type': 'create', 'params': {'event_id': '2'}})
        queue.enqueue({'type': 'create', 'ride_url': 'https://x/events/3'})

        assert queue.remove_where('event_id', '1') == 1
        assert queue.remove_where('ride_url', 'https://x/events/3') == 1
        assert len(queue) == 1

    @pytest.mark.queue
    def test_clear(self, queue):
        queue.enqueue(OPERATION)
        queue.clear()
        assert queue.items() == []


class TestExecutors:
    """Test the operation registry and request replay"""

    @pytest.mark.queue
    def test_unknown_operation_type_fails_the_attempt(self, persistence, clock, t0):
        queue = RetryQueue(persistence, executor=OperationRegistry(), clock=clock)
        queue.enqueue(OPERATION)

        result = queue.process_due(t0 + timedelta(minutes=5))

        assert len(result.rescheduled) == 1
        assert 'Unknown operation type' in queue.items()[0].last_error

    @pytest.mark.queue
    def test_registry_dispatches_by_type(self, t0):
        registry = OperationRegistry()
        seen = []
        registry.register('create', seen.append)

        item = QueueItem.from_operation(OPERATION, 'id-1', t0)
        registry(item)

        assert seen == [item]
        with pytest.raises(UnknownOperationError):
            registry(QueueItem.from_operation({'type': 'teleport'}, 'id-2', t0))

    @pytest.mark.queue
    def test_replayer_strips_and_restores_credentials(self, persistence, clock, t0):
        prepared = RemoteRequest('https://rwgps.test/events/1.json', 'put',
                                 {'Authorization': 'Basic old', 'Content-Type': 'application/json'},
                                 {'event': {'name': 'Sat A'}})
        operation = RemoteRequestReplayer.operation_for(prepared, 'basic_auth', ride_url='https://x/events/1')
        assert 'Authorization' not in operation['params']['headers']

        sent = []

        class FakeTransport:
            def send(self, request):
                sent.append(request)

        registry = OperationRegistry()
        registry.register(
            RemoteRequestReplayer.OPERATION_TYPE,
            RemoteRequestReplayer(RequestBuilder('https://rwgps.test'), FakeTransport(),
                                  lambda: AuthContext.basic_auth('k', 't'))
        )
        queue = RetryQueue(persistence, executor=registry, clock=clock)
        queue.enqueue(operation)

        result = queue.process_due(t0 + timedelta(minutes=5))

        assert len(result.succeeded) == 1
        assert sent[0].method == 'put'
        assert sent[0].headers['Authorization'].startswith('Basic ')
        assert sent[0].headers['Authorization'] != 'Basic old'
        assert sent[0].payload == {'event': {'name': 'Sat A'}}
