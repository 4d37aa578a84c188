"""
Command dispatcher tests - gate, confirm, act, report
"""
import pytest

from conftest import RecordingNotifier, make_row
from remote.errors import RemotePermanentFailure, RemoteTransientFailure
from sync.dispatcher import CommandDispatcher, build_summary
from sync.queue_store import InMemoryQueuePersistence
from sync.retry_queue import RetryQueue


def group_must_be_known(row):
    if row.group == 'X':
        return "Unknown group"
    return None


def leader_wanted(row):
    if not row.leaders:
        return "No ride leader"
    return None


class RecordingAction:
    def __init__(self, fail_for=None):
        self.calls = []
        self.fail_for = fail_for or {}

    def __call__(self, row, remote):
        self.calls.append(row.row_id)
        if row.row_id in self.fail_for:
            raise self.fail_for[row.row_id]
        return 'ok'


class UnwritableQueue:
    def enqueue(self, operation):
        raise OSError("queue file not writable")


@pytest.fixture
def three_rows():
    blocked = make_row(group='X')
    warned = make_row(leaders=[])
    clean = make_row()
    for number, row in enumerate([blocked, warned, clean], start=2):
        row.row_num = number
    return blocked, warned, clean


class TestProcessRows:
    """Test CommandDispatcher.process_rows"""

    @pytest.mark.dispatch
    def test_confirmed_schedule_acts_on_warned_and_clean_in_order(self, three_rows):
        blocked, warned, clean = three_rows
        notifier = RecordingNotifier(answer=True)
        action = RecordingAction()

        result = CommandDispatcher(notifier).process_rows(
            [blocked, warned, clean], [group_must_be_known], [leader_wanted], 'remote', action)

        assert len(notifier.confirmations) == 1
        prompt = notifier.confirmations[0]
        assert 'Row 2: Unknown group' in prompt
        assert 'Row 3: No ride leader' in prompt
        assert 'Row 4' in prompt
        assert action.calls == [warned.row_id, clean.row_id]
        assert result.applied == [warned, clean]
        assert result.blocked == [blocked]
        assert not result.aborted

    @pytest.mark.dispatch
    def test_declined_confirmation_changes_nothing(self, three_rows):
        notifier = RecordingNotifier(answer=False)
        action = RecordingAction()

        result = CommandDispatcher(notifier).process_rows(
            list(three_rows), [group_must_be_known], [leader_wanted], None, action)

        assert action.calls == []
        assert result.aborted

    @pytest.mark.dispatch
    def test_force_skips_confirmation(self, three_rows):
        notifier = RecordingNotifier(answer=False)
        action = RecordingAction()

        CommandDispatcher(notifier).process_rows(
            list(three_rows), [group_must_be_known], [leader_wanted], None, action, force=True)

        assert notifier.confirmations == []
        assert len(action.calls) == 2

    @pytest.mark.dispatch
    def test_all_blocked_shows_message_and_stops(self):
        rows = [make_row(group='X'), make_row(group='X')]
        notifier = RecordingNotifier()
        action = RecordingAction()

        result = CommandDispatcher(notifier).process_rows(rows, [group_must_be_known], [], None, action)

        assert notifier.confirmations == []
        assert action.calls == []
        assert 'All selected rides have errors' in notifier.messages[-1]
        assert result.aborted

    @pytest.mark.dispatch
    def test_errors_and_warnings_attached_to_rows(self, three_rows):
        blocked, warned, clean = three_rows
        CommandDispatcher(RecordingNotifier()).process_rows(
            [blocked, warned, clean], [group_must_be_known], [leader_wanted], None, RecordingAction())

        assert blocked.errors == ["Unknown group"]
        assert warned.warnings == ["No ride leader"]
        assert clean.errors == [] and clean.warnings == []

    @pytest.mark.dispatch
    def test_one_failing_row_does_not_stop_the_rest(self):
        first, second = make_row(), make_row()
        action = RecordingAction(fail_for={first.row_id: RemotePermanentFailure("rejected", status_code=422)})
        notifier = RecordingNotifier()

        result = CommandDispatcher(notifier).process_rows([first, second], [], [], None, action, force=True)

        assert action.calls == [first.row_id, second.row_id]
        assert result.applied == [second]
        assert [row for row, _ in result.failed] == [first]
        assert 'could not be scheduled' in notifier.messages[-1]

    @pytest.mark.dispatch
    def test_transient_failure_with_operation_is_queued(self, clock):
        row = make_row()
        operation = {'type': 'update', 'params': {'url': 'https://rwgps.test/events/1.json'}}
        action = RecordingAction(fail_for={row.row_id: RemoteTransientFailure("503", status_code=503,
                                                                              operation=operation)})
        queue = RetryQueue(InMemoryQueuePersistence(), clock=clock)

        result = CommandDispatcher(RecordingNotifier(), retry_queue=queue).process_rows(
            [row], [], [], None, action, force=True, command='update', verb='updated')

        items = queue.items()
        assert result.queued == [items[0].id]
        assert items[0].operation_type == 'update'
        assert items[0].row_id == row.row_id

    @pytest.mark.dispatch
    def test_queue_error_does_not_stop_the_rest(self):
        first, second = make_row(), make_row()
        error = RemoteTransientFailure("503", status_code=503, operation={'type': 'create'})
        action = RecordingAction(fail_for={first.row_id: error})
        notifier = RecordingNotifier()

        result = CommandDispatcher(notifier, retry_queue=UnwritableQueue()).process_rows(
            [first, second], [], [], None, action, force=True)

        assert action.calls == [first.row_id, second.row_id]
        assert result.applied == [second]
        assert [row for row, _ in result.failed] == [first]
        assert [row for row, _ in result.queue_errors] == [first]
        assert isinstance(result.queue_errors[0][1], OSError)
        assert result.queued == []
        assert 'retry could not be queued' in notifier.messages[-1]

    @pytest.mark.dispatch
    def test_operation_without_type_is_reported_not_raised(self, clock):
        first, second = make_row(), make_row()
        error = RemoteTransientFailure("503", status_code=503, operation={'params': {'event_id': '1'}})
        action = RecordingAction(fail_for={first.row_id: error})
        queue = RetryQueue(InMemoryQueuePersistence(), clock=clock)

        result = CommandDispatcher(RecordingNotifier(), retry_queue=queue).process_rows(
            [first, second], [], [], None, action, force=True)

        assert result.applied == [second]
        assert isinstance(result.queue_errors[0][1], ValueError)
        assert queue.items() == []

    @pytest.mark.dispatch
    def test_empty_selection(self):
        notifier = RecordingNotifier()
        action = RecordingAction()

        result = CommandDispatcher(notifier).process_rows([], [], [], None, action)

        assert result.aborted
        assert action.calls == []
        assert notifier.confirmations == []
        assert 'No rows selected' in notifier.messages[-1]
        assert 'errors' not in notifier.messages[-1]

    @pytest.mark.dispatch
    def test_permanent_failure_is_not_queued(self, clock):
        row = make_row()
        operation = {'type': 'update'}
        action = RecordingAction(fail_for={row.row_id: RemotePermanentFailure("422", status_code=422,
                                                                              operation=operation)})
        queue = RetryQueue(InMemoryQueuePersistence(), clock=clock)

        result = CommandDispatcher(RecordingNotifier(), retry_queue=queue).process_rows(
            [row], [], [], None, action, force=True)

        assert result.queued == []
        assert queue.items() == []


class TestBuildSummary:
    """Test the summary text"""

    @pytest.mark.dispatch
    def test_sections(self, three_rows):
        blocked, warned, clean = three_rows
        blocked.errors = ['Unknown group']
        warned.warnings = ['No ride leader']

        summary = build_summary([blocked, warned, clean], 'cancelled')

        assert summary.index('will not be cancelled') < summary.index('warnings but can be cancelled')
        assert summary.index('warnings but can be cancelled') < summary.index('neither errors nor warnings')
