# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Retry Queue - Durable, time-ordered retries for remote mutations that failed transiently

Retry Strategy (see utils.retry):
- First hour: every 5 minutes
- Next 47 hours: every hour
- At 48 hours: expired, removed and reported
"""
import logging
import uuid
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from models import AuthContext, QueueItem, RemoteRequest
from remote.errors import UnknownOperationError
from sync.notifier import Notifier
from sync.queue_store import QueuePersistence
from utils.logger import StructuredLogger
from utils.retry import MAX_RETRY_AGE, calculate_next_retry, is_expired
from utils.timezone import SystemClock, ensure_utc, format_local_time

logger = logging.getLogger(__name__)

Executor = Callable[[QueueItem], Any]


class ProcessResult:
    """Outcome of one processing pass"""

    def __init__(self, skipped: bool = False):
        self.succeeded: List[QueueItem] = []
        self.rescheduled: List[QueueItem] = []
        self.expired: List[QueueItem] = []
        self.skipped = skipped
        self.remaining = 0

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.rescheduled) + len(self.expired)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'processed': self.processed,
            'succeeded': len(self.succeeded),
            'rescheduled': len(self.rescheduled),
            'expired': len(self.expired),
            'remaining': self.remaining,
            'skipped': self.skipped,
        }


class OperationRegistry:
    """Dispatches a queue item to the handler registered for its operation type"""

    def __init__(self):
        self._handlers: Dict[str, Executor] = {}

    def register(self, operation_type: str, handler: Executor):
        self._handlers[operation_type] = handler

    def types(self) -> List[str]:
        return sorted(self._handlers)

    def __call__(self, item: QueueItem):
        handler = self._handlers.get(item.operation_type)
        if handler is None:
            raise UnknownOperationError(f"Unknown operation type: {item.operation_type}")
        return handler(item)


class RemoteRequestReplayer:
    """
    Handler that re-sends a stored remote request

    Only url, method, payload, non-auth headers and the auth mode are stored
    in the queue; credentials are resolved fresh on every attempt.
    """

    OPERATION_TYPE = 'remote_request'
    AUTH_HEADERS = {'authorization', 'cookie'}

    def __init__(self, builder, transport, context_factory: Callable[[], AuthContext] = AuthContext.from_config):
        self.builder = builder
        self.transport = transport
        self.context_factory = context_factory

    @classmethod
    def operation_for(cls, request: RemoteRequest, auth_mode: Optional[str], **metadata) -> Dict[str, Any]:
        """Describe a prepared request as a queue operation, without credentials"""
        headers = {key: value for key, value in request.headers.items()
                   if key.lower() not in cls.AUTH_HEADERS}
        operation = {
            'type': cls.OPERATION_TYPE,
            'params': {
                'url': request.url,
                'method': request.method,
                'payload': request.payload,
                'headers': headers,
                'auth_mode': auth_mode,
            },
        }
        operation.update(metadata)
        return operation

    def __call__(self, item: QueueItem):
        params = item.operation_params
        request = {
            'url': params.get('url'),
            'method': params.get('method'),
            'payload': params.get('payload'),
            'headers': params.get('headers') or {},
        }
        context = self.context_factory() if params.get('auth_mode') else None
        if context is not None and context.mode != params['auth_mode']:
            logger.warning(f"Replaying {item.id} with {context.mode} instead of {params['auth_mode']}")
        return self.transport.send(self.builder.prepare_with_context(request, context))


class RetryQueue:
    """
    Queue of failed operations awaiting retry

    The persisted list is the only state. ``enqueue`` and the load/merge/save
    steps of ``process_due`` run under one lock so an enqueue that happens
    while items are being retried is never lost. Overlapping ``process_due``
    calls are skipped rather than run twice.
    """

    def __init__(
        self,
        persistence: QueuePersistence,
        executor: Optional[Executor] = None,
        clock=None,
        notifier: Optional[Notifier] = None,
        id_factory: Optional[Callable[[], str]] = None
    ):
        self.persistence = persistence
        self.executor = executor
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

        self._lock = Lock()
        self._processing_lock = Lock()
        self.structured_logger = StructuredLogger(__name__)

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self.clock.now()

    def enqueue(self, operation: Dict[str, Any], now: Optional[datetime] = None) -> QueueItem:
        """
        Add a failed operation to the queue

        Args:
            operation: {'type': ..., 'params': {...}, 'ride_url': ..., 'ride_title': ...,
                        'row_id': ..., 'user_email': ...}

        Returns:
            The new queue item (first due 5 minutes from now)
        """
        now = self._now(now)
        item = QueueItem.from_operation(operation, self.id_factory(), now)

        with self._lock:
            items = self.persistence.load()
            items.append(item)
            self.persistence.save(items)

        self.structured_logger.log_queue_event('queue_item_enqueued', {
            'item_id': item.id,
            'operation_type': item.operation_type,
            'ride_url': item.ride_url,
            'next_retry_at': item.next_retry_at.isoformat(),
        })
        return item

    def items(self) -> List[QueueItem]:
        with self._lock:
            return self.persistence.load()

    def __len__(self):
        return len(self.items())

    def process_due(self, now: Optional[datetime] = None, executor: Optional[Executor] = None) -> ProcessResult:
        """
        Retry every item that is due, oldest-due first

        Each due item is attempted exactly once. Success removes it; failure
        bumps ``attempt_count``, records ``last_error`` and reschedules it per
        the backoff policy, or expires it once it is 48 hours old. Items that
        are already 48 hours old are expired without another attempt. Executor
        errors never escape this method.
        """
        executor = executor or self.executor
        now = self._now(now)

        if not self._processing_lock.acquire(blocking=False):
            self.structured_logger.log_queue_event('queue_processing_skipped', {'reason': 'already processing'})
            return ProcessResult(skipped=True)

        try:
            with self._lock:
                queue = self.persistence.load()

            due = sorted((item for item in queue if item.next_retry_at <= now),
                         key=lambda item: item.next_retry_at)
            if due and executor is None:
                raise ValueError("RetryQueue.process_due needs an executor")

            result = ProcessResult()
            logger.info(f"RetryQueue: processing {len(due)} due item(s) out of {len(queue)}")

            for item in due:
                self._attempt(item, executor, now, result)

            if due:
                self._merge(result)
            with self._lock:
                result.remaining = len(self.persistence.load())

            self._notify(result)
            return result
        finally:
            self._processing_lock.release()

    def _expire(self, item: QueueItem, result: ProcessResult):
        item.status = 'expired'
        result.expired.append(item)
        self.structured_logger.log_queue_event('queue_item_expired', {
            'item_id': item.id,
            'operation_type': item.operation_type,
            'attempt_count': item.attempt_count,
            'last_error': item.last_error,
        })

    def _attempt(self, item: QueueItem, executor: Executor, now: datetime, result: ProcessResult):
        # Past the retry ceiling: report it, do not run it again
        if is_expired(item.enqueued_at, now):
            self._expire(item.copy(), result)
            return

        try:
            executor(item)
        except Exception as e:
            updated = item.copy()
            updated.attempt_count += 1
            updated.last_error = str(e) or type(e).__name__
            updated.status = 'failed'

            next_retry = calculate_next_retry(item.enqueued_at, now)
            if next_retry is None:
                self._expire(updated, result)
            else:
                updated.next_retry_at = next_retry
                result.rescheduled.append(updated)
                self.structured_logger.log_queue_event('queue_item_rescheduled', {
                    'item_id': item.id,
                    'attempt_count': updated.attempt_count,
                    'last_error': updated.last_error,
                    'next_retry_at': next_retry.isoformat(),
                })
        else:
            result.succeeded.append(item)
            self.structured_logger.log_queue_event('queue_item_succeeded', {
                'item_id': item.id,
                'operation_type': item.operation_type,
                'attempts': item.attempt_count + 1,
            })

    def _merge(self, result: ProcessResult):
        """Apply outcomes to a freshly loaded queue so concurrent changes survive"""
        finished = {item.id for item in result.succeeded + result.expired}
        updated = {item.id: item for item in result.rescheduled}

        with self._lock:
            merged = []
            for item in self.persistence.load():
                if item.id in finished:
                    continue
                merged.append(updated.get(item.id, item))
            self.persistence.save(merged)

    def _notify(self, result: ProcessResult):
        if self.notifier is None:
            return
        for item in result.succeeded:
            self._send(f"{item.operation_type} succeeded for ride {self._describe(item)} "
                       f"after {item.attempt_count + 1} attempt(s).\n\nRide URL: {item.ride_url}")
        for item in result.expired:
            hours = int(MAX_RETRY_AGE.total_seconds() // 3600)
            self._send(f"Failed to {item.operation_type} for ride {self._describe(item)} after "
                       f"{item.attempt_count} attempt(s) over {hours} hours. Last error: {item.last_error or 'none recorded'}\n\n"
                       f"Ride URL: {item.ride_url}\nPlease complete this operation manually.")

    def _send(self, message: str):
        try:
            self.notifier.show_message(message)
        except Exception as e:
            logger.error(f"RetryQueue: failed to deliver notification: {e}")

    @staticmethod
    def _describe(item: QueueItem) -> str:
        return f"\"{item.ride_title or 'Unknown'}\" (row {item.row_id or 'Unknown'})"

    def remove_where(self, key: str, value: Any) -> int:
        """
        Remove items whose params (or metadata) match, e.g. a pending calendar
        create for a ride that has just been cancelled
        """
        def matches(item: QueueItem) -> bool:
            if key in item.operation_params:
                return item.operation_params[key] == value
            return getattr(item, key, None) == value

        with self._lock:
            items = self.persistence.load()
            kept = [item for item in items if not matches(item)]
            removed = len(items) - len(kept)
            if removed:
                self.persistence.save(kept)

        logger.info(f"RetryQueue: removed {removed} item(s) where {key}={value!r}")
        return removed

    def clear(self):
        with self._lock:
            self.persistence.save([])
        logger.info("RetryQueue: queue cleared")

    def get_statistics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts for operational visibility; age buckets are measured from enqueue"""
        now = self._now(now)
        items = self.items()
        ages = [now - item.enqueued_at for item in items]
        hour = 3600
        return {
            'total_items': len(items),
            'due_now': sum(1 for item in items if item.next_retry_at <= now),
            'by_age': {
                'less_than_1_hour': sum(1 for age in ages if age.total_seconds() < hour),
                'less_than_24_hours': sum(1 for age in ages if age.total_seconds() < 24 * hour),
                'more_than_24_hours': sum(1 for age in ages if age.total_seconds() >= 24 * hour),
            },
        }

    def get_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Statistics plus a display row for every item"""
        now = self._now(now)
        status = self.get_statistics(now)
        status['items'] = [
            {
                'id': item.id,
                'operation_type': item.operation_type,
                'ride_url': item.ride_url,
                'ride_title': item.ride_title or 'Unknown',
                'row_id': item.row_id or 'Unknown',
                'user_email': item.user_email,
                'attempt_count': item.attempt_count,
                'last_error': item.last_error,
                'status': item.status,
                'enqueued_at': item.enqueued_at.isoformat(),
                'next_retry_at': item.next_retry_at.isoformat(),
                'next_retry_display': format_local_time(item.next_retry_at),
                'age_minutes': int((now - item.enqueued_at).total_seconds() // 60),
            }
            for item in self.items()
        ]
        return status
