# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Queue Store - Durable storage for retry queue items

On disk each item is one flat row of primitives. ``item_to_row`` and
``row_to_item`` are the only code that knows the column order.
"""
import json
import logging
import os
import tempfile
from typing import Any, List

from models import QueueItem
from utils.timezone import from_iso, to_iso

logger = logging.getLogger(__name__)

COLUMNS = [
    'id',
    'operation_type',
    'params',
    'ride_url',
    'ride_title',
    'row_id',
    'user_email',
    'enqueued_at',
    'attempt_count',
    'next_retry_at',
    'last_error',
    'status',
]


def item_to_row(item: QueueItem) -> List[Any]:
    """Convert a queue item to a flat row"""
    return [
        item.id,
        item.operation_type,
        json.dumps(item.operation_params, sort_keys=True) if item.operation_params else '',
        item.ride_url,
        item.ride_title,
        item.row_id,
        item.user_email,
        to_iso(item.enqueued_at),
        item.attempt_count,
        to_iso(item.next_retry_at),
        item.last_error or '',
        item.status,
    ]


def row_to_item(row: List[Any]) -> QueueItem:
    """Convert a flat row back into a queue item"""
    if len(row) < len(COLUMNS):
        row = list(row) + [''] * (len(COLUMNS) - len(row))
    values = dict(zip(COLUMNS, row))

    enqueued_at = from_iso(values['enqueued_at'])
    if enqueued_at is None:
        raise ValueError(f"Queue row {values['id']!r} has no enqueued_at")

    return QueueItem(
        id=values['id'],
        operation_type=values['operation_type'],
        operation_params=json.loads(values['params']) if values['params'] else {},
        enqueued_at=enqueued_at,
        next_retry_at=from_iso(values['next_retry_at']),
        attempt_count=int(values['attempt_count'] or 0),
        last_error=values['last_error'] or None,
        ride_url=values['ride_url'],
        ride_title=values['ride_title'],
        row_id=values['row_id'],
        user_email=values['user_email'],
        status=values['status'] or 'pending',
    )


class QueuePersistence:
    """Abstract queue storage - load and save the whole queue"""

    def load(self) -> List[QueueItem]:
        raise NotImplementedError

    def save(self, items: List[QueueItem]):
        raise NotImplementedError


class InMemoryQueuePersistence(QueuePersistence):
    """Keeps the serialized rows in memory; useful for tests and dry runs"""

    def __init__(self):
        self.rows: List[List[Any]] = []
        self.save_count = 0

    def load(self) -> List[QueueItem]:
        return [row_to_item(row) for row in self.rows]

    def save(self, items: List[QueueItem]):
        self.rows = [item_to_row(item) for item in items]
        self.save_count += 1


class JsonFileQueuePersistence(QueuePersistence):
    """Stores the queue as a JSON document, replaced atomically on every save"""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> List[QueueItem]:
        if not os.path.exists(self.path):
            return []

        with open(self.path, 'r') as f:
            data = json.load(f)

        if data.get('columns') and data['columns'] != COLUMNS:
            logger.warning(f"Queue file {self.path} has unexpected columns: {data['columns']}")

        return [row_to_item(row) for row in data.get('rows', [])]

    def save(self, items: List[QueueItem]):
        data = {
            'columns': COLUMNS,
            'rows': [item_to_row(item) for item in items],
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.retry_queue.', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug(f"Saved {len(items)} queue item(s) to {self.path}")
