# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Row Store - Access to the schedule rows, addressed by stable row id
"""
import logging
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from models import Row

logger = logging.getLogger(__name__)


class RowStore:
    """Abstract row store - to be implemented by the hosting spreadsheet adapter"""

    def get_selected_rows(self) -> List[Row]:
        raise NotImplementedError

    def append_row(self, data: Dict[str, Any]) -> Row:
        raise NotImplementedError

    def save_row(self, row: Row):
        raise NotImplementedError


class InMemoryRowStore(RowStore):
    """
    Row store held in memory

    Rows are identified by ``row_id``; the ``row_id -> position`` index is
    rebuilt whenever rows are added so ``row_num`` always reflects the current
    display position (1-based, after a header row).
    """

    HEADER_ROWS = 1

    def __init__(self, rows: Optional[Iterable[Dict[str, Any]]] = None):
        self._rows: List[Row] = []
        self._index: Dict[str, int] = {}
        self._selected: List[str] = []
        self._lock = Lock()
        self.saves: Dict[str, int] = {}

        for data in rows or []:
            self.append_row(data)

    def _reindex(self):
        self._index = {row.row_id: position for position, row in enumerate(self._rows)}
        for position, row in enumerate(self._rows):
            row.row_num = position + 1 + self.HEADER_ROWS

    def append_row(self, data: Dict[str, Any]) -> Row:
        with self._lock:
            row = data if isinstance(data, Row) else Row.from_dict(data)
            if row.row_id in self._index:
                raise ValueError(f"Duplicate row id: {row.row_id}")
            row._store = self
            self._rows.append(row)
            self._reindex()
            logger.debug(f"Appended {row.label} ({row.row_id})")
            return row

    def insert_row(self, position: int, data: Dict[str, Any]) -> Row:
        """Insert a row at a 0-based position, shifting later rows down"""
        with self._lock:
            row = data if isinstance(data, Row) else Row.from_dict(data)
            if row.row_id in self._index:
                raise ValueError(f"Duplicate row id: {row.row_id}")
            row._store = self
            self._rows.insert(position, row)
            self._reindex()
            return row

    def all_rows(self) -> List[Row]:
        return list(self._rows)

    def find(self, row_id: str) -> Optional[Row]:
        position = self._index.get(row_id)
        return self._rows[position] if position is not None else None

    def find_by_ride_url(self, ride_url: str) -> Optional[Row]:
        return next((row for row in self._rows if ride_url and row.ride_url == ride_url), None)

    def select(self, row_ids: Iterable[str]):
        """Record the current selection, in the order given"""
        row_ids = list(row_ids)
        unknown = [row_id for row_id in row_ids if row_id not in self._index]
        if unknown:
            raise KeyError(f"Unknown row id(s): {', '.join(unknown)}")
        self._selected = row_ids

    def get_selected_rows(self) -> List[Row]:
        return [self.find(row_id) for row_id in self._selected]

    def save_row(self, row: Row):
        if row.row_id not in self._index:
            raise KeyError(f"Row {row.row_id} does not belong to this store")
        if row.dirty_fields:
            logger.debug(f"Saving {row.label}: {sorted(row.dirty_fields)}")
        self.saves[row.row_id] = self.saves.get(row.row_id, 0) + 1
        row.mark_clean()
