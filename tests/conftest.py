"""
Shared fixtures for the ride schedule sync tests
"""
import os
import sys
from datetime import date, datetime, time

import pytest
import pytz

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import Link, Row
from sync.notifier import Notifier
from sync.queue_store import InMemoryQueuePersistence
from utils.timezone import FixedClock

T0 = datetime(2026, 1, 10, 16, 0, tzinfo=pytz.UTC)


class RecordingNotifier(Notifier):
    """Notifier that remembers every call and answers confirmations with ``answer``"""

    def __init__(self, answer: bool = True):
        self.answer = answer
        self.confirmations = []
        self.messages = []
        self.summaries = []

    def confirm(self, message):
        self.confirmations.append(message)
        return self.answer

    def show_message(self, message):
        self.messages.append(message)

    def show_summary(self, rows):
        self.summaries.append(list(rows))


def make_row(**overrides) -> Row:
    """A row that passes every scheduling check unless overridden"""
    data = {
        'start_date': date(2026, 1, 17),
        'start_time': time(9, 0),
        'group': 'A',
        'route_ref': Link('https://ridewithgps.com/routes/123', 'Skyline Loop'),
        'ride_ref': Link(),
        'leaders': ['Alice'],
        'location': 'Civic Center',
        'address': '1 Main St',
    }
    data.update(overrides)
    return Row(**data)


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def persistence():
    return InMemoryQueuePersistence()


@pytest.fixture
def notifier():
    return RecordingNotifier()
