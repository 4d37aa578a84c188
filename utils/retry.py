# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Retry Utilities - Two-phase backoff policy for queued remote operations

Retry Strategy:
- First hour after enqueue: every 5 minutes
- After that: every hour
- At 48 hours after enqueue: give up (expired)

The schedule depends only on the age of the item, never on how many
attempts have been made.
"""
from datetime import datetime, timedelta
from typing import Optional

FIRST_RETRY_DELAY = timedelta(minutes=5)
FAST_PHASE_INTERVAL = timedelta(minutes=5)
FAST_PHASE_DURATION = timedelta(hours=1)
SLOW_PHASE_INTERVAL = timedelta(hours=1)
MAX_RETRY_AGE = timedelta(hours=48)


def item_age(enqueued_at: datetime, now: datetime) -> timedelta:
    """Time elapsed since the item was first enqueued"""
    return now - enqueued_at


def is_expired(enqueued_at: datetime, now: datetime) -> bool:
    """True once the item is at or past the retry ceiling"""
    return item_age(enqueued_at, now) >= MAX_RETRY_AGE


def first_retry_at(enqueued_at: datetime) -> datetime:
    """When a freshly enqueued item is first due"""
    return enqueued_at + FIRST_RETRY_DELAY


def calculate_next_retry(enqueued_at: datetime, now: datetime) -> Optional[datetime]:
    """
    Calculate the next retry time after a failure observed at ``now``

    Args:
        enqueued_at: When the item was originally enqueued
        now: When the failure was recorded

    Returns:
        The next retry time, or None if the item has expired
    """
    if is_expired(enqueued_at, now):
        return None

    if item_age(enqueued_at, now) < FAST_PHASE_DURATION:
        return now + FAST_PHASE_INTERVAL

    return now + SLOW_PHASE_INTERVAL
