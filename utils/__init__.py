"""
Shared utilities: clock and time formatting, backoff policy, structured logging
"""
from utils.timezone import SystemClock, FixedClock, format_local_time, utc_now
from utils.retry import calculate_next_retry, is_expired
from utils.logger import StructuredLogger, JsonFormatter, configure_logging

__all__ = [
    'SystemClock',
    'FixedClock',
    'format_local_time',
    'utc_now',
    'calculate_next_retry',
    'is_expired',
    'StructuredLogger',
    'JsonFormatter',
    'configure_logging',
]
