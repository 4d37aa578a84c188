# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Error taxonomy for remote request preparation and execution
"""
from typing import Any, Dict, List, Optional, Tuple

import requests

TRANSIENT_STATUS_CODES = {408, 429}


class RideSyncError(Exception):
    """Base class for all errors raised by the sync core"""


class InvalidRequestError(RideSyncError, ValueError):
    """Malformed input to request preparation; never retried"""


class BatchRequestError(InvalidRequestError):
    """One or more entries of a batch were malformed; nothing was prepared"""

    def __init__(self, failures: List[Tuple[int, str]]):
        self.failures = list(failures)
        details = "; ".join(f"[{index}] {message}" for index, message in self.failures)
        super().__init__(f"{len(self.failures)} malformed request(s) in batch: {details}")


class UnsupportedAuthModeError(RideSyncError):
    """Unknown authentication mode; a configuration error, never retried"""

    def __init__(self, mode):
        self.mode = mode
        super().__init__(f"Unsupported auth mode: {mode!r}")


class RemoteError(RideSyncError):
    """
    A remote call failed

    ``operation`` optionally carries the queue operation that would redo the
    failed mutation, so callers can hand it to the retry queue.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        operation: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.operation = operation


class RemoteTransientFailure(RemoteError):
    """Network error, timeout or 5xx; eligible for the retry queue"""


class RemotePermanentFailure(RemoteError):
    """A 4xx-class rejection; retrying will not help"""


class UnknownOperationError(RideSyncError):
    """A queued operation type has no registered handler"""


def is_transient_status(status_code: Optional[int]) -> bool:
    if status_code is None:
        return True
    return status_code >= 500 or status_code in TRANSIENT_STATUS_CODES


def error_for_status(status_code: int, body: Any, url: str) -> RemoteError:
    """Build the right failure class for an unsuccessful HTTP status"""
    message = f"Remote call to {url} failed with status {status_code}"
    if is_transient_status(status_code):
        return RemoteTransientFailure(message, status_code=status_code, body=body)
    return RemotePermanentFailure(message, status_code=status_code, body=body)


def is_transient(error: BaseException) -> bool:
    """Classify an arbitrary exception raised by a remote call"""
    if isinstance(error, RemoteTransientFailure):
        return True
    if isinstance(error, (RemotePermanentFailure, InvalidRequestError, UnsupportedAuthModeError)):
        return False
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(error, TimeoutError):
        return True
    return False
