# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Data models for Ride Schedule Sync
"""
import json
import uuid
from datetime import date, datetime, time
from typing import Any, Dict, List, NamedTuple, Optional

import config
from remote.errors import InvalidRequestError, UnsupportedAuthModeError
from utils.retry import first_retry_at
from utils.timezone import ensure_utc

# =============================================================================
# ROWS
# =============================================================================


class Link(NamedTuple):
    """A hyperlink cell: target URL plus display text"""
    url: str = ''
    name: str = ''

    def __bool__(self):
        return bool(self.url)


class Row:
    """
    One unit of schedulable work (one ride instance)

    ``row_id`` is assigned at creation and never changes; ``row_num`` is the
    current display position and is maintained by the owning store.
    ``errors`` and ``warnings`` are transient and only meaningful during a
    command.
    """

    FIELDS = ('start_date', 'start_time', 'group', 'route_ref', 'ride_ref',
              'leaders', 'location', 'address')

    def __init__(
        self,
        row_id: Optional[str] = None,
        start_date: Optional[date] = None,
        start_time: Optional[time] = None,
        group: str = '',
        route_ref: Optional[Link] = None,
        ride_ref: Optional[Link] = None,
        leaders: Optional[List[str]] = None,
        location: str = '',
        address: str = '',
        row_num: Optional[int] = None,
        store=None
    ):
        self.row_id = row_id or str(uuid.uuid4())
        self.start_date = start_date
        self.start_time = start_time
        self.group = group or ''
        self.route_ref = route_ref or Link()
        self.ride_ref = ride_ref or Link()
        self.leaders = list(leaders or [])
        self.location = location or ''
        self.address = address or ''
        self.row_num = row_num
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self._store = store
        self._dirty = set()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], store=None) -> 'Row':
        route_ref = data.get('route_ref')
        ride_ref = data.get('ride_ref')
        return cls(
            row_id=data.get('row_id'),
            start_date=data.get('start_date'),
            start_time=data.get('start_time'),
            group=data.get('group', ''),
            route_ref=Link(*route_ref) if isinstance(route_ref, (tuple, list)) else route_ref,
            ride_ref=Link(*ride_ref) if isinstance(ride_ref, (tuple, list)) else ride_ref,
            leaders=data.get('leaders'),
            location=data.get('location', ''),
            address=data.get('address', ''),
            store=store,
        )

    @property
    def route_url(self) -> str:
        return self.route_ref.url

    @property
    def ride_url(self) -> str:
        return self.ride_ref.url

    @property
    def ride_name(self) -> str:
        return self.ride_ref.name

    @property
    def is_scheduled(self) -> bool:
        """A row is scheduled exactly when it carries a ride reference"""
        return bool(self.ride_ref.url)

    @property
    def is_cancelled(self) -> bool:
        return self.ride_name.lower().startswith('cancelled')

    @property
    def label(self) -> str:
        """How the row is named in user-facing messages"""
        if self.row_num is not None:
            return f"Row {self.row_num}"
        return f"Row {self.row_id[:8]}"

    @property
    def dirty_fields(self) -> set:
        return set(self._dirty)

    def set_field(self, name: str, value: Any):
        """Set a tracked field and mark it dirty"""
        if name not in self.FIELDS:
            raise AttributeError(f"Unknown row field: {name}")
        if name in ('route_ref', 'ride_ref') and not isinstance(value, Link):
            value = Link(*value) if isinstance(value, (tuple, list)) else Link(value or '')
        setattr(self, name, value)
        self._dirty.add(name)

    def mark_clean(self):
        self._dirty.clear()

    def clear_ride(self):
        """Drop the remote reference; the row becomes unscheduled"""
        self.set_field('ride_ref', Link())

    def save(self):
        """Persist dirty fields through the owning store"""
        if self._store is None:
            raise RuntimeError(f"{self.label} is not attached to a row store")
        self._store.save_row(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'row_id': self.row_id,
            'row_num': self.row_num,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'group': self.group,
            'route_ref': tuple(self.route_ref),
            'ride_ref': tuple(self.ride_ref),
            'leaders': list(self.leaders),
            'location': self.location,
            'address': self.address,
        }

    def __repr__(self):
        return f"<Row {self.row_id[:8]} num={self.row_num} ride={self.ride_url!r}>"


class ValidationResult(NamedTuple):
    """Outcome of running the gate over one row"""
    errors: List[str]
    warnings: List[str]

    @property
    def is_blocked(self) -> bool:
        return bool(self.errors)

    @property
    def is_warned(self) -> bool:
        return not self.errors and bool(self.warnings)

    @property
    def is_clean(self) -> bool:
        return not self.errors and not self.warnings


# =============================================================================
# REMOTE REQUESTS
# =============================================================================


class RemoteRequest(NamedTuple):
    """A fully prepared outbound call"""
    url: str
    method: str
    headers: Dict[str, str]
    payload: Optional[Dict[str, Any]] = None


AUTH_MODES = ('basic_auth', 'web_session')


class AuthContext:
    """
    Explicit credential bundle threaded through request preparation

    Exactly one of the supported variants:
        AuthContext('basic_auth', {'api_key': ..., 'auth_token': ...})
        AuthContext('web_session', {'cookie': ...})
    """

    REQUIRED = {
        'basic_auth': ('api_key', 'auth_token'),
        'web_session': ('cookie',),
    }

    def __init__(self, mode: str, credentials: Dict[str, str]):
        if mode not in self.REQUIRED:
            raise UnsupportedAuthModeError(mode)

        credentials = dict(credentials or {})
        missing = [key for key in self.REQUIRED[mode] if not credentials.get(key)]
        if missing:
            raise InvalidRequestError(f"{mode} credentials missing: {', '.join(missing)}")

        self._mode = mode
        self._credentials = credentials

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def credentials(self) -> Dict[str, str]:
        return dict(self._credentials)

    @classmethod
    def basic_auth(cls, api_key: str, auth_token: str) -> 'AuthContext':
        return cls('basic_auth', {'api_key': api_key, 'auth_token': auth_token})

    @classmethod
    def web_session(cls, cookie: str) -> 'AuthContext':
        return cls('web_session', {'cookie': cookie})

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, str]]) -> 'AuthContext':
        """Build from the tagged form ``{'basic_auth': {...}}``"""
        if not isinstance(data, dict) or len(data) != 1:
            raise UnsupportedAuthModeError(str(data))
        mode, credentials = next(iter(data.items()))
        return cls(mode, credentials)

    @classmethod
    def from_config(cls) -> 'AuthContext':
        if config.AUTH_MODE == 'web_session':
            return cls.web_session(config.RWGPS_SESSION_COOKIE)
        if config.AUTH_MODE == 'basic_auth':
            return cls.basic_auth(config.RWGPS_API_KEY, config.RWGPS_AUTH_TOKEN)
        raise UnsupportedAuthModeError(config.AUTH_MODE)

    def __eq__(self, other):
        return (isinstance(other, AuthContext)
                and self._mode == other._mode
                and self._credentials == other._credentials)

    def __repr__(self):
        # Credentials are deliberately not shown
        return f"<AuthContext {self._mode}>"


# =============================================================================
# RETRY QUEUE ITEMS
# =============================================================================


class QueueItem:
    """A durably persisted retry unit"""

    def __init__(
        self,
        id: str,
        operation_type: str,
        operation_params: Optional[Dict[str, Any]],
        enqueued_at: datetime,
        next_retry_at: Optional[datetime] = None,
        attempt_count: int = 0,
        last_error: Optional[str] = None,
        ride_url: str = '',
        ride_title: str = '',
        row_id: str = '',
        user_email: str = '',
        status: str = 'pending'
    ):
        self.id = id
        self.operation_type = operation_type
        self.operation_params = dict(operation_params or {})
        self.enqueued_at = ensure_utc(enqueued_at)
        self.next_retry_at = ensure_utc(next_retry_at) if next_retry_at else first_retry_at(self.enqueued_at)
        self.attempt_count = attempt_count
        self.last_error = last_error
        self.ride_url = ride_url or ''
        self.ride_title = ride_title or ''
        self.row_id = row_id or ''
        self.user_email = user_email or ''
        self.status = status

    @classmethod
    def from_operation(cls, operation: Dict[str, Any], item_id: str, now: datetime) -> 'QueueItem':
        """
        Create a new item from an operation description

        Recognised keys are ``type``, ``params``, ``ride_url``, ``ride_title``,
        ``row_id`` and ``user_email``; any other key is folded into the params.
        """
        if not operation or not operation.get('type'):
            raise ValueError("Operation must have a 'type'")

        known = {'type', 'params', 'ride_url', 'ride_title', 'row_id', 'user_email'}
        params = dict(operation.get('params') or {})
        params.update({k: v for k, v in operation.items() if k not in known})

        return cls(
            id=item_id,
            operation_type=operation['type'],
            operation_params=params,
            enqueued_at=now,
            ride_url=operation.get('ride_url', ''),
            ride_title=operation.get('ride_title', ''),
            row_id=operation.get('row_id', ''),
            user_email=operation.get('user_email', ''),
        )

    def copy(self) -> 'QueueItem':
        return QueueItem(**self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'operation_type': self.operation_type,
            'operation_params': json.loads(json.dumps(self.operation_params)),
            'enqueued_at': self.enqueued_at,
            'next_retry_at': self.next_retry_at,
            'attempt_count': self.attempt_count,
            'last_error': self.last_error,
            'ride_url': self.ride_url,
            'ride_title': self.ride_title,
            'row_id': self.row_id,
            'user_email': self.user_email,
            'status': self.status,
        }

    def __eq__(self, other):
        return isinstance(other, QueueItem) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"<QueueItem {self.id} {self.operation_type} attempts={self.attempt_count} "
                f"next={self.next_retry_at.isoformat()}>")
