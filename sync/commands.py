# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Commands - The row commands offered to users and the checks each one runs
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import config
from models import Row
from sync import checks
from sync.dispatcher import CommandDispatcher, DispatchResult, RowAction

logger = logging.getLogger(__name__)


class RideState(Enum):
    """Scheduling state of a row, derived from its ride reference"""
    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


def state_of(row: Row) -> RideState:
    if not row.is_scheduled:
        return RideState.UNSCHEDULED
    if row.is_cancelled:
        return RideState.CANCELLED
    return RideState.SCHEDULED


# command -> (states it may start from, state it leaves the row in)
TRANSITIONS = {
    'schedule': ({RideState.UNSCHEDULED}, RideState.SCHEDULED),
    'cancel': ({RideState.SCHEDULED}, RideState.CANCELLED),
    'reinstate': ({RideState.CANCELLED}, RideState.SCHEDULED),
    'update': ({RideState.SCHEDULED}, RideState.SCHEDULED),
    'unschedule': ({RideState.SCHEDULED, RideState.CANCELLED}, RideState.UNSCHEDULED),
}


def can_transition(row: Row, command: str) -> bool:
    allowed_from, _ = TRANSITIONS[command]
    return state_of(row) in allowed_from


class CommandSet:
    """
    Builds the check lists for each command and runs them through the dispatcher

    Args:
        dispatcher: Runs the gate-then-act protocol
        get_route: Route metadata lookup (raises when the route cannot be read)
        fetch_route: (status_code, body) lookup used by route import
        get_route_metrics: Distance/climbing lookup for the group-suitability warning
        group_specs: Per-group distance and climbing limits
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        get_route: Optional[Callable[[str], Dict]] = None,
        fetch_route: Optional[Callable[[str], tuple]] = None,
        get_route_metrics: Optional[Callable[[str], Dict]] = None,
        group_specs: Optional[Dict[str, Dict[str, float]]] = None,
        group_names: Optional[Sequence[str]] = None,
        club_user_id: Optional[int] = None
    ):
        self.dispatcher = dispatcher
        self.get_route = get_route
        self.fetch_route = fetch_route
        self.get_route_metrics = get_route_metrics
        self.group_specs = group_specs or {}
        self.group_names = list(group_names or config.GROUP_NAMES)
        self.club_user_id = config.CLUB_USER_ID if club_user_id is None else club_user_id

    # ------------------------------------------------------------------
    # Check lists
    # ------------------------------------------------------------------

    def _field_errors(self) -> List:
        error_checks = [
            checks.no_start_date,
            checks.no_start_time,
            checks.make_group_check(self.group_names),
        ]
        if self.get_route is not None:
            error_checks.append(checks.make_bad_route(self.get_route))
            error_checks.append(checks.make_foreign_route(self.get_route, self.club_user_id))
        return error_checks

    def _field_warnings(self) -> List:
        warning_checks = [checks.no_ride_leader, checks.no_location, checks.no_address]
        if self.get_route_metrics is not None and self.group_specs:
            warning_checks.append(checks.make_inappropriate_group(self.get_route_metrics, self.group_specs))
        return warning_checks

    def schedule_checks(self):
        errors = [checks.make_unmanaged_ride(self.group_names), checks.scheduled] + self._field_errors()
        return errors, self._field_warnings()

    def update_checks(self):
        errors = [checks.cancelled, checks.unscheduled,
                  checks.make_unmanaged_ride(self.group_names)] + self._field_errors()
        return errors, self._field_warnings()

    def cancel_checks(self):
        return [checks.cancelled, checks.unscheduled, checks.make_unmanaged_ride(self.group_names)], []

    def reinstate_checks(self):
        return [checks.not_cancelled], []

    def unschedule_checks(self):
        return [checks.unscheduled, checks.make_unmanaged_ride(self.group_names)], []

    def import_checks(self):
        if self.fetch_route is None:
            raise ValueError("Route import needs a fetch_route lookup")
        return [checks.make_route_inaccessible_or_owned_by_club(self.fetch_route, self.club_user_id)], []

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _run(self, name: str, verb: str, check_lists, rows, remote, action, force) -> DispatchResult:
        error_checks, warning_checks = check_lists
        logger.info(f"Running '{name}' on {len(rows)} row(s)")
        return self.dispatcher.process_rows(
            rows, error_checks, warning_checks, remote, action,
            force=force, command=name, verb=verb
        )

    def schedule_rows(self, rows: Sequence[Row], remote: Any, action: RowAction, force: bool = False):
        return self._run('schedule', 'scheduled', self.schedule_checks(), rows, remote, action, force)

    def update_rows(self, rows: Sequence[Row], remote: Any, action: RowAction, force: bool = False):
        return self._run('update', 'updated', self.update_checks(), rows, remote, action, force)

    def cancel_rows(self, rows: Sequence[Row], remote: Any, action: RowAction, force: bool = False):
        return self._run('cancel', 'cancelled', self.cancel_checks(), rows, remote, action, force)

    def reinstate_rows(self, rows: Sequence[Row], remote: Any, action: RowAction, force: bool = False):
        return self._run('reinstate', 'reinstated', self.reinstate_checks(), rows, remote, action, force)

    def unschedule_rows(self, rows: Sequence[Row], remote: Any, action: RowAction, force: bool = False):
        return self._run('unschedule', 'unscheduled', self.unschedule_checks(), rows, remote, action, force)

    def import_routes(self, rows: Sequence[Row], remote: Any, action: RowAction, force: bool = False):
        return self._run('import', 'imported', self.import_checks(), rows, remote, action, force)
