# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Row Checks - Error and warning checks used by the validation gate

Every check takes a row and returns a message when the row violates it,
None otherwise. Checks that need collaborators (group names, route lookups)
are built with a ``make_*`` factory.
"""
import logging
import re
from typing import Callable, Dict, Optional, Sequence

import config
from models import Row
from remote.id_resolver import is_public_route_url

logger = logging.getLogger(__name__)

# =============================================================================
# STATE CHECKS
# =============================================================================


def scheduled(row: Row) -> Optional[str]:
    if row.is_scheduled:
        return "This ride has already been scheduled"
    return None


def unscheduled(row: Row) -> Optional[str]:
    if not row.is_scheduled:
        return "Ride has not been scheduled"
    return None


def cancelled(row: Row) -> Optional[str]:
    if row.is_cancelled:
        return "Operation not permitted on cancelled ride"
    return None


def not_cancelled(row: Row) -> Optional[str]:
    if not row.is_cancelled:
        return "Operation not permitted when ride is not cancelled"
    return None


def make_managed_name_re(group_names: Sequence[str]):
    groups = '|'.join(re.escape(g) for g in group_names)
    return re.compile(
        r'^(?P<cancelled>(CANCELLED: )?)'
        r'(?P<meta>[MTWFS][a-z]{2} (' + groups + r') \(\d{1,2}/\d{1,2} \d\d:\d\d( [AP]M)?\) ?)'
        r'(?P<suffix>.*$)'
    )


def is_managed_ride_name(name: str, group_names: Sequence[str]) -> bool:
    """An empty name counts as managed (nothing has been scheduled yet)"""
    return not name or bool(make_managed_name_re(group_names).match(name))


def make_unmanaged_ride(group_names: Optional[Sequence[str]] = None):
    group_names = list(group_names or config.GROUP_NAMES)

    def unmanaged_ride(row: Row) -> Optional[str]:
        if not is_managed_ride_name(row.ride_name, group_names):
            return "Ride is unmanaged"
        return None

    return unmanaged_ride

# =============================================================================
# FIELD CHECKS
# =============================================================================


def no_start_date(row: Row) -> Optional[str]:
    if row.start_date is None:
        return "No Start Date"
    return None


def no_start_time(row: Row) -> Optional[str]:
    if row.start_time is None:
        return "No Start Time"
    return None


def make_group_check(group_names: Optional[Sequence[str]] = None):
    group_names = list(group_names or config.GROUP_NAMES)

    def no_group(row: Row) -> Optional[str]:
        if not row.group:
            return "Group column is empty"
        if row.group not in group_names:
            return f"Unknown group: '{row.group}'. Expected one of {', '.join(group_names)}"
        return None

    return no_group

# =============================================================================
# ROUTE CHECKS
# =============================================================================


def make_bad_route(get_route: Callable[[str], Dict]):
    """
    Args:
        get_route: Fetches route metadata for a URL, raising on failure
    """
    def bad_route(row: Row) -> Optional[str]:
        if not row.route_url:
            return "No route url"
        if not is_public_route_url(row.route_url):
            return "Route URL doesn't match the pattern 'https://ridewithgps.com/routes/DIGITS'"
        try:
            get_route(row.route_url)
        except Exception as e:
            return str(e) or "Unknown issue with Route URL"
        return None

    return bad_route


def make_foreign_route(get_route: Callable[[str], Dict], club_user_id: Optional[int] = None):
    club_user_id = config.CLUB_USER_ID if club_user_id is None else club_user_id

    def foreign_route(row: Row) -> Optional[str]:
        if not row.route_url:
            return None  # reported by bad_route
        try:
            route = get_route(row.route_url)
        except Exception as e:
            return str(e) or "Unknown issue with Route URL"
        if route.get('user_id') != club_user_id:
            return "Route is not owned by the club"
        return None

    return foreign_route


def make_route_inaccessible_or_owned_by_club(
    fetch_route: Callable[[str], tuple],
    club_user_id: Optional[int] = None
):
    """
    Check used before importing a foreign route

    Args:
        fetch_route: Returns (status_code, body) for a route URL without raising
            on HTTP errors
    """
    club_user_id = config.CLUB_USER_ID if club_user_id is None else club_user_id

    def route_inaccessible_or_owned_by_club(row: Row) -> Optional[str]:
        url = row.route_url or row.route_ref.name
        if not url:
            return f"No Route URL in {row.label}. Are you sure you've selected the right row?"
        try:
            status_code, body = fetch_route(url)
        except Exception as e:
            logger.error(f"Route URL error for {url}: {e}")
            return "Unknown issue with Route URL - please check it and try again"

        if status_code == 200:
            if (body or {}).get('user_id') == club_user_id:
                return "Route is owned by the club"
            return None
        if status_code == 403:
            return "Route URL does not have public access"
        if status_code == 404:
            return "This route cannot be found on the server"
        return "Unknown issue with Route URL"

    return route_inaccessible_or_owned_by_club

# =============================================================================
# WARNING CHECKS
# =============================================================================


def no_ride_leader(row: Row) -> Optional[str]:
    if not row.leaders:
        return f"Ride Leader will default to '{config.RIDE_LEADER_TBD_NAME}'"
    return None


def no_location(row: Row) -> Optional[str]:
    # Unresolved lookups show up as '#N/A', '#VALUE!' and so on
    if not row.location or row.location.startswith('#'):
        return "Unknown location"
    return None


def no_address(row: Row) -> Optional[str]:
    if not row.address or row.address.startswith('#'):
        return "Unknown address"
    return None


def make_inappropriate_group(
    get_route_metrics: Callable[[str], Dict],
    group_specs: Dict[str, Dict[str, float]]
):
    """
    Warn when a route's distance or climbing does not suit the group

    Args:
        get_route_metrics: Returns {'distance_miles', 'elevation_feet'} for a route URL
        group_specs: Per group MIN_LENGTH/MAX_LENGTH/MIN_ELEVATION_GAIN/MAX_ELEVATION_GAIN
    """
    def inappropriate_group(row: Row) -> Optional[str]:
        if not row.group or not row.route_url:
            return None
        specs = group_specs.get(row.group)
        if not specs:
            return f"Unknown group: {row.group}"
        try:
            metrics = get_route_metrics(row.route_url)
        except Exception as e:
            logger.warning(f"Could not load route metrics for {row.label}: {e}")
            return None

        elevation = metrics.get('elevation_feet', 0)
        distance = metrics.get('distance_miles', 0)
        group = row.group

        if specs.get('MIN_ELEVATION_GAIN') and elevation < specs['MIN_ELEVATION_GAIN']:
            return (f"Elevation gain ({elevation}') too low for {group} group "
                    f"(must be at least {specs['MIN_ELEVATION_GAIN']}')")
        if specs.get('MAX_ELEVATION_GAIN') and elevation > specs['MAX_ELEVATION_GAIN']:
            return (f"Elevation gain ({elevation}') too great for {group} group "
                    f"(must be no more than {specs['MAX_ELEVATION_GAIN']}')")
        if specs.get('MIN_LENGTH') and distance < specs['MIN_LENGTH']:
            return (f"Distance ({distance} miles) too short for {group} group "
                    f"(must be at least {specs['MIN_LENGTH']} miles)")
        if specs.get('MAX_LENGTH') and distance > specs['MAX_LENGTH']:
            return (f"Distance ({distance} miles) too long for {group} group "
                    f"(must be no more than {specs['MAX_LENGTH']} miles)")
        return None

    return inappropriate_group
