# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Id Resolver - Extract canonical resource ids from free-form resource URLs
"""
import re
from typing import Optional

# The id must be followed by a slug, a path/extension separator or the end
RESOURCE_ID_RE = re.compile(r'/(?:events|routes)/(\d+)(?=$|[-/.?#])')
EVENT_URL_RE = re.compile(r'^https://ridewithgps\.com/events/\d+[^/]*$')
ROUTE_URL_RE = re.compile(r'^https://ridewithgps\.com/routes/\d+$')


def extract_id(url) -> Optional[str]:
    """
    Extract the numeric id from an event or route URL

    ``https://ridewithgps.com/events/403834-some-title`` -> ``"403834"``

    Returns None for anything that does not contain such a path; never raises.
    """
    if not isinstance(url, str) or not url:
        return None
    match = RESOURCE_ID_RE.search(url)
    return match.group(1) if match else None


def is_public_event_url(url) -> bool:
    return isinstance(url, str) and bool(EVENT_URL_RE.match(url))


def is_public_route_url(url) -> bool:
    return isinstance(url, str) and bool(ROUTE_URL_RE.match(url))
