# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Request Builder - Prepare single and batched outbound requests with auth headers
"""
import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

import config
from models import AuthContext, RemoteRequest
from remote.errors import BatchRequestError, InvalidRequestError, UnsupportedAuthModeError
from remote.id_resolver import extract_id

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)
TAG_ACTIONS = ('add', 'remove')
RESOURCE_KINDS = ('event', 'route')
HTTP_METHODS = ('get', 'post', 'put', 'patch', 'delete')


def build_auth_headers(auth_mode: Optional[str], credentials: Optional[Dict[str, str]]) -> Dict[str, str]:
    """
    Build the authentication headers for a mode

    Args:
        auth_mode: 'basic_auth', 'web_session', or None for a public request
        credentials: {'api_key', 'auth_token'} or {'cookie'}

    Returns:
        Headers to merge into the request
    """
    if auth_mode is None:
        return {}

    credentials = credentials or {}

    if auth_mode == 'basic_auth':
        api_key = credentials.get('api_key')
        auth_token = credentials.get('auth_token')
        if not api_key or not auth_token:
            raise InvalidRequestError("basic_auth requires api_key and auth_token")
        encoded = base64.b64encode(f"{api_key}:{auth_token}".encode('utf-8')).decode('ascii')
        return {'Authorization': f"Basic {encoded}"}

    if auth_mode == 'web_session':
        cookie = credentials.get('cookie')
        if not cookie:
            raise InvalidRequestError("web_session requires a session cookie; log in first")
        return {'Cookie': cookie, 'User-Agent': BROWSER_USER_AGENT}

    raise UnsupportedAuthModeError(auth_mode)


def _request_problem(request: Any) -> Optional[str]:
    """Describe what is wrong with a raw request, or None if it is usable"""
    if request is None:
        return "request is required"
    if not isinstance(request, dict):
        return f"request must be a mapping, got {type(request).__name__}"
    if not request.get('url'):
        return "request has no url"
    method = request.get('method')
    if method and str(method).lower() not in HTTP_METHODS:
        return f"unsupported HTTP method: {method}"
    headers = request.get('headers')
    if headers is not None and not isinstance(headers, dict):
        return "request headers must be a mapping"
    return None


class RequestBuilder:
    """Prepares RemoteRequest values; holds no credentials of its own"""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or config.REMOTE_BASE_URL).rstrip('/')

    def prepare_request(
        self,
        request: Optional[Dict[str, Any]],
        auth_mode: Optional[str],
        credentials: Optional[Dict[str, str]] = None
    ) -> RemoteRequest:
        """
        Prepare a single request

        The HTTP method defaults to 'post' when there is a payload and 'get'
        otherwise. Headers supplied on the request are kept; auth headers win.
        """
        problem = _request_problem(request)
        if problem:
            raise InvalidRequestError(problem)

        auth_headers = build_auth_headers(auth_mode, credentials)

        payload = request.get('payload')
        method = request.get('method') or ('post' if payload else 'get')

        headers = dict(request.get('headers') or {})
        headers.update(auth_headers)

        return RemoteRequest(
            url=request['url'],
            method=str(method).lower(),
            headers=headers,
            payload=dict(payload) if isinstance(payload, dict) else payload,
        )

    def prepare_with_context(self, request: Optional[Dict[str, Any]], context: Optional[AuthContext]) -> RemoteRequest:
        if context is None:
            return self.prepare_request(request, None)
        return self.prepare_request(request, context.mode, context.credentials)

    def prepare_batch_requests(
        self,
        requests: Sequence[Optional[Dict[str, Any]]],
        context: Optional[AuthContext],
        defaults: Optional[Dict[str, Any]] = None
    ) -> List[RemoteRequest]:
        """
        Prepare every request in a batch, or none of them

        Every entry is checked before anything is built; if any entry is
        malformed a BatchRequestError naming each bad index is raised.

        Args:
            requests: Raw request mappings
            context: Auth context applied to every entry (None for public)
            defaults: Options merged under each entry (entry keys win)
        """
        if requests is None:
            raise InvalidRequestError("requests is required")

        merged = [
            {**(defaults or {}), **request} if isinstance(request, dict) else request
            for request in requests
        ]

        failures = []
        for index, request in enumerate(merged):
            problem = _request_problem(request)
            if problem:
                failures.append((index, problem))
        if failures:
            raise BatchRequestError(failures)

        prepared = [self.prepare_with_context(request, context) for request in merged]
        logger.debug(f"Prepared batch of {len(prepared)} request(s)")
        return prepared

    def prepare_batch_update_tags(
        self,
        urls: Sequence[str],
        action: str,
        tags: Sequence[str],
        resource_kind: str,
        context: Optional[AuthContext]
    ) -> RemoteRequest:
        """
        Prepare one request that adds or removes tags on many resources

        URLs whose id cannot be resolved are skipped (and logged).
        """
        if action not in TAG_ACTIONS:
            raise InvalidRequestError(f"Invalid tag action: {action!r}")
        if resource_kind not in RESOURCE_KINDS:
            raise InvalidRequestError(f"Invalid resource kind: {resource_kind!r}")
        if isinstance(tags, str):
            tags = [tags]
        if not tags:
            raise InvalidRequestError("At least one tag is required")

        ids = []
        for url in urls or []:
            resource_id = extract_id(url)
            if resource_id is None:
                logger.warning(f"Skipping unresolvable {resource_kind} URL in tag update: {url!r}")
                continue
            ids.append(resource_id)

        if not ids:
            raise InvalidRequestError(f"No resolvable {resource_kind} URLs for tag update")

        payload = {
            'tag_action': action,
            'tag_names': ','.join(tags),
            f'{resource_kind}_ids': ','.join(ids),
        }
        request = {
            'url': f"{self.base_url}/{resource_kind}s/batch_update_tags.json",
            'method': 'post',
            'payload': payload,
        }
        return self.prepare_with_context(request, context)

    def prepare_delete_requests(
        self,
        urls: Sequence[str],
        resource_kind: str,
        context: Optional[AuthContext]
    ) -> List[RemoteRequest]:
        """Prepare DELETE requests for many events or routes (all or nothing)"""
        if resource_kind not in RESOURCE_KINDS:
            raise InvalidRequestError(f"Invalid resource kind: {resource_kind!r}")

        raw = []
        failures = []
        for index, url in enumerate(urls or []):
            resource_id = extract_id(url)
            if resource_id is None:
                failures.append((index, f"cannot resolve {resource_kind} id from {url!r}"))
                continue
            raw.append({
                'url': f"{self.base_url}/api/v1/{resource_kind}s/{resource_id}.json",
                'method': 'delete',
            })
        if failures:
            raise BatchRequestError(failures)

        return self.prepare_batch_requests(raw, context)
