# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Remote Transport - Send prepared requests to the scheduling service
"""
import json
import logging
import time
from typing import Any, Dict, List, NamedTuple, Optional

import requests

import config
from models import RemoteRequest
from remote.errors import RemoteTransientFailure, error_for_status
from utils.logger import StructuredLogger, redact_headers

logger = logging.getLogger(__name__)


class RemoteResponse(NamedTuple):
    status_code: int
    body: Any
    headers: Optional[Dict[str, str]] = None

    def json(self):
        if isinstance(self.body, (dict, list)):
            return self.body
        return json.loads(self.body)


class RemoteTransport:
    """Abstract transport - to be implemented by subclasses"""

    def send(self, request: RemoteRequest) -> RemoteResponse:
        raise NotImplementedError

    def send_all(self, requests_: List[RemoteRequest]) -> List[RemoteResponse]:
        """Send a prepared batch in order; the first failure propagates"""
        return [self.send(request) for request in requests_]


class RequestsTransport(RemoteTransport):
    """Transport backed by a requests.Session"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[int] = None):
        self.session = session or requests.Session()
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.structured_logger = StructuredLogger(__name__)

    def send(self, request: RemoteRequest) -> RemoteResponse:
        """
        Send one request

        Raises:
            RemoteTransientFailure: connection error, timeout, 5xx or 429
            RemotePermanentFailure: any other non-2xx/3xx status
        """
        kwargs = {
            'headers': dict(request.headers),
            'timeout': self.timeout,
            'allow_redirects': False,
        }
        if request.payload is not None:
            content_type = request.headers.get('Content-Type', '')
            if 'application/json' in content_type:
                kwargs['json'] = request.payload
            else:
                kwargs['data'] = request.payload

        logger.debug(f"{request.method.upper()} {request.url} headers={redact_headers(request.headers)}")

        start = time.time()
        try:
            response = self.session.request(request.method.upper(), request.url, **kwargs)
        except requests.exceptions.Timeout as e:
            self.structured_logger.log_api_call(request.method, request.url, error=f"timeout: {e}")
            raise RemoteTransientFailure(f"Request to {request.url} timed out") from e
        except requests.exceptions.ConnectionError as e:
            self.structured_logger.log_api_call(request.method, request.url, error=f"connection: {e}")
            raise RemoteTransientFailure(f"Connection error while calling {request.url}") from e

        duration_ms = (time.time() - start) * 1000
        self.structured_logger.log_api_call(request.method, request.url, response.status_code, duration_ms)

        body = self._parse_body(response)
        if response.status_code >= 400:
            raise error_for_status(response.status_code, body, request.url)

        return RemoteResponse(response.status_code, body, dict(response.headers))

    @staticmethod
    def _parse_body(response):
        try:
            return response.json()
        except ValueError:
            return response.text
