import json
import logging
import re
import time
from typing import Any, Callable, Dict, NoReturn, Optional, Sequence, Tuple

import requests

from ..utils.exceptions import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    ResponseError,
    TransportError,
)
from ..utils.rate_limiter import RateLimiter
from .platforms import Platform

logger = logging.getLogger(__name__)

# Rate limiting on mk.io lasts about a minute; the schedule spans more than two.
BACKOFF_SCHEDULE: Tuple[float, ...] = (1, 5, 10, 15, 25, 30, 45)

EXPECTED_STATUS: Dict[str, Tuple[int, ...]] = {
    "GET": (200,),
    "PUT": (200, 201),
    "POST": (200, 201),
    "DELETE": (200, 204),
}

DEFAULT_TIMEOUT = 30

_XML_CODE_PATTERN = re.compile(r"<(?:\w+:)?[cC]ode>\s*(\w+)\s*</(?:\w+:)?[cC]ode>")


def extract_error_code(body: str) -> Optional[str]:
    """Pull the vendor error code out of a JSON or XML error body."""
    if not body:
        return None

    try:
        raw = json.loads(body)
    except ValueError:
        raw = None

    if isinstance(raw, dict):
        for wrapper in ("error", "odata.error"):
            if wrapper in raw:
                raw = raw[wrapper]
                break
        if isinstance(raw, dict):
            code = raw.get("code")
            if isinstance(code, str) and code:
                return code
        return None

    match = _XML_CODE_PATTERN.search(body)
    if match:
        return match.group(1)
    return None


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class TransportClient:
    """Sends one request to a control plane and classifies the answer.

    Success is judged against the status codes expected for the verb. A 429
    response is retried following ``backoff_schedule``; any other failure status,
    and any network error, is raised immediately.
    """

    def __init__(
        self,
        platform: Platform,
        session: Optional[requests.Session] = None,
        backoff_schedule: Sequence[float] = BACKOFF_SCHEDULE,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not backoff_schedule:
            raise ValueError("backoff_schedule must contain at least one entry")
        self._platform = platform
        self._session = session or requests.Session()
        self._backoff_schedule = tuple(backoff_schedule)
        self._timeout = timeout
        self._rate_limiter = rate_limiter
        self._sleep = sleep

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def backoff_schedule(self) -> Tuple[float, ...]:
        return self._backoff_schedule

    @staticmethod
    def _handle_response_error(
        method: str, url: str, response: requests.Response
    ) -> NoReturn:
        status = response.status_code
        body = response.text or ""
        error_code = extract_error_code(body)
        message = (
            f"{method} {url}: RESPONSE {status}; "
            f"ERROR CODE: {error_code or 'UNAVAILABLE'}; {body or 'no body'}"
        )

        if status == 404:
            raise NotFoundError(
                message,
                status_code=status,
                error_code=error_code,
                method=method,
                url=url,
                body=body,
            )

        if status == 429:
            raise RateLimitError(
                message,
                status_code=status,
                error_code=error_code,
                method=method,
                url=url,
                body=body,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )

        raise ResponseError(
            message,
            status_code=status,
            error_code=error_code,
            method=method,
            url=url,
            body=body,
        )

    def _params_for(
        self, url: str, params: Optional[Dict[str, str]]
    ) -> Optional[Dict[str, str]]:
        # continuation links already carry their full query string
        if "?" in url:
            return params or None
        merged = dict(self._platform.default_params())
        if params:
            merged.update(params)
        return merged or None

    def request(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        method = method.upper()
        expected = EXPECTED_STATUS.get(method, (200,))
        query = self._params_for(url, params)
        attempts = len(self._backoff_schedule)

        for attempt, delay in enumerate(self._backoff_schedule, start=1):
            if self._rate_limiter is not None:
                self._rate_limiter.acquire()

            try:
                response = self._session.request(
                    method,
                    url,
                    headers=self._platform.headers(),
                    params=query,
                    json=body,
                    timeout=self._timeout,
                )
            except requests.exceptions.RequestException as e:
                raise TransportError(
                    f"{method} {url} failed: {e}", method=method, url=url
                ) from e

            if response.status_code in expected:
                return response

            if response.status_code == 429 and attempt < attempts:
                logger.warning(
                    "Rate limited on %s %s (attempt %d/%d), retrying in %.1fs",
                    method,
                    url,
                    attempt,
                    attempts,
                    delay,
                )
                self._sleep(delay)
                continue

            if response.status_code == 429:
                logger.error("Backoff schedule exhausted for %s %s", method, url)
            self._handle_response_error(method, url, response)

        raise TransportError(
            f"{method} {url} was not sent: empty backoff schedule", method=method, url=url
        )

    def request_json(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        response = self.request(method, url, body=body, params=params)
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise ResponseError(
                f"{method} {url}: response body is not valid JSON: {e}",
                status_code=response.status_code,
                method=method,
                url=url,
                body=response.text,
            ) from e
        if not isinstance(data, dict):
            raise ResponseError(
                f"{method} {url}: expected a JSON object, got {type(data).__name__}",
                status_code=response.status_code,
                method=method,
                url=url,
                body=response.text,
            )
        return data

    def check_connection(self) -> None:
        """Fail fast when the token is rejected, before any batch work starts."""
        url = self._platform.profile_url()
        try:
            self.request("GET", url)
        except ResponseError as e:
            if e.status_code in (401, 403):
                raise AuthenticationError(
                    f"{self._platform.name} rejected the access token ({e.status_code})",
                    provider=self._platform.name,
                ) from e
            raise
        logger.info("Connected to %s control plane", self._platform.name)
