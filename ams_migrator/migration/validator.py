import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from ..clients.models import StreamingEndpoint, StreamingLocator
from ..clients.resources import ResourceClients
from ..clients.transport import DEFAULT_TIMEOUT
from ..utils.exceptions import MigratorError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    endpoint: str
    validated: int = 0
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Validator:
    """Checks that imported streaming locators play from a Running endpoint.

    Only reads from mk.io and issues plain GETs against the playback URLs.
    """

    def __init__(
        self,
        clients: ResourceClients,
        endpoint_name: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._clients = clients
        self._endpoint_name = endpoint_name
        self._session = session or requests.Session()
        self._timeout = timeout

    def select_endpoint(self) -> StreamingEndpoint:
        if self._endpoint_name:
            endpoint = self._clients.streaming_endpoints.get(self._endpoint_name)
            if not endpoint.is_running:
                raise ValidationError(
                    f"StreamingEndpoint {endpoint.name} is not Running "
                    f"(state: {endpoint.resource_state})"
                )
        else:
            running = sorted(
                (e for e in self._clients.streaming_endpoints.list() if e.is_running),
                key=lambda e: e.name,
            )
            if not running:
                raise ValidationError("No Running StreamingEndpoint found for testing")
            endpoint = running[0]

        if not endpoint.host_name:
            raise ValidationError(
                f"StreamingEndpoint {endpoint.name} has no host name to test against"
            )
        logger.info("Found StreamingEndpoint for testing: %s", endpoint.name)
        return endpoint

    def _probe(self, url: str) -> bool:
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            logger.error("Encountered error running GET %s: %s", url, e)
            return False
        if response.status_code != 200:
            logger.error("Bad status %s: %d", url, response.status_code)
            return False
        return True

    def validate(self, locators: List[StreamingLocator]) -> ValidationReport:
        logger.info("Validating %d StreamingLocators", len(locators))
        endpoint = self.select_endpoint()
        report = ValidationReport(endpoint=endpoint.name)
        client = self._clients.streaming_locators

        for locator in locators:
            try:
                client.get(locator.name)
            except NotFoundError:
                report.missing.append(locator.name)
                continue
            except MigratorError as e:
                logger.error("Unable to get StreamingLocator %s: %s", locator.name, e)
                report.failed.append(locator.name)
                continue

            try:
                paths = client.list_paths(locator.name)
            except MigratorError as e:
                logger.error(
                    "Unable to list paths for StreamingLocator %s: %s", locator.name, e
                )
                report.failed.append(locator.name)
                continue

            for path in paths.playback_paths():
                url = f"https://{endpoint.host_name}{path}"
                logger.debug("Checking StreamingLocator path %s", url)
                if self._probe(url):
                    report.validated += 1
                else:
                    report.failed.append(url)

        logger.info("Validated %d streaming path(s)", report.validated)
        if report.missing:
            logger.error(
                "Failed to get %d StreamingLocators: %s",
                len(report.missing),
                ", ".join(report.missing),
            )
        if report.failed:
            logger.error(
                "Failed to validate %d StreamingLocators: %s",
                len(report.failed),
                ", ".join(report.failed),
            )
        if report.missing or report.failed:
            report.error = ValidationError(
                f"Validation failed: {len(report.missing)} missing, "
                f"{len(report.failed)} failed",
                missing=list(report.missing),
                failed=list(report.failed),
            )
        return report
