import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..clients.models import (
    Asset,
    AssetFilter,
    ContentKeyPolicy,
    ResourceKind,
    StreamingEndpoint,
    StreamingLocator,
    StreamingPolicy,
)
from ..clients.resources import ResourceClients
from ..utils.exceptions import ConfigurationError, MigratorError
from .pool import DEFAULT_WORKERS, WorkerPool
from .results import BatchResult, Operation, Outcome, RunReport
from .snapshot import Snapshot

logger = logging.getLogger(__name__)

EXPORT_ORDER: Tuple[ResourceKind, ...] = (
    ResourceKind.ASSETS,
    ResourceKind.ASSET_FILTERS,
    ResourceKind.STREAMING_POLICIES,
    ResourceKind.STREAMING_LOCATORS,
    ResourceKind.STREAMING_ENDPOINTS,
    ResourceKind.CONTENT_KEY_POLICIES,
)


def _list_failure(kind: ResourceKind, error: MigratorError, started: float) -> BatchResult:
    logger.error("Error exporting %s: %s", kind.value, error)
    result = BatchResult(
        kind=kind.value,
        operation=Operation.EXPORT,
        failed=[kind.value],
        duration=time.monotonic() - started,
    )
    result.seal()
    return result


class Exporter:
    """Reads every requested resource kind from the source into a Snapshot.

    Listing runs in a worker thread; per-item follow-up lookups (asset
    filters, content keys, policy secrets) go through a bounded WorkerPool.
    """

    def __init__(
        self,
        clients: ResourceClients,
        workers: int = DEFAULT_WORKERS,
        created_after: Optional[str] = None,
        created_before: Optional[str] = None,
    ) -> None:
        self._clients = clients
        self._pool: WorkerPool = WorkerPool(workers)
        self._created_after = created_after or None
        self._created_before = created_before or None

    def set_progress_callback(self, callback: Callable[[Outcome], None]) -> None:
        self._pool.set_progress_callback(callback)

    def _list_result(
        self, kind: ResourceKind, count: int, started: float
    ) -> BatchResult:
        logger.info("Exported %d %s", count, kind.value)
        return BatchResult(
            kind=kind.value,
            operation=Operation.EXPORT,
            succeeded=count,
            duration=time.monotonic() - started,
        )

    async def export_assets(self) -> Tuple[List[Asset], BatchResult]:
        logger.info("Exporting Assets")
        started = time.monotonic()
        assets = await asyncio.to_thread(
            self._clients.assets.list, self._created_after, self._created_before
        )
        return assets, self._list_result(ResourceKind.ASSETS, len(assets), started)

    async def export_asset_filters(
        self, assets: List[Asset]
    ) -> Tuple[Dict[str, List[AssetFilter]], BatchResult]:
        """Look up the filters of every asset.

        An asset whose lookup fails keeps an empty entry and is named in the
        batch error.
        """
        logger.info("Exporting AssetFilters for %d asset(s)", len(assets))
        started = time.monotonic()
        client = self._clients.asset_filters

        def lookup(asset: Asset) -> Outcome:
            filters = client.list(asset.name)
            logger.debug("Found %d filter(s) for asset %s", len(filters), asset.name)
            return Outcome.succeeded(asset.name, filters)

        outcomes = await self._pool.run(assets, lookup, describe=lambda a: a.name)

        found = {o.name: o.payload for o in outcomes if o.payload is not None}
        asset_filters: Dict[str, List[AssetFilter]] = {
            asset.name: found.get(asset.name, []) for asset in assets
        }

        result = BatchResult.from_outcomes(
            ResourceKind.ASSET_FILTERS.value,
            Operation.EXPORT,
            outcomes,
            duration=time.monotonic() - started,
        )
        result.succeeded = sum(len(filters) for filters in asset_filters.values())
        return asset_filters, result

    async def export_content_key_policies(
        self,
    ) -> Tuple[List[ContentKeyPolicy], BatchResult]:
        """List policies, then fetch each one again with its secrets.

        A policy whose secrets cannot be read is left out of the snapshot.
        """
        logger.info("Exporting ContentKeyPolicies")
        started = time.monotonic()
        client = self._clients.content_key_policies
        policies = await asyncio.to_thread(
            client.list, self._created_after, self._created_before
        )

        def lookup(policy: ContentKeyPolicy) -> Outcome:
            return Outcome.succeeded(policy.name, client.get_with_secrets(policy))

        outcomes = await self._pool.run(policies, lookup, describe=lambda p: p.name)
        with_secrets = {o.name: o.payload for o in outcomes if o.payload is not None}
        exported = [with_secrets[p.name] for p in policies if p.name in with_secrets]

        result = BatchResult.from_outcomes(
            ResourceKind.CONTENT_KEY_POLICIES.value,
            Operation.EXPORT,
            outcomes,
            duration=time.monotonic() - started,
        )
        return exported, result

    async def export_streaming_endpoints(
        self,
    ) -> Tuple[List[StreamingEndpoint], BatchResult]:
        logger.info("Exporting StreamingEndpoints")
        started = time.monotonic()
        endpoints = await asyncio.to_thread(self._clients.streaming_endpoints.list)
        return endpoints, self._list_result(
            ResourceKind.STREAMING_ENDPOINTS, len(endpoints), started
        )

    async def export_streaming_locators(
        self,
    ) -> Tuple[List[StreamingLocator], BatchResult]:
        logger.info("Exporting StreamingLocators")
        started = time.monotonic()
        client = self._clients.streaming_locators
        locators = await asyncio.to_thread(
            client.list, self._created_after, self._created_before
        )

        if self._clients.embeds_content_keys:
            return locators, self._list_result(
                ResourceKind.STREAMING_LOCATORS, len(locators), started
            )

        logger.info("Exporting content keys for %d locator(s)", len(locators))

        def lookup(locator: StreamingLocator) -> Outcome:
            return Outcome.succeeded(locator.name, client.list_content_keys(locator.name))

        outcomes = await self._pool.run(locators, lookup, describe=lambda s: s.name)
        keys = {o.name: o.payload for o in outcomes if o.payload is not None}
        for locator in locators:
            if locator.name in keys:
                locator.content_keys = keys[locator.name]

        result = BatchResult.from_outcomes(
            ResourceKind.STREAMING_LOCATORS.value,
            Operation.EXPORT,
            outcomes,
            duration=time.monotonic() - started,
        )
        return locators, result

    async def export_streaming_policies(
        self,
    ) -> Tuple[List[StreamingPolicy], BatchResult]:
        logger.info("Exporting StreamingPolicies")
        started = time.monotonic()
        listed = await asyncio.to_thread(
            self._clients.streaming_policies.list,
            self._created_after,
            self._created_before,
        )
        policies = [p for p in listed if not p.is_predefined]
        if len(policies) != len(listed):
            logger.debug(
                "Excluded %d predefined streaming policies", len(listed) - len(policies)
            )
        return policies, self._list_result(
            ResourceKind.STREAMING_POLICIES, len(policies), started
        )

    async def export(
        self,
        kinds: Iterable[ResourceKind],
        report: Optional[RunReport] = None,
    ) -> Snapshot:
        """Export ``kinds`` into one Snapshot.

        A kind that cannot be listed is logged, reported as failed and left
        empty; the remaining kinds are still exported.
        """
        requested: Set[ResourceKind] = set(kinds)
        if (
            ResourceKind.ASSET_FILTERS in requested
            and ResourceKind.ASSETS not in requested
        ):
            raise ConfigurationError("AssetFilter export requires Asset export")

        report = report if report is not None else RunReport()
        snapshot = Snapshot()

        for kind in EXPORT_ORDER:
            if kind not in requested:
                continue
            started = time.monotonic()
            try:
                if kind == ResourceKind.ASSETS:
                    snapshot.assets, result = await self.export_assets()
                elif kind == ResourceKind.ASSET_FILTERS:
                    snapshot.asset_filters, result = await self.export_asset_filters(
                        snapshot.assets
                    )
                elif kind == ResourceKind.STREAMING_POLICIES:
                    (
                        snapshot.streaming_policies,
                        result,
                    ) = await self.export_streaming_policies()
                elif kind == ResourceKind.STREAMING_LOCATORS:
                    (
                        snapshot.streaming_locators,
                        result,
                    ) = await self.export_streaming_locators()
                elif kind == ResourceKind.STREAMING_ENDPOINTS:
                    (
                        snapshot.streaming_endpoints,
                        result,
                    ) = await self.export_streaming_endpoints()
                else:
                    (
                        snapshot.content_key_policies,
                        result,
                    ) = await self.export_content_key_policies()
            except MigratorError as e:
                result = _list_failure(kind, e, started)
            report.add(result)

        return snapshot
