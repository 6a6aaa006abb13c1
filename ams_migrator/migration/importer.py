import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

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
from ..utils.exceptions import MigratorError, NotFoundError
from .pool import DEFAULT_WORKERS, WorkerPool
from .results import BatchResult, Operation, Outcome, RunReport
from .snapshot import Snapshot
from .transforms import (
    CdnProviderPolicy,
    prepare_content_key_policy,
    prepare_streaming_endpoint,
    prepare_streaming_locator,
)

logger = logging.getLogger(__name__)

# Locators reference policies by name, so both policy kinds go first.
IMPORT_ORDER: Tuple[ResourceKind, ...] = (
    ResourceKind.CONTENT_KEY_POLICIES,
    ResourceKind.ASSETS,
    ResourceKind.ASSET_FILTERS,
    ResourceKind.STREAMING_POLICIES,
    ResourceKind.STREAMING_LOCATORS,
    ResourceKind.STREAMING_ENDPOINTS,
)

# mk.io cannot update these in place; overwrite means delete then create.
RECREATE_ON_OVERWRITE = frozenset(
    {
        ResourceKind.CONTENT_KEY_POLICIES,
        ResourceKind.STREAMING_POLICIES,
        ResourceKind.STREAMING_LOCATORS,
        ResourceKind.STREAMING_ENDPOINTS,
    }
)


class Importer:
    """Upserts snapshot records into an mk.io subscription.

    Every record goes through the same decision: look it up, skip it when it
    exists and ``overwrite`` is off, otherwise (re)create it. Per-record
    failures are collected into the kind's BatchResult and never stop the batch.
    """

    def __init__(
        self,
        clients: ResourceClients,
        workers: int = DEFAULT_WORKERS,
        overwrite: bool = False,
        fairplay_ams_compatibility: bool = False,
        cdn_provider_policy: Union[str, CdnProviderPolicy] = CdnProviderPolicy.KEEP,
    ) -> None:
        self._clients = clients
        self._pool: WorkerPool = WorkerPool(workers)
        self._overwrite = overwrite
        self._fairplay_ams_compatibility = fairplay_ams_compatibility
        self._cdn_provider_policy = CdnProviderPolicy.parse(cdn_provider_policy)

    @property
    def overwrite(self) -> bool:
        return self._overwrite

    def set_progress_callback(self, callback: Callable[[Outcome], None]) -> None:
        self._pool.set_progress_callback(callback)

    def _upsert(
        self,
        kind: ResourceKind,
        name: str,
        get: Callable[[], Any],
        delete: Callable[[], None],
        create: Callable[[Any], Any],
        prepare: Callable[[], Any],
    ) -> Outcome:
        try:
            get()
            found = True
        except NotFoundError:
            found = False

        if found and not self._overwrite:
            logger.debug("%s %s already exists, skipping", kind.value, name)
            return Outcome.skipped(name, "already exists")

        # a transform failure must not leave the existing record deleted
        payload = prepare()

        if found and kind in RECREATE_ON_OVERWRITE:
            try:
                delete()
                logger.debug("Deleted existing %s %s for overwrite", kind.value, name)
            except MigratorError as e:
                logger.warning(
                    "Unable to delete old %s %s for overwrite: %s", kind.value, name, e
                )

        logger.debug("Creating %s %s", kind.value, name)
        create(payload)
        return Outcome.succeeded(name)

    async def _run_batch(
        self,
        kind: ResourceKind,
        jobs: Sequence[Any],
        handler: Callable[[Any], Outcome],
        describe: Callable[[Any], str],
    ) -> BatchResult:
        logger.info("Importing %d %s", len(jobs), kind.value)
        started = time.monotonic()
        outcomes = await self._pool.run(jobs, handler, describe=describe)
        result = BatchResult.from_outcomes(
            kind.value,
            Operation.IMPORT,
            outcomes,
            duration=time.monotonic() - started,
        )
        logger.info("Skipped %d existing %s", len(result.skipped), kind.value)
        logger.info("Imported %d %s", result.succeeded, kind.value)
        return result

    async def import_content_key_policies(
        self, policies: List[ContentKeyPolicy]
    ) -> BatchResult:
        client = self._clients.content_key_policies

        def handle(policy: ContentKeyPolicy) -> Outcome:
            return self._upsert(
                ResourceKind.CONTENT_KEY_POLICIES,
                policy.name,
                get=lambda: client.get(policy.name),
                delete=lambda: client.delete(policy.name),
                create=lambda view: client.create_or_update(policy.name, view),
                prepare=lambda: prepare_content_key_policy(
                    policy, self._fairplay_ams_compatibility
                ),
            )

        return await self._run_batch(
            ResourceKind.CONTENT_KEY_POLICIES, policies, handle, lambda p: p.name
        )

    async def import_assets(self, assets: List[Asset]) -> BatchResult:
        client = self._clients.assets

        def handle(asset: Asset) -> Outcome:
            return self._upsert(
                ResourceKind.ASSETS,
                asset.name,
                get=lambda: client.get(asset.name),
                delete=lambda: client.delete(asset.name),
                create=lambda record: client.create_or_update(asset.name, record),
                prepare=asset.copy,
            )

        return await self._run_batch(
            ResourceKind.ASSETS, assets, handle, lambda a: a.name
        )

    async def import_asset_filters(
        self, asset_filters: Dict[str, List[AssetFilter]]
    ) -> BatchResult:
        client = self._clients.asset_filters
        jobs: List[Tuple[str, AssetFilter]] = [
            (asset_name, asset_filter)
            for asset_name, filters in asset_filters.items()
            for asset_filter in filters
        ]

        def describe(job: Tuple[str, AssetFilter]) -> str:
            return f"{job[0]}/{job[1].name}"

        def handle(job: Tuple[str, AssetFilter]) -> Outcome:
            asset_name, asset_filter = job
            return self._upsert(
                ResourceKind.ASSET_FILTERS,
                describe(job),
                get=lambda: client.get(asset_name, asset_filter.name),
                delete=lambda: client.delete(asset_name, asset_filter.name),
                create=lambda record: client.create_or_update(
                    asset_name, asset_filter.name, record
                ),
                prepare=asset_filter.copy,
            )

        return await self._run_batch(ResourceKind.ASSET_FILTERS, jobs, handle, describe)

    async def import_streaming_policies(
        self, policies: List[StreamingPolicy]
    ) -> BatchResult:
        client = self._clients.streaming_policies

        def handle(policy: StreamingPolicy) -> Outcome:
            return self._upsert(
                ResourceKind.STREAMING_POLICIES,
                policy.name,
                get=lambda: client.get(policy.name),
                delete=lambda: client.delete(policy.name),
                create=lambda record: client.create_or_update(policy.name, record),
                prepare=policy.copy,
            )

        return await self._run_batch(
            ResourceKind.STREAMING_POLICIES, policies, handle, lambda p: p.name
        )

    async def import_streaming_locators(
        self, locators: List[StreamingLocator]
    ) -> BatchResult:
        client = self._clients.streaming_locators

        def handle(locator: StreamingLocator) -> Outcome:
            return self._upsert(
                ResourceKind.STREAMING_LOCATORS,
                locator.name,
                get=lambda: client.get(locator.name),
                delete=lambda: client.delete(locator.name),
                create=lambda record: client.create_or_update(locator.name, record),
                prepare=lambda: prepare_streaming_locator(locator),
            )

        return await self._run_batch(
            ResourceKind.STREAMING_LOCATORS, locators, handle, lambda s: s.name
        )

    async def import_streaming_endpoints(
        self, endpoints: List[StreamingEndpoint]
    ) -> BatchResult:
        client = self._clients.streaming_endpoints

        def handle(endpoint: StreamingEndpoint) -> Outcome:
            return self._upsert(
                ResourceKind.STREAMING_ENDPOINTS,
                endpoint.name,
                get=lambda: client.get(endpoint.name),
                delete=lambda: client.delete(endpoint.name),
                create=lambda record: client.create_or_update(endpoint.name, record),
                prepare=lambda: prepare_streaming_endpoint(
                    endpoint, self._cdn_provider_policy
                ),
            )

        return await self._run_batch(
            ResourceKind.STREAMING_ENDPOINTS, endpoints, handle, lambda e: e.name
        )

    async def run(
        self,
        snapshot: Snapshot,
        kinds: Optional[Iterable[ResourceKind]] = None,
        report: Optional[RunReport] = None,
    ) -> RunReport:
        """Import ``kinds`` (all by default) one whole kind at a time.

        A kind with failures does not stop the kinds after it.
        """
        requested = set(kinds) if kinds is not None else set(IMPORT_ORDER)
        report = report if report is not None else RunReport()

        for kind in IMPORT_ORDER:
            if kind not in requested:
                continue
            if kind == ResourceKind.CONTENT_KEY_POLICIES:
                result = await self.import_content_key_policies(
                    snapshot.content_key_policies
                )
            elif kind == ResourceKind.ASSETS:
                result = await self.import_assets(snapshot.assets)
            elif kind == ResourceKind.ASSET_FILTERS:
                result = await self.import_asset_filters(snapshot.asset_filters)
            elif kind == ResourceKind.STREAMING_POLICIES:
                result = await self.import_streaming_policies(
                    snapshot.streaming_policies
                )
            elif kind == ResourceKind.STREAMING_LOCATORS:
                result = await self.import_streaming_locators(
                    snapshot.streaming_locators
                )
            else:
                result = await self.import_streaming_endpoints(
                    snapshot.streaming_endpoints
                )
            report.add(result)

        return report
