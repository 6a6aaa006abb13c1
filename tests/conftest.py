import threading
from typing import Any, Dict, List, Optional, Set, Tuple, Type
from unittest.mock import MagicMock

import pytest

from ams_migrator.clients.models import (
    Asset,
    AssetFilter,
    ContentKeyPolicy,
    ListPathsResult,
    Resource,
    StreamingEndpoint,
    StreamingLocator,
    StreamingPolicy,
)
from ams_migrator.clients.resources import ResourceClients
from ams_migrator.clients.transport import TransportClient
from ams_migrator.utils.exceptions import NotFoundError, ResponseError


def _not_found(kind: str, name: str) -> NotFoundError:
    return NotFoundError(f"{kind} {name} not found", status_code=404)


class FakeCollection:
    """In-memory stand-in for a ResourceClient, keyed by name."""

    def __init__(self, resource_type: Type[Resource]) -> None:
        self.resource_type = resource_type
        self.items: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_get: Set[str] = set()
        self.fail_create: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self._lock = threading.Lock()

    def seed(self, *resources: Resource) -> None:
        for resource in resources:
            self.items[resource.name] = resource.to_dict()

    def _record(self, op: str, name: str) -> None:
        with self._lock:
            self.calls.append((op, name))

    def names(self, op: str) -> List[str]:
        return [name for call, name in self.calls if call == op]

    def get(self, name: str) -> Any:
        self._record("get", name)
        if name in self.fail_get:
            raise ResponseError(f"GET {name} failed", status_code=500)
        if name not in self.items:
            raise _not_found(self.resource_type.kind, name)
        return self.resource_type.from_dict(self.items[name])

    def list(
        self,
        created_after: Optional[str] = None,
        created_before: Optional[str] = None,
    ) -> List[Any]:
        self._record("list", "")
        return [self.resource_type.from_dict(data) for data in self.items.values()]

    def _check_create(self, name: str, data: Dict[str, Any]) -> None:
        if name in self.fail_create:
            raise ResponseError(f"PUT {name} rejected", status_code=400)

    def create_or_update(self, name: str, resource: Any) -> Any:
        self._record("create", name)
        data = resource.to_dict()
        self._check_create(name, data)
        with self._lock:
            self.items[name] = data
        return self.resource_type.from_dict(data)

    def delete(self, name: str) -> None:
        self._record("delete", name)
        if name in self.fail_delete:
            raise ResponseError(f"DELETE {name} failed", status_code=500)
        with self._lock:
            self.items.pop(name, None)


class FakeContentKeyPolicies(FakeCollection):
    def __init__(self) -> None:
        super().__init__(ContentKeyPolicy)
        self.secrets: Dict[str, Dict[str, Any]] = {}
        self.fail_secrets: Set[str] = set()

    def get_with_secrets(self, policy: ContentKeyPolicy) -> ContentKeyPolicy:
        self._record("secrets", policy.name)
        if policy.name in self.fail_secrets:
            raise ResponseError(f"secrets for {policy.name} unavailable", status_code=500)
        result = policy.copy()
        if policy.name in self.secrets:
            result.properties = dict(self.secrets[policy.name])
        return result


class FakeStreamingLocators(FakeCollection):
    """Rejects locators whose asset or custom policy does not exist yet."""

    def __init__(
        self,
        assets: FakeCollection,
        streaming_policies: FakeCollection,
    ) -> None:
        super().__init__(StreamingLocator)
        self._assets = assets
        self._streaming_policies = streaming_policies
        self.content_keys: Dict[str, List[Dict[str, Any]]] = {}
        self.paths: Dict[str, List[str]] = {}
        self.fail_content_keys: Set[str] = set()

    def _check_create(self, name: str, data: Dict[str, Any]) -> None:
        super()._check_create(name, data)
        properties = data.get("properties") or {}
        policy = properties.get("streamingPolicyName") or ""
        if not policy.startswith("Predefined_") and policy not in self._streaming_policies.items:
            raise ResponseError(
                f"StreamingPolicy {policy} referenced by {name} not found",
                status_code=400,
            )
        asset = properties.get("assetName")
        if asset not in self._assets.items:
            raise ResponseError(
                f"Asset {asset} referenced by {name} not found", status_code=400
            )

    def list_content_keys(self, name: str) -> List[Dict[str, Any]]:
        self._record("content_keys", name)
        if name in self.fail_content_keys:
            raise ResponseError(f"content keys for {name} unavailable", status_code=500)
        return list(self.content_keys.get(name, []))

    def list_paths(self, name: str) -> ListPathsResult:
        self._record("list_paths", name)
        return ListPathsResult(
            streaming_paths=[{"paths": list(self.paths.get(name, []))}]
        )


class FakeAssetFilters:
    """Filters keyed by (asset, filter); creation requires the asset."""

    def __init__(self, assets: FakeCollection) -> None:
        self._assets = assets
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_list: Set[str] = set()
        self._lock = threading.Lock()

    def seed(self, asset_name: str, *filters: AssetFilter) -> None:
        for asset_filter in filters:
            self.items[(asset_name, asset_filter.name)] = asset_filter.to_dict()

    def _record(self, op: str, name: str) -> None:
        with self._lock:
            self.calls.append((op, name))

    def names(self, op: str) -> List[str]:
        return [name for call, name in self.calls if call == op]

    def get(self, asset_name: str, name: str) -> AssetFilter:
        self._record("get", f"{asset_name}/{name}")
        if (asset_name, name) not in self.items:
            raise _not_found("AssetFilter", name)
        return AssetFilter.from_dict(self.items[(asset_name, name)])

    def list(self, asset_name: str) -> List[AssetFilter]:
        self._record("list", asset_name)
        if asset_name in self.fail_list:
            raise ResponseError(f"filters of {asset_name} unavailable", status_code=500)
        return [
            AssetFilter.from_dict(data)
            for (owner, _), data in self.items.items()
            if owner == asset_name
        ]

    def create_or_update(self, asset_name: str, name: str, asset_filter: Any) -> AssetFilter:
        self._record("create", f"{asset_name}/{name}")
        if asset_name not in self._assets.items:
            raise ResponseError(f"Asset {asset_name} not found", status_code=400)
        data = asset_filter.to_dict()
        with self._lock:
            self.items[(asset_name, name)] = data
        return AssetFilter.from_dict(data)

    def delete(self, asset_name: str, name: str) -> None:
        self._record("delete", f"{asset_name}/{name}")
        with self._lock:
            self.items.pop((asset_name, name), None)


class FakePlatformAccount:
    """A whole subscription held in memory, exposed as ResourceClients."""

    def __init__(self, embeds_content_keys: bool = True) -> None:
        self.assets = FakeCollection(Asset)
        self.asset_filters = FakeAssetFilters(self.assets)
        self.content_key_policies = FakeContentKeyPolicies()
        self.streaming_endpoints = FakeCollection(StreamingEndpoint)
        self.streaming_policies = FakeCollection(StreamingPolicy)
        self.streaming_locators = FakeStreamingLocators(
            self.assets, self.streaming_policies
        )
        transport = MagicMock(spec=TransportClient)
        transport.platform.embeds_content_keys = embeds_content_keys
        self.clients = ResourceClients(
            transport=transport,
            assets=self.assets,  # type: ignore[arg-type]
            asset_filters=self.asset_filters,  # type: ignore[arg-type]
            content_key_policies=self.content_key_policies,  # type: ignore[arg-type]
            streaming_endpoints=self.streaming_endpoints,  # type: ignore[arg-type]
            streaming_locators=self.streaming_locators,  # type: ignore[arg-type]
            streaming_policies=self.streaming_policies,  # type: ignore[arg-type]
        )


@pytest.fixture
def destination() -> FakePlatformAccount:
    return FakePlatformAccount()


@pytest.fixture
def source() -> FakePlatformAccount:
    return FakePlatformAccount()


@pytest.fixture
def azure_source() -> FakePlatformAccount:
    return FakePlatformAccount(embeds_content_keys=False)
