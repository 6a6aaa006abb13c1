import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from urllib.parse import urljoin

from .models import (
    Asset,
    AssetFilter,
    ContentKeyPolicy,
    ListPathsResult,
    Resource,
    StreamingEndpoint,
    StreamingLocator,
    StreamingPolicy,
)
from .transport import TransportClient

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)

ORDER_BY_CREATED = "properties/created"


def build_date_filter(
    created_after: Optional[str] = None,
    created_before: Optional[str] = None,
) -> Optional[str]:
    """OData filter over a resource's creation timestamp, or None when unbounded."""
    clauses = []
    if created_after:
        clauses.append(f"properties/created gt {created_after}")
    if created_before:
        clauses.append(f"properties/created lt {created_before}")
    if not clauses:
        return None
    return " and ".join(clauses)


def _next_link(page_url: str, data: Dict[str, Any]) -> Optional[str]:
    # nextLink may be relative to the page it came from
    link = data.get("@odata.nextLink")
    if not link:
        return None
    return urljoin(page_url, link)


class ResourceClient(Generic[R]):
    """Get/List/CreateOrUpdate/Delete for one top-level resource collection."""

    collection = ""
    resource_type: Type[Resource] = Resource
    supports_date_filter = False

    def __init__(self, transport: TransportClient) -> None:
        self._transport = transport

    @property
    def transport(self) -> TransportClient:
        return self._transport

    def _url(self, *segments: str) -> str:
        return self._transport.platform.collection_url(self.collection, *segments)

    def _decode(self, data: Dict[str, Any]) -> R:
        resource: R = self.resource_type.from_dict(data)  # type: ignore[assignment]
        return resource

    def _list_pages(
        self, url: str, params: Optional[Dict[str, str]] = None
    ) -> List[R]:
        items: List[R] = []
        next_url: Optional[str] = url
        page = 0
        while next_url:
            page += 1
            data = self._transport.request_json("GET", next_url, params=params)
            for raw in data.get("value") or []:
                items.append(self._decode(raw))
            next_url = _next_link(next_url, data)
            params = None
        logger.debug(
            "Listed %d %s record(s) in %d page(s)",
            len(items),
            self.resource_type.kind,
            page,
        )
        return items

    def get(self, name: str) -> R:
        return self._decode(self._transport.request_json("GET", self._url(name)))

    def list(
        self,
        created_after: Optional[str] = None,
        created_before: Optional[str] = None,
    ) -> List[R]:
        params: Dict[str, str] = {}
        if self.supports_date_filter:
            date_filter = build_date_filter(created_after, created_before)
            if date_filter:
                params["$filter"] = date_filter
            params["$orderby"] = ORDER_BY_CREATED
        return self._list_pages(self._url(), params or None)

    def create_or_update(self, name: str, resource: Any) -> R:
        """PUT ``resource`` (anything exposing ``to_dict()``) under ``name``."""
        data = self._transport.request_json(
            "PUT", self._url(name), body=resource.to_dict()
        )
        if not data:
            return self._decode(resource.to_dict())
        return self._decode(data)

    def delete(self, name: str) -> None:
        self._transport.request("DELETE", self._url(name))


class AssetsClient(ResourceClient[Asset]):
    collection = "assets"
    resource_type = Asset
    supports_date_filter = True


class ContentKeyPoliciesClient(ResourceClient[ContentKeyPolicy]):
    collection = "contentKeyPolicies"
    resource_type = ContentKeyPolicy
    supports_date_filter = True

    def get_with_secrets(self, policy: ContentKeyPolicy) -> ContentKeyPolicy:
        """Return ``policy`` with its unredacted options.

        mk.io answers with the whole policy; Azure answers with the properties
        object only. Either shape is accepted.
        """
        data = self._transport.request_json(
            "POST", self._url(policy.name, "getPolicyPropertiesWithSecrets")
        )
        if "properties" in data:
            return ContentKeyPolicy.from_dict(data)
        result = policy.copy()
        result.properties = data
        return result


class StreamingPoliciesClient(ResourceClient[StreamingPolicy]):
    collection = "streamingPolicies"
    resource_type = StreamingPolicy
    supports_date_filter = True


class StreamingLocatorsClient(ResourceClient[StreamingLocator]):
    collection = "streamingLocators"
    resource_type = StreamingLocator
    supports_date_filter = True

    def list_content_keys(self, name: str) -> List[Dict[str, Any]]:
        data = self._transport.request_json("POST", self._url(name, "listContentKeys"))
        keys: List[Dict[str, Any]] = data.get("contentKeys") or []
        return keys

    def list_paths(self, name: str) -> ListPathsResult:
        data = self._transport.request_json("POST", self._url(name, "listPaths"))
        return ListPathsResult.from_dict(data)


class StreamingEndpointsClient(ResourceClient[StreamingEndpoint]):
    collection = "streamingEndpoints"
    resource_type = StreamingEndpoint


class AssetFiltersClient:
    """Asset filters live under their owning asset, so every call names it."""

    resource_type = AssetFilter

    def __init__(self, transport: TransportClient) -> None:
        self._transport = transport

    def _url(self, asset_name: str, *segments: str) -> str:
        return self._transport.platform.collection_url(
            "assets", asset_name, "assetFilters", *segments
        )

    def get(self, asset_name: str, name: str) -> AssetFilter:
        data = self._transport.request_json("GET", self._url(asset_name, name))
        return AssetFilter.from_dict(data)

    def list(self, asset_name: str) -> List[AssetFilter]:
        filters: List[AssetFilter] = []
        next_url: Optional[str] = self._url(asset_name)
        while next_url:
            data = self._transport.request_json("GET", next_url)
            filters.extend(AssetFilter.from_dict(raw) for raw in data.get("value") or [])
            next_url = _next_link(next_url, data)
        return filters

    def create_or_update(
        self, asset_name: str, name: str, asset_filter: Any
    ) -> AssetFilter:
        data = self._transport.request_json(
            "PUT", self._url(asset_name, name), body=asset_filter.to_dict()
        )
        return AssetFilter.from_dict(data or asset_filter.to_dict())

    def delete(self, asset_name: str, name: str) -> None:
        self._transport.request("DELETE", self._url(asset_name, name))


@dataclass
class ResourceClients:
    """Every resource client for one subscription, sharing one transport."""

    transport: TransportClient
    assets: AssetsClient
    asset_filters: AssetFiltersClient
    content_key_policies: ContentKeyPoliciesClient
    streaming_endpoints: StreamingEndpointsClient
    streaming_locators: StreamingLocatorsClient
    streaming_policies: StreamingPoliciesClient

    @property
    def embeds_content_keys(self) -> bool:
        return self.transport.platform.embeds_content_keys

    @classmethod
    def create(
        cls, transport: TransportClient, check_connection: bool = True
    ) -> "ResourceClients":
        if check_connection:
            transport.check_connection()
        return cls(
            transport=transport,
            assets=AssetsClient(transport),
            asset_filters=AssetFiltersClient(transport),
            content_key_policies=ContentKeyPoliciesClient(transport),
            streaming_endpoints=StreamingEndpointsClient(transport),
            streaming_locators=StreamingLocatorsClient(transport),
            streaming_policies=StreamingPoliciesClient(transport),
        )
