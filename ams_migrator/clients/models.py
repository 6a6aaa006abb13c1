"""Resource records exchanged with the media-services control planes.

Every resource follows the ARM envelope shape (``id``, ``name``, ``type``,
``properties``, ``systemData``). Fields outside that envelope (``location``,
``tags``, ``sku`` ...) are kept verbatim in ``extra`` so a record read from one
platform can be written to another without losing anything.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from ..utils.exceptions import InvalidResourceError

PREDEFINED_PREFIX = "Predefined_"
FAIRPLAY_CONFIGURATION = "#Microsoft.Media.ContentKeyPolicyFairPlayConfiguration"

_ENVELOPE_KEYS = ("id", "name", "type", "properties", "systemData")

R = TypeVar("R", bound="Resource")


class ResourceKind(Enum):
    ASSETS = "Assets"
    ASSET_FILTERS = "AssetFilters"
    CONTENT_KEY_POLICIES = "ContentKeyPolicies"
    STREAMING_ENDPOINTS = "StreamingEndpoints"
    STREAMING_LOCATORS = "StreamingLocators"
    STREAMING_POLICIES = "StreamingPolicies"


@dataclass
class Resource:
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    type: Optional[str] = None
    system_data: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = "Resource"

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidResourceError(
                f"{self.kind} record has an empty name", kind=self.kind
            )

    @classmethod
    def from_dict(cls: Type[R], data: Dict[str, Any]) -> R:
        if not isinstance(data, dict):
            raise InvalidResourceError(
                f"{cls.kind} record must be a JSON object, got {type(data).__name__}",
                kind=cls.kind,
            )
        return cls(
            name=data.get("name") or "",
            properties=copy.deepcopy(data.get("properties") or {}),
            id=data.get("id"),
            type=data.get("type"),
            system_data=copy.deepcopy(data.get("systemData")),
            extra={
                k: copy.deepcopy(v) for k, v in data.items() if k not in _ENVELOPE_KEYS
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["name"] = self.name
        if self.type is not None:
            data["type"] = self.type
        data["properties"] = copy.deepcopy(self.properties)
        if self.system_data is not None:
            data["systemData"] = copy.deepcopy(self.system_data)
        data.update(copy.deepcopy(self.extra))
        return data

    def copy(self: R) -> R:
        return copy.deepcopy(self)


@dataclass
class Asset(Resource):
    kind = "Asset"

    @property
    def container(self) -> Optional[str]:
        return self.properties.get("container")


@dataclass
class AssetFilter(Resource):
    kind = "AssetFilter"


@dataclass
class ContentKeyPolicy(Resource):
    kind = "ContentKeyPolicy"

    @property
    def options(self) -> List[Dict[str, Any]]:
        return self.properties.get("options") or []

    def has_fairplay_option(self) -> bool:
        for option in self.options:
            configuration = option.get("configuration") or {}
            if configuration.get("@odata.type") == FAIRPLAY_CONFIGURATION:
                return True
        return False


@dataclass
class StreamingPolicy(Resource):
    kind = "StreamingPolicy"

    @property
    def is_predefined(self) -> bool:
        return self.name.startswith(PREDEFINED_PREFIX)


@dataclass
class StreamingLocator(Resource):
    kind = "StreamingLocator"

    @property
    def asset_name(self) -> Optional[str]:
        return self.properties.get("assetName")

    @property
    def streaming_policy_name(self) -> str:
        return self.properties.get("streamingPolicyName") or ""

    @property
    def uses_predefined_policy(self) -> bool:
        return self.streaming_policy_name.startswith(PREDEFINED_PREFIX)

    @property
    def content_keys(self) -> List[Dict[str, Any]]:
        return self.properties.get("contentKeys") or []

    @content_keys.setter
    def content_keys(self, keys: Optional[List[Dict[str, Any]]]) -> None:
        if keys is None:
            self.properties.pop("contentKeys", None)
        else:
            self.properties["contentKeys"] = keys


@dataclass
class StreamingEndpoint(Resource):
    kind = "StreamingEndpoint"

    @property
    def location(self) -> Optional[str]:
        return self.extra.get("location")

    @location.setter
    def location(self, value: str) -> None:
        self.extra["location"] = value

    @property
    def resource_state(self) -> Optional[str]:
        return self.properties.get("resourceState")

    @property
    def is_running(self) -> bool:
        return self.resource_state == "Running"

    @property
    def host_name(self) -> str:
        return self.properties.get("hostName") or ""

    @property
    def cdn_enabled(self) -> bool:
        return bool(self.properties.get("cdnEnabled"))

    @property
    def cdn_provider(self) -> Optional[str]:
        return self.properties.get("cdnProvider")


@dataclass
class FairPlayPolicyView:
    """Serialization view of a ContentKeyPolicy with the mk.io-only
    ``fairPlayAmsCompatibility`` property added. The wrapped policy is not modified.
    """

    policy: ContentKeyPolicy
    fair_play_ams_compatibility: bool = False

    @property
    def name(self) -> str:
        return self.policy.name

    def to_dict(self) -> Dict[str, Any]:
        data = self.policy.to_dict()
        data["properties"]["fairPlayAmsCompatibility"] = self.fair_play_ams_compatibility
        return data


@dataclass
class ListPathsResult:
    streaming_paths: List[Dict[str, Any]] = field(default_factory=list)
    download_paths: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListPathsResult":
        return cls(
            streaming_paths=data.get("streamingPaths") or [],
            download_paths=data.get("downloadPaths") or [],
        )

    def playback_paths(self) -> List[str]:
        paths: List[str] = []
        for streaming_path in self.streaming_paths:
            paths.extend(streaming_path.get("paths") or [])
        return paths


RESOURCE_TYPES: Dict[ResourceKind, Type[Resource]] = {
    ResourceKind.ASSETS: Asset,
    ResourceKind.ASSET_FILTERS: AssetFilter,
    ResourceKind.CONTENT_KEY_POLICIES: ContentKeyPolicy,
    ResourceKind.STREAMING_ENDPOINTS: StreamingEndpoint,
    ResourceKind.STREAMING_LOCATORS: StreamingLocator,
    ResourceKind.STREAMING_POLICIES: StreamingPolicy,
}
