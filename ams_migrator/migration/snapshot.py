import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Type, TypeVar, Union

from ..clients.models import (
    Asset,
    AssetFilter,
    ContentKeyPolicy,
    Resource,
    ResourceKind,
    StreamingEndpoint,
    StreamingLocator,
    StreamingPolicy,
)
from ..utils.exceptions import InvalidResourceError, SnapshotError

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)


@dataclass
class Snapshot:
    """Every resource collected by one export run, grouped by kind."""

    assets: List[Asset] = field(default_factory=list)
    asset_filters: Dict[str, List[AssetFilter]] = field(default_factory=dict)
    content_key_policies: List[ContentKeyPolicy] = field(default_factory=list)
    streaming_endpoints: List[StreamingEndpoint] = field(default_factory=list)
    streaming_locators: List[StreamingLocator] = field(default_factory=list)
    streaming_policies: List[StreamingPolicy] = field(default_factory=list)

    def count(self, kind: ResourceKind) -> int:
        if kind == ResourceKind.ASSET_FILTERS:
            return sum(len(filters) for filters in self.asset_filters.values())
        items: List[Any] = getattr(self, _ATTRIBUTES[kind])
        return len(items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            ResourceKind.ASSETS.value: [a.to_dict() for a in self.assets],
            ResourceKind.ASSET_FILTERS.value: {
                asset_name: [f.to_dict() for f in filters]
                for asset_name, filters in self.asset_filters.items()
            },
            ResourceKind.CONTENT_KEY_POLICIES.value: [
                p.to_dict() for p in self.content_key_policies
            ],
            ResourceKind.STREAMING_ENDPOINTS.value: [
                e.to_dict() for e in self.streaming_endpoints
            ],
            ResourceKind.STREAMING_LOCATORS.value: [
                loc.to_dict() for loc in self.streaming_locators
            ],
            ResourceKind.STREAMING_POLICIES.value: [
                p.to_dict() for p in self.streaming_policies
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        if not isinstance(data, dict):
            raise SnapshotError(
                f"Migration file must contain a JSON object, got {type(data).__name__}"
            )

        raw_filters = data.get(ResourceKind.ASSET_FILTERS.value) or {}
        if not isinstance(raw_filters, dict):
            raise SnapshotError(
                f"{ResourceKind.ASSET_FILTERS.value} must map asset names to lists"
            )

        try:
            return cls(
                assets=_load_list(data, ResourceKind.ASSETS, Asset),
                asset_filters={
                    asset_name: [AssetFilter.from_dict(f) for f in filters or []]
                    for asset_name, filters in raw_filters.items()
                },
                content_key_policies=_load_list(
                    data, ResourceKind.CONTENT_KEY_POLICIES, ContentKeyPolicy
                ),
                streaming_endpoints=_load_list(
                    data, ResourceKind.STREAMING_ENDPOINTS, StreamingEndpoint
                ),
                streaming_locators=_load_list(
                    data, ResourceKind.STREAMING_LOCATORS, StreamingLocator
                ),
                streaming_policies=_load_list(
                    data, ResourceKind.STREAMING_POLICIES, StreamingPolicy
                ),
            )
        except InvalidResourceError as e:
            raise SnapshotError(f"Invalid record in migration file: {e}") from e

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        try:
            if path.parent != Path("."):
                path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8"
            )
        except OSError as e:
            raise SnapshotError(
                f"Failed to write migration file {path}: {e}", path=path
            ) from e
        logger.info("Migration file written to %s", path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Snapshot":
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise SnapshotError(
                f"Failed to read migration file {path}: {e}", path=path
            ) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SnapshotError(
                f"Migration file {path} is not valid JSON: {e}", path=path
            ) from e

        try:
            snapshot = cls.from_dict(data)
        except SnapshotError as e:
            raise SnapshotError(e.message, path=path) from e
        logger.info("Loaded migration file %s", path)
        return snapshot


_ATTRIBUTES: Dict[ResourceKind, str] = {
    ResourceKind.ASSETS: "assets",
    ResourceKind.ASSET_FILTERS: "asset_filters",
    ResourceKind.CONTENT_KEY_POLICIES: "content_key_policies",
    ResourceKind.STREAMING_ENDPOINTS: "streaming_endpoints",
    ResourceKind.STREAMING_LOCATORS: "streaming_locators",
    ResourceKind.STREAMING_POLICIES: "streaming_policies",
}


def _load_list(data: Dict[str, Any], kind: ResourceKind, cls: Type[R]) -> List[R]:
    raw = data.get(kind.value) or []
    if not isinstance(raw, list):
        raise SnapshotError(f"{kind.value} must be a list")
    return [cls.from_dict(item) for item in raw]
