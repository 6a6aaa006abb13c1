from .models import (
    Asset,
    AssetFilter,
    ContentKeyPolicy,
    FairPlayPolicyView,
    ListPathsResult,
    Resource,
    ResourceKind,
    StreamingEndpoint,
    StreamingLocator,
    StreamingPolicy,
)
from .platforms import AzureMediaServicesPlatform, MkioPlatform, Platform
from .resources import ResourceClients
from .transport import BACKOFF_SCHEDULE, TransportClient

__all__ = [
    "Asset",
    "AssetFilter",
    "ContentKeyPolicy",
    "FairPlayPolicyView",
    "ListPathsResult",
    "Resource",
    "ResourceKind",
    "StreamingEndpoint",
    "StreamingLocator",
    "StreamingPolicy",
    "AzureMediaServicesPlatform",
    "MkioPlatform",
    "Platform",
    "ResourceClients",
    "BACKOFF_SCHEDULE",
    "TransportClient",
]
