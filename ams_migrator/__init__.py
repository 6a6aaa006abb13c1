"""AMS Migrator - Move Azure Media Services resources to mk.io."""

__version__ = "0.1.0"

from .auth import AzureAuthProvider
from .config import ConfigManager
from .clients import (
    AzureMediaServicesPlatform,
    MkioPlatform,
    ResourceClients,
    ResourceKind,
    TransportClient,
)
from .migration import Exporter, Importer, RunReport, Snapshot, Validator, WorkerPool

__all__ = [
    "AzureAuthProvider",
    "ConfigManager",
    "AzureMediaServicesPlatform",
    "MkioPlatform",
    "ResourceClients",
    "ResourceKind",
    "TransportClient",
    "Exporter",
    "Importer",
    "RunReport",
    "Snapshot",
    "Validator",
    "WorkerPool",
]
