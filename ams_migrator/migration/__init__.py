from .exporter import Exporter
from .importer import Importer, IMPORT_ORDER
from .pool import WorkerPool
from .results import BatchResult, Operation, Outcome, OutcomeStatus, RunReport
from .snapshot import Snapshot
from .transforms import CdnProviderPolicy
from .validator import ValidationReport, Validator

__all__ = [
    "Exporter",
    "Importer",
    "IMPORT_ORDER",
    "WorkerPool",
    "BatchResult",
    "Operation",
    "Outcome",
    "OutcomeStatus",
    "RunReport",
    "Snapshot",
    "CdnProviderPolicy",
    "ValidationReport",
    "Validator",
]
