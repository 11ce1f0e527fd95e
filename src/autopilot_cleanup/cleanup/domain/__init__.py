"""Domain layer - Pure domain entities, matching and port interfaces.

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
    DeletionBatch,
    DeletionOutcome,
    DeletionRequestItem,
    DeletionResult,
    DeviceRecord,
    ManagedDeletionOutcome,
    ManagedDeviceRecord,
    MatchedSerial,
    MatchPolicy,
    MatchResult,
    ReconciliationReport,
    ReconciliationState,
    ResourceKind,
    SerialSet,
    SyncOutcome,
    group_by_serial,
    index_by_serial,
    normalize_serial,
)
from .matching import match_serials
from .ports import (
    IDeletionPort,
    IRegistryLister,
    IReportWriter,
    ISerialFileReader,
    ISyncService,
)

__all__ = [
    "DeviceRecord",
    "ManagedDeviceRecord",
    "SerialSet",
    "MatchedSerial",
    "MatchResult",
    "DeletionRequestItem",
    "DeletionBatch",
    "DeletionOutcome",
    "DeletionResult",
    "ManagedDeletionOutcome",
    "ReconciliationReport",
    "ResourceKind",
    "MatchPolicy",
    "ReconciliationState",
    "SyncOutcome",
    "group_by_serial",
    "index_by_serial",
    "normalize_serial",
    "match_serials",
    # Ports
    "IRegistryLister",
    "IDeletionPort",
    "ISyncService",
    "ISerialFileReader",
    "IReportWriter",
]
