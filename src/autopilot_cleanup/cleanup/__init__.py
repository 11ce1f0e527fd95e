"""Cleanup module - Clean Architecture implementation of the Autopilot cleanup run.

Architecture:
    domain/     - Pure domain entities, serial matching and port interfaces
    use_cases/  - Batched deletion and the reconciliation loop
    adapters/   - Infrastructure implementations (Graph API, CSV/Excel files)
"""

from .domain.entities import (
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
)
from .domain.matching import match_serials
from .use_cases.delete_devices import DeleteDevicesUseCase
from .use_cases.reconcile import ReconcileUseCase

__all__ = [
    # Entities
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
    # Enums
    "ResourceKind",
    "MatchPolicy",
    "ReconciliationState",
    "SyncOutcome",
    # Operations
    "match_serials",
    "DeleteDevicesUseCase",
    "ReconcileUseCase",
]
