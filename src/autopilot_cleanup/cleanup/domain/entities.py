"""Domain entities for Autopilot cleanup.

These are pure domain objects with no infrastructure dependencies.
They represent the core concepts of the delete-and-reconcile workflow.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator, Optional, Union


class ResourceKind(str, Enum):
    """Inventories the registry lister can read."""

    AUTOPILOT = "autopilot"  # Autopilot device identities (the registry)
    MANAGED = "managed"  # Intune managed devices


class MatchPolicy(str, Enum):
    """What to do when a local serial is a suffix of several registry serials."""

    FIRST = "first"  # Take the first candidate in listing order, log a warning
    STRICT = "strict"  # Raise AmbiguousMatchError


class ReconciliationState(str, Enum):
    """States of the reconciliation loop."""

    MATCHING = "matching"
    DELETING = "deleting"
    SYNC_TRIGGERED = "sync_triggered"
    WAITING = "waiting"
    VERIFYING = "verifying"
    DONE = "done"
    ABORTED = "aborted"  # Nothing matched, nothing to delete


class SyncOutcome(str, Enum):
    """Result of asking the registry to resync."""

    TRIGGERED = "triggered"
    RATE_LIMITED = "rate_limited"  # Sync requested too recently, not an error
    SKIPPED = "skipped"  # Dry run


def normalize_serial(serial: str) -> str:
    """Comparison key for serial numbers: trimmed and upper-cased."""
    return serial.strip().upper()


@dataclass(frozen=True)
class DeviceRecord:
    """An Autopilot device identity as listed by the registry."""

    registry_id: str
    serial_number: str
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    group_tag: Optional[str] = None
    enrollment_state: Optional[str] = None
    managed_device_id: Optional[str] = None


@dataclass(frozen=True)
class ManagedDeviceRecord:
    """An Intune managed device."""

    managed_id: str
    serial_number: str
    device_name: Optional[str] = None


Record = Union[DeviceRecord, ManagedDeviceRecord]


def index_by_serial(records: Iterable[Record]) -> dict[str, Record]:
    """Build a lookup table keyed by normalized serial number.

    The first record wins when the service holds duplicates.
    """
    index: dict[str, Record] = {}
    for record in records:
        if not record.serial_number:
            continue
        index.setdefault(normalize_serial(record.serial_number), record)
    return index


def group_by_serial(records: Iterable[Record]) -> dict[str, list[Record]]:
    """Build a lookup table of every record per normalized serial number.

    The registry can hold several identities for one serial (e.g. a
    device imported twice); all of them are kept in listing order.
    """
    groups: dict[str, list[Record]] = {}
    for record in records:
        if not record.serial_number:
            continue
        groups.setdefault(normalize_serial(record.serial_number), []).append(record)
    return groups


class SerialSet:
    """Ordered, de-duplicated sequence of serial numbers.

    Duplicates are detected case-insensitively; the first spelling seen
    is kept. Blank entries are dropped.
    """

    def __init__(self, serials: Iterable[str] = ()):
        self._serials: list[str] = []
        self._keys: set[str] = set()
        self.duplicates_removed = 0
        for serial in serials:
            self.add(serial)

    def add(self, serial: str) -> bool:
        """Add a serial. Returns False if it was blank or already present."""
        serial = serial.strip()
        if not serial:
            return False
        key = normalize_serial(serial)
        if key in self._keys:
            self.duplicates_removed += 1
            return False
        self._keys.add(key)
        self._serials.append(serial)
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self._serials)

    def __len__(self) -> int:
        return len(self._serials)

    def __contains__(self, serial: object) -> bool:
        return isinstance(serial, str) and normalize_serial(serial) in self._keys

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SerialSet):
            return self._serials == other._serials
        return NotImplemented

    def __repr__(self) -> str:
        return f"SerialSet({self._serials!r})"

    def to_list(self) -> list[str]:
        return list(self._serials)


@dataclass(frozen=True)
class MatchedSerial:
    """A local serial and the registry serial it resolved to."""

    local_serial: str
    resolved_serial: str


@dataclass
class MatchResult:
    """Partition of an input SerialSet into matched and unmatched serials.

    Every input serial lands in exactly one of the two lists.
    """

    matched: list[MatchedSerial] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    ambiguous: dict[str, list[str]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.matched) + len(self.unmatched)


@dataclass(frozen=True)
class DeletionRequestItem:
    """One device to delete from the registry.

    registry_id is None when the serial could not be resolved to an
    identity; such items are skipped, never submitted.
    """

    serial: str
    registry_id: Optional[str]


@dataclass
class DeletionBatch:
    """Items submitted together in one composite request."""

    number: int
    items: list[DeletionRequestItem]

    def __len__(self) -> int:
        return len(self.items)

    @property
    def serials(self) -> list[str]:
        return [item.serial for item in self.items]


@dataclass(frozen=True)
class DeletionOutcome:
    """Per-item result reported by the composite delete.

    The status is the HTTP status of the individual DELETE. 2xx means the
    request was accepted, not that the device is already gone. A status of
    0 means the service returned no sub-response for the item.
    """

    serial: str
    status_code: int

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class ManagedDeletionOutcome:
    """Result of deleting the Intune record for one device."""

    serial: str
    managed_id: str
    succeeded: bool
    error: Optional[str] = None


@dataclass
class DeletionResult:
    """Everything the batch deletion engine produced for one run."""

    outcomes: list[DeletionOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    managed_outcomes: list[ManagedDeletionOutcome] = field(default_factory=list)
    batches_submitted: int = 0

    @property
    def failed(self) -> list[DeletionOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def succeeded(self) -> list[DeletionOutcome]:
        return [o for o in self.outcomes if o.succeeded]


@dataclass
class ReconciliationReport:
    """Final report of one reconciliation run."""

    state: ReconciliationState = ReconciliationState.MATCHING
    states_visited: list[ReconciliationState] = field(default_factory=list)

    input_count: int = 0
    matched: list[MatchedSerial] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    outcomes: list[DeletionOutcome] = field(default_factory=list)
    managed_outcomes: list[ManagedDeletionOutcome] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)
    sync_outcome: Optional[SyncOutcome] = None
    dry_run: bool = False

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def enter(self, state: ReconciliationState) -> None:
        self.state = state
        self.states_visited.append(state)

    @property
    def failed(self) -> list[DeletionOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def aborted(self) -> bool:
        return self.state == ReconciliationState.ABORTED

    @property
    def fully_removed(self) -> bool:
        """True when the run finished and nothing is left in the registry."""
        return self.state == ReconciliationState.DONE and not self.remaining and not self.dry_run

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and the CLI summary."""
        return {
            "state": self.state.value,
            "dry_run": self.dry_run,
            "input": self.input_count,
            "matched": len(self.matched),
            "unmatched": len(self.unmatched),
            "skipped": len(self.skipped),
            "deletion_requests": len(self.outcomes),
            "failed": len(self.failed),
            "managed_deleted": sum(1 for o in self.managed_outcomes if o.succeeded),
            "managed_failed": sum(1 for o in self.managed_outcomes if not o.succeeded),
            "sync": self.sync_outcome.value if self.sync_outcome else None,
            "remaining": len(self.remaining),
            "duration_seconds": round(self.duration_seconds, 1),
        }
