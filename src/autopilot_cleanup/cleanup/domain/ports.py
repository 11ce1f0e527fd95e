"""Port interfaces for cleanup operations.

Ports define the contracts between the use cases and the infrastructure.
These are abstract base classes that adapters must implement.

- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence, Union

from .entities import (
    DeletionOutcome,
    DeletionRequestItem,
    DeviceRecord,
    ManagedDeletionOutcome,
    ManagedDeviceRecord,
    MatchedSerial,
    ResourceKind,
    SerialSet,
    SyncOutcome,
)


class IRegistryLister(ABC):
    """Port for listing device inventories.

    Implementations must follow pagination to the end and return every
    record; a partial listing would make matching and verification wrong.
    """

    @abstractmethod
    async def list_all(
        self, kind: ResourceKind
    ) -> Union[list[DeviceRecord], list[ManagedDeviceRecord]]:
        """List every record of the given kind.

        Args:
            kind: ResourceKind.AUTOPILOT for the registry,
                ResourceKind.MANAGED for the management inventory

        Returns:
            DeviceRecord list for AUTOPILOT, ManagedDeviceRecord list for MANAGED

        Raises:
            GraphError: On any transport or authorization failure
        """
        ...


class IDeletionPort(ABC):
    """Port for remote deletions."""

    @abstractmethod
    async def submit_deletion_batch(
        self, items: Sequence[DeletionRequestItem]
    ) -> list[DeletionOutcome]:
        """Submit one composite delete request.

        Every item must carry a registry_id. The result holds exactly one
        outcome per item, in input order.

        Raises:
            GraphError: If the composite request itself fails
        """
        ...

    @abstractmethod
    async def delete_managed_device(self, managed_id: str) -> None:
        """Delete the management-inventory record of one device.

        Raises:
            GraphError: If the record could not be deleted
        """
        ...


class ISyncService(ABC):
    """Port for triggering a registry resync."""

    @abstractmethod
    async def trigger_sync(self) -> SyncOutcome:
        """Ask the registry to refresh its state.

        Returns:
            SyncOutcome.TRIGGERED, or SyncOutcome.RATE_LIMITED when a sync
            was requested too recently

        Raises:
            GraphError: On any other failure
        """
        ...


class ISerialFileReader(ABC):
    """Port for reading the list of serials to delete."""

    @abstractmethod
    def read(self, path: Union[str, Path]) -> SerialSet:
        """Read serial numbers from a CSV or Excel file.

        Raises:
            InputFileError: If the file is missing, unreadable or has no serial column
        """
        ...


class IReportWriter(ABC):
    """Port for writing the run artifacts."""

    @abstractmethod
    async def write_matched(self, matched: Sequence[MatchedSerial]) -> Path:
        ...

    @abstractmethod
    async def write_unmatched(self, serials: Sequence[str]) -> Path:
        ...

    @abstractmethod
    async def write_skipped(self, serials: Sequence[str]) -> Path:
        ...

    @abstractmethod
    async def write_deletion_results(self, outcomes: Sequence[DeletionOutcome]) -> Path:
        ...

    @abstractmethod
    async def write_managed_results(self, outcomes: Sequence[ManagedDeletionOutcome]) -> Path:
        ...

    @abstractmethod
    async def write_remaining(self, serials: Sequence[str]) -> Path:
        ...
