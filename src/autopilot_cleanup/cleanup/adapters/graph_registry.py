"""Graph adapter for listing the Autopilot registry and Intune inventory.

This adapter implements IRegistryLister on top of AutopilotRegistry and
ManagedDeviceInventory and maps the raw Graph dictionaries to domain
records.
"""

import logging
from typing import Any, Optional, Union

from ...api.autopilot import AutopilotRegistry
from ...api.managed_devices import ManagedDeviceInventory
from ..domain.entities import DeviceRecord, ManagedDeviceRecord, ResourceKind
from ..domain.ports import IRegistryLister

logger = logging.getLogger(__name__)


def to_device_record(raw: dict[str, Any]) -> DeviceRecord:
    """Map a windowsAutopilotDeviceIdentity to a DeviceRecord."""
    return DeviceRecord(
        registry_id=raw["id"],
        serial_number=raw.get("serialNumber") or "",
        model=raw.get("model"),
        manufacturer=raw.get("manufacturer"),
        group_tag=raw.get("groupTag"),
        enrollment_state=raw.get("enrollmentState"),
        managed_device_id=_blank_to_none(raw.get("managedDeviceId")),
    )


def to_managed_record(raw: dict[str, Any]) -> ManagedDeviceRecord:
    """Map an Intune managedDevice to a ManagedDeviceRecord."""
    return ManagedDeviceRecord(
        managed_id=raw["id"],
        serial_number=raw.get("serialNumber") or "",
        device_name=raw.get("deviceName"),
    )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    # Graph reports unmanaged identities with an all-zero GUID
    if not value or value.strip("0-") == "":
        return None
    return value


class GraphRegistryLister(IRegistryLister):
    """Lists Autopilot identities and Intune managed devices via Graph.

    Transport errors are not retried here; they propagate to the caller
    and abort the run.
    """

    def __init__(
        self,
        registry: AutopilotRegistry,
        inventory: Optional[ManagedDeviceInventory] = None,
    ):
        self.registry = registry
        self.inventory = inventory

    async def list_all(
        self, kind: ResourceKind
    ) -> Union[list[DeviceRecord], list[ManagedDeviceRecord]]:
        if kind == ResourceKind.AUTOPILOT:
            raw = await self.registry.fetch_all_devices()
            records = [to_device_record(item) for item in raw]
        elif kind == ResourceKind.MANAGED:
            if self.inventory is None:
                raise ValueError("No managed device inventory configured")
            raw = await self.inventory.fetch_all_devices()
            records = [to_managed_record(item) for item in raw]
        else:
            raise ValueError(f"Unknown resource kind: {kind!r}")

        logger.info(f"Listed {len(records):,} {kind.value} records")
        return records
