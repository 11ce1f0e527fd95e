"""Graph adapter for registry and managed-device deletions.

Implements IDeletionPort. Registry identities are deleted through one
$batch call per DeletionBatch; managed devices are deleted one by one.
"""

import logging
from typing import Optional, Sequence

from ...api.autopilot import AutopilotRegistry
from ...api.managed_devices import ManagedDeviceInventory
from ..domain.entities import DeletionOutcome, DeletionRequestItem
from ..domain.ports import IDeletionPort

logger = logging.getLogger(__name__)

# Status recorded for an item the $batch reply did not mention
MISSING_RESPONSE_STATUS = 0


class GraphDeletionAdapter(IDeletionPort):
    """Deletes Autopilot identities and Intune managed devices."""

    def __init__(
        self,
        registry: AutopilotRegistry,
        inventory: Optional[ManagedDeviceInventory] = None,
    ):
        self.registry = registry
        self.inventory = inventory

    async def submit_deletion_batch(
        self, items: Sequence[DeletionRequestItem]
    ) -> list[DeletionOutcome]:
        pairs = [(item.serial, item.registry_id) for item in items]
        responses = await self.registry.delete_devices_batch(pairs)

        # Correlate by sub-request id (the serial), never by position
        by_id = {response.id: response for response in responses}
        outcomes = []
        for item in items:
            response = by_id.get(item.serial)
            if response is None:
                logger.warning(f"No batch response for {item.serial}")
                outcomes.append(DeletionOutcome(item.serial, MISSING_RESPONSE_STATUS))
                continue
            if not response.ok:
                logger.warning(
                    f"Deletion of {item.serial} rejected with status {response.status}: "
                    f"{response.error_message}"
                )
            outcomes.append(DeletionOutcome(item.serial, response.status))
        return outcomes

    async def delete_managed_device(self, managed_id: str) -> None:
        if self.inventory is None:
            raise ValueError("No managed device inventory configured")
        await self.inventory.delete_device(managed_id)
