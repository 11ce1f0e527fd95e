#!/usr/bin/env python3
"""Intune managed device operations.

Reads the Intune managed device inventory and deletes individual managed
device records. A managed record has to be gone before Autopilot accepts
the deletion of the matching identity.

API Details:
    - Collection: /deviceManagement/managedDevices
    - Pagination: '@odata.nextLink', $top up to 1000
    - Delete: DELETE /deviceManagement/managedDevices/{id}
"""
import logging
from typing import Optional

from .client import MANAGED_DEVICES_PAGINATION, GraphClient, PaginationConfig

logger = logging.getLogger(__name__)


class ManagedDeviceInventory:
    """Intune managed device inventory.

    Attributes:
        client: GraphClient instance for API communication
        pagination: Listing pagination settings (defaults to MANAGED_DEVICES_PAGINATION)
    """

    ENDPOINT = "/deviceManagement/managedDevices"
    SELECT = "id,serialNumber,deviceName"

    def __init__(self, client: GraphClient, pagination: Optional[PaginationConfig] = None):
        self.client = client
        self.pagination = pagination or MANAGED_DEVICES_PAGINATION

    async def fetch_all_devices(self) -> list[dict]:
        """Fetch every managed device (id, serial number and name only)."""
        return await self.client.fetch_all(
            self.ENDPOINT,
            config=self.pagination,
            params={"$select": self.SELECT},
        )

    async def delete_device(self, managed_id: str) -> None:
        """Delete one managed device record.

        Raises:
            NotFoundError: If the record no longer exists
            APIError: If the service rejects the deletion
        """
        logger.info(f"Deleting managed device {managed_id}")
        await self.client.delete(f"{self.ENDPOINT}/{managed_id}")
