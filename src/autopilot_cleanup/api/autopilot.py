#!/usr/bin/env python3
"""Windows Autopilot device identity operations.

This module provides the AutopilotRegistry class for reading and deleting
Windows Autopilot device identities through Microsoft Graph, and for
triggering the Autopilot sync with the upstream enrollment source.

API Details:
    - Collection: /deviceManagement/windowsAutopilotDeviceIdentities
    - Pagination: '@odata.nextLink'
    - Deletes: one DELETE per identity, bundled into $batch calls
    - Sync: POST /deviceManagement/windowsAutopilotSettings/sync, answers 429
      when called again within the service's minimum interval

Lookups are expressed as a tagged request variant decided at the call site:

    registry.query(ById("..."))
    registry.query(BySerial("6923-30"))
    registry.query(BySerialExpanded("6923-30"))
    registry.query(ListAll())

Example:
    async with GraphClient(token_manager) as client:
        registry = AutopilotRegistry(client)
        devices = await registry.fetch_all_devices()
        responses = await registry.delete_devices_batch([("SN1", "id-1")])
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .client import (
    AUTOPILOT_PAGINATION,
    MAX_BATCH_REQUESTS,
    BatchRequest,
    BatchResponse,
    GraphClient,
    PaginationConfig,
)
from .exceptions import ValidationError

logger = logging.getLogger(__name__)


# ============================================
# Lookup Variants
# ============================================

@dataclass(frozen=True)
class ById:
    """Fetch one identity by its registry id."""
    registry_id: str


@dataclass(frozen=True)
class BySerial:
    """Fetch identities whose serial number contains the given text."""
    serial: str


@dataclass(frozen=True)
class BySerialExpanded:
    """Like BySerial, with deployment profile data expanded on each hit."""
    serial: str


@dataclass(frozen=True)
class ListAll:
    """Fetch the complete registry."""


RegistryQuery = Union[ById, BySerial, BySerialExpanded, ListAll]


def _odata_literal(value: str) -> str:
    """Quote a string for use inside an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


# ============================================
# AutopilotRegistry
# ============================================

class AutopilotRegistry:
    """Read, delete and resync Windows Autopilot device identities.

    Attributes:
        client: GraphClient instance for API communication
        pagination: Listing pagination settings (defaults to AUTOPILOT_PAGINATION)
    """

    ENDPOINT = "/deviceManagement/windowsAutopilotDeviceIdentities"
    SYNC_ENDPOINT = "/deviceManagement/windowsAutopilotSettings/sync"
    EXPAND = "deploymentProfile,intendedDeploymentProfile"

    def __init__(self, client: GraphClient, pagination: Optional[PaginationConfig] = None):
        self.client = client
        self.pagination = pagination or AUTOPILOT_PAGINATION

    # ----------------------------------------
    # Reads
    # ----------------------------------------

    async def fetch_all_devices(self) -> list[dict]:
        """Fetch every Autopilot identity, following nextLink to the end."""
        return await self.client.fetch_all(self.ENDPOINT, config=self.pagination)

    async def get_device(self, registry_id: str) -> dict:
        """Fetch one identity by id.

        Raises:
            NotFoundError: If the identity does not exist
        """
        return await self.client.get(f"{self.ENDPOINT}/{registry_id}")

    async def get_device_expanded(self, registry_id: str) -> dict:
        """Fetch one identity with its deployment profiles expanded."""
        return await self.client.get(
            f"{self.ENDPOINT}/{registry_id}",
            params={"$expand": self.EXPAND},
        )

    async def find_by_serial(self, serial: str) -> list[dict]:
        """Find identities whose serial number contains `serial`."""
        return await self.client.fetch_all(
            self.ENDPOINT,
            config=self.pagination,
            params={"$filter": f"contains(serialNumber,{_odata_literal(serial)})"},
        )

    async def query(self, request: RegistryQuery) -> list[dict]:
        """Run a lookup described by a RegistryQuery variant.

        Returns:
            Matching identities (a single-element list for ById)
        """
        if isinstance(request, ById):
            return [await self.get_device(request.registry_id)]
        if isinstance(request, BySerial):
            return await self.find_by_serial(request.serial)
        if isinstance(request, BySerialExpanded):
            hits = await self.find_by_serial(request.serial)
            return [await self.get_device_expanded(hit["id"]) for hit in hits]
        if isinstance(request, ListAll):
            return await self.fetch_all_devices()
        raise TypeError(f"Unsupported registry query: {request!r}")

    # ----------------------------------------
    # Deletes
    # ----------------------------------------

    def delete_url(self, registry_id: str) -> str:
        """Relative URL of the DELETE sub-request for one identity."""
        return f"{self.ENDPOINT}/{registry_id}"

    async def delete_devices_batch(
        self,
        items: list[tuple[str, str]],
    ) -> list[BatchResponse]:
        """Delete several identities in one $batch call.

        Each sub-request is keyed by the device serial number so the
        responses can be matched back to serials regardless of order.

        Args:
            items: (serial_number, registry_id) pairs, at most 20

        Returns:
            BatchResponse per sub-request, ids equal to the serial numbers

        Raises:
            ValidationError: If items is empty or larger than the $batch cap
        """
        if not items:
            raise ValidationError("At least one device is required", field="items")
        if len(items) > MAX_BATCH_REQUESTS:
            raise ValidationError(
                f"At most {MAX_BATCH_REQUESTS} devices per batch, got {len(items)}",
                field="items",
            )

        requests = [
            BatchRequest(id=serial, method="DELETE", url=self.delete_url(registry_id))
            for serial, registry_id in items
        ]

        logger.info(f"Submitting deletion batch of {len(requests)} Autopilot identities")
        return await self.client.batch(requests)

    # ----------------------------------------
    # Sync
    # ----------------------------------------

    async def sync(self) -> None:
        """Ask Autopilot to sync with the upstream enrollment source.

        Raises:
            RateLimitError: If a sync was requested too recently
        """
        logger.info("Triggering Autopilot sync")
        await self.client.post(self.SYNC_ENDPOINT)
