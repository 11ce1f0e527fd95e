"""Delete Devices Use Case - batched deletion of Autopilot identities.

Workflow:
1. Validate the batch size and the uniqueness of the serials
2. Set aside items that have no registry id (skipped)
3. Split the rest into consecutive batches, order preserved; identities
   sharing a serial land in separate batches
4. Per batch: delete the managed records (optional), then submit one
   composite delete and record one outcome per item

A failure of the composite request itself is fatal and stops the
remaining batches. A rejected item is recorded and never stops anything.
"""

import logging
from typing import Mapping, Optional, Sequence, TypeVar

from ...api.client import MAX_BATCH_REQUESTS
from ...api.exceptions import BatchLimitError, DuplicateSerialError, ErrorCollector, GraphError
from ..domain.entities import (
    DeletionBatch,
    DeletionRequestItem,
    DeletionResult,
    ManagedDeletionOutcome,
    ManagedDeviceRecord,
    normalize_serial,
)
from ..domain.ports import IDeletionPort

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most `size`."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def validate_batch_size(batch_max_count: int) -> None:
    """Raise BatchLimitError unless 1 <= batch_max_count <= MAX_BATCH_REQUESTS."""
    if (
        isinstance(batch_max_count, bool)
        or not isinstance(batch_max_count, int)
        or not 1 <= batch_max_count <= MAX_BATCH_REQUESTS
    ):
        raise BatchLimitError(batch_max_count, MAX_BATCH_REQUESTS)


def build_batches(
    items: Sequence[DeletionRequestItem],
    batch_max_count: int,
) -> list[DeletionBatch]:
    """Partition items into numbered DeletionBatches.

    The serial is the correlation key of a composite request, so it must
    be unique within a batch. When the registry holds several identities
    for one serial, the n-th identity goes into the n-th round of batches.
    Without such twins there is a single round and order is unchanged.

    Raises:
        BatchLimitError: If batch_max_count is outside 1..MAX_BATCH_REQUESTS
    """
    validate_batch_size(batch_max_count)

    rounds: list[list[DeletionRequestItem]] = []
    occurrences: dict[str, int] = {}
    for item in items:
        key = normalize_serial(item.serial)
        index = occurrences.get(key, 0)
        occurrences[key] = index + 1
        if index == len(rounds):
            rounds.append([])
        rounds[index].append(item)

    chunks = [batch for round_items in rounds for batch in chunk(round_items, batch_max_count)]
    return [
        DeletionBatch(number=number, items=batch)
        for number, batch in enumerate(chunks, start=1)
    ]


def ensure_unique_items(items: Sequence[DeletionRequestItem]) -> None:
    """Raise DuplicateSerialError when a (serial, registry id) pair repeats.

    Serials compare case-insensitively. The same serial with different
    registry ids is allowed: those are distinct identities.
    """
    seen: set[tuple[str, Optional[str]]] = set()
    for item in items:
        key = (normalize_serial(item.serial), item.registry_id)
        if key in seen:
            raise DuplicateSerialError(item.serial)
        seen.add(key)


class DeleteDevicesUseCase:
    """Orchestrates batched deletion of registry records.

    Example:
        use_case = DeleteDevicesUseCase(GraphDeletionAdapter(registry, inventory))
        result = await use_case.execute(items, batch_max_count=20)
    """

    def __init__(self, deletion: IDeletionPort):
        self.deletion = deletion
        self.errors = ErrorCollector()

    def plan(
        self,
        items: Sequence[DeletionRequestItem],
        batch_max_count: int,
    ) -> tuple[list[DeletionBatch], list[str]]:
        """Validate items and build batches without sending anything.

        Returns:
            (batches, skipped serials)

        Raises:
            BatchLimitError: If batch_max_count is out of range
            DuplicateSerialError: If the same identity appears twice
        """
        validate_batch_size(batch_max_count)
        ensure_unique_items(items)

        skipped = [item.serial for item in items if not item.registry_id]
        submittable = [item for item in items if item.registry_id]
        return build_batches(submittable, batch_max_count), skipped

    async def execute(
        self,
        items: Sequence[DeletionRequestItem],
        batch_max_count: int = MAX_BATCH_REQUESTS,
        also_delete_managed: bool = False,
        managed_index: Optional[Mapping[str, ManagedDeviceRecord]] = None,
        result: Optional[DeletionResult] = None,
    ) -> DeletionResult:
        """Delete the given items in batches.

        Args:
            items: Devices to delete, in report order
            batch_max_count: Maximum items per composite request
            also_delete_managed: Delete the Intune record first when one exists
            managed_index: Managed records keyed by normalized serial
            result: Filled in place as batches complete. A caller passing
                its own keeps the outcomes of accepted batches when a
                later batch fails.

        Returns:
            DeletionResult with one outcome per submitted item

        Raises:
            BatchLimitError: If batch_max_count is out of range
            DuplicateSerialError: If the same identity appears twice
            GraphError: If a composite request fails as a whole
        """
        batches, skipped = self.plan(items, batch_max_count)
        if result is None:
            result = DeletionResult()
        result.skipped = skipped
        self.errors.clear()

        for serial in skipped:
            logger.warning(f"Skipping {serial}: no registry id")

        logger.info(
            f"Deleting {sum(len(b) for b in batches)} device(s) in {len(batches)} "
            f"batch(es) of up to {batch_max_count}"
        )

        managed_done: set[str] = set()
        try:
            for batch in batches:
                if also_delete_managed and managed_index:
                    result.managed_outcomes.extend(
                        await self._delete_managed(batch, managed_index, managed_done)
                    )

                outcomes = await self.deletion.submit_deletion_batch(batch.items)
                result.outcomes.extend(outcomes)
                result.batches_submitted += 1

                failed = sum(1 for o in outcomes if not o.succeeded)
                logger.info(
                    f"Batch {batch.number}/{len(batches)}: "
                    f"{len(outcomes) - failed} accepted, {failed} rejected"
                )
        finally:
            if self.errors.has_errors():
                logger.warning(f"{self.errors.count()} managed device deletion(s) failed:")
                for error, context in self.errors.get_errors():
                    logger.warning(f"  {context['serial']} ({context['managed_id']}): {error}")

        return result

    async def _delete_managed(
        self,
        batch: DeletionBatch,
        managed_index: Mapping[str, ManagedDeviceRecord],
        managed_done: set[str],
    ) -> list[ManagedDeletionOutcome]:
        outcomes = []
        for item in batch.items:
            record = managed_index.get(normalize_serial(item.serial))
            # Twin identities share one managed record
            if record is None or record.managed_id in managed_done:
                continue
            managed_done.add(record.managed_id)
            try:
                await self.deletion.delete_managed_device(record.managed_id)
            except GraphError as e:
                logger.error(f"Failed to delete managed device {record.managed_id} ({item.serial}): {e}")
                self.errors.add(e, context={"serial": item.serial, "managed_id": record.managed_id})
                outcomes.append(
                    ManagedDeletionOutcome(item.serial, record.managed_id, succeeded=False, error=e.message)
                )
                continue
            logger.info(f"Deleted managed device {record.managed_id} ({item.serial})")
            outcomes.append(ManagedDeletionOutcome(item.serial, record.managed_id, succeeded=True))
        return outcomes
