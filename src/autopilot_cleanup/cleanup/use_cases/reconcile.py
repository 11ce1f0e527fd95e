"""Reconcile Use Case - the delete, sync and re-verify loop.

The run moves through a fixed sequence of states:

    MATCHING -> DELETING -> SYNC_TRIGGERED -> WAITING -> VERIFYING -> DONE

MATCHING ends in ABORTED when no input serial is found in the registry.
Artifacts are written as each phase produces them. A batch transport
failure still leaves the skipped list and the outcomes of the batches
submitted before it.

Nothing is retried automatically. Running the same input again is safe:
serials already deleted simply stop matching.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from ...api.client import MAX_BATCH_REQUESTS
from ..domain.entities import (
    DeletionRequestItem,
    DeletionResult,
    ManagedDeviceRecord,
    MatchPolicy,
    ReconciliationReport,
    ReconciliationState,
    ResourceKind,
    SerialSet,
    SyncOutcome,
    group_by_serial,
    index_by_serial,
    normalize_serial,
)
from ..domain.matching import match_serials
from ..domain.ports import IDeletionPort, IRegistryLister, IReportWriter, ISyncService
from .delete_devices import DeleteDevicesUseCase

logger = logging.getLogger(__name__)

DEFAULT_WAIT_SECONDS = 60


class ReconcileUseCase:
    """Orchestrates one cleanup run from input serials to the remaining report.

    Example:
        use_case = ReconcileUseCase(
            lister=GraphRegistryLister(registry, inventory),
            deletion=GraphDeletionAdapter(registry, inventory),
            sync_service=GraphSyncService(registry),
            report_writer=CsvReportWriter("."),
        )
        report = await use_case.execute(serials, batch_max_count=20)
    """

    def __init__(
        self,
        lister: IRegistryLister,
        deletion: IDeletionPort,
        sync_service: ISyncService,
        report_writer: IReportWriter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the use case with its dependencies.

        Args:
            lister: Port for listing the registry and managed inventory
            deletion: Port for remote deletions
            sync_service: Port for the registry resync
            report_writer: Port for the CSV artifacts
            sleep: Awaitable used for the post-sync wait
        """
        self.lister = lister
        self.deletion = deletion
        self.sync_service = sync_service
        self.writer = report_writer
        self.sleep = sleep
        self.delete_devices = DeleteDevicesUseCase(deletion)

    async def execute(
        self,
        serials: SerialSet,
        batch_max_count: int = MAX_BATCH_REQUESTS,
        wait_seconds: float = DEFAULT_WAIT_SECONDS,
        also_delete_managed: bool = False,
        match_policy: MatchPolicy = MatchPolicy.FIRST,
        dry_run: bool = False,
    ) -> ReconciliationReport:
        """Run the full reconciliation loop.

        Args:
            serials: De-duplicated input serials
            batch_max_count: Maximum deletions per composite request
            wait_seconds: Delay between the sync trigger and verification
            also_delete_managed: Delete Intune records before registry records
            match_policy: Tie-break for ambiguous suffix matches
            dry_run: Match and report only, no remote writes

        Returns:
            ReconciliationReport in state DONE or ABORTED

        Raises:
            GraphError: On transport, authorization or validation failures,
                which abort the run
        """
        report = ReconciliationReport(input_count=len(serials), dry_run=dry_run)

        # MATCHING
        report.enter(ReconciliationState.MATCHING)
        records = await self.lister.list_all(ResourceKind.AUTOPILOT)
        registry_groups = group_by_serial(records)
        match = match_serials(serials, [r.serial_number for r in records], match_policy)
        report.matched = match.matched
        report.unmatched = match.unmatched

        await self.writer.write_matched(report.matched)
        await self.writer.write_unmatched(report.unmatched)

        if not report.matched:
            logger.warning("None of the input serials were found in the registry")
            return self._finish(report, ReconciliationState.ABORTED)

        # DELETING
        report.enter(ReconciliationState.DELETING)
        items = self._build_items(report, registry_groups)
        batches, missing = self.delete_devices.plan(items, batch_max_count)
        report.skipped = report.unmatched + missing
        await self.writer.write_skipped(report.skipped)

        if dry_run:
            for batch in batches:
                logger.info(f"[dry-run] Batch {batch.number}: {', '.join(batch.serials)}")
            await self.writer.write_deletion_results([])

            report.sync_outcome = SyncOutcome.SKIPPED
            report.remaining = [m.local_serial for m in report.matched]
            await self.writer.write_remaining(report.remaining)
            return self._finish(report, ReconciliationState.DONE)

        managed_index: Optional[dict[str, ManagedDeviceRecord]] = None
        if also_delete_managed:
            managed_records = await self.lister.list_all(ResourceKind.MANAGED)
            managed_index = index_by_serial(managed_records)

        # Results of accepted batches are written even if a later batch fails
        result = DeletionResult()
        try:
            await self.delete_devices.execute(
                items,
                batch_max_count=batch_max_count,
                also_delete_managed=also_delete_managed,
                managed_index=managed_index,
                result=result,
            )
        finally:
            report.outcomes = result.outcomes
            report.managed_outcomes = result.managed_outcomes
            await self.writer.write_deletion_results(report.outcomes)
            if also_delete_managed:
                await self.writer.write_managed_results(report.managed_outcomes)

        # SYNC_TRIGGERED
        report.enter(ReconciliationState.SYNC_TRIGGERED)
        report.sync_outcome = await self.sync_service.trigger_sync()

        # WAITING
        report.enter(ReconciliationState.WAITING)
        if wait_seconds > 0:
            logger.info(f"Waiting {wait_seconds}s for the registry to settle")
            await self.sleep(wait_seconds)

        # VERIFYING
        report.enter(ReconciliationState.VERIFYING)
        records = await self.lister.list_all(ResourceKind.AUTOPILOT)
        verification = match_serials(serials, [r.serial_number for r in records], MatchPolicy.FIRST)
        report.remaining = [m.local_serial for m in verification.matched]

        # DONE
        await self.writer.write_remaining(report.remaining)
        if report.remaining:
            logger.warning(f"{len(report.remaining)} device(s) still present in the registry")
        else:
            logger.info("All matched devices are gone from the registry")
        return self._finish(report, ReconciliationState.DONE)

    def _build_items(self, report: ReconciliationReport, registry_groups: dict) -> list[DeletionRequestItem]:
        """Turn matches into deletion items keyed by the registry serial.

        Every identity registered under a resolved serial gets an item.
        Two local serials can resolve to the same registry serial; its
        identities are scheduled once.
        """
        items = []
        seen: set[str] = set()
        for matched in report.matched:
            key = normalize_serial(matched.resolved_serial)
            if key in seen:
                logger.warning(
                    f"{matched.local_serial} resolves to {matched.resolved_serial}, "
                    f"which is already scheduled for deletion"
                )
                continue
            seen.add(key)

            records = registry_groups.get(key, [])
            if len(records) > 1:
                logger.warning(
                    f"{matched.resolved_serial} is registered {len(records)} times "
                    f"({', '.join(r.registry_id for r in records)}); deleting all of them"
                )
            if not records:
                items.append(DeletionRequestItem(serial=matched.resolved_serial, registry_id=None))
            for record in records:
                items.append(
                    DeletionRequestItem(serial=matched.resolved_serial, registry_id=record.registry_id or None)
                )
        return items

    def _finish(self, report: ReconciliationReport, state: ReconciliationState) -> ReconciliationReport:
        report.enter(state)
        report.completed_at = datetime.now()
        logger.info(f"Reconciliation finished in state {state.value}: {report.to_dict()}")
        return report
