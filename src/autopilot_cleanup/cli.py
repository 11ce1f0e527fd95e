#!/usr/bin/env python3
"""Windows Autopilot Bulk Cleanup CLI.

Reads device serial numbers from a CSV or Excel file, matches them against
the Autopilot registry, deletes the matches in $batch calls (optionally
deleting the Intune managed device records first), triggers an Autopilot
sync, waits, and reports which devices are still registered.

Environment Variables Required:
    - GRAPH_TENANT_ID: Entra ID tenant
    - GRAPH_CLIENT_ID: App registration client ID
    - GRAPH_CLIENT_SECRET: App registration client secret

Example Usage:
    $ autopilot-cleanup                                # Prompt for DevicesToDelete.csv
    $ autopilot-cleanup --input devices.xlsx --yes     # Non-interactive
    $ autopilot-cleanup --dry-run                      # Match and report only
    $ autopilot-cleanup --delete-managed               # Delete Intune records too
    $ autopilot-cleanup --lookup 6923-30               # Show matching identities
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from typing import Callable, Optional

from dotenv import load_dotenv

from .api import (
    AUTOPILOT_PAGINATION,
    MANAGED_DEVICES_PAGINATION,
    AutopilotRegistry,
    ById,
    BySerial,
    BySerialExpanded,
    GraphClient,
    GraphError,
    ManagedDeviceInventory,
    RegistryQuery,
    TokenManager,
)
from .cleanup.adapters import (
    CsvReportWriter,
    GraphDeletionAdapter,
    GraphRegistryLister,
    GraphSyncService,
    SerialFileReader,
)
from .cleanup.domain.entities import MatchPolicy, ReconciliationReport
from .cleanup.use_cases import ReconcileUseCase
from .config import DEFAULT_INPUT_FILE, CleanupConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_REMAINING = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autopilot-cleanup",
        description="Bulk delete Windows Autopilot devices and verify they are gone",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  autopilot-cleanup                                # Use DevicesToDelete.csv (asks first)
  autopilot-cleanup --input devices.xlsx --yes     # Read an Excel file, no prompt
  autopilot-cleanup --dry-run                      # Match and write reports, delete nothing
  autopilot-cleanup --delete-managed               # Delete Intune records before Autopilot
  autopilot-cleanup --lookup 6923-30 --expand      # Show identities with profiles
        """
    )

    input_group = parser.add_argument_group("Input")
    input_group.add_argument(
        "--input",
        type=str,
        metavar="FILE",
        help="CSV or .xlsx file with a 'Device Serial Number' column"
    )
    input_group.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Do not ask for confirmation of the input file"
    )

    deletion_group = parser.add_argument_group("Deletion")
    deletion_group.add_argument(
        "--batch-size",
        type=int,
        metavar="N",
        help="Deletions per $batch request, 1-20 (default: 20)"
    )
    deletion_group.add_argument(
        "--delete-managed",
        action="store_true",
        help="Also delete the Intune managed device record of each device"
    )
    deletion_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Match and write reports without deleting anything"
    )
    deletion_group.add_argument(
        "--match-policy",
        choices=[p.value for p in MatchPolicy],
        help="How to handle a serial matching several devices (default: first)"
    )

    reconcile_group = parser.add_argument_group("Reconciliation")
    reconcile_group.add_argument(
        "--wait-seconds",
        type=float,
        metavar="S",
        help="Seconds to wait after the sync before verifying (default: 60)"
    )
    reconcile_group.add_argument(
        "--fail-on-remaining",
        action="store_true",
        help="Exit with status 2 if any device failed or is still registered"
    )

    output_group = parser.add_argument_group("Output")
    output_group.add_argument(
        "--output-dir",
        type=str,
        metavar="DIR",
        help="Directory for the CSV reports (default: current directory)"
    )
    output_group.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    lookup_group = parser.add_argument_group("Lookup (no deletion)")
    lookup_mode = lookup_group.add_mutually_exclusive_group()
    lookup_mode.add_argument(
        "--lookup",
        type=str,
        metavar="SERIAL",
        help="Print identities whose serial number contains SERIAL"
    )
    lookup_mode.add_argument(
        "--lookup-id",
        type=str,
        metavar="ID",
        help="Print the identity with registry id ID"
    )
    lookup_group.add_argument(
        "--expand",
        action="store_true",
        help="With --lookup, include deployment profile data"
    )

    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def confirm_input_file(
    path: str,
    assume_yes: bool = False,
    prompt: Callable[[str], str] = input,
) -> str:
    """Let the operator confirm or replace the input file path.

    An empty answer keeps the proposed path.
    """
    if assume_yes:
        return path
    answer = prompt(f"[Cleanup] Input file is '{path}'. Press Enter to use it or type another path: ")
    return answer.strip() or path


def build_lookup_query(args: argparse.Namespace) -> Optional[RegistryQuery]:
    """Translate the lookup flags into a RegistryQuery, or None for a cleanup run."""
    if args.lookup_id:
        return ById(args.lookup_id)
    if args.lookup:
        return BySerialExpanded(args.lookup) if args.expand else BySerial(args.lookup)
    return None


def exit_code_for(report: ReconciliationReport, fail_on_remaining: bool = False) -> int:
    """Map the final report to a process exit status."""
    if report.aborted:
        return EXIT_FATAL
    if fail_on_remaining and not report.dry_run and (report.remaining or report.failed):
        return EXIT_REMAINING
    return EXIT_OK


def print_summary(report: ReconciliationReport, output_dir: str) -> None:
    if report.aborted:
        title = "CLEANUP ABORTED - NO MATCHING DEVICES"
    elif report.dry_run:
        title = "DRY RUN COMPLETE"
    else:
        title = "CLEANUP COMPLETE"

    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    print(f"  Input serials:     {report.input_count}")
    print(f"  Matched:           {len(report.matched)}")
    print(f"  Not matched:       {len(report.unmatched)}")
    print(f"  Skipped:           {len(report.skipped)}")
    if not report.dry_run and not report.aborted:
        print(f"  Deletion requests: {len(report.outcomes)}")
        print(f"  Failed:            {len(report.failed)}")
        if report.managed_outcomes:
            deleted = sum(1 for o in report.managed_outcomes if o.succeeded)
            print(f"  Managed deleted:   {deleted}/{len(report.managed_outcomes)}")
        if report.sync_outcome:
            print(f"  Sync:              {report.sync_outcome.value}")
        print(f"  Remaining:         {len(report.remaining)}")
    print(f"\n[Cleanup] Reports written to {output_dir}")
    print(f"[Cleanup] Completed in {report.duration_seconds:.1f} seconds")


async def run_lookup(client: GraphClient, query: RegistryQuery) -> int:
    registry = AutopilotRegistry(client)
    records = await registry.query(query)
    print(json.dumps(records, indent=2, default=str))
    print(f"[Cleanup] {len(records)} record(s) found", file=sys.stderr)
    return EXIT_OK


async def run_cleanup(client: GraphClient, config: CleanupConfig) -> ReconciliationReport:
    """Read the input file and run the reconciliation loop."""
    serials = SerialFileReader().read(config.input_file)
    print(f"[Cleanup] {len(serials)} unique serial(s) read from {config.input_file}")

    registry = AutopilotRegistry(
        client,
        pagination=replace(AUTOPILOT_PAGINATION, delay_between_pages=config.page_delay),
    )
    inventory = ManagedDeviceInventory(
        client,
        pagination=replace(MANAGED_DEVICES_PAGINATION, delay_between_pages=config.page_delay),
    )

    use_case = ReconcileUseCase(
        lister=GraphRegistryLister(registry, inventory),
        deletion=GraphDeletionAdapter(registry, inventory),
        sync_service=GraphSyncService(registry),
        report_writer=CsvReportWriter(config.output_dir),
    )
    return await use_case.execute(
        serials,
        batch_max_count=config.batch_size,
        wait_seconds=config.wait_seconds,
        also_delete_managed=config.delete_managed,
        match_policy=config.match_policy,
        dry_run=config.dry_run,
    )


async def run(args: argparse.Namespace) -> int:
    """Run the command described by args and return the exit status.

    The input file must already be settled (see main); nothing here
    reads from the terminal.
    """
    try:
        token_manager = TokenManager()
        query = build_lookup_query(args)

        if query is None:
            config = CleanupConfig().apply_overrides(
                input_file=args.input,
                output_dir=args.output_dir,
                batch_size=args.batch_size,
                wait_seconds=args.wait_seconds,
                delete_managed=args.delete_managed,
                match_policy=args.match_policy,
                dry_run=args.dry_run,
                fail_on_remaining=args.fail_on_remaining,
            )
            logger.debug(f"Configuration: {config!r}")

        async with GraphClient(token_manager) as client:
            if query is not None:
                return await run_lookup(client, query)

            if config.dry_run:
                print("[Cleanup] Dry run: nothing will be deleted")
            report = await run_cleanup(client, config)

    except GraphError as e:
        logger.error(f"Cleanup failed: {e}")
        print(f"[Cleanup] ERROR: {e.message}")
        return EXIT_FATAL

    print_summary(report, config.output_dir)
    return exit_code_for(report, config.fail_on_remaining)


def main(argv: Optional[list[str]] = None, prompt: Callable[[str], str] = input) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    # Ask before the event loop starts
    if build_lookup_query(args) is None:
        proposed = args.input or os.getenv("CLEANUP_INPUT_FILE", DEFAULT_INPUT_FILE)
        args.input = confirm_input_file(proposed, args.yes, prompt)

    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
