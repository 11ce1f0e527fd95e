"""CSV report writer adapter.

Implements IReportWriter. Every artifact is a small CSV file in the
output directory, overwritten on each run.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Sequence, Union

import aiofiles

from ..domain.entities import DeletionOutcome, ManagedDeletionOutcome, MatchedSerial
from ..domain.ports import IReportWriter

logger = logging.getLogger(__name__)

SERIAL_HEADER = "Device Serial Number"

MATCHED_FILE = "MatchedDevices.csv"
UNMATCHED_FILE = "NotMatchedDevices.csv"
SKIPPED_FILE = "SkippedDevices.csv"
DELETION_RESULTS_FILE = "DeletionResults.csv"
MANAGED_RESULTS_FILE = "ManagedDeletionResults.csv"
REMAINING_FILE = "RemainingDevices.csv"


class CsvReportWriter(IReportWriter):
    """Writes run artifacts as CSV files.

    Attributes:
        output_dir: Directory the files are written to (created if missing)
    """

    def __init__(self, output_dir: Union[str, Path] = "."):
        self.output_dir = Path(output_dir)

    async def write_matched(self, matched: Sequence[MatchedSerial]) -> Path:
        return await self._write(
            MATCHED_FILE,
            [SERIAL_HEADER, "Registry Serial Number"],
            [[m.local_serial, m.resolved_serial] for m in matched],
        )

    async def write_unmatched(self, serials: Sequence[str]) -> Path:
        return await self._write_serials(UNMATCHED_FILE, serials)

    async def write_skipped(self, serials: Sequence[str]) -> Path:
        return await self._write_serials(SKIPPED_FILE, serials)

    async def write_deletion_results(self, outcomes: Sequence[DeletionOutcome]) -> Path:
        return await self._write(
            DELETION_RESULTS_FILE,
            [SERIAL_HEADER, "Status Code"],
            [[o.serial, o.status_code] for o in outcomes],
        )

    async def write_managed_results(self, outcomes: Sequence[ManagedDeletionOutcome]) -> Path:
        return await self._write(
            MANAGED_RESULTS_FILE,
            [SERIAL_HEADER, "Managed Device Id", "Result", "Error"],
            [
                [o.serial, o.managed_id, "Deleted" if o.succeeded else "Failed", o.error or ""]
                for o in outcomes
            ],
        )

    async def write_remaining(self, serials: Sequence[str]) -> Path:
        return await self._write_serials(REMAINING_FILE, serials)

    async def _write_serials(self, filename: str, serials: Sequence[str]) -> Path:
        return await self._write(filename, [SERIAL_HEADER], [[s] for s in serials])

    async def _write(self, filename: str, header: list[str], rows: list[list]) -> Path:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(header)
        writer.writerows(rows)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        async with aiofiles.open(path, "w", newline="") as f:
            await f.write(output.getvalue())

        logger.info(f"Wrote {len(rows)} row(s) to {path}")
        return path
