"""Tests for the CSV report writer."""

import csv

import pytest

from autopilot_cleanup.cleanup.adapters.csv_report_writer import CsvReportWriter
from autopilot_cleanup.cleanup.domain.entities import (
    DeletionOutcome,
    ManagedDeletionOutcome,
    MatchedSerial,
)


def read_rows(path):
    with open(path, newline="") as f:
        return list(csv.reader(f))


@pytest.fixture
def writer(tmp_path):
    return CsvReportWriter(tmp_path / "reports")


class TestCsvReportWriter:
    """Each artifact has a fixed name and header."""

    async def test_matched(self, writer):
        path = await writer.write_matched([MatchedSerial("6923-30", "7243-6923-30")])

        assert path.name == "MatchedDevices.csv"
        assert read_rows(path) == [
            ["Device Serial Number", "Registry Serial Number"],
            ["6923-30", "7243-6923-30"],
        ]

    async def test_unmatched(self, writer):
        path = await writer.write_unmatched(["NOPE"])

        assert path.name == "NotMatchedDevices.csv"
        assert read_rows(path) == [["Device Serial Number"], ["NOPE"]]

    async def test_skipped(self, writer):
        path = await writer.write_skipped(["A", "B"])

        assert path.name == "SkippedDevices.csv"
        assert read_rows(path)[1:] == [["A"], ["B"]]

    async def test_deletion_results(self, writer):
        path = await writer.write_deletion_results([DeletionOutcome("A", 200), DeletionOutcome("B", 404)])

        assert path.name == "DeletionResults.csv"
        assert read_rows(path) == [
            ["Device Serial Number", "Status Code"],
            ["A", "200"],
            ["B", "404"],
        ]

    async def test_managed_results(self, writer):
        path = await writer.write_managed_results([
            ManagedDeletionOutcome("A", "m1", succeeded=True),
            ManagedDeletionOutcome("B", "m2", succeeded=False, error="Forbidden, really"),
        ])

        assert path.name == "ManagedDeletionResults.csv"
        assert read_rows(path) == [
            ["Device Serial Number", "Managed Device Id", "Result", "Error"],
            ["A", "m1", "Deleted", ""],
            ["B", "m2", "Failed", "Forbidden, really"],
        ]

    async def test_remaining_empty_still_has_header(self, writer):
        path = await writer.write_remaining([])

        assert path.name == "RemainingDevices.csv"
        assert read_rows(path) == [["Device Serial Number"]]

    async def test_overwrites_previous_run(self, writer):
        await writer.write_skipped(["OLD1", "OLD2"])
        path = await writer.write_skipped(["NEW"])

        assert read_rows(path) == [["Device Serial Number"], ["NEW"]]

    async def test_creates_output_directory(self, tmp_path):
        writer = CsvReportWriter(tmp_path / "a" / "b")

        path = await writer.write_remaining(["X"])

        assert path.parent == tmp_path / "a" / "b"
        assert path.exists()
