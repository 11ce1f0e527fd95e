"""Tests for the cleanup CLI.

The Graph layer is replaced with mocks; these tests cover argument
parsing, lookup dispatch, the input prompt and exit codes.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from autopilot_cleanup import cli
from autopilot_cleanup.api.autopilot import ById, BySerial, BySerialExpanded
from autopilot_cleanup.api.exceptions import InputFileError, TokenFetchError
from autopilot_cleanup.cleanup.domain.entities import (
    DeletionOutcome,
    MatchedSerial,
    ReconciliationReport,
    ReconciliationState,
)


def parse(*argv):
    return cli.build_parser().parse_args(list(argv))


def done_report(**kwargs) -> ReconciliationReport:
    report = ReconciliationReport(**kwargs)
    report.enter(ReconciliationState.DONE)
    return report


@pytest.fixture
def graph_env(monkeypatch):
    monkeypatch.setenv("GRAPH_TENANT_ID", "tenant")
    monkeypatch.setenv("GRAPH_CLIENT_ID", "client")
    monkeypatch.setenv("GRAPH_CLIENT_SECRET", "secret")
    for name in ("CLEANUP_BATCH_SIZE", "CLEANUP_WAIT_SECONDS", "CLEANUP_DELETE_MANAGED",
                 "CLEANUP_INPUT_FILE", "CLEANUP_OUTPUT_DIR", "CLEANUP_MATCH_POLICY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def graph_client():
    """Patch GraphClient so entering it never opens a session."""
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    with patch.object(cli, "GraphClient", return_value=client):
        yield client


class TestParser:
    """Argument parsing."""

    def test_defaults_leave_config_to_environment(self):
        args = parse()
        assert args.input is None
        assert args.batch_size is None
        assert args.wait_seconds is None
        assert args.match_policy is None
        assert not args.dry_run

    def test_all_options(self):
        args = parse(
            "--input", "devices.xlsx", "--yes", "--batch-size", "10", "--delete-managed",
            "--dry-run", "--match-policy", "strict", "--wait-seconds", "30",
            "--fail-on-remaining", "--output-dir", "out", "--verbose",
        )
        assert args.input == "devices.xlsx"
        assert args.yes
        assert args.batch_size == 10
        assert args.delete_managed
        assert args.match_policy == "strict"
        assert args.wait_seconds == 30.0
        assert args.output_dir == "out"

    def test_lookup_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse("--lookup", "SN1", "--lookup-id", "abc")


class TestLookupQuery:
    """Lookup flags map to one RegistryQuery variant."""

    def test_no_lookup(self):
        assert cli.build_lookup_query(parse()) is None

    def test_by_serial(self):
        assert cli.build_lookup_query(parse("--lookup", "6923-30")) == BySerial("6923-30")

    def test_by_serial_expanded(self):
        assert cli.build_lookup_query(parse("--lookup", "6923-30", "--expand")) == BySerialExpanded("6923-30")

    def test_by_id(self):
        assert cli.build_lookup_query(parse("--lookup-id", "abc")) == ById("abc")


class TestConfirmInputFile:
    """The input file prompt."""

    def test_yes_skips_prompt(self):
        prompt = MagicMock()
        assert cli.confirm_input_file("DevicesToDelete.csv", assume_yes=True, prompt=prompt) == "DevicesToDelete.csv"
        prompt.assert_not_called()

    def test_enter_keeps_default(self):
        assert cli.confirm_input_file("DevicesToDelete.csv", prompt=lambda _: "  ") == "DevicesToDelete.csv"

    def test_answer_replaces_path(self):
        assert cli.confirm_input_file("DevicesToDelete.csv", prompt=lambda _: "other.csv\n") == "other.csv"


class TestExitCodes:
    """exit_code_for."""

    def test_clean_run(self):
        assert cli.exit_code_for(done_report()) == cli.EXIT_OK

    def test_aborted_is_fatal(self):
        report = ReconciliationReport()
        report.enter(ReconciliationState.ABORTED)
        assert cli.exit_code_for(report) == cli.EXIT_FATAL

    def test_remaining_only_fails_when_asked(self):
        report = done_report(remaining=["SN1"])
        assert cli.exit_code_for(report) == cli.EXIT_OK
        assert cli.exit_code_for(report, fail_on_remaining=True) == cli.EXIT_REMAINING

    def test_failed_items_count_as_remaining(self):
        report = done_report(outcomes=[DeletionOutcome("SN1", 400)])
        assert cli.exit_code_for(report, fail_on_remaining=True) == cli.EXIT_REMAINING

    def test_dry_run_never_fails_on_remaining(self):
        report = done_report(dry_run=True, remaining=["SN1"])
        assert cli.exit_code_for(report, fail_on_remaining=True) == cli.EXIT_OK


class TestRun:
    """End-to-end dispatch of run() with the Graph layer mocked."""

    async def test_missing_credentials_exit_1(self, monkeypatch, capsys):
        for name in ("GRAPH_TENANT_ID", "GRAPH_CLIENT_ID", "GRAPH_CLIENT_SECRET"):
            monkeypatch.delenv(name, raising=False)

        assert await cli.run(parse("--yes")) == cli.EXIT_FATAL
        assert "GRAPH_CLIENT_ID" in capsys.readouterr().out

    async def test_lookup_prints_json(self, graph_env, graph_client, capsys):
        with patch.object(cli.AutopilotRegistry, "query", new=AsyncMock(return_value=[{"id": "abc"}])) as query:
            code = await cli.run(parse("--lookup-id", "abc"))

        assert code == cli.EXIT_OK
        query.assert_awaited_once_with(ById("abc"))
        assert '"id": "abc"' in capsys.readouterr().out

    async def test_cleanup_passes_config(self, graph_env, graph_client, tmp_path):
        report = done_report(matched=[MatchedSerial("SN1", "SN1")])
        run_cleanup = AsyncMock(return_value=report)

        with patch.object(cli, "run_cleanup", new=run_cleanup):
            code = await cli.run(parse(
                "--input", "devices.csv", "--yes", "--batch-size", "5",
                "--wait-seconds", "0", "--output-dir", str(tmp_path),
            ))

        assert code == cli.EXIT_OK
        config = run_cleanup.call_args.args[1]
        assert config.input_file == "devices.csv"
        assert config.batch_size == 5
        assert config.wait_seconds == 0
        assert config.output_dir == str(tmp_path)

    async def test_unreadable_input_exit_1(self, graph_env, graph_client, capsys):
        error = InputFileError("Input file not found: nope.csv", path="nope.csv")

        with patch.object(cli, "run_cleanup", new=AsyncMock(side_effect=error)):
            code = await cli.run(parse("--input", "nope.csv", "--yes"))

        assert code == cli.EXIT_FATAL
        assert "Input file not found" in capsys.readouterr().out

    async def test_token_failure_exit_1(self, graph_env, graph_client):
        with patch.object(cli, "run_cleanup", new=AsyncMock(side_effect=TokenFetchError("no token"))):
            assert await cli.run(parse("--yes")) == cli.EXIT_FATAL

    async def test_remaining_with_fail_flag_exit_2(self, graph_env, graph_client):
        report = done_report(matched=[MatchedSerial("SN1", "SN1")], remaining=["SN1"])

        with patch.object(cli, "run_cleanup", new=AsyncMock(return_value=report)):
            code = await cli.run(parse("--yes", "--fail-on-remaining"))

        assert code == cli.EXIT_REMAINING


class TestMain:
    """main() settles the input file before entering the event loop."""

    @pytest.fixture
    def fake_run(self):
        run = AsyncMock(return_value=cli.EXIT_OK)
        with patch.object(cli, "run", new=run), patch.object(cli, "load_dotenv"):
            yield run

    def test_prompt_answer_reaches_run(self, graph_env, fake_run):
        prompts = []

        code = cli.main([], prompt=lambda text: prompts.append(text) or "typed.csv")

        assert code == cli.EXIT_OK
        assert "DevicesToDelete.csv" in prompts[0]
        assert fake_run.call_args.args[0].input == "typed.csv"

    def test_environment_default_is_proposed(self, graph_env, fake_run, monkeypatch):
        monkeypatch.setenv("CLEANUP_INPUT_FILE", "from-env.csv")
        prompts = []

        cli.main([], prompt=lambda text: prompts.append(text) or "")

        assert "from-env.csv" in prompts[0]
        assert fake_run.call_args.args[0].input == "from-env.csv"

    def test_yes_and_lookup_never_prompt(self, graph_env, fake_run):
        prompt = MagicMock()

        cli.main(["--input", "devices.csv", "--yes"], prompt=prompt)
        cli.main(["--lookup", "SN1"], prompt=prompt)

        prompt.assert_not_called()
        assert fake_run.call_args_list[0].args[0].input == "devices.csv"
