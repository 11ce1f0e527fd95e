"""Cleanup run configuration.

Values come from environment variables (a .env file is loaded by the CLI)
and can be overridden by command-line flags. Graph credentials are read
by TokenManager and GraphClient directly.

Environment Variables:
    CLEANUP_BATCH_SIZE: Deletions per $batch call, 1-20 (default: 20)
    CLEANUP_WAIT_SECONDS: Delay between sync and verification (default: 60)
    CLEANUP_DELETE_MANAGED: Also delete Intune records (default: false)
    CLEANUP_INPUT_FILE: Serial number file (default: DevicesToDelete.csv)
    CLEANUP_OUTPUT_DIR: Directory for the CSV reports (default: .)
    CLEANUP_MATCH_POLICY: first or strict (default: first)
    CLEANUP_PAGE_DELAY: Seconds between listing pages (default: 0)
"""
import os
from typing import Optional

from .api.client import MAX_BATCH_REQUESTS
from .api.exceptions import ConfigurationError
from .cleanup.domain.entities import MatchPolicy

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off", "")
DEFAULT_INPUT_FILE = "DevicesToDelete.csv"


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", missing_keys=[name])


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", missing_keys=[name])


def _env_bool(name: str, default: str) -> bool:
    raw = os.getenv(name, default).strip().lower()
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be true or false, got {raw!r}", missing_keys=[name])


class CleanupConfig:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.batch_size = _env_int("CLEANUP_BATCH_SIZE", str(MAX_BATCH_REQUESTS))
        self.wait_seconds = _env_float("CLEANUP_WAIT_SECONDS", "60")
        self.delete_managed = _env_bool("CLEANUP_DELETE_MANAGED", "false")
        self.input_file = os.getenv("CLEANUP_INPUT_FILE", DEFAULT_INPUT_FILE)
        self.output_dir = os.getenv("CLEANUP_OUTPUT_DIR", ".")
        self.match_policy = self._parse_policy(os.getenv("CLEANUP_MATCH_POLICY", "first"))
        self.page_delay = _env_float("CLEANUP_PAGE_DELAY", "0")
        self.dry_run = False
        self.fail_on_remaining = False
        self.validate()

    @staticmethod
    def _parse_policy(raw: str) -> MatchPolicy:
        try:
            return MatchPolicy(raw.strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in MatchPolicy)
            raise ConfigurationError(f"Match policy must be one of {choices}, got {raw!r}")

    def apply_overrides(
        self,
        input_file: Optional[str] = None,
        output_dir: Optional[str] = None,
        batch_size: Optional[int] = None,
        wait_seconds: Optional[float] = None,
        delete_managed: bool = False,
        match_policy: Optional[str] = None,
        dry_run: bool = False,
        fail_on_remaining: bool = False,
    ) -> "CleanupConfig":
        """Apply command-line values on top of the environment.

        Flags that were not given (None or False) leave the environment
        value in place.
        """
        if input_file is not None:
            self.input_file = input_file
        if output_dir is not None:
            self.output_dir = output_dir
        if batch_size is not None:
            self.batch_size = batch_size
        if wait_seconds is not None:
            self.wait_seconds = wait_seconds
        if match_policy is not None:
            self.match_policy = self._parse_policy(match_policy)
        self.delete_managed = self.delete_managed or delete_managed
        self.dry_run = self.dry_run or dry_run
        self.fail_on_remaining = self.fail_on_remaining or fail_on_remaining
        self.validate()
        return self

    def validate(self) -> None:
        """Raise ConfigurationError for out-of-range values."""
        if not 1 <= self.batch_size <= MAX_BATCH_REQUESTS:
            raise ConfigurationError(
                f"Batch size must be between 1 and {MAX_BATCH_REQUESTS}, got {self.batch_size}"
            )
        if self.wait_seconds < 0:
            raise ConfigurationError(f"Wait seconds must not be negative, got {self.wait_seconds}")
        if self.page_delay < 0:
            raise ConfigurationError(f"Page delay must not be negative, got {self.page_delay}")

    def __repr__(self):
        return (
            f"CleanupConfig("
            f"input={self.input_file}, "
            f"output={self.output_dir}, "
            f"batch={self.batch_size}, "
            f"wait={self.wait_seconds}s, "
            f"managed={self.delete_managed}, "
            f"policy={self.match_policy.value}, "
            f"dry_run={self.dry_run})"
        )
