"""Bulk deletion of Windows Autopilot devices with sync and re-verification."""

__version__ = "0.1.0"
