#!/usr/bin/env python3
"""Windows Autopilot Bulk Cleanup.

Thin entry point so the tool can be run from a checkout:

    $ python main.py --input DevicesToDelete.csv --yes

See autopilot_cleanup.cli for the options.
"""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "src"))

from autopilot_cleanup.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
