#!/usr/bin/env python3
"""Dry-run wrapper: show which event logs would be cleared."""

from __future__ import annotations

import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

import clear_event_logs


def run(argv: list[str] | None = None) -> int:
    return clear_event_logs.main(["--what-if", *(sys.argv[1:] if argv is None else argv)])


if __name__ == "__main__":
    sys.exit(run())
