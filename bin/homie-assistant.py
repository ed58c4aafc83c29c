#!/usr/bin/env python3
"""Homie voice assistant launcher."""

from __future__ import annotations

import sys
from pathlib import Path

MODULE_ROOT = Path(__file__).resolve().parents[1]
if str(MODULE_ROOT) not in sys.path:
    sys.path.insert(0, str(MODULE_ROOT))

from homie.assistant.cli import run  # noqa: E402

if __name__ == "__main__":
    run()
