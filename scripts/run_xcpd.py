#!/usr/bin/env python3
"""Run the launcher from a checkout without installing the package."""

from __future__ import annotations

import os
import sys
from pathlib import Path

CHECKOUT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = CHECKOUT_ROOT / "src"
# containers/ lives next to this script, not next to an installed package.
os.environ.setdefault("XCPD_LAUNCHER_REPO", str(CHECKOUT_ROOT))
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from xcpd_launcher.cli.run_xcpd import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
