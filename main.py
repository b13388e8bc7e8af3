#!/usr/bin/env python3
"""
Convenience entrypoint for the EC 8A batch extractor.

This file delegates to `ec8a_form_extractor.main` so you can run:

  python main.py --input scans/ --out results.csv
  python main.py --input a.jpg b.png form.pdf --workers 5 --summary-json summary.json
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure repo root is on sys.path even if this file is executed from another cwd.
_ROOT = Path(__file__).resolve().parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

try:
    from ec8a_form_extractor.main import _cli
except ModuleNotFoundError as e:  # pragma: no cover
    if getattr(e, "name", "") == "cv2":
        raise SystemExit(
            "Missing dependency: OpenCV (cv2).\n"
            "Install project deps (in your venv):\n"
            "  python -m pip install -e .\n"
        ) from e
    raise

if __name__ == "__main__":
    raise SystemExit(_cli())
