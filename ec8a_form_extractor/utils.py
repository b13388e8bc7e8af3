from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

log = logging.getLogger("ec8a_form_extractor")


def setup_logging(*, level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def get_tqdm():
    """
    Optional progress bar dependency.
    If tqdm isn't installed, return None and callers fall back to plain progress lines.
    """
    try:
        from tqdm import tqdm  # type: ignore

        return tqdm
    except Exception:
        return None


def fallback_progress(done: int, total: int, width: int = 28) -> str:
    total = max(1, int(total))
    done = max(0, min(int(done), total))
    filled = int(round(width * (done / total)))
    bar = "=" * filled + "-" * (width - filled)
    return f"[{bar}] {done}/{total}"


def to_jsonable(x: Any) -> Any:
    if is_dataclass(x) and not isinstance(x, type):
        return {k: to_jsonable(v) for k, v in asdict(x).items()}
    if isinstance(x, Path):
        return str(x)
    if isinstance(x, dict):
        return {str(k): to_jsonable(v) for k, v in x.items()}
    if isinstance(x, (list, tuple)):
        return [to_jsonable(v) for v in x]
    return x


def save_json(path: str | Path, payload: Any, *, indent: int = 2) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(to_jsonable(payload), ensure_ascii=False, indent=indent), encoding="utf-8")


def load_env_file(path: str | Path, *, override: bool = False) -> int:
    """Read KEY=VALUE lines into os.environ. Existing variables win unless `override`."""
    p = Path(path)
    if not p.exists() or not p.is_file():
        return 0
    loaded = 0
    for raw in p.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        k, v = k.strip(), v.strip().strip('"').strip("'")
        if not k:
            continue
        if k in os.environ and not override:
            continue
        os.environ[k] = v
        loaded += 1
    log.debug("Loaded %d variable(s) from %s", loaded, p)
    return loaded
