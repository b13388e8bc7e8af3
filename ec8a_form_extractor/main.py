from __future__ import annotations

import argparse
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .errors import SubmissionError
from .exporter import compute_stats, export_csv
from .gemini_client import GeminiExtractor
from .imaging import PreviewStore, compress_image
from .inputs import load_inputs
from .ollama_client import OllamaExtractor
from .scheduler import BatchScheduler, Extractor
from .types import ImageInput, ProcessingRecord
from .utils import fallback_progress, get_tqdm, load_env_file, save_json, setup_logging
from .validator import Validator

log = logging.getLogger("ec8a_form_extractor")


def default_export_name(now: Optional[datetime] = None) -> str:
    """Dated export file name, e.g. election_data_export_2026-10-16.csv (UTC date)."""
    now = now or datetime.now(timezone.utc)
    return f"election_data_export_{now.date().isoformat()}.csv"


def build_extractor(
    backend: str,
    *,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    ollama_url: str = config.OLLAMA_URL,
    target_labels: Sequence[str] = config.TARGET_PARTIES,
):
    if backend == "gemini":
        return GeminiExtractor(api_key=api_key, model=model or config.GEMINI_MODEL, target_labels=target_labels)
    if backend == "ollama":
        return OllamaExtractor(url=ollama_url, model=model or config.OLLAMA_MODEL, target_labels=target_labels)
    raise ValueError(f"Unknown backend: {backend}")


def record_summary(record: ProcessingRecord, validator: Validator) -> Dict[str, Any]:
    row: Dict[str, Any] = {"id": record.id, "name": record.source_name, "status": record.status}
    if record.error_message is not None:
        row["error"] = record.error_message
    if record.result is not None:
        row["result"] = record.result.to_dict()
        row["warnings"] = validator.check(record.result)
    if record.preview is not None and record.preview.path is not None:
        row["preview"] = str(record.preview.path)
    return row


class _Progress:
    """Store listener that advances a progress bar as records reach success/error."""

    def __init__(self, total: int, *, enabled: bool, desc: str):
        self.total = int(total)
        self.enabled = bool(enabled)
        self._seen: set[str] = set()
        self._last_fb = 0.0
        tqdm_cls = get_tqdm() if enabled else None
        self._pbar = tqdm_cls(total=self.total, desc=desc, unit="img") if tqdm_cls else None

    def __call__(self, snapshot) -> None:
        done = [r.id for r in snapshot if r.is_terminal and r.id not in self._seen]
        if not done:
            return
        self._seen.update(done)
        if self._pbar is not None:
            self._pbar.update(len(done))
        elif self.enabled:
            now = time.time()
            if len(self._seen) == self.total or (now - self._last_fb) >= 0.25:
                print("\r" + fallback_progress(len(self._seen), self.total), end="", flush=True)
                self._last_fb = now

    def close(self) -> None:
        if self._pbar is not None:
            self._pbar.close()
        elif self.enabled:
            print()


def process_images(
    images: List[ImageInput],
    *,
    extractor: Extractor,
    out_csv: str | Path,
    workers: int = config.MAX_CONCURRENT_EXTRACTIONS,
    compress: bool = True,
    previews_dir: Optional[str | Path] = None,
    summary_json: Optional[str | Path] = None,
    progress: bool = True,
    target_labels: Sequence[str] = config.TARGET_PARTIES,
) -> Dict[str, Any]:
    """
    Run one batch to completion and write the CSV export.

    Raises SubmissionError (before any record exists) when the extractor is not
    usable, e.g. no API key configured.
    """
    preflight = getattr(extractor, "check_credentials", None)
    scheduler = BatchScheduler(
        extractor,
        max_concurrency=int(workers),
        preflight=preflight,
        preprocess=compress_image if compress else None,
        previews=PreviewStore(previews_dir) if previews_dir else None,
    )
    bar = _Progress(len(images), enabled=progress, desc=f"extract:{getattr(extractor, 'model', 'model')}")
    unsubscribe = scheduler.store.subscribe(bar)
    t0 = time.time()
    try:
        with scheduler:
            scheduler.run_batch(images)
    finally:
        unsubscribe()
        bar.close()

    snapshot = scheduler.store.snapshot()
    stats = compute_stats(snapshot)
    out_path = Path(out_csv)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(export_csv(snapshot, target_labels) + "\n", encoding="utf-8")

    validator = Validator(target_labels=target_labels)
    summary: Dict[str, Any] = {
        "total": stats.total,
        "succeeded": stats.succeeded,
        "failed": stats.failed,
        "total_valid_votes": stats.aggregate_numeric_sum,
        "csv": str(out_path),
        "seconds": round(time.time() - t0, 3),
        "records": [record_summary(r, validator) for r in snapshot],
    }
    if summary_json:
        save_json(summary_json, summary)
    log.info(
        "Done. total=%d ok=%d error=%d total_valid_votes=%d (%.1fs)",
        stats.total,
        stats.succeeded,
        stats.failed,
        stats.aggregate_numeric_sum,
        summary["seconds"],
    )
    return summary


def _cli(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        description="Batch-extract INEC EC 8A result forms with a vision model and export a CSV.",
        allow_abbrev=False,
    )
    ap.add_argument("--input", nargs="+", required=True, help="Image/PDF files or directories (scanned recursively).")
    ap.add_argument("--out", default=None, help="CSV output path. Default: election_data_export_<YYYY-MM-DD>.csv")
    ap.add_argument("--workers", type=int, default=config.MAX_CONCURRENT_EXTRACTIONS, help="Max extractions in flight. Default: 3.")
    ap.add_argument("--backend", choices=["gemini", "ollama"], default="gemini", help="Vision model backend. Default: gemini.")
    ap.add_argument("--model", default=None, help=f"Model name. Default: {config.GEMINI_MODEL} / {config.OLLAMA_MODEL}.")
    ap.add_argument("--api-key", default=None, help="Gemini API key (overrides GEMINI_API_KEY / GOOGLE_API_KEY).")
    ap.add_argument("--ollama-url", default=config.OLLAMA_URL, help=f"Ollama API URL. Default: {config.OLLAMA_URL}.")
    ap.add_argument("--env-file", default=config.DEFAULT_ENV_FILE, help="Env file path. Default: env.local.")
    ap.add_argument("--previews", default=None, help="Directory for per-image preview thumbnails.")
    ap.add_argument("--summary-json", default=None, help="Also write stats + per-image status to this JSON file.")
    ap.add_argument("--dpi", type=int, default=config.PDF_RENDER_DPI, help="Render DPI for PDF inputs. Default: 200.")
    ap.add_argument("--no-compress", action="store_true", help="Send images as-is (skip downscale/re-encode).")
    ap.add_argument("--no-progress", action="store_true", help="Disable progress bar / progress prints.")
    ap.add_argument("--debug", action="store_true", help="Verbose logging.")
    args = ap.parse_args(argv)

    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    if args.workers < 1:
        raise SystemExit("--workers must be a positive integer")
    load_env_file(Path(args.env_file))

    try:
        images = load_inputs(args.input, dpi=int(args.dpi))
    except FileNotFoundError as e:
        raise SystemExit(str(e)) from e
    if not images:
        raise SystemExit("No images found in the given inputs.")

    try:
        extractor = build_extractor(
            args.backend,
            model=args.model,
            api_key=args.api_key,
            ollama_url=args.ollama_url,
        )
    except ValueError as e:
        raise SystemExit(str(e)) from e

    try:
        summary = process_images(
            images,
            extractor=extractor,
            out_csv=args.out or default_export_name(),
            workers=int(args.workers),
            compress=not bool(args.no_compress),
            previews_dir=args.previews,
            summary_json=args.summary_json,
            progress=not bool(args.no_progress),
        )
    except SubmissionError as e:
        raise SystemExit(f"Cannot start extraction: {e}") from e

    for row in summary["records"]:
        if row["status"] == "error":
            print(f"  ERROR {row['name']}: {row.get('error', '?')}")
    print(
        f"Total images: {summary['total']}  extracted: {summary['succeeded']}  "
        f"failed: {summary['failed']}  total valid votes: {summary['total_valid_votes']:,}"
    )
    print(f"CSV: {summary['csv']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(_cli())
