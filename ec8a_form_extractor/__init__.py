"""
Batch extractor for INEC EC 8A result forms.

Images go through a vision model under a global concurrency cap; per-image status
lives in a RecordStore and the exporter turns any snapshot into CSV.
"""

from .exporter import CsvExportCache, compute_stats, export_csv
from .main import process_images
from .record_store import RecordStore
from .scheduler import BatchScheduler

__all__ = [
    "BatchScheduler",
    "CsvExportCache",
    "RecordStore",
    "compute_stats",
    "export_csv",
    "process_images",
]
