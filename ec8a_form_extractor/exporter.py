from __future__ import annotations

import logging
from typing import FrozenSet, List, Optional, Sequence, Tuple, Union

from . import config
from .types import STATUS_ERROR, STATUS_SUCCESS, BatchStats, ProcessingRecord

log = logging.getLogger("ec8a_form_extractor")

Cell = Union[str, int, None]


def compute_stats(records: Sequence[ProcessingRecord], *, field: str = config.AGGREGATE_FIELD) -> BatchStats:
    succeeded = 0
    failed = 0
    total = 0
    for r in records:
        if r.status == STATUS_SUCCESS:
            succeeded += 1
            if r.result is not None:
                total += int(getattr(r.result, field, 0) or 0)
        elif r.status == STATUS_ERROR:
            failed += 1
    return BatchStats(total=len(records), succeeded=succeeded, failed=failed, aggregate_numeric_sum=total)


def export_header(target_labels: Sequence[str] = config.TARGET_PARTIES) -> List[str]:
    return [
        *config.IDENTITY_COLUMNS,
        *(label for _, label in config.ADMIN_FIELDS),
        *(label for _, label in config.NUMERIC_FIELDS),
        *target_labels,
    ]


def build_row(record: ProcessingRecord, target_labels: Sequence[str] = config.TARGET_PARTIES) -> List[Cell]:
    row: List[Cell] = [record.source_name, record.status]
    d = record.result
    for attr, _ in config.ADMIN_FIELDS:
        row.append(getattr(d, attr, None) if d is not None else None)
    for attr, _ in config.NUMERIC_FIELDS:
        row.append(getattr(d, attr, None) if d is not None else None)
    for label in target_labels:
        row.append(d.count(label) if d is not None else None)
    return row


def build_rows(
    records: Sequence[ProcessingRecord],
    target_labels: Sequence[str] = config.TARGET_PARTIES,
) -> List[List[Cell]]:
    return [build_row(r, target_labels) for r in records]


def format_cell(value: Cell) -> str:
    """Strings quote-wrapped (inner quotes doubled), numbers bare, None empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    s = str(value).replace('"', '""')
    return f'"{s}"'


def format_csv(header: Sequence[str], rows: Sequence[Sequence[Cell]]) -> str:
    """Header labels bare, then one formatted line per row."""
    lines = [",".join(str(h) for h in header)]
    lines.extend(",".join(format_cell(c) for c in row) for row in rows)
    return "\n".join(lines)


def export_csv(
    records: Sequence[ProcessingRecord],
    target_labels: Sequence[str] = config.TARGET_PARTIES,
) -> str:
    """CSV text for a store snapshot: header plus one row per record, in store order."""
    return format_csv(export_header(target_labels), build_rows(records, target_labels))


class CsvExportCache:
    """
    Holds the last export and rebuilds it when the set of successful records
    changes or a record is added or removed. Status moves that leave both alone
    (pending to processing, processing to error) reuse the cached text.
    """

    def __init__(self, target_labels: Sequence[str] = config.TARGET_PARTIES):
        self.target_labels = tuple(target_labels)
        self._key: Optional[Tuple[Tuple[str, ...], FrozenSet[str]]] = None
        self._text: Optional[str] = None
        self.rebuilds = 0

    def get(self, records: Sequence[ProcessingRecord]) -> str:
        succeeded = frozenset(r.id for r in records if r.status == STATUS_SUCCESS)
        key = (tuple(r.id for r in records), succeeded)
        if self._text is None or key != self._key:
            self._text = export_csv(records, self.target_labels)
            self._key = key
            self.rebuilds += 1
            log.debug("Rebuilt CSV export (%d records, %d successful)", len(records), len(succeeded))
        return self._text
