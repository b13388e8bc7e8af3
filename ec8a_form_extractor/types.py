from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

log = logging.getLogger("ec8a_form_extractor")

RecordStatus = Literal["pending", "processing", "success", "error"]

STATUS_PENDING: RecordStatus = "pending"
STATUS_PROCESSING: RecordStatus = "processing"
STATUS_SUCCESS: RecordStatus = "success"
STATUS_ERROR: RecordStatus = "error"

TERMINAL_STATUSES: frozenset[str] = frozenset({STATUS_SUCCESS, STATUS_ERROR})


@dataclass(frozen=True)
class ExtractionFields:
    """Structured content of one EC 8A form."""

    lga: Optional[str] = None
    registration_area: Optional[str] = None
    polling_unit: Optional[str] = None
    delimitation: Optional[str] = None
    voters_on_register: Optional[int] = None
    accredited_voters: Optional[int] = None
    ballot_papers_issued: Optional[int] = None
    unused_ballot_papers: Optional[int] = None
    spoiled_ballot_papers: Optional[int] = None
    rejected_ballots: Optional[int] = None
    total_valid_votes: Optional[int] = None
    total_used_ballot_papers: Optional[int] = None
    votes: Mapping[str, int] = field(default_factory=dict)

    def count(self, label: str) -> int:
        """Votes for `label`; labels missing from the mapping read as 0."""
        return int(self.votes.get(label, 0) or 0)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {k: getattr(self, k) for k in self.__dataclass_fields__ if k != "votes"}
        out["votes"] = dict(self.votes)
        return out


@dataclass(frozen=True)
class ImageInput:
    name: str
    data: bytes
    mime_type: str = "image/jpeg"


class PreviewHandle:
    """
    Exclusively owned reference to a displayable thumbnail on disk.

    `release()` deletes the file; calling it more than once is harmless.
    """

    def __init__(self, path: Optional[Path]):
        self.path = Path(path) if path is not None else None
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        if self.path is not None:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                log.warning("Could not delete preview %s (%s)", self.path, str(e))

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"PreviewHandle({str(self.path)!r}, {state})"


@dataclass(frozen=True)
class ProcessingRecord:
    """
    One submitted image. Instances are immutable; the record store swaps whole
    records so readers never observe a half-applied update.
    """

    id: str
    source_name: str
    status: RecordStatus = STATUS_PENDING
    result: Optional[ExtractionFields] = None
    error_message: Optional[str] = None
    preview: Optional[PreviewHandle] = field(default=None, compare=False, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class BatchStats:
    total: int
    succeeded: int
    failed: int
    aggregate_numeric_sum: int
