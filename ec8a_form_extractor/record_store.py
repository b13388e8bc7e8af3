from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .types import ProcessingRecord

log = logging.getLogger("ec8a_form_extractor")

Listener = Callable[[Tuple[ProcessingRecord, ...]], None]

_PATCHABLE = frozenset({"status", "result", "error_message"})


class RecordStore:
    """
    Insertion-ordered, thread-safe collection of ProcessingRecords keyed by id.

    All mutations go through one lock. Records are frozen dataclasses that get
    replaced whole, so a snapshot never contains a partially updated record.
    Listeners are called under the lock, in mutation order, with the new snapshot.
    """

    def __init__(self) -> None:
        self._records: Dict[str, ProcessingRecord] = {}
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def add(self, records: Iterable[ProcessingRecord]) -> None:
        items = list(records)
        with self._lock:
            for r in items:
                if r.id in self._records:
                    raise ValueError(f"Duplicate record id: {r.id!r}")
            for r in items:
                self._records[r.id] = r
            self._notify()

    def update(self, record_id: str, **patch: Any) -> Optional[ProcessingRecord]:
        """
        Apply `patch` to the record with `record_id`.

        Returns the new record, or None when the id is unknown (it may have been
        removed while its extraction was still running).
        """
        unknown = set(patch) - _PATCHABLE
        if unknown:
            raise ValueError(f"Cannot patch record fields: {sorted(unknown)}")
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                log.debug("Update for removed record %s ignored", record_id)
                return None
            new = dataclasses.replace(current, **patch)
            self._records[record_id] = new
            self._notify()
            return new

    def remove(self, record_id: str) -> Optional[ProcessingRecord]:
        with self._lock:
            record = self._records.pop(record_id, None)
            if record is None:
                return None
            if record.preview is not None:
                record.preview.release()
            self._notify()
            return record

    def clear(self) -> int:
        with self._lock:
            records = list(self._records.values())
            self._records.clear()
            for r in records:
                if r.preview is not None:
                    r.preview.release()
            if records:
                self._notify()
            return len(records)

    def get(self, record_id: str) -> Optional[ProcessingRecord]:
        with self._lock:
            return self._records.get(record_id)

    def snapshot(self) -> Tuple[ProcessingRecord, ...]:
        with self._lock:
            return tuple(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._records

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = tuple(self._records.values())
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as e:
                log.warning("Record store listener failed (%s)", str(e))
