from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from . import config
from .errors import MalformedResponse, SubmissionError
from .imaging import PreviewStore
from .record_store import RecordStore
from .types import (
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SUCCESS,
    ExtractionFields,
    ImageInput,
    ProcessingRecord,
)

log = logging.getLogger("ec8a_form_extractor")

Extractor = Callable[[bytes, str], ExtractionFields]
Preprocessor = Callable[[bytes, str], Tuple[bytes, str]]


@dataclass(frozen=True)
class ExtractionTask:
    record_id: str
    image: ImageInput


class AdmissionGate:
    """
    Counting gate: at most `capacity` holders at a time.

    A holder leaving wakes one waiter, whichever holder it was.
    """

    def __init__(self, capacity: int):
        if int(capacity) < 1:
            raise ValueError(f"Admission capacity must be a positive integer, got {capacity!r}")
        self.capacity = int(capacity)
        self._in_flight = 0
        self._cond = threading.Condition()

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    def acquire(self) -> None:
        with self._cond:
            while self._in_flight >= self.capacity:
                self._cond.wait()
            self._in_flight += 1

    def release(self) -> None:
        with self._cond:
            if self._in_flight <= 0:
                raise RuntimeError("AdmissionGate released more times than acquired")
            self._in_flight -= 1
            self._cond.notify()

    def __enter__(self) -> "AdmissionGate":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def _error_message(e: BaseException) -> str:
    msg = str(e).strip()
    return msg or type(e).__name__ or "Extraction failed"


class BatchScheduler:
    """
    Drives submitted images through the extraction port with at most
    `max_concurrency` calls in flight across every batch.

    The worker pool has exactly `max_concurrency` threads and a FIFO work queue, so
    pending items are admitted in submission order and a slot frees as soon as any
    in-flight item finishes. Per-item failures end up in the record's
    `error_message`; nothing raised by the extractor leaves a worker.
    """

    def __init__(
        self,
        extractor: Extractor,
        store: Optional[RecordStore] = None,
        *,
        max_concurrency: int = config.MAX_CONCURRENT_EXTRACTIONS,
        preflight: Optional[Callable[[], None]] = None,
        preprocess: Optional[Preprocessor] = None,
        previews: Optional[PreviewStore] = None,
    ):
        self.store = store if store is not None else RecordStore()
        self._extractor = extractor
        self._preflight = preflight
        self._preprocess = preprocess
        self._previews = previews
        self._gate = AdmissionGate(max_concurrency)
        self._pool = ThreadPoolExecutor(max_workers=self._gate.capacity, thread_name_prefix="ec8a-extract")
        self._idle = threading.Condition()
        self._outstanding = 0
        self._closed = False

    @property
    def max_concurrency(self) -> int:
        return self._gate.capacity

    @property
    def in_flight(self) -> int:
        return self._gate.in_flight

    @property
    def busy(self) -> bool:
        """True while any submitted item has not reached success/error."""
        with self._idle:
            return self._outstanding > 0

    def submit_batch(self, images: Iterable[ImageInput]) -> List[str]:
        """
        Register `images` as pending records and queue their extraction.

        Returns the new record ids immediately. Raises SubmissionError (and creates
        no records) when the scheduler is closed, the preflight check fails or a
        preview cannot be written.
        """
        items = list(images)
        with self._idle:
            if self._closed:
                raise SubmissionError("Scheduler has been shut down")
        self._run_preflight()
        if not items:
            return []

        records: List[ProcessingRecord] = []
        tasks: List[ExtractionTask] = []
        try:
            for img in items:
                rid = uuid.uuid4().hex
                preview = self._previews.create(rid, img) if self._previews is not None else None
                records.append(ProcessingRecord(id=rid, source_name=img.name, status=STATUS_PENDING, preview=preview))
                tasks.append(ExtractionTask(record_id=rid, image=img))
        except Exception as e:
            # No record exists yet, so nothing else owns these previews.
            for r in records:
                if r.preview is not None:
                    r.preview.release()
            raise SubmissionError(f"Could not prepare previews: {_error_message(e)}") from e

        # Count the work before the records become visible so `busy` is never
        # False while a pending record exists.
        with self._idle:
            self._outstanding += len(tasks)
        try:
            self.store.add(records)
        except Exception:
            self._finish(len(tasks))
            for r in records:
                if r.preview is not None:
                    r.preview.release()
            raise
        for i, t in enumerate(tasks):
            try:
                self._pool.submit(self._run, t)
            except RuntimeError:
                # Shut down between the closed check and here: nothing left will run.
                self._abandon(tasks[i:], "Scheduler shut down before extraction started")
                break

        log.info("Queued %d image(s) for extraction (max %d in flight)", len(tasks), self.max_concurrency)
        return [t.record_id for t in tasks]

    def run_batch(self, images: Iterable[ImageInput], *, timeout: Optional[float] = None) -> List[str]:
        ids = self.submit_batch(images)
        self.wait_idle(timeout=timeout)
        return ids

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no submitted item is outstanding. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._outstanding == 0, timeout=timeout)

    def shutdown(self, *, wait: bool = True) -> None:
        with self._idle:
            self._closed = True
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "BatchScheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    def _run_preflight(self) -> None:
        if self._preflight is None:
            return
        try:
            self._preflight()
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(_error_message(e)) from e

    def _finish(self, n: int = 1) -> None:
        with self._idle:
            self._outstanding -= n
            if self._outstanding == 0:
                self._idle.notify_all()

    def _abandon(self, tasks: List[ExtractionTask], reason: str) -> None:
        for t in tasks:
            self.store.update(t.record_id, status=STATUS_ERROR, error_message=reason)
        self._finish(len(tasks))

    def _run(self, task: ExtractionTask) -> None:
        try:
            with self._gate:
                self._extract_one(task)
        finally:
            self._finish()

    def _extract_one(self, task: ExtractionTask) -> None:
        rid = task.record_id
        if self.store.update(rid, status=STATUS_PROCESSING) is None:
            log.debug("Record %s removed before admission; skipping", rid)
            return
        log.debug("Admitted %s (%s), %d in flight", rid, task.image.name, self._gate.in_flight)

        try:
            data, mime_type = task.image.data, task.image.mime_type
            if self._preprocess is not None:
                data, mime_type = self._preprocess(data, mime_type)
            fields = self._extractor(data, mime_type)
            if not isinstance(fields, ExtractionFields):
                raise MalformedResponse(f"Extractor returned {type(fields).__name__}, expected ExtractionFields")
        except Exception as e:
            msg = _error_message(e)
            log.warning("Extraction failed for %s: %s", task.image.name, msg)
            self.store.update(rid, status=STATUS_ERROR, error_message=msg)
            return

        self.store.update(rid, status=STATUS_SUCCESS, result=fields)
