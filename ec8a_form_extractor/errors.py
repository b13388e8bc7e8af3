from __future__ import annotations


class SubmissionError(RuntimeError):
    """Raised before any record is created (misconfiguration, scheduler closed)."""


class ExtractionError(RuntimeError):
    """Per-image extraction failure. Captured into the record, never propagated by the scheduler."""

    kind: str = "extraction_error"


class MissingCredential(ExtractionError):
    kind = "missing_credential"


class TransportFailure(ExtractionError):
    kind = "transport_failure"


class MalformedResponse(ExtractionError):
    kind = "malformed_response"


class QuotaExceeded(ExtractionError):
    kind = "quota_exceeded"


class ExportError(RuntimeError):
    pass
