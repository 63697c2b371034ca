"""Error taxonomy for the receipt pipeline.

Every error knows the pipeline stage it belongs to and a short ``kind``
string that ends up in failure payloads returned to callers. Extraction
errors propagate out of the extractor; the orchestrator turns them into
a ``PipelineFailure``. Filesystem errors are converted to a
``RecordResult`` inside the ledger writer and never escape it.
"""

from __future__ import annotations

from typing import Optional

from kakeibo.models.enums import PipelineStage


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    kind: str = "PipelineError"
    stage: PipelineStage = PipelineStage.EXTRACT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidReferenceKind(PipelineError):
    """No usable image reference, even after the run store fallback."""

    kind = "InvalidReferenceKind"
    stage = PipelineStage.RESOLVE


class UpstreamError(PipelineError):
    """The extraction model answered with a non-success response."""

    kind = "UpstreamError"
    stage = PipelineStage.EXTRACT

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ExtractionTimeoutError(PipelineError, TimeoutError):
    """The extraction call exceeded its time bound and was cancelled."""

    kind = "TimeoutError"
    stage = PipelineStage.EXTRACT

    def __init__(self, message: str, timeout: float) -> None:
        super().__init__(message)
        self.timeout = timeout


class ParseError(PipelineError):
    """The model response was not a JSON object of the expected shape."""

    kind = "ParseError"
    stage = PipelineStage.EXTRACT


class FilesystemError(PipelineError):
    """Creating or appending to the ledger failed."""

    kind = "FilesystemError"
    stage = PipelineStage.RECORD


__all__ = [
    "PipelineError",
    "InvalidReferenceKind",
    "UpstreamError",
    "ExtractionTimeoutError",
    "ParseError",
    "FilesystemError",
]
