"""Enumeration types used throughout the receipt pipeline.

Enumerations constrain the values that appear in pipeline results and
make the run state machine explicit. When adding a value here check the
HTTP status mapping in ``kakeibo.api.routes.receipts``.
"""

from enum import Enum


class PipelineStage(str, Enum):
    """Stage of a run at which a failure happened."""

    RESOLVE = "resolve"
    EXTRACT = "extract"
    RECORD = "record"


class RunState(str, Enum):
    """Lifecycle states of a single pipeline run.

    ``CREATED -> IMAGE_RESOLVED -> EXTRACTED -> RECORDED`` on success;
    any state may move to ``FAILED``. No state is ever re-entered.
    """

    CREATED = "created"
    IMAGE_RESOLVED = "image_resolved"
    EXTRACTED = "extracted"
    RECORDED = "recorded"
    FAILED = "failed"


class ReferenceKind(str, Enum):
    """Shape of an image reference handed to the pipeline."""

    EMPTY = "empty"
    INLINE = "inline"
    REMOTE = "remote"
    UNKNOWN = "unknown"
