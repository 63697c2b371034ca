"""Receipt pipeline orchestration.

Runs one receipt through resolve -> extract -> record:

1. Resolve the image reference. An empty reference falls back to the
   pending image stored for the run id in the ``RunCorrelationStore``.
2. Extract a ``ReceiptRecord`` with the vision model (single attempt).
3. Attach the caller's category and append the rows to the ledger.

Extraction failures stop the run before the ledger is touched, so a
failed extraction never leaves rows behind. A ledger failure is
returned as the writer reported it; there is nothing to roll back
because extraction has no side effects. No stage is retried.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Union

from kakeibo.core.errors import PipelineError
from kakeibo.core.observability import sentry_breadcrumb
from kakeibo.models.enums import PipelineStage, ReferenceKind, RunState
from kakeibo.models.schemas import PipelineFailure, ReceiptRecord, RecordResult
from kakeibo.services.extraction_service import ReceiptExtractor
from kakeibo.services.image_resolver import ImageResolver
from kakeibo.services.ledger_service import LedgerWriter
from kakeibo.services.run_store import RunCorrelationStore, get_run_store

logger = logging.getLogger(__name__)

SubmitResult = Union[RecordResult, PipelineFailure]

_TRANSITIONS = {
    RunState.CREATED: {RunState.IMAGE_RESOLVED, RunState.FAILED},
    RunState.IMAGE_RESOLVED: {RunState.EXTRACTED, RunState.FAILED},
    RunState.EXTRACTED: {RunState.RECORDED, RunState.FAILED},
    RunState.RECORDED: set(),
    RunState.FAILED: set(),
}


@dataclass
class PipelineRun:
    """State machine trace of a single run."""

    run_id: str
    state: RunState = RunState.CREATED
    history: List[RunState] = field(default_factory=lambda: [RunState.CREATED])
    failed_stage: Optional[PipelineStage] = None
    record: Optional[ReceiptRecord] = None
    result: Optional[SubmitResult] = None

    def advance(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal run transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, stage: PipelineStage, result: SubmitResult) -> None:
        self.advance(RunState.FAILED)
        self.failed_stage = stage
        self.result = result

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.RECORDED


class PipelineOrchestrator:
    """Composes the resolver, extractor and ledger writer for one run at a time."""

    def __init__(
        self,
        extractor: Optional[ReceiptExtractor] = None,
        writer: Optional[LedgerWriter] = None,
        resolver: Optional[ImageResolver] = None,
        run_store: Optional[RunCorrelationStore] = None,
    ) -> None:
        self.extractor = extractor or ReceiptExtractor()
        self.writer = writer or LedgerWriter()
        self.resolver = resolver or ImageResolver()
        self.run_store = run_store if run_store is not None else get_run_store()

    def begin_run(self, run_id: str, image_reference: str) -> None:
        """Park ``image_reference`` for a later ``submit`` with an empty reference."""
        self.run_store.set(run_id, image_reference)

    def _resolve(self, run_id: str, image_reference: str) -> str:
        if self.resolver.classify(image_reference) is ReferenceKind.EMPTY:
            logger.info("[pipeline] run_id=%s no image supplied, checking run store", run_id)
            stored = self.run_store.consume(run_id)
            if stored is not None:
                image_reference = stored
        return self.resolver.resolve(image_reference)

    def _failure(self, run: PipelineRun, exc: PipelineError) -> PipelineFailure:
        failure = PipelineFailure(
            run_id=run.run_id,
            stage=exc.stage,
            error_kind=exc.kind,
            message=f"Receipt {exc.stage.value} step failed: {exc.message}",
            status_code=getattr(exc, "status_code", None),
        )
        logger.warning("[pipeline] run_id=%s failed stage=%s kind=%s", run.run_id, exc.stage.value, exc.kind)
        sentry_breadcrumb("pipeline", "run failed", level="warning", data={"stage": exc.stage.value, "kind": exc.kind})
        run.fail(exc.stage, failure)
        return failure

    async def run(
        self,
        image_reference: str = "",
        category: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> PipelineRun:
        """Execute one run and return its trace; never raises for pipeline failures."""
        run = PipelineRun(run_id=run_id or uuid.uuid4().hex)
        logger.info("[pipeline] run_id=%s start category=%s", run.run_id, category)

        try:
            image_url = self._resolve(run.run_id, image_reference)
            run.advance(RunState.IMAGE_RESOLVED)
            sentry_breadcrumb("pipeline", "image resolved", data={"run_id": run.run_id})

            record = await self.extractor.extract(image_url)
            run.advance(RunState.EXTRACTED)
            sentry_breadcrumb("pipeline", "receipt extracted", data={"run_id": run.run_id, "items": len(record.items)})
        except PipelineError as exc:
            self._failure(run, exc)
            return run

        if category:
            record = record.model_copy(update={"category": category})
        run.record = record

        result = await asyncio.to_thread(self.writer.record, record)
        if not result.success:
            logger.warning("[pipeline] run_id=%s ledger write failed: %s", run.run_id, result.message)
            run.fail(PipelineStage.RECORD, result)
            return run

        run.advance(RunState.RECORDED)
        run.result = result
        logger.info("[pipeline] run_id=%s recorded %d rows", run.run_id, result.recorded_count)
        return run

    async def submit(
        self,
        image_reference: str = "",
        category: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> SubmitResult:
        """Run the pipeline and return only its final result."""
        run = await self.run(image_reference, category=category, run_id=run_id)
        if run.result is None:
            raise RuntimeError(f"Pipeline run {run.run_id} finished without a result")
        return run.result
