"""API routes for submitting receipts and reading the ledger."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from kakeibo.api.deps import get_orchestrator
from kakeibo.core.errors import FilesystemError
from kakeibo.models.enums import PipelineStage
from kakeibo.models.schemas import (
    LedgerRow,
    PipelineFailure,
    RecordResult,
    RunImageRequest,
    SubmitReceiptRequest,
)
from kakeibo.services.pipeline import PipelineOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/receipts", tags=["receipts"])


def _failure_status(failure: PipelineFailure) -> int:
    if failure.stage is PipelineStage.RESOLVE:
        return status.HTTP_400_BAD_REQUEST
    if failure.error_kind == "TimeoutError":
        return status.HTTP_504_GATEWAY_TIMEOUT
    return status.HTTP_502_BAD_GATEWAY


@router.post("", response_model=RecordResult)
async def submit_receipt(
    payload: SubmitReceiptRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Extract a receipt image and append its items to the ledger.

    Leave ``imageReference`` empty to use the image registered for
    ``runId`` via ``POST /receipts/runs/{run_id}/image``.
    """
    result = await orchestrator.submit(
        payload.image_reference,
        category=payload.category,
        run_id=payload.run_id,
    )
    if isinstance(result, PipelineFailure):
        return JSONResponse(status_code=_failure_status(result), content=result.model_dump(mode="json", by_alias=True))
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result


@router.post("/runs/{run_id}/image", status_code=status.HTTP_202_ACCEPTED)
async def register_run_image(
    run_id: str,
    payload: RunImageRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Park an uploaded image for a run whose extraction is triggered later."""
    orchestrator.begin_run(run_id, payload.image_reference)
    return {"runId": run_id, "stored": True}


@router.get("/ledger", response_model=List[LedgerRow])
def list_ledger_rows(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Return every row currently in the ledger."""
    try:
        return orchestrator.writer.read_rows()
    except FilesystemError as exc:
        logger.warning("[api] ledger read failed: %s", exc.message)
        raise HTTPException(status_code=500, detail=exc.message)
