"""Pydantic schemas for payloads crossing component boundaries.

Pydantic models validate every structure that moves between the
extractor, the ledger writer, the orchestrator and the HTTP layer so
that malformed shapes are rejected before they reach business logic.
Field names are snake_case in Python; the wire representation (model
output, API bodies) uses camelCase aliases.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import PipelineStage

Number = Union[int, float]


# ---------------------------------------------------------------------------
# Domain schemas produced by extraction


class ReceiptItem(BaseModel):
    """One purchased line on a receipt."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    quantity: Number = 1
    unit_price: Number = Field(
        default=0,
        validation_alias=AliasChoices("unitPrice", "price", "unit_price"),
        serialization_alias="unitPrice",
    )
    line_total: Number = Field(
        default=0,
        validation_alias=AliasChoices("lineTotal", "total", "line_total"),
        serialization_alias="lineTotal",
    )

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_default(cls, value: Any) -> Any:
        return 1 if value is None else value

    @field_validator("unit_price", "line_total", mode="before")
    @classmethod
    def _price_default(cls, value: Any) -> Any:
        return 0 if value is None else value


class ExtractedReceipt(BaseModel):
    """Raw JSON object returned by the vision model, before normalisation.

    Every key is optional because the model is told to omit what it
    cannot read; ``ReceiptExtractor`` fills the gaps.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    store_name: Optional[str] = None
    date: Optional[str] = None
    items: Optional[List[ReceiptItem]] = None
    subtotal: Optional[Number] = None
    tax: Optional[Number] = None
    total: Optional[Number] = None
    payment_method: Optional[str] = None


class ReceiptRecord(BaseModel):
    """Normalised receipt, the unit handed from extraction to recording."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    store_name: str
    date: str
    items: List[ReceiptItem] = Field(default_factory=list)
    subtotal: Number = 0
    tax: Number = 0
    total: Number = 0
    payment_method: Optional[str] = None
    # Supplied by the caller, never extracted
    category: Optional[str] = None


class LedgerRow(BaseModel):
    """One line of the ledger: a receipt flattened with one of its items."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    date: str
    store_name: str
    category: str
    item_name: str
    quantity: Number
    unit_price: Number
    line_total: Number
    tax: Number
    total: Number
    payment_method: str


# ---------------------------------------------------------------------------
# Results


class RecordResult(BaseModel):
    """Outcome of a ledger write; also the success payload of a run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    file_path: str = ""
    recorded_count: int = 0
    error_kind: Optional[str] = None


class PipelineFailure(BaseModel):
    """Failure descriptor for a run that stopped before recording."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: Literal[False] = False
    run_id: str
    stage: PipelineStage
    error_kind: str
    message: str
    status_code: Optional[int] = None


# ---------------------------------------------------------------------------
# API request schemas


class SubmitReceiptRequest(BaseModel):
    """Body of ``POST /receipts``.

    ``image_reference`` may be empty when the image was registered for
    ``run_id`` beforehand.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_reference: str = ""
    category: Optional[str] = None
    run_id: Optional[str] = None


class RunImageRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_reference: str = Field(min_length=1)
