"""Receipt extraction service using the OpenAI chat completions API.

This service sends one receipt image plus the fixed extraction prompt
to a vision-enabled model and turns the JSON object it answers with
into a ``ReceiptRecord``. The request forces JSON-object output so no
prose can surround the payload.

The call is bounded by ``EXTRACTION_TIMEOUT_SECONDS``; when the bound is
exceeded the in-flight request is cancelled and ``ExtractionTimeoutError``
is raised. The client is created with ``max_retries=0``: a failed attempt
is final and the caller has to resubmit. Diagnostic logging of request
sizes and raw responses can be enabled with ``EXTRACTION_DEBUG=1``.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import time
from typing import Any, Callable, Optional

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from kakeibo.core.config import settings
from kakeibo.core.errors import ExtractionTimeoutError, ParseError, UpstreamError
from kakeibo.models.schemas import ExtractedReceipt, ReceiptRecord
from kakeibo.utils.helpers import normalise_receipt_date
from kakeibo.utils.prompts import get_default_extraction_prompt

logger = logging.getLogger(__name__)

UNKNOWN_STORE = "unknown"


def parse_receipt(content: Optional[str], now: Optional[dt.datetime] = None) -> ReceiptRecord:
    """Validate and normalise the model's JSON answer.

    Raises ``ParseError`` when ``content`` is empty, not JSON, not a JSON
    object, holds text that cannot be encoded as UTF-8, or has values of
    the wrong type (e.g. ``items`` that is not a list of objects with a
    ``name``).
    """
    if content is None or not content.strip():
        raise ParseError("The extraction model returned an empty response")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ParseError(f"The extraction model returned invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object from the extraction model, got {type(data).__name__}")
    try:
        # Lone surrogates survive json.loads but cannot be written to the ledger
        json.dumps(data, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ParseError("The extraction result contains text that is not valid UTF-8") from exc
    try:
        raw = ExtractedReceipt.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ParseError(f"The extraction result has an unexpected shape ({fields})") from exc

    return ReceiptRecord(
        store_name=raw.store_name or UNKNOWN_STORE,
        date=normalise_receipt_date(raw.date, now=now),
        items=list(raw.items or []),
        subtotal=raw.subtotal or 0,
        tax=raw.tax or 0,
        total=raw.total or 0,
        payment_method=raw.payment_method or None,
    )


def _status_error_body(exc: openai.APIStatusError) -> str:
    try:
        text = exc.response.text
    except httpx.ResponseNotRead:
        text = ""
    if text:
        return text
    if exc.body is None:
        return ""
    return exc.body if isinstance(exc.body, str) else json.dumps(exc.body, ensure_ascii=False)


class ReceiptExtractor:
    """Extracts a ``ReceiptRecord`` from a resolved image reference."""

    def __init__(
        self,
        client: Any = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        image_detail: Optional[str] = None,
        prompt: Optional[str] = None,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ) -> None:
        self._client = client
        self.model: str = model or settings.EXTRACTION_MODEL
        self.timeout: float = float(timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS)
        self.max_tokens: int = max_tokens or settings.EXTRACTION_MAX_TOKENS
        self.image_detail: str = image_detail or settings.EXTRACTION_IMAGE_DETAIL
        self.prompt: str = prompt or get_default_extraction_prompt()
        self.debug: bool = settings.EXTRACTION_DEBUG
        self._clock = clock

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not settings.OPENAI_API_KEY:
            raise UpstreamError("OPENAI_API_KEY is not configured")
        # No retries: one failed attempt ends the run
        self._client = AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            max_retries=0,
            timeout=self.timeout,
        )
        return self._client

    def build_request(self, image_url: str) -> dict[str, Any]:
        """Return the keyword arguments of the chat completion call."""
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self.prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": image_url, "detail": self.image_detail},
                        },
                    ],
                }
            ],
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

    async def _complete(self, request: dict[str, Any]) -> Optional[str]:
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(**request),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("[extraction] aborted after %.1fs timeout model=%s", self.timeout, self.model)
            raise ExtractionTimeoutError(
                f"The extraction request timed out after {self.timeout:g} seconds; the image may be too large",
                timeout=self.timeout,
            ) from exc
        except openai.APITimeoutError as exc:
            logger.warning("[extraction] client timeout model=%s", self.model)
            raise ExtractionTimeoutError(
                f"The extraction request timed out after {self.timeout:g} seconds; the image may be too large",
                timeout=self.timeout,
            ) from exc
        except openai.APIStatusError as exc:
            body = _status_error_body(exc)
            logger.warning("[extraction] upstream status=%s model=%s", exc.status_code, self.model)
            raise UpstreamError(
                f"The extraction model returned HTTP {exc.status_code}: {body}",
                status_code=exc.status_code,
                body=body,
            ) from exc
        except openai.APIConnectionError as exc:
            logger.warning("[extraction] connection failed model=%s err=%s", self.model, exc)
            raise UpstreamError(f"Could not reach the extraction model: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ParseError("The extraction model returned no choices")
        return choices[0].message.content

    async def extract(self, image_url: str) -> ReceiptRecord:
        """Run one extraction attempt for ``image_url``."""
        request = self.build_request(image_url)
        logger.info("[extraction] start model=%s image_length=%d timeout=%.1fs", self.model, len(image_url), self.timeout)
        started = time.perf_counter()
        content = await self._complete(request)
        elapsed = time.perf_counter() - started
        if self.debug:
            logger.info("[extraction] raw response (%d chars): %s", len(content or ""), (content or "")[:500])
        record = parse_receipt(content, now=self._clock())
        logger.info(
            "[extraction] done in %.1fs store=%s items=%d total=%s",
            elapsed,
            record.store_name,
            len(record.items),
            record.total,
        )
        return record
