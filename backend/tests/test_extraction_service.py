from __future__ import annotations

import datetime as dt
import json

import httpx
import openai
import pytest

from fakes import CORNER_STORE, INLINE_IMAGE, FakeOpenAI
from kakeibo.core.errors import ExtractionTimeoutError, ParseError, UpstreamError
from kakeibo.services.extraction_service import ReceiptExtractor, parse_receipt

FIXED_NOW = dt.datetime(2025, 11, 3, 9, 30, 15, 123456)


def _status_error(status: int, text: str) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request, text=text)
    return openai.APIStatusError(f"Error code: {status}", response=response, body=None)


# =====================================================================
# parse_receipt
# =====================================================================
class TestParseReceipt:
    def test_full_payload(self):
        record = parse_receipt(json.dumps({**CORNER_STORE, "paymentMethod": "cash"}))
        assert record.store_name == "Corner Store"
        assert record.date == "2025-10-28T12:00:00"
        assert [i.name for i in record.items] == ["Milk"]
        assert record.items[0].unit_price == 150
        assert record.items[0].line_total == 150
        assert (record.subtotal, record.tax, record.total) == (150, 15, 165)
        assert record.payment_method == "cash"
        assert record.category is None

    def test_missing_fields_are_defaulted(self):
        record = parse_receipt("{}", now=FIXED_NOW)
        assert record.store_name == "unknown"
        assert record.date == "2025-11-03T09:30:15"
        assert record.items == []
        assert (record.subtotal, record.tax, record.total) == (0, 0, 0)
        assert record.payment_method is None

    def test_null_fields_are_defaulted(self):
        payload = {"storeName": None, "date": None, "items": None, "subtotal": None, "tax": None, "total": None}
        record = parse_receipt(json.dumps(payload), now=FIXED_NOW)
        assert record.store_name == "unknown"
        assert record.items == []
        assert record.total == 0

    def test_date_without_time_gets_noon(self):
        record = parse_receipt(json.dumps({"date": "2025-10-28"}))
        assert record.date == "2025-10-28T12:00:00"

    def test_short_item_keys_are_accepted(self):
        payload = {"items": [{"name": "Bread", "quantity": 2, "price": 120, "total": 240}]}
        item = parse_receipt(json.dumps(payload)).items[0]
        assert (item.quantity, item.unit_price, item.line_total) == (2, 120, 240)

    def test_item_defaults(self):
        item = parse_receipt(json.dumps({"items": [{"name": "Gum", "quantity": None}]})).items[0]
        assert item.quantity == 1
        assert item.unit_price == 0
        assert item.line_total == 0

    def test_totals_are_trusted_as_is(self):
        payload = {"items": [{"name": "A", "quantity": 1, "unitPrice": 100, "lineTotal": 100}], "subtotal": 5, "total": 999}
        record = parse_receipt(json.dumps(payload))
        assert record.subtotal == 5
        assert record.total == 999

    def test_numeric_strings_are_coerced(self):
        record = parse_receipt(json.dumps({"total": "1280", "tax": "116.36"}))
        assert record.total == 1280
        assert record.tax == pytest.approx(116.36)

    @pytest.mark.parametrize(
        "content",
        [
            None,
            "",
            "   ",
            "Here is the receipt: {",
            "[1, 2, 3]",
            '"just a string"',
            json.dumps({"items": "Milk"}),
            json.dumps({"items": [{"quantity": 1}]}),
            json.dumps({"total": "lots"}),
        ],
    )
    def test_malformed_content_raises_parse_error(self, content):
        with pytest.raises(ParseError) as info:
            parse_receipt(content)
        assert info.value.kind == "ParseError"


# =====================================================================
# ReceiptExtractor
# =====================================================================
class TestReceiptExtractor:
    def test_request_shape(self):
        extractor = ReceiptExtractor(client=FakeOpenAI(), model="gpt-4o", max_tokens=800, image_detail="low")
        request = extractor.build_request(INLINE_IMAGE)

        assert request["model"] == "gpt-4o"
        assert request["response_format"] == {"type": "json_object"}
        assert request["max_tokens"] == 800
        (message,) = request["messages"]
        text_part, image_part = message["content"]
        assert text_part["type"] == "text"
        assert "storeName" in text_part["text"]
        assert "レシート" in text_part["text"]
        assert image_part == {"type": "image_url", "image_url": {"url": INLINE_IMAGE, "detail": "low"}}

    @pytest.mark.asyncio
    async def test_extract_success_makes_one_call(self):
        client = FakeOpenAI(content=CORNER_STORE)
        extractor = ReceiptExtractor(client=client, timeout=5)

        record = await extractor.extract(INLINE_IMAGE)

        assert record.store_name == "Corner Store"
        assert len(client.completions.calls) == 1
        assert client.completions.calls[0]["messages"][0]["content"][1]["image_url"]["url"] == INLINE_IMAGE

    @pytest.mark.asyncio
    async def test_missing_date_uses_clock(self):
        extractor = ReceiptExtractor(client=FakeOpenAI(content={"storeName": "X"}), clock=lambda: FIXED_NOW)
        record = await extractor.extract(INLINE_IMAGE)
        assert record.date == "2025-11-03T09:30:15"

    @pytest.mark.asyncio
    async def test_timeout_cancels_inflight_call(self):
        client = FakeOpenAI(content=CORNER_STORE, delay=5)
        extractor = ReceiptExtractor(client=client, timeout=0.05)

        with pytest.raises(ExtractionTimeoutError) as info:
            await extractor.extract(INLINE_IMAGE)

        assert isinstance(info.value, TimeoutError)
        assert info.value.kind == "TimeoutError"
        assert info.value.timeout == 0.05
        assert client.completions.cancelled is True

    @pytest.mark.asyncio
    async def test_sdk_timeout_maps_to_timeout_error(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        client = FakeOpenAI(exc=openai.APITimeoutError(request=request))
        with pytest.raises(ExtractionTimeoutError):
            await ReceiptExtractor(client=client, timeout=5).extract(INLINE_IMAGE)

    @pytest.mark.asyncio
    async def test_status_error_carries_status_and_body(self):
        client = FakeOpenAI(exc=_status_error(429, '{"error": "rate limited"}'))

        with pytest.raises(UpstreamError) as info:
            await ReceiptExtractor(client=client, timeout=5).extract(INLINE_IMAGE)

        assert info.value.status_code == 429
        assert "rate limited" in info.value.body
        assert "429" in info.value.message
        assert len(client.completions.calls) == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_upstream_error(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        client = FakeOpenAI(exc=openai.APIConnectionError(request=request))

        with pytest.raises(UpstreamError) as info:
            await ReceiptExtractor(client=client, timeout=5).extract(INLINE_IMAGE)
        assert info.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json_is_parse_error(self):
        client = FakeOpenAI(content="not json")
        with pytest.raises(ParseError):
            await ReceiptExtractor(client=client, timeout=5).extract(INLINE_IMAGE)

    @pytest.mark.asyncio
    async def test_missing_api_key_is_upstream_error(self, monkeypatch):
        import kakeibo.services.extraction_service as es

        monkeypatch.setattr(es.settings, "OPENAI_API_KEY", None)
        with pytest.raises(UpstreamError):
            await ReceiptExtractor(timeout=5).extract(INLINE_IMAGE)

    def test_client_built_without_retries(self, monkeypatch):
        import kakeibo.services.extraction_service as es

        captured = {}

        class RecordingClient:
            def __init__(self, **kwargs):
                captured.update(kwargs)

        monkeypatch.setattr(es.settings, "OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(es, "AsyncOpenAI", RecordingClient)

        extractor = ReceiptExtractor(timeout=60)
        client = extractor._get_client()

        assert isinstance(client, RecordingClient)
        assert captured["max_retries"] == 0
        assert captured["timeout"] == 60
        assert extractor._get_client() is client
