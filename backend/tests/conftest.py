"""
Shared pytest fixtures: a ledger in tmp_path, a fresh run store and an
orchestrator factory wired to a fake OpenAI client.
"""
from __future__ import annotations

import pytest

from fakes import FakeOpenAI, SpyWriter
from kakeibo.services.extraction_service import ReceiptExtractor
from kakeibo.services.image_resolver import ImageResolver
from kakeibo.services.pipeline import PipelineOrchestrator
from kakeibo.services.run_store import RunCorrelationStore


@pytest.fixture()
def ledger_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture()
def writer(ledger_dir):
    return SpyWriter(directory=ledger_dir)


@pytest.fixture()
def run_store():
    return RunCorrelationStore(ttl_seconds=60, max_entries=8)


@pytest.fixture()
def make_orchestrator(writer, run_store):
    def _make(content=None, exc=None, delay=0.0, timeout=5.0, allow_remote_urls=False):
        client = FakeOpenAI(content=content, exc=exc, delay=delay)
        orchestrator = PipelineOrchestrator(
            extractor=ReceiptExtractor(client=client, timeout=timeout),
            writer=writer,
            resolver=ImageResolver(allow_remote_urls=allow_remote_urls),
            run_store=run_store,
        )
        return orchestrator, client
    return _make
