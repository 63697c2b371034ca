from __future__ import annotations

from kakeibo.services.pipeline import PipelineOrchestrator

_orchestrator: PipelineOrchestrator | None = None


def get_orchestrator() -> PipelineOrchestrator:
    """Return the process-wide orchestrator (shares the global run store)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = PipelineOrchestrator()
    return _orchestrator
