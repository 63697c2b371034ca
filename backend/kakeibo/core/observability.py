"""Observability helpers (Sentry init & breadcrumbs).

Centralises Sentry initialisation for the API and the CLI so
configuration does not drift. Everything here is a no-op when no DSN
is configured.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import sentry_sdk

from kakeibo.core.config import settings


def _before_send(event: Dict[str, Any], hint: Dict[str, Any] | None = None):
    """Scrub request bodies before sending to Sentry.

    Receipt images travel inline as data URLs, so a captured body would
    carry the whole image.
    """
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for k in list(headers.keys()):
        if k.lower() in ("authorization", "cookie", "set-cookie", "x-api-key"):
            headers.pop(k, None)
    req.pop("data", None)
    if req:
        event["request"] = req
    return event


def init_sentry(service: str) -> bool:
    """Initialise Sentry once for a given process.

    Returns True if Sentry was initialised; False otherwise.
    """
    if not settings.SENTRY_DSN:
        return False
    if getattr(init_sentry, "_done", False):
        return True
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE or 0),
        environment=settings.ENVIRONMENT,
        release=settings.SENTRY_RELEASE,
        before_send=_before_send,
    )
    sentry_sdk.set_tag("service", service)
    init_sentry._done = True  # type: ignore[attr-defined]
    return True


def sentry_breadcrumb(category: str, message: str, level: str = "info", data: Optional[Dict[str, Any]] = None) -> None:
    """Add a breadcrumb for a pipeline lifecycle step."""
    if not settings.SENTRY_DSN:
        return
    sentry_sdk.add_breadcrumb(
        category=category,
        message=message,
        level=level,
        data=data or {},
    )


__all__ = ["init_sentry", "sentry_breadcrumb"]
