"""Image reference classification and validation.

Two shapes of reference reach the pipeline: inline ``data:image/...``
URLs that embed the image bytes, and remote ``http(s)`` URLs. Inline
references are always accepted. Remote URLs are rejected unless
``settings.ALLOW_REMOTE_IMAGE_URLS`` is switched on, because the model
provider would fetch them on our behalf. Empty references are not
resolved here; the orchestrator falls back to the run store first.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from urllib.parse import urlparse

from kakeibo.core.config import settings
from kakeibo.core.errors import InvalidReferenceKind
from kakeibo.models.enums import ReferenceKind

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:image/(?P<subtype>[\w.+-]+);base64,(?P<payload>.*)$", re.DOTALL)


class ImageResolver:
    """Validates image references against the configured policy."""

    def __init__(self, allow_remote_urls: bool | None = None) -> None:
        self.allow_remote_urls = settings.ALLOW_REMOTE_IMAGE_URLS if allow_remote_urls is None else allow_remote_urls

    def classify(self, reference: str | None) -> ReferenceKind:
        if reference is None or not reference.strip():
            return ReferenceKind.EMPTY
        value = reference.strip()
        if value.startswith("data:"):
            return ReferenceKind.INLINE
        parsed = urlparse(value)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            return ReferenceKind.REMOTE
        return ReferenceKind.UNKNOWN

    def resolve(self, reference: str | None) -> str:
        """Return a reference the extraction model can consume.

        Raises ``InvalidReferenceKind`` for empty, unrecognised or
        disallowed references and for malformed data URLs.
        """
        kind = self.classify(reference)
        if kind is ReferenceKind.EMPTY:
            raise InvalidReferenceKind("No receipt image was provided for this run")
        reference = reference or ""
        if kind is ReferenceKind.INLINE:
            self._check_data_url(reference.strip())
            logger.info("[image] inline image accepted length=%d", len(reference))
            return reference.strip()
        if kind is ReferenceKind.REMOTE:
            if not self.allow_remote_urls:
                raise InvalidReferenceKind("Remote image URLs are not accepted; upload the image instead")
            logger.warning("[image] remote image URL passed through host=%s", urlparse(reference.strip()).netloc)
            return reference.strip()
        raise InvalidReferenceKind("Unsupported image reference; expected a data:image/...;base64 URL")

    @staticmethod
    def _check_data_url(reference: str) -> None:
        match = _DATA_URL.match(reference)
        if not match:
            raise InvalidReferenceKind("Inline image must be a base64 data:image/... URL")
        payload = match.group("payload")
        if not payload:
            raise InvalidReferenceKind("Inline image has an empty payload")
        try:
            base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidReferenceKind(f"Inline image payload is not valid base64: {exc}") from exc


def encode_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    """Wrap raw image bytes in an inline ``data:`` URL."""
    if not data:
        raise InvalidReferenceKind("Image file is empty")
    if not mime_type.startswith("image/"):
        raise InvalidReferenceKind(f"Not an image type: {mime_type}")
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
