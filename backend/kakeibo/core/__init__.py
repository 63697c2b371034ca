"""Core configuration, error types and observability helpers.

Exports configuration settings to simplify import paths inside tests
(e.g. `from kakeibo.core import settings`).
"""

from .config import settings  # noqa: F401
