"""Root pytest configuration (kept intentionally minimal).

The application package resides in the nested `kakeibo/` directory. Adding
the backend directory to ``sys.path`` lets `import kakeibo...` work when the
project has not been installed, e.g. when running pytest from the repo root.
"""

from __future__ import annotations

import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))
