"""Submit one receipt image to the ledger from the command line.

Usage:
  python scripts/submit_receipt.py --image path/to/receipt.jpg [--category groceries]
  python scripts/submit_receipt.py --url https://example.com/receipt.jpg  (needs ALLOW_REMOTE_IMAGE_URLS=1)

Local files are encoded as inline data URLs. Prints the pipeline result
as JSON and exits with status 1 when the run failed.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from kakeibo.core.observability import init_sentry  # noqa: E402
from kakeibo.core.errors import InvalidReferenceKind  # noqa: E402
from kakeibo.services.image_resolver import encode_data_url  # noqa: E402
from kakeibo.services.pipeline import PipelineOrchestrator  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", type=Path, help="Local receipt image")
    source.add_argument("--url", help="Remote receipt image URL")
    parser.add_argument("--category", default=None, help="Expense category, e.g. groceries")
    parser.add_argument("--run-id", default=None, help="Run id to use instead of a generated one")
    return parser.parse_args(argv)


def _load_reference(args: argparse.Namespace) -> str:
    if args.url:
        return args.url
    mime_type = mimetypes.guess_type(args.image.name)[0] or "image/jpeg"
    return encode_data_url(args.image.read_bytes(), mime_type)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = _parse_args(argv)
    init_sentry("cli")
    try:
        reference = _load_reference(args)
    except (OSError, InvalidReferenceKind) as exc:
        print(f"Could not read image: {exc}", file=sys.stderr)
        return 2
    result = asyncio.run(PipelineOrchestrator().submit(reference, category=args.category, run_id=args.run_id))
    print(json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
