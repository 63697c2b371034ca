"""Ledger storage: append-only CSV file of purchased items.

Each receipt is flattened into one row per item and appended to
``settings.LEDGER_DIRECTORY / settings.LEDGER_FILENAME``. The directory
and the header row are created lazily on the first write.

Rows are appended one at a time, each with its own open/write, so the
atomic unit is a single row, not a receipt: a crash half way through a
receipt leaves the rows written so far. Filesystem failures are logged
and reported as ``RecordResult(success=False)``; they never propagate.
"""

from __future__ import annotations

import csv
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from kakeibo.core.config import settings
from kakeibo.core.errors import FilesystemError
from kakeibo.models.schemas import LedgerRow, ReceiptRecord, RecordResult
from kakeibo.utils.helpers import format_number

logger = logging.getLogger(__name__)

LEDGER_HEADER = [
    "Date",
    "StoreName",
    "Category",
    "ItemName",
    "Quantity",
    "UnitPrice",
    "LineTotal",
    "Tax",
    "Total",
    "PaymentMethod",
]

_NEEDS_QUOTING = (",", '"', "\n", "\r")


def escape_csv_field(value: str) -> str:
    """Quote ``value`` when it contains a comma, quote or line break."""
    if any(ch in value for ch in _NEEDS_QUOTING):
        return '"' + value.replace('"', '""') + '"'
    return value


def unescape_csv_field(value: str) -> str:
    """Inverse of :func:`escape_csv_field`."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1].replace('""', '"')
    return value


def build_rows(record: ReceiptRecord, default_category: Optional[str] = None, default_payment_method: Optional[str] = None) -> List[LedgerRow]:
    """Flatten ``record`` into one ledger row per item, in item order."""
    category = record.category or default_category or settings.DEFAULT_CATEGORY
    payment_method = record.payment_method or default_payment_method or settings.DEFAULT_PAYMENT_METHOD
    return [
        LedgerRow(
            date=record.date,
            store_name=record.store_name,
            category=category,
            item_name=item.name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
            tax=record.tax,
            total=record.total,
            payment_method=payment_method,
        )
        for item in record.items
    ]


def format_row(row: LedgerRow) -> str:
    """Render ``row`` as one newline-terminated CSV line."""
    fields = [
        escape_csv_field(row.date),
        escape_csv_field(row.store_name),
        escape_csv_field(row.category),
        escape_csv_field(row.item_name),
        format_number(row.quantity),
        format_number(row.unit_price),
        format_number(row.line_total),
        format_number(row.tax),
        format_number(row.total),
        escape_csv_field(row.payment_method),
    ]
    return ",".join(fields) + "\n"


class LedgerWriter:
    """Appends receipt rows to the CSV ledger."""

    def __init__(self, directory: str | Path | None = None, filename: str | None = None) -> None:
        self.directory = Path(directory if directory is not None else settings.LEDGER_DIRECTORY)
        self.filename = filename or settings.LEDGER_FILENAME

    @property
    def file_path(self) -> Path:
        # Relative directories resolve against the working directory at call time
        return (self.directory / self.filename).absolute()

    def _ensure_ledger(self) -> Path:
        path = self.file_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"Could not create ledger directory {path.parent}: {exc}") from exc
        if path.exists():
            return path
        # The header is written to a private file and linked into place, so the
        # ledger never becomes visible without it and only one writer wins.
        staging = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            with staging.open("w", encoding="utf-8", newline="") as fh:
                fh.write(",".join(LEDGER_HEADER) + "\n")
            os.link(staging, path)
            logger.info("[ledger] created %s", path)
        except FileExistsError:
            pass
        except OSError as exc:
            raise FilesystemError(f"Could not create ledger file {path}: {exc}") from exc
        finally:
            staging.unlink(missing_ok=True)
        return path

    def _append(self, path: Path, line: str) -> None:
        try:
            with path.open("a", encoding="utf-8", newline="") as fh:
                fh.write(line)
        except OSError as exc:
            raise FilesystemError(f"Could not append to ledger {path}: {exc}") from exc
        except UnicodeError as exc:
            raise FilesystemError(f"Could not encode ledger row for {path}: {exc}") from exc

    def record(self, record: ReceiptRecord) -> RecordResult:
        """Append one row per item of ``record`` and report the outcome."""
        recorded = 0
        path: Path | None = None
        try:
            path = self._ensure_ledger()
            for row in build_rows(record):
                self._append(path, format_row(row))
                recorded += 1
        except FilesystemError as exc:
            logger.warning("[ledger] write failed after %d rows: %s", recorded, exc.message)
            return RecordResult(
                success=False,
                message=f"Failed to record receipt: {exc.message}",
                file_path=str(path) if path is not None else "",
                recorded_count=recorded,
                error_kind=exc.kind,
            )
        logger.info("[ledger] recorded %d rows store=%s path=%s", recorded, record.store_name, path)
        return RecordResult(
            success=True,
            message=f"Recorded {recorded} item(s) from {record.store_name}",
            file_path=str(path),
            recorded_count=recorded,
        )

    def read_rows(self) -> List[LedgerRow]:
        """Parse the ledger back into rows; an absent ledger reads as empty."""
        path = self.file_path
        if not path.exists():
            return []
        rows: List[LedgerRow] = []
        try:
            with path.open("r", encoding="utf-8", newline="") as fh:
                reader = csv.reader(fh)
                header = next(reader, None)
                if header != LEDGER_HEADER:
                    raise FilesystemError(f"Unexpected ledger header in {path}: {header}")
                for line_no, fields in enumerate(reader, start=2):
                    if not fields:
                        continue
                    if len(fields) != len(LEDGER_HEADER):
                        logger.warning("[ledger] skipping malformed row %d in %s", line_no, path)
                        continue
                    try:
                        rows.append(LedgerRow(**dict(zip(LedgerRow.model_fields, fields))))
                    except ValidationError:
                        logger.warning("[ledger] skipping unparsable row %d in %s", line_no, path)
        except OSError as exc:
            raise FilesystemError(f"Could not read ledger {path}: {exc}") from exc
        return rows
