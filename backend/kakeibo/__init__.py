"""Top-level package for the kakeibo receipt ledger.

This package turns a photographed receipt into rows of a household
expense ledger. A vision-capable model reads the receipt image, the
structured result is validated and normalised, and one CSV row per
purchased item is appended to ``data/kakeibo.csv``. It includes the
Pydantic schemas, the pipeline services and a small FastAPI surface.

To run the API locally you can execute:

```bash
uvicorn kakeibo.api.main:app --reload
```

Configuration values can be overridden using environment variables or
a ``.env`` file at the project root.
"""

__all__: list[str] = []
