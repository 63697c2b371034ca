"""Prompt text for receipt extraction.

The extraction prompt is written in Japanese because the ledger is kept
for Japanese receipts; the JSON keys it asks for are the camelCase keys
parsed by ``kakeibo.models.schemas.ExtractedReceipt``. If you rename a
key here update the schema aliases as well.
"""

from __future__ import annotations

from textwrap import dedent


def get_default_extraction_prompt() -> str:
    """Return the fixed instruction sent with every receipt image.

    The model is asked for a single JSON object with ``storeName``,
    ``date``, ``items``, ``subtotal``, ``tax`` and ``total`` plus an
    optional ``paymentMethod``. Unknown fields may be omitted or set to
    zero; the extractor fills defaults.
    """
    return dedent(
        """
        このレシート画像から以下の情報を抽出してJSON形式で返してください。
        簡潔に、必要最小限の情報のみを返してください。

        必須項目:
        - storeName: 店舗名
        - date: 購入日時 (YYYY-MM-DDTHH:mm:ss形式、時刻不明なら12:00:00)
        - items: [{name: 商品名, quantity: 数量, unitPrice: 単価, lineTotal: 小計}]
        - subtotal: 小計
        - tax: 消費税
        - total: 合計金額

        任意項目:
        - paymentMethod: 支払い方法（判読できる場合のみ）

        レスポンス例:
        {"storeName":"コンビニ","date":"2025-10-28T12:00:00","items":[{"name":"商品A","quantity":1,"unitPrice":100,"lineTotal":100}],"subtotal":100,"tax":10,"total":110}

        不明な項目は省略または0にしてください。JSON以外の文章は出力しないでください。
        """
    ).strip()
