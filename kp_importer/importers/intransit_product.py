from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..batch import BatchInserter
from ..cells import cell, cell_str, cell_text, denorm_float, denorm_int, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import skb

logger = logging.getLogger(__name__)

ITEM_COLUMNS = [
    "skb_id", "product_id", "unit", "qty", "quoted_price",
    "batch_number", "expired_date", "reference_type_id", "reference_id", "is_extra",
]
SKB_TRANSFER_TO_BRANCH = 3


def skbs_without_items(db: Session) -> set[int]:
    rows = db.execute(
        text(
            """
            SELECT ls.skb_id
            FROM list_skb ls
            LEFT JOIN rel_skb_item rsi ON ls.skb_id = rsi.skb_id
            WHERE rsi.skb_id IS NULL
            """
        )
    ).scalars()
    return {int(skb_id) for skb_id in rows}


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    pending = skbs_without_items(db)
    items = BatchInserter(db, "rel_skb_item", ITEM_COLUMNS, ctx.batch_size)

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 7:
            continue
        skb_number = cell_text(row, 0)
        product_code = cell_text(row, 1)
        if skb_number is None or product_code is None:
            continue

        document = skb(resolver, skb_number)
        if document is None:
            logger.warning("Row %s skipped: SKB %s not found", row_number, skb_number)
            continue
        if document["skb_id"] not in pending:
            continue
        product_id = resolver.resolve("product", product_code)
        if product_id is None:
            logger.warning("Row %s skipped: unknown product code %s", row_number, product_code)
            continue

        reference_type = 2 if document["skb_type_id"] == SKB_TRANSFER_TO_BRANCH else None
        price = denorm_float(cell(row, 5))
        batch_number = cell_str(row, 6)
        expired_date = parse_date(cell(row, 9))
        for qty, is_extra in ((denorm_int(cell(row, 3)), 0), (denorm_int(cell(row, 4)), 1)):
            if qty > 0:
                items.add(
                    [
                        document["skb_id"], product_id, 1, qty, price,
                        batch_number, expired_date, reference_type, None, is_extra,
                    ]
                )

    items.flush()
    return ImportResult(
        message="Import SKB Central Intransit Product Success", detail=f"Total {items.written} items inserted."
    )
