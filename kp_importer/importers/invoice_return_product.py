from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..batch import BatchInserter
from ..cells import cell, cell_str, cell_text, denorm_float, denorm_int, parse_date, row_width
from ..runner import ImportContext, ImportResult

logger = logging.getLogger(__name__)

ITEM_COLUMNS = [
    "return_invoice_id", "stb_id", "product_id", "unit", "qty", "qty_extra",
    "quoted_price", "discount_price", "discount_routine_branch", "discount_routine_central",
    "discount_program_branch", "discount_program_central", "discount_extra", "hna",
    "total_price", "batch_number", "serial_number", "expired_date", "reference_type_id", "reference_id",
]


def returns_without_items(db: Session) -> set[int]:
    rows = db.execute(
        text(
            """
            SELECT li.return_invoice_id
            FROM list_invoice_return li
            LEFT JOIN rel_return_invoice_stb rris ON li.return_invoice_id = rris.return_invoice_id
            WHERE rris.return_invoice_id IS NULL
            """
        )
    ).scalars()
    return {int(return_id) for return_id in rows}


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    pending = returns_without_items(db)
    items = BatchInserter(db, "rel_return_invoice_stb", ITEM_COLUMNS, ctx.batch_size)

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 10:
            continue
        return_number = cell_text(row, 0)
        product_code = cell_text(row, 1)
        if return_number is None or product_code is None:
            continue

        return_id = resolver.resolve("invoice_return", return_number)
        if return_id is None:
            logger.warning("Row %s skipped: return invoice %s not found", row_number, return_number)
            continue
        if return_id not in pending:
            continue
        stb_id = resolver.resolve("stb", return_number)
        if stb_id is None:
            logger.warning("Row %s skipped: STB %s not found", row_number, return_number)
            continue
        product_id = resolver.resolve("product", product_code)
        if product_id is None:
            logger.warning("Row %s skipped: unknown product code %s", row_number, product_code)
            continue

        qty = denorm_int(cell(row, 2))
        if qty <= 0:
            continue
        qty_extra = denorm_int(cell(row, 3))
        price = denorm_float(cell(row, 7))
        routine_pct = denorm_float(cell(row, 8))
        program_pct = denorm_float(cell(row, 9))

        discount_value = routine_pct / 100 * price + program_pct / 100 * price
        hna = price * qty
        discount_extra = price * qty_extra
        items.add(
            [
                return_id, stb_id, product_id, 1, qty, qty_extra,
                price, None, routine_pct, 0,
                program_pct, 0, discount_extra, hna,
                hna - discount_extra - discount_value, cell_str(row, 4), None,
                parse_date(cell(row, 6)), 1, None,
            ]
        )

    items.flush()
    return ImportResult(
        message="Import Sales Invoice Return Product Success", detail=f"Total {items.written} rows inserted."
    )
