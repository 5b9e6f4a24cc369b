from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..batch import BatchInserter
from ..cells import cell, cell_str, cell_text, denorm_int, is_yes, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_code

logger = logging.getLogger(__name__)

TX_BATCH_COLUMNS = ["tx_id", "batch_id", "qty"]


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    tx_batches = BatchInserter(db, "rel_tx_batch", TX_BATCH_COLUMNS, ctx.batch_size)
    inserted = 0

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 8:
            continue
        branch_code = cell_text(row, 0)
        product_code = cell_text(row, 2)
        if branch_code is None or product_code is None:
            continue

        qty = denorm_int(cell(row, 7))
        if qty == 0:
            logger.warning("Row %s skipped: zero stock for product %s", row_number, product_code)
            continue

        branch = branch_by_code(resolver, branch_code)
        if branch is None:
            logger.warning("Row %s skipped: unknown branch code %s", row_number, branch_code)
            continue
        product_id = resolver.resolve("product", product_code)
        if product_id is None:
            logger.warning("Row %s skipped: unknown product code %s", row_number, product_code)
            continue

        batch_number = cell_str(row, 4)
        expired_date = parse_date(cell(row, 5))
        batch_id = resolver.resolve(
            "product_batch", batch_number, product_id=product_id, expired_date=expired_date
        )
        warehouse_id = resolver.resolve("warehouse", cell_str(row, 6), branch_id=branch["branch_id"])

        tx_id = resolver.insert_row(
            "list_tx",
            {
                "tx_date": ctx.legacy_date,
                "tx_type_id": 1,
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "is_consignment": 1 if is_yes(cell(row, 10)) else 0,
                "unit": 1,
                "debit": qty,
                "credit": 0,
                "batch_number": batch_number,
            },
        )
        tx_batches.add([tx_id, batch_id, qty])
        inserted += 1

    tx_batches.flush()
    return ImportResult(message="Import Initial Stock Success", detail=f"Total {inserted} rows inserted.")
