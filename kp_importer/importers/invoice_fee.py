from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..batch import BatchInserter
from ..cells import cell, cell_text, denorm_float, row_width
from ..runner import ImportContext, ImportResult
from .lookups import sales_invoice

logger = logging.getLogger(__name__)

FEE_COLUMNS = ["sales_invoice_id", "fee_type_id", "amount"]
SHIPPING_FEE = "Ongkos Kirim"


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    fees = BatchInserter(db, "rel_sales_invoice_fees", FEE_COLUMNS, ctx.batch_size)

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 3:
            continue
        invoice_number = cell_text(row, 0)
        fee_name = cell_text(row, 1)
        if invoice_number is None or fee_name is None or cell_text(row, 2) is None:
            continue
        invoice = sales_invoice(ctx.resolver, invoice_number)
        if invoice is None:
            logger.warning("Row %s skipped: invoice %s not found", row_number, invoice_number)
            continue
        fee_type = 2 if fee_name == SHIPPING_FEE else 1
        fees.add([invoice["sales_invoice_id"], fee_type, denorm_float(cell(row, 2))])

    fees.flush()
    return ImportResult(message="Import Sales Invoice Fee Success", detail=f"Total {fees.written} rows inserted.")
