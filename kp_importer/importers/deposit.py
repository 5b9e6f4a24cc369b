from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..batch import NOW, BatchInserter
from ..cells import cell, cell_str, cell_text, denorm_float, denorm_int, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_code, sales_invoice

logger = logging.getLogger(__name__)

DEPOSIT_COLUMNS = [
    "deposit_date", "deposit_number", "deposit_type_id", "outlet_id", "branch_id",
    "deposit_location_id", "debit", "credit", "note", "settlement_id", "sales_invoice_id",
    "return_invoice_id", "createdAt", "createdBy",
]


def deposit_type(raw: str | None) -> tuple[int, str]:
    if raw is None:
        return 3, "DEPOSIT"
    if "pelunasan" in raw.lower():
        return 1, "DEPOSIT PELUNASAN"
    return 3, "DEPOSIT INVOICE RETUR"


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    deposits = BatchInserter(db, "list_outlet_deposit", DEPOSIT_COLUMNS, ctx.batch_size)

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 5:
            continue
        if cell_text(row, 0) is None:
            break

        branch_code = cell_text(row, 2)
        if branch_code is None or branch_code == "Freetext":
            continue
        branch = branch_by_code(resolver, branch_code)
        if branch is None:
            logger.warning("Row %s skipped: unknown branch code %s", row_number, branch_code)
            continue

        type_id, note = deposit_type(cell_text(row, 1))
        deposit_number = cell_str(row, 5)

        invoice_id = None
        invoice_number = cell_text(row, 6)
        if invoice_number is not None:
            invoice = sales_invoice(resolver, invoice_number)
            invoice_id = invoice["sales_invoice_id"] if invoice is not None else None

        return_id = None
        return_number = cell_text(row, 7)
        if return_number is not None:
            if not deposit_number:
                deposit_number = return_number
            return_id = resolver.resolve("invoice_return", return_number)

        deposits.add(
            [
                parse_date(cell(row, 0)) or ctx.today,
                deposit_number,
                type_id,
                denorm_int(cell(row, 3)),
                branch["branch_id"],
                branch["branch_id"],
                denorm_float(cell(row, 4)),
                0,
                note,
                None,
                invoice_id,
                return_id,
                NOW,
                ctx.admin_id,
            ]
        )

    deposits.flush()
    return ImportResult(message="Import Deposit Success", detail=f"Total {deposits.written} rows inserted.")
