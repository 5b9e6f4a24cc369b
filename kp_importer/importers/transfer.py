from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..cells import cell, cell_str, cell_text, denorm_float, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_name, sales_invoice

logger = logging.getLogger(__name__)


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    inserted = 0

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 8:
            continue
        transfer_number = cell_text(row, 0)
        if transfer_number is None:
            break
        document_number = cell_text(row, 1)
        transfer_type = cell_text(row, 7)
        if document_number is None or cell_text(row, 2) is None or cell_text(row, 3) is None or transfer_type is None:
            continue

        origin = branch_by_name(resolver, cell_str(row, 2))
        if origin is None:
            logger.warning("Row %s skipped: unknown origin branch '%s'", row_number, cell_str(row, 2))
            continue
        destination = branch_by_name(resolver, cell_str(row, 3))
        if destination is None:
            logger.warning("Row %s skipped: unknown destination branch '%s'", row_number, cell_str(row, 3))
            continue

        header = {
            "branch_source_id": origin["branch_id"],
            "branch_destination_id": destination["branch_id"],
            "request_number": transfer_number,
            "transfer_note": cell_str(row, 4),
            "requestedAt": parse_date(cell(row, 5)) or ctx.today,
            "requestedBy": ctx.admin_id,
        }
        transfer_type = transfer_type.lower()

        if "deposit" in transfer_type:
            deposit_id = resolver.resolve("deposit", document_number)
            if deposit_id is None:
                logger.warning("Row %s skipped: deposit %s not found", row_number, document_number)
                continue
            transfer_id = resolver.insert_row("list_deposit_transfer", header)
            resolver.insert_row(
                "rel_deposit_transfer_transaction", {"deposit_transfer_id": transfer_id, "deposit_id": deposit_id}
            )
        elif "outstanding" in transfer_type:
            invoice = sales_invoice(resolver, document_number)
            if invoice is None:
                logger.warning("Row %s skipped: invoice %s not found", row_number, document_number)
                continue
            transfer_id = resolver.insert_row("list_outstanding_transfer", header)
            resolver.insert_row(
                "rel_outstanding_transfer_transaction",
                {
                    "outstanding_transfer_id": transfer_id,
                    "sales_invoice_id": invoice["sales_invoice_id"],
                    "outlet_id": invoice["outlet_id"],
                    "snapshot_amount": denorm_float(cell(row, 8)),
                    "snapshot_settlement": denorm_float(cell(row, 9)),
                },
            )
        else:
            logger.warning("Row %s skipped: unknown transfer type '%s'", row_number, transfer_type)
            continue
        inserted += 1

    return ImportResult(
        message="Import Transfer Outstanding Success", detail=f"Total {inserted} transfers inserted."
    )
