from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..batch import NOW, BatchInserter
from ..cells import cell, cell_str, cell_text, denorm_float, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_name, division_id, outlet_by_code

logger = logging.getLogger(__name__)

RETURN_COLUMNS = [
    "return_number", "return_date", "return_note", "return_invoice_status_id", "branch_id",
    "outlet_id", "division_id", "createdAt", "createdBy", "cash_discount", "total_return",
]
STB_COLUMNS = [
    "stb_number", "stb_date", "stb_status_id", "stb_type_id", "reference_number",
    "destination_warehouse_id", "issuer_type_id", "issuer_id", "issuer", "destination_type_id",
    "destination_id", "destination", "is_return_invoice_sales", "createdAt", "createdBy",
]

STB_TYPES = {"RO Barang Rusak": 2, "RO Barang Reguler": 12}
STB_TYPE_REGULAR_RETURN = 12


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    returns = BatchInserter(db, "list_invoice_return", RETURN_COLUMNS, ctx.batch_size)
    stbs = BatchInserter(db, "list_stb", STB_COLUMNS, ctx.batch_size)
    seen: set[str] = set()

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 10:
            continue
        return_number = cell_text(row, 1)
        if return_number is None:
            continue
        if return_number in seen or resolver.exists("list_invoice_return", "return_number", return_number):
            logger.warning("Row %s skipped: return %s already exists", row_number, return_number)
            continue

        branch = branch_by_name(resolver, cell_str(row, 3))
        if branch is None:
            logger.warning("Row %s skipped: unknown branch '%s'", row_number, cell_str(row, 3))
            continue
        outlet = outlet_by_code(resolver, cell_str(row, 9))
        if outlet is None:
            logger.warning("Row %s skipped: unknown outlet '%s'", row_number, cell_str(row, 9))
            continue

        stb_type = STB_TYPES.get(cell_str(row, 8), 1)
        warehouse_type = 1 if stb_type == STB_TYPE_REGULAR_RETURN else 2
        warehouse_id = resolver.resolve("branch_warehouse", warehouse_type, branch_id=branch["branch_id"])
        if warehouse_id is None:
            logger.warning(
                "Row %s skipped: branch %s has no warehouse of type %s", row_number, branch["branch_name"], warehouse_type
            )
            continue

        return_date = parse_date(cell(row, 0))
        seen.add(return_number)
        returns.add(
            [
                return_number, return_date, cell_str(row, 2), 2, branch["branch_id"],
                outlet["outlet_id"], division_id(cell_str(row, 5)), NOW, ctx.admin_id,
                denorm_float(cell(row, 6)), denorm_float(cell(row, 7)),
            ]
        )
        stbs.add(
            [
                return_number, return_date, 2, stb_type, return_number,
                warehouse_id, 3, outlet["outlet_id"], outlet["outlet_name"], 1,
                branch["branch_id"], branch["branch_name"], 1, NOW, ctx.admin_id,
            ]
        )

    returns.flush()
    stbs.flush()
    return ImportResult(
        message="Import Sales Invoice Return Success", detail=f"Total {returns.written} rows inserted."
    )
