from __future__ import annotations

from sqlalchemy.orm import Session

from ..batch import NOW, BatchInserter
from ..cells import cell, cell_str, cell_text, denorm_float, denorm_int, parse_date, row_width
from ..runner import ImportContext, ImportResult

GIRO_COLUMNS = ["giro_number", "outlet_id", "giro_amount", "due_date", "status_id", "createdAt", "createdBy"]
GIRO_NOT_CLEARED = 1
GIRO_CLEARED = 2


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    giros = BatchInserter(db, "list_giro_check", GIRO_COLUMNS, ctx.batch_size)

    for row in sheet.iter_rows(min_row=2, values_only=True):
        if row_width(row) < 6:
            continue
        giro_number = cell_text(row, 0)
        if giro_number is None:
            break
        if giro_number == "Freetext":
            continue

        status = GIRO_NOT_CLEARED if "belum" in cell_str(row, 5).lower() else GIRO_CLEARED
        giros.add(
            [
                giro_number,
                denorm_int(cell(row, 1)),
                denorm_float(cell(row, 2)),
                parse_date(cell(row, 4)) or ctx.today,
                status,
                NOW,
                ctx.admin_id,
            ]
        )

    giros.flush()
    return ImportResult(message="Import Giro Success", detail=f"Total {giros.written} rows inserted.")
