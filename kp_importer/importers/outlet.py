from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..batch import NOW, BatchInserter
from ..cells import cell, cell_str, cell_text, denormalize_number, is_yes
from ..runner import ImportContext, ImportResult

logger = logging.getLogger(__name__)

OUTLET_COLUMNS = [
    "outlet_id", "outlet_name", "outlet_code", "outlet_pic", "outlet_status_id",
    "credit_limit", "top_lock", "top_value", "lock_discount", "lock_cash_discount",
    "minimum_invoice_value", "sipnap_code", "branch_id", "segment_internal_id",
    "npwp", "is_pkp", "pkp", "is_pbf", "pbf_code", "outlet_type_id",
    "show_npwp_print", "tax_document_type", "nik", "nitku", "outlet_note",
    "createdAt", "createdBy",
]
HISTORY_COLUMNS = OUTLET_COLUMNS + ["history_status_id"]


def _outlet_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _duplicate_detail(saved: int, duplicates: list[int]) -> str:
    parts = [
        f"<p>- Total <b>{saved}</b> baris data berhasil disimpan</p>",
        f"<p>- Total <b>{len(duplicates)}</b> baris duplikat data gagal disimpan</p>",
    ]
    if duplicates:
        parts.append("<div class='gs-grid-container column-2 scrollable-y' style='max-height: 250px;'>")
        parts.extend(
            f"<b>[<span style='color: orange;'>{row_number}</span> Duplikat Sipnap]</b>"
            for row_number in duplicates
        )
        parts.append("</div>")
    return "".join(parts)


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    outlets = BatchInserter(db, "list_outlet", OUTLET_COLUMNS, ctx.batch_size)
    history = BatchInserter(db, "list_outlet_history", HISTORY_COLUMNS, ctx.batch_size)

    seen_sipnap: set[str] = set()
    duplicates: list[int] = []
    saved = 0

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if cell_text(row, 0) is None:
            continue
        outlet_id = _outlet_id(cell(row, 0))
        if outlet_id is None:
            logger.warning("Row %s skipped: invalid outlet_id '%s'", row_number, cell(row, 0))
            continue

        sipnap_code = cell_str(row, 10)
        if sipnap_code:
            if sipnap_code in seen_sipnap or resolver.exists("list_outlet", "sipnap_code", sipnap_code):
                logger.warning("Row %s skipped: duplicate sipnap code %s", row_number, sipnap_code)
                duplicates.append(row_number)
                continue
            seen_sipnap.add(sipnap_code)

        branch_name = cell_str(row, 11)
        branch_id = resolver.column_id("branch_name", "list_branch", branch_name) if branch_name else None
        segment_name = cell_str(row, 12)
        segment_id = (
            resolver.column_id("segment_name", "list_outlet_segment", segment_name, internal=True)
            if segment_name
            else None
        )

        npwp = cell_str(row, 13)
        pkp = cell_str(row, 14)
        pbf_code = cell_str(row, 15)
        outlet_type = 1 if cell_str(row, 16).startswith("01") else 2
        status = 2 if cell_str(row, 20).upper() == "AKTIF" else 3
        tax_document_type = "Dokumen dengan NPWP/NIK tervalidasi" if npwp else "Dokumen dengan NIK"

        values = [
            outlet_id,
            cell_str(row, 1),
            cell_str(row, 2),
            cell_str(row, 3),
            status,
            denormalize_number(cell(row, 4)),
            1 if is_yes(cell(row, 5)) else 0,
            denormalize_number(cell(row, 6)),
            0,
            1 if is_yes(cell(row, 8)) else 0,
            denormalize_number(cell(row, 9)),
            sipnap_code,
            branch_id,
            segment_id,
            npwp,
            1 if pkp else 0,
            pkp,
            1 if pbf_code else 0,
            pbf_code,
            outlet_type,
            1,
            tax_document_type,
            cell_str(row, 17),
            cell_str(row, 18),
            cell_str(row, 19),
            NOW,
            ctx.admin_id,
        ]
        outlets.add(values)
        history.add(values + [2])
        saved += 1

    outlets.flush()
    history.flush()

    return ImportResult(
        message="Import Outlet Success",
        detail=_duplicate_detail(saved, duplicates),
        activity=("IMPORT DATA OUTLET", "outlet/view_outlet_list"),
    )
