"""Delivery monitoring (DMF) import.

Rows sharing a date, type, branch and DMF admin form one tracking-history
entry; each row adds one invoice to that entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..batch import NOW
from ..cells import cell, cell_str, cell_text, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_code, outlet_by_code, sales_invoice
from .numbering import document_number

logger = logging.getLogger(__name__)

DMF_SHEET = "Sheet1"

TRACK_TYPES = {
    "pengiriman barang": 1,
    "penerimaan faktur kembali": 2,
    "penyerahan faktur ke piutang": 3,
    "penerimaan faktur oleh piutang": 4,
}
TRACK_STATUSES = {
    "dijadwalkan": 1,
    "dalam perjalanan": 2,
    "diterima": 3,
    "dibatalkan transaksinya": 4,
    "penjadwalan ulang": 5,
}
TRACK_POSITIONS = {"gudang": 1, "loper": 2, "piutang": 3}
OTHER_POSITION = 4


@dataclass
class TrackGroup:
    track_type: int
    branch_id: int
    loper_id: int | None
    courier_id: int | None
    receipt_number: str
    note: str
    admin_id: int
    invoices: list[tuple[int, int, int, int]] = field(default_factory=list)


def track_status(raw: str | None) -> int:
    return TRACK_STATUSES.get((raw or "").lower(), 1)


def track_position(raw: str | None) -> int:
    return TRACK_POSITIONS.get((raw or "").lower(), OTHER_POSITION)


def _resolve_in_savepoint(db: Session, ctx: ImportContext, name: str, value: str, **fields) -> int | None:
    """Soft lookup whose failed insert only costs the current row."""
    try:
        with db.begin_nested():
            return ctx.resolver.resolve(name, value, **fields)
    except SQLAlchemyError:
        logger.warning("Could not create %s '%s'", name, value)
        return None


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook, default=DMF_SHEET)
    resolver = ctx.resolver
    groups: dict[tuple, TrackGroup] = {}

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 17:
            continue
        raw_date = cell_text(row, 0)
        if raw_date is None:
            break

        track_type = TRACK_TYPES.get(cell_str(row, 1).lower())
        if track_type is None:
            logger.warning("Row %s skipped: unknown DMF type '%s'", row_number, cell_str(row, 1))
            continue
        branch_code = cell_text(row, 3)
        if branch_code is None:
            continue
        branch = branch_by_code(resolver, branch_code)
        if branch is None:
            logger.warning("Row %s skipped: unknown branch code %s", row_number, branch_code)
            continue

        loper_id = courier_id = None
        loper_name = cell_text(row, 4)
        if loper_name is not None:
            loper_id = _resolve_in_savepoint(db, ctx, "admin", loper_name)
            if loper_id is None:
                logger.warning("Row %s skipped: no loper '%s'", row_number, loper_name)
                continue
        else:
            courier_name = cell_text(row, 5)
            if courier_name is not None:
                courier_id = _resolve_in_savepoint(db, ctx, "courier", courier_name, branch_id=branch["branch_id"])
                if courier_id is None:
                    logger.warning("Row %s skipped: no courier '%s'", row_number, courier_name)
                    continue

        invoice_number = cell_text(row, 7)
        if invoice_number is None:
            continue
        invoice = sales_invoice(resolver, invoice_number)
        if invoice is None:
            logger.warning("Row %s skipped: invoice %s not found", row_number, invoice_number)
            continue
        outlet_code = cell_text(row, 8)
        if outlet_code is None:
            continue
        outlet = outlet_by_code(resolver, outlet_code)
        if outlet is None:
            logger.warning("Row %s skipped: unknown outlet code %s", row_number, outlet_code)
            continue

        dmf_admin = cell_text(row, 11)
        admin_id = ctx.admin_id
        if dmf_admin is not None:
            admin_id = _resolve_in_savepoint(db, ctx, "admin", dmf_admin)
            if admin_id is None:
                logger.warning("Row %s skipped: no DMF admin '%s'", row_number, dmf_admin)
                continue

        key = (parse_date(cell(row, 0)), track_type, branch["branch_id"], admin_id)
        group = groups.get(key)
        if group is None:
            group = groups[key] = TrackGroup(
                track_type=track_type,
                branch_id=branch["branch_id"],
                loper_id=loper_id,
                courier_id=courier_id,
                receipt_number=cell_str(row, 6),
                note=cell_str(row, 2),
                admin_id=admin_id,
            )
        group.invoices.append(
            (
                outlet["outlet_id"],
                invoice["sales_invoice_id"],
                track_status(cell_text(row, 9)),
                track_position(cell_text(row, 10)),
            )
        )

    inserted = 0
    for group in groups.values():
        history_id = resolver.insert_row(
            "list_sales_invoice_track_history",
            {
                "track_number": document_number("DMF", group.branch_id),
                "invoice_track_status_id": 1,
                "invoice_track_type_id": group.track_type,
                "branch_id": group.branch_id,
                "loper_id": group.loper_id,
                "courier_id": group.courier_id,
                "receipt_number": group.receipt_number,
                "markedAt": NOW,
                "markedBy": ctx.admin_id,
                "note": group.note,
            },
        )
        for outlet_id, invoice_id, status_id, position_id in group.invoices:
            resolver.insert_row(
                "rel_track_history_invoice",
                {
                    "track_history_id": history_id,
                    "outlet_id": outlet_id,
                    "sales_invoice_id": invoice_id,
                    "track_status_id": status_id,
                    "track_position_id": position_id,
                    "date_track": ctx.today,
                    "admin_track": group.admin_id,
                    "track_used_id": None,
                },
            )
            inserted += 1

    return ImportResult(message="Import DMF Success", detail=f"Total {inserted} rows inserted.")
