from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..batch import NOW, BatchInserter
from ..cells import cell, cell_str, cell_text, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_name

logger = logging.getLogger(__name__)

SKB_COLUMNS = [
    "skb_number", "skb_date", "skb_status_id", "skb_type_id", "issuer_warehouse_id",
    "issuer_type_id", "issuer_id", "issuer", "destination_type_id", "destination_id",
    "destination", "skb_note", "is_complete", "createdAt", "createdBy", "division_id",
]

SKB_TRANSFER_TO_BRANCH = 3
SKB_REGULAR_RETURN = 10
SKB_DAMAGED_RETURN = 2
SKB_STATUS_INTRANSIT = 3


def skb_type(raw: str | None) -> int:
    lowered = (raw or "").lower()
    if "retur barang reguler" in lowered:
        return SKB_REGULAR_RETURN
    if "retur barang rusak" in lowered:
        return SKB_DAMAGED_RETURN
    return SKB_TRANSFER_TO_BRANCH


def issuer_warehouse_type(raw: str | None) -> int:
    return 2 if "gudang barang rusak" in (raw or "").lower() else 1


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    skbs = BatchInserter(db, "list_skb", SKB_COLUMNS, ctx.batch_size)
    seen: set[str] = set()

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 6:
            continue
        skb_number = cell_text(row, 0)
        if skb_number is None:
            continue
        if skb_number in seen or resolver.exists("list_skb", "skb_number", skb_number):
            logger.warning("Row %s skipped: SKB %s already exists", row_number, skb_number)
            continue

        issuer = branch_by_name(resolver, cell_str(row, 4))
        if issuer is None:
            logger.warning("Row %s skipped: unknown issuer branch '%s'", row_number, cell_str(row, 4))
            continue
        destination = branch_by_name(resolver, cell_str(row, 5))
        if destination is None:
            logger.warning("Row %s skipped: unknown destination branch '%s'", row_number, cell_str(row, 5))
            continue

        warehouse_type = issuer_warehouse_type(cell_text(row, 3))
        warehouse_id = resolver.resolve("branch_warehouse", warehouse_type, branch_id=issuer["branch_id"])
        if warehouse_id is None:
            logger.warning(
                "Row %s skipped: branch %s has no warehouse of type %s", row_number, issuer["branch_name"], warehouse_type
            )
            continue

        seen.add(skb_number)
        skbs.add(
            [
                skb_number,
                parse_date(cell(row, 1)) or ctx.today,
                SKB_STATUS_INTRANSIT,
                skb_type(cell_text(row, 2)),
                warehouse_id,
                1,
                issuer["branch_id"],
                issuer["branch_name"],
                1,
                destination["branch_id"],
                destination["branch_name"],
                cell_str(row, 6),
                1,
                NOW,
                ctx.admin_id,
                2 if cell_str(row, 7) == "Hoslab" else 1,
            ]
        )

    skbs.flush()
    return ImportResult(
        message="Import SKB Central Intransit Success", detail=f"Total {skbs.written} rows inserted."
    )
