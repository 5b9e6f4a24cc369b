"""Settlement (DTH) import.

Every cash or transfer row becomes its own debt collection, cashier receipt
and settlement. Giro rows are grouped per giro check and settled once for all
the invoices the check pays.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..batch import NOW
from ..cells import cell, cell_text, denorm_float, parse_date, row_width
from ..resolver import Resolver
from ..runner import ImportContext, ImportResult
from .lookups import collector_for_region, giro, sales_invoice
from .numbering import document_number

logger = logging.getLogger(__name__)

CASH = 1
TRANSFER = 2
GIRO = 3


def payment_method(raw: str | None) -> int:
    if raw is None:
        return CASH
    lowered = raw.lower()
    if "cash" in lowered:
        return CASH
    if "transfer" in lowered:
        return TRANSFER
    if "giro" in lowered:
        return GIRO
    return CASH


def _as_datetime(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return f"{value.isoformat()} 00:00:00"
    return str(value)


@dataclass
class GiroGroup:
    giro_id: int
    giro_number: str
    due_date: str | None
    collection_date: str
    collector: int
    branch_id: int
    region_id: int
    outlet_id: int
    settlement_total: float = 0.0
    giro_total: float = 0.0
    invoices: list[tuple[int, float, float]] = field(default_factory=list)


def _collect(resolver: Resolver, ctx: ImportContext, prefix: str, collection_date: str, collector: int,
             branch_id: int, region_id: int) -> int:
    return resolver.insert_row(
        "list_debt_collection",
        {
            "debt_collection_draft_number": document_number(f"DRAFT-{prefix}", branch_id),
            "debt_collection_number": document_number(prefix, branch_id),
            "debt_collection_date": collection_date,
            "debt_collection_status_id": 3,
            "debt_collection_type_id": 1,
            "collector": collector,
            "branch_id": branch_id,
            "region_id": region_id,
            "createdAt": NOW,
            "createdBy": ctx.admin_id,
            "approvedAt": NOW,
            "approvedBy": ctx.admin_id,
        },
    )


def _settle(resolver: Resolver, ctx: ImportContext, prefix: str, settlement_date: str, collection_id: int,
            receipt_id: int, branch_id: int) -> int:
    return resolver.insert_row(
        "list_settlement",
        {
            "settlement_date": settlement_date,
            "settlement_draft_number": document_number(f"DRAFT-{prefix}", branch_id),
            "settlement_number": document_number(prefix, branch_id),
            "debt_collection_id": collection_id,
            "cashier_receipt_id": receipt_id,
            "settlement_status_id": 2,
            "branch_id": branch_id,
            "createdAt": NOW,
            "createdBy": ctx.admin_id,
        },
    )


def _receipt(resolver: Resolver, ctx: ImportContext, prefix: str, branch_id: int, collection_id: int,
             cash: float, giro_amount: float, transfer: float) -> int:
    return resolver.insert_row(
        "list_cashier_receipt",
        {
            "cashier_receipt_number": document_number(prefix, branch_id),
            "cashier_receipt_status_id": 2,
            "debt_collection_id": collection_id,
            "cash": cash,
            "giro": giro_amount,
            "transfer": transfer,
            "createdAt": NOW,
            "createdBy": ctx.admin_id,
        },
    )


def _settle_giro_group(db: Session, resolver: Resolver, ctx: ImportContext, group: GiroGroup) -> None:
    collection_id = _collect(
        resolver, ctx, "DTH-GIRO", group.collection_date, group.collector, group.branch_id, group.region_id
    )
    for invoice_id, settlement_amount, _ in group.invoices:
        resolver.insert_row(
            "rel_debt_collection_invoice",
            {
                "debt_collection_id": collection_id,
                "outlet_id": group.outlet_id,
                "invoice_id": invoice_id,
                "amount_invoice": settlement_amount,
            },
        )
    receipt_id = _receipt(resolver, ctx, "CR-GIRO", group.branch_id, collection_id, 0, group.giro_total, 0)
    settlement_id = _settle(
        resolver, ctx, "STL-GIRO", group.collection_date, collection_id, receipt_id, group.branch_id
    )
    group_id = resolver.insert_row(
        "list_settlement_group",
        {
            "settlement_id": settlement_id,
            "outlet_id": group.outlet_id,
            "payment_method_id": GIRO,
            "settlement_amount": group.settlement_total,
            "giro_number": group.giro_number,
            "giro_due_date": group.due_date,
        },
    )
    for invoice_id, settlement_amount, giro_amount in group.invoices:
        resolver.insert_row(
            "rel_settle_invoice",
            {
                "sales_invoice_id": invoice_id,
                "settlement_id": settlement_id,
                "settlement_group_id": group_id,
                "payment_amount": giro_amount,
                "rounding_amount": 0,
                "outstanding_balance": settlement_amount,
            },
        )
    db.execute(
        text("UPDATE list_giro_check SET settlement_id = :settlement_id WHERE giro_id = :giro_id"),
        {"settlement_id": settlement_id, "giro_id": group.giro_id},
    )


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    giro_groups: dict[int, GiroGroup] = {}
    inserted = 0

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 12:
            continue
        if cell_text(row, 0) == "Freetext":
            continue
        invoice_number = cell_text(row, 11)
        if invoice_number is None:
            continue

        collection_date = parse_date(cell(row, 2)) or ctx.today
        settlement_amount = denorm_float(cell(row, 9))
        cash_amount = denorm_float(cell(row, 12))
        transfer_amount = denorm_float(cell(row, 13))
        giro_amount = denorm_float(cell(row, 14))

        invoice = sales_invoice(resolver, invoice_number)
        if invoice is None:
            logger.warning("Row %s skipped: invoice %s not found", row_number, invoice_number)
            continue
        branch_id = invoice["branch_id"]
        region_id = resolver.resolve("collection_region", branch_id)
        if region_id is None:
            logger.warning("Row %s skipped: branch %s has no collection region", row_number, branch_id)
            continue
        collector = collector_for_region(resolver, region_id)
        method = payment_method(cell_text(row, 10))
        giro_number = cell_text(row, 15)

        if method == GIRO:
            if giro_number is None:
                logger.warning("Row %s skipped: giro payment without giro number", row_number)
                continue
            check = giro(resolver, giro_number)
            if check is None:
                logger.warning("Row %s skipped: giro %s not found", row_number, giro_number)
                continue
            resolver.insert_row(
                "rel_giro_invoice",
                {
                    "giro_id": check["giro_id"],
                    "sales_invoice_id": invoice["sales_invoice_id"],
                    "amount": settlement_amount,
                },
            )
            group = giro_groups.get(check["giro_id"])
            if group is None:
                group = giro_groups[check["giro_id"]] = GiroGroup(
                    giro_id=check["giro_id"],
                    giro_number=giro_number,
                    due_date=_as_datetime(check["due_date"]),
                    collection_date=collection_date,
                    collector=collector,
                    branch_id=branch_id,
                    region_id=region_id,
                    outlet_id=invoice["outlet_id"],
                )
            group.settlement_total += settlement_amount
            group.giro_total += giro_amount
            group.invoices.append((invoice["sales_invoice_id"], settlement_amount, giro_amount))
            continue

        collection_id = _collect(resolver, ctx, "DTH", collection_date, collector, branch_id, region_id)
        resolver.insert_row(
            "rel_debt_collection_invoice",
            {
                "debt_collection_id": collection_id,
                "outlet_id": invoice["outlet_id"],
                "invoice_id": invoice["sales_invoice_id"],
                "amount_invoice": settlement_amount,
            },
        )
        receipt_id = _receipt(
            resolver, ctx, "CR", branch_id, collection_id, cash_amount, giro_amount, transfer_amount
        )
        settlement_id = _settle(resolver, ctx, "STL", collection_date, collection_id, receipt_id, branch_id)
        group_id = resolver.insert_row(
            "list_settlement_group",
            {
                "settlement_id": settlement_id,
                "outlet_id": invoice["outlet_id"],
                "payment_method_id": method,
                "settlement_amount": settlement_amount,
                "giro_number": giro_number,
                "giro_due_date": None,
            },
        )
        resolver.insert_row(
            "rel_settle_invoice",
            {
                "sales_invoice_id": invoice["sales_invoice_id"],
                "settlement_id": settlement_id,
                "settlement_group_id": group_id,
                "payment_amount": settlement_amount,
                "rounding_amount": 0,
                "outstanding_balance": invoice["amount"],
            },
        )
        inserted += 1

    for group in giro_groups.values():
        _settle_giro_group(db, resolver, ctx, group)
        inserted += 1

    return ImportResult(message="Import Settlement Success", detail=f"Total {inserted} settlements inserted.")
