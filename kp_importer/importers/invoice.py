from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..batch import BatchInserter
from ..cells import cell, cell_str, cell_text, denormalize_number, parse_excel_date
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_code, division_id, outlet_by_code, sales_invoice

logger = logging.getLogger(__name__)

ORDER_COLUMNS = [
    "outlet_id", "division_id", "branch_id", "branch_billing_id", "sales_date", "sales_number",
    "sales_order_status_id", "payment_method", "sales_source_id", "sales_type_id", "salesman_id",
    "region_id", "principal_id", "stamp_duty", "is_ecatalogue", "term_days", "amount", "ppn",
    "cash_discount", "createdAt", "createdBy", "is_legacy",
]
INVOICE_COLUMNS = [
    "outlet_id", "division_id", "branch_id", "branch_billing_id", "sales_invoice_date",
    "sales_invoice_number", "internal_note", "sales_invoice_status_id", "payment_method",
    "sales_source_id", "sales_invoice_type_id", "salesman_id", "region_id", "principal_id",
    "stamp_duty", "is_ecatalogue", "is_b2b", "term_days", "amount", "ppn", "cash_discount",
    "is_return_invoice", "createdAt", "createdBy", "is_legacy",
]
SKB_COLUMNS = [
    "skb_number", "skb_date", "skb_status_id", "skb_type_id", "issuer_warehouse_id",
    "issuer_type_id", "issuer_id", "issuer", "destination_type_id", "destination_id",
    "destination", "is_complete", "createdAt", "createdBy", "division_id", "approvedAt",
    "approvedBy", "pharmacist_verified_by", "pharmacist_verified_at",
]

PPN = 11
ORDER_STATUS_DONE = 3
INVOICE_STATUS_DONE = 3
SKB_STATUS_DONE = 4


def sales_and_skb_type(raw: str) -> tuple[int, int]:
    """Sales type id and the SKB type that ships it."""
    lowered = raw.lower()
    if lowered == "reguler" or raw == "1":
        return 1, 6
    if lowered == "konsinyasi" or raw == "2":
        return 2, 5
    return 3, 11


def _salesman(db: Session, ctx: ImportContext, name: str | None) -> int:
    if not name:
        return ctx.admin_id
    try:
        with db.begin_nested():
            admin_id = ctx.resolver.resolve("admin", name)
    except SQLAlchemyError:
        logger.warning("Could not create admin %s; using admin %s instead", name, ctx.admin_id)
        return ctx.admin_id
    return admin_id


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    orders = BatchInserter(db, "list_sales_order", ORDER_COLUMNS, ctx.batch_size)
    invoices = BatchInserter(db, "list_sales_invoice", INVOICE_COLUMNS, ctx.batch_size)
    skbs = BatchInserter(db, "list_skb", SKB_COLUMNS, ctx.batch_size)

    seen_invoices: set[str] = set()
    return_links: list[tuple[str, int]] = []

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if cell_text(row, 0) is None:
            continue
        invoice_date = parse_excel_date(cell(row, 0))

        invoice_number = cell_text(row, 1)
        if invoice_number is None or invoice_number == "Freetext":
            continue
        if invoice_number in seen_invoices:
            logger.warning("Row %s skipped: invoice %s repeated in file", row_number, invoice_number)
            continue
        if resolver.exists("list_sales_invoice", "sales_invoice_number", invoice_number):
            logger.warning("Row %s skipped: invoice %s already exists", row_number, invoice_number)
            continue

        branch_code = cell_str(row, 3)
        branch = branch_by_code(resolver, branch_code) if branch_code else None
        if branch is None:
            logger.warning("Row %s skipped: unknown branch code '%s'", row_number, branch_code)
            continue
        outlet_code = cell_str(row, 4)
        outlet = outlet_by_code(resolver, outlet_code) if outlet_code else None
        if outlet is None:
            logger.warning("Row %s skipped: unknown outlet code '%s'", row_number, outlet_code)
            continue

        division = division_id(cell_str(row, 5))
        principal_name = cell_str(row, 6)
        principal_id = resolver.resolve("principal", principal_name) if principal_name else None
        is_b2b = 1 if principal_id is not None else 0
        payment_method = cell_str(row, 7).lower().title()

        source_name = cell_str(row, 8).lower()
        source_id = resolver.resolve("sales_source", source_name) if source_name else None
        if source_id is None:
            logger.warning("Row %s skipped: unknown sales source '%s'", row_number, source_name)
            continue

        region_code = cell_str(row, 9)
        if not region_code:
            logger.warning("Row %s skipped: empty region code", row_number)
            continue
        region_id = resolver.resolve("sales_region", region_code, branch_id=branch["branch_id"])

        salesman_id = _salesman(db, ctx, cell_text(row, 10))
        stamp_duty = 1 if cell_str(row, 11).lower() == "ya" else 0
        amount = denormalize_number(cell(row, 12))
        discount = cell_str(row, 14)
        if discount in ("", "-"):
            discount = "0"
        sales_type, skb_type = sales_and_skb_type(cell_str(row, 15))

        return_number = cell_str(row, 16)
        if return_number:
            return_id = resolver.resolve("invoice_return", return_number)
            if return_id is not None:
                return_links.append((invoice_number, return_id))
            else:
                logger.warning("Row %s: return invoice %s not found, no link made", row_number, return_number)

        warehouse_id = resolver.resolve("issuer_warehouse", 1, branch_id=branch["branch_id"])
        seen_invoices.add(invoice_number)

        orders.add(
            [
                outlet["outlet_id"], division, branch["branch_id"], branch["branch_id"], invoice_date,
                invoice_number, ORDER_STATUS_DONE, payment_method, source_id, sales_type, salesman_id,
                region_id, principal_id, stamp_duty, 0, 0, amount, PPN, discount,
                ctx.legacy_date, ctx.admin_id, 1,
            ]
        )
        invoices.add(
            [
                outlet["outlet_id"], division, branch["branch_id"], branch["branch_id"], invoice_date,
                invoice_number, cell_str(row, 2), INVOICE_STATUS_DONE, payment_method, source_id,
                sales_type, salesman_id, region_id, principal_id, stamp_duty, 0, is_b2b, 0, amount,
                PPN, discount, 0, ctx.legacy_date, ctx.admin_id, 1,
            ]
        )
        skbs.add(
            [
                invoice_number, invoice_date, SKB_STATUS_DONE, skb_type, warehouse_id,
                1, branch["branch_id"], branch["branch_name"], 3, outlet["outlet_id"],
                outlet["outlet_name"], 1, ctx.legacy_date, ctx.admin_id, division,
                ctx.legacy_date, ctx.admin_id, ctx.admin_id, ctx.legacy_date,
            ]
        )

    orders.flush()
    invoices.flush()
    skbs.flush()

    for invoice_number, return_id in return_links:
        invoice = sales_invoice(resolver, invoice_number)
        if invoice is None:
            continue
        db.execute(
            text(
                "UPDATE rel_return_invoice_stb SET reference_id = :invoice_id "
                "WHERE return_invoice_id = :return_id AND reference_id IS NULL"
            ),
            {"invoice_id": invoice["sales_invoice_id"], "return_id": return_id},
        )
        db.execute(
            text("UPDATE list_sales_invoice SET is_return_invoice = 1 WHERE sales_invoice_id = :invoice_id"),
            {"invoice_id": invoice["sales_invoice_id"]},
        )

    return ImportResult(
        message="Import Sales Invoice Success",
        detail=f"Total {invoices.written} rows inserted.",
        activity=("IMPORT DATA SALES INVOICE", "sales/view_invoice_list"),
    )
