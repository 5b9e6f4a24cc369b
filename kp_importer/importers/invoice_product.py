from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..cells import cell, cell_str, cell_text, parse_date, row_width, to_float
from ..resolver import Resolver
from ..runner import ImportContext, ImportResult
from .lookups import sales_invoice, skb

logger = logging.getLogger(__name__)

SKB_REFERENCE_SALES_ORDER = 5
CONSIGNMENT_INVOICE = 2


def merge_item_lines(
    db: Session,
    resolver: Resolver,
    table: str,
    owner_column: str,
    owner_id: int,
    product_id: int,
    line: dict[str, Any],
    dpp: float,
    qty: int,
    qty_extra: int,
    batch_number: str | None = None,
) -> bool:
    """Insert or accumulate the main and bonus lines of one product.

    Bonus quantity lives in a separate row (``qty = 0``) grouped under the
    main row. Returns False when the product was already imported by the
    first pass (``temp_iteration = 1``) and nothing was written.
    """
    where = f"{owner_column} = :owner_id AND product_id = :product_id"
    params: dict[str, Any] = {"owner_id": owner_id, "product_id": product_id}

    first_pass = db.execute(
        text(f"SELECT COUNT(1) FROM {table} WHERE {where} AND temp_iteration = 1"), params
    ).scalar_one()
    if first_pass:
        return False

    main_where = where
    if batch_number is not None:
        main_where += " AND batch_number = :batch_number"
        params["batch_number"] = batch_number

    existing = db.execute(
        text(f"SELECT qty, qty_extra FROM {table} WHERE {main_where} AND qty != 0 LIMIT 1"), params
    ).mappings().first()

    base = {owner_column: owner_id, "product_id": product_id, **line}
    if existing is None:
        main_id = resolver.insert_row(
            table, {**base, "dpp": dpp, "unit": 1, "qty": qty, "qty_extra": 0, "temp_iteration": 2}
        )
        if qty_extra > 0:
            resolver.insert_row(
                table,
                {**base, "dpp": 0, "unit": 1, "qty": 0, "qty_extra": qty_extra, "group_id": main_id, "temp_iteration": 2},
            )
        return True

    db.execute(
        text(f"UPDATE {table} SET qty = qty + :qty WHERE {main_where} AND qty_extra = 0"),
        {**params, "qty": qty},
    )
    if qty_extra <= 0:
        return True

    extra = db.execute(
        text(f"SELECT rel_id FROM {table} WHERE {where} AND qty = 0 LIMIT 1"), params
    ).mappings().first()
    if extra is not None:
        db.execute(
            text(f"UPDATE {table} SET qty_extra = qty_extra + :qty_extra WHERE rel_id = :rel_id"),
            {"qty_extra": qty_extra, "rel_id": extra["rel_id"]},
        )
        return True

    group = db.execute(
        text(f"SELECT rel_id FROM {table} WHERE {where} AND qty_extra = 0 LIMIT 1"), params
    ).mappings().first()
    if group is not None:
        resolver.insert_row(
            table,
            {**base, "dpp": 0, "unit": 1, "qty": 0, "qty_extra": qty_extra, "group_id": group["rel_id"], "temp_iteration": 2},
        )
    return True


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    fresh_skbs: dict[int, bool] = {}
    linked: set[tuple[int, int]] = set()
    inserted = 0

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 6:
            continue
        invoice_number = cell_text(row, 0)
        if invoice_number is None:
            continue

        order_id = resolver.resolve("sales_order", invoice_number)
        if order_id is None:
            logger.warning("Row %s skipped: missing sales order %s", row_number, invoice_number)
            continue
        invoice = sales_invoice(resolver, invoice_number)
        if invoice is None:
            logger.warning("Row %s skipped: missing invoice %s", row_number, invoice_number)
            continue
        skb_row = skb(resolver, invoice_number)
        if skb_row is None:
            logger.warning("Row %s skipped: missing SKB %s", row_number, invoice_number)
            continue

        product_code = cell_text(row, 1)
        if product_code is None:
            continue
        product_id = resolver.resolve("stub_product", product_code)

        qty = int(to_float(cell(row, 3)))
        qty_extra = int(to_float(cell(row, 4)))
        price = to_float(cell(row, 5))
        routine_pct = to_float(cell(row, 6))
        program_pct = to_float(cell(row, 7))
        batch_number = cell_str(row, 9)
        expired_date = parse_date(cell(row, 10))

        routine_value = routine_pct / 100 * price
        program_value = program_pct / 100 * price
        discount_value = routine_value + program_value
        dpp = price - discount_value
        discounts = {
            "discount_value": discount_value,
            "discount_routine_value": routine_value,
            "discount_program_value": program_value,
            "discount_routine_branch": routine_pct,
            "discount_program_branch": program_pct,
        }

        written = merge_item_lines(
            db, resolver, "rel_sales_order_item", "sales_order_id", order_id, product_id,
            {"quoted_price": price, **discounts}, dpp, qty, qty_extra,
        )
        if not written:
            logger.warning("Row %s skipped: order item already imported", row_number)
            continue

        invoice_id = invoice["sales_invoice_id"]
        consignment = invoice["sales_invoice_type_id"] == CONSIGNMENT_INVOICE
        written = merge_item_lines(
            db, resolver, "rel_sales_invoice_item", "sales_invoice_id", invoice_id, product_id,
            {
                "salesman_id": invoice["salesman_id"],
                "quoted_price": price,
                "batch_number": batch_number if consignment else None,
                **discounts,
            },
            dpp, qty, qty_extra,
            batch_number=batch_number if consignment else None,
        )
        if not written:
            logger.warning("Row %s skipped: invoice item already imported", row_number)
            continue

        skb_id = skb_row["skb_id"]
        if skb_id not in fresh_skbs:
            fresh_skbs[skb_id] = not resolver.exists("rel_skb_item", "skb_id", skb_id)
        if not fresh_skbs[skb_id]:
            continue

        skb_item = {
            "skb_id": skb_id,
            "product_id": product_id,
            "unit": 1,
            "qty": qty,
            "quoted_price": price,
            "batch_number": batch_number,
            "expired_date": expired_date,
            "reference_type_id": SKB_REFERENCE_SALES_ORDER,
            "reference_id": order_id,
        }
        resolver.insert_row("rel_skb_item", skb_item)
        if qty_extra > 0:
            resolver.insert_row("rel_skb_item", {**skb_item, "qty": qty_extra, "is_extra": 1})

        pair = (invoice_id, skb_id)
        if pair not in linked:
            already = db.execute(
                text("SELECT 1 FROM rel_sales_invoice_skb WHERE sales_invoice_id = :invoice_id AND skb_id = :skb_id LIMIT 1"),
                {"invoice_id": invoice_id, "skb_id": skb_id},
            ).scalar()
            if already is None:
                resolver.insert_row("rel_sales_invoice_skb", {"sales_invoice_id": invoice_id, "skb_id": skb_id})
            linked.add(pair)

        inserted += 1

    return ImportResult(message="Import Sales Invoice Product Success", detail=f"Total {inserted} rows inserted.")
