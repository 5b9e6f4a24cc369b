from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..batch import NOW, BatchInserter
from ..cells import cell, cell_str, cell_text, denormalize_number, is_yes, parse_date
from ..runner import ImportContext, ImportResult
from .lookups import division_id

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = [
    "product_id", "product_name", "product_alias", "product_brand", "product_code",
    "product_status_id", "principal_id", "principal_division_id", "finished_drug_code", "old_code",
    "catalogue_code", "product_code_principal", "classification_id", "product_class", "division_id",
    "packaging", "size", "temperature_requirement", "expired_threshold", "length",
    "length_unit", "width", "width_unit", "height", "height_unit",
    "weight", "weight_unit", "volume", "volume_unit", "biggest_conv",
    "biggest_unit", "smallest_conv", "smallest_unit", "sale_unit", "manufacturer",
    "default_margin_principal", "lock_discount", "lock_sale", "stock_level_product", "form_id",
    "remark", "is_need_expired", "required_serial_number", "product_het", "default_hna",
    "createdAt", "createdBy",
]
SUBSTANCE_COLUMNS = ["product_id", "substance_id", "createdAt", "createdBy"]
SUPPLIER_COLUMNS = ["product_id", "supplier_id", "flag_id", "createdAt", "createdBy"]
TAG_COLUMNS = ["product_id", "tag_id", "assigned_date", "createdBy"]
LICENSE_COLUMNS = [
    "license_type_id", "license_name", "license_number", "effective_date", "expired_date",
    "createdAt", "createdBy", "product_id", "license_status_id",
]

# (size column, unit column) pairs for length, width, height, weight and volume.
MEASURE_COLUMNS = ((17, 18), (19, 20), (21, 22), (23, 24), (25, 26))
SUPPLIER_FLAGS = {"reguler": 1, "konsinyasi": 2}


def _saved_line(sheet_name: str, saved: int, failed: int | None = None) -> str:
    line = f"Import worksheet {sheet_name} berhasil : - Total {saved} baris data berhasil disimpan"
    if failed is not None:
        line += f" - Total {failed} baris duplikat data gagal disimpan"
    return line


def import_product_list(db: Session, workbook, ctx: ImportContext) -> str:
    sheet = ctx.worksheet(workbook, "Daftar Produk")
    resolver = ctx.resolver
    products = BatchInserter(db, "list_product", PRODUCT_COLUMNS, ctx.batch_size)
    seen_codes: set[str] = set()
    failed = 0
    notes: list[str] = []

    for row_number, row in enumerate(sheet.iter_rows(min_row=4, values_only=True), start=4):
        product_name = cell_text(row, 0)
        if product_name is None or product_name == "Free Text":
            continue
        code = cell_str(row, 3)
        if not code:
            logger.warning("Row %s skipped: empty product code", row_number)
            continue
        if code in seen_codes or resolver.exists("list_product", "product_code", code):
            logger.warning("Row %s skipped: duplicate product code %s", row_number, code)
            notes.append(f"[{row_number} Duplikat Kode]")
            failed += 1
            continue
        try:
            product_id = int(code)
        except ValueError:
            logger.warning("Row %s skipped: product code %s is not numeric", row_number, code)
            notes.append(f"[{row_number} Invalid product_code]")
            failed += 1
            continue
        seen_codes.add(code)

        principal_name = cell_str(row, 4)
        principal_id = (
            resolver.column_id("principal_name", "list_principal", principal_name) if principal_name else None
        )
        division_name = cell_str(row, 5)
        principal_division_id = None
        if division_name:
            principal_division_id = resolver.column_id(
                "division_name", "list_principal_division", division_name, principal_id=principal_id
            )
        classification = cell_str(row, 10) or "SUPLEMEN"
        classification_id = resolver.column_id(
            "classification_name", "list_product_classification", classification
        )
        form_name = cell_str(row, 37)
        form_id = resolver.column_id("form_name", "list_product_form", form_name) if form_name else None

        measures = []
        for size_idx, unit_idx in MEASURE_COLUMNS:
            unit_name = cell_str(row, unit_idx)
            unit_id = resolver.column_id("unit_name", "list_unit", unit_name) if unit_name else None
            measures.extend([denormalize_number(cell(row, size_idx)), unit_id])

        values = [
            product_id,
            product_name,
            cell_str(row, 1),
            cell_str(row, 2),
            code,
            2 if cell_str(row, 43).lower() == "aktif" else 1,
            principal_id,
            principal_division_id,
            cell_str(row, 6),
            cell_str(row, 7),
            cell_str(row, 8),
            cell_str(row, 9),
            classification_id,
            cell_str(row, 11),
            division_id(cell_str(row, 12)),
            cell_str(row, 13),
            cell_str(row, 14),
            cell_str(row, 15),
            denormalize_number(cell(row, 16)),
            *measures,
            denormalize_number(cell(row, 27)),
            cell_str(row, 28),
            denormalize_number(cell(row, 29)),
            cell_str(row, 30),
            cell_str(row, 31),
            cell_str(row, 32),
            cell_text(row, 33) or "0",
            1 if is_yes(cell(row, 34)) else 0,
            1 if is_yes(cell(row, 35)) else 0,
            cell_text(row, 36) or "0",
            form_id,
            cell_str(row, 38),
            1 if is_yes(cell(row, 39)) else 0,
            1 if is_yes(cell(row, 40)) else 0,
            cell_text(row, 41) or "0",
            cell_text(row, 42) or "0",
            NOW,
            ctx.admin_id,
        ]
        products.add(values)

    products.flush()
    return "".join(notes) + _saved_line("Daftar Produk", products.written, failed)


def import_substances(db: Session, workbook, ctx: ImportContext) -> str:
    sheet = ctx.worksheet(workbook, "Zat Aktif Produk")
    links = BatchInserter(db, "rel_product_substance", SUBSTANCE_COLUMNS, ctx.batch_size)

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        code = cell_text(row, 0)
        if code is None:
            continue
        product_id = ctx.resolver.resolve("product", code)
        if product_id is None:
            logger.warning("Row %s skipped: unknown product code %s", row_number, code)
            continue
        for substance in cell_str(row, 2).split(","):
            substance = substance.strip()
            if not substance:
                continue
            substance_id = ctx.resolver.column_id("substance_name", "list_substance", substance)
            links.add([product_id, substance_id, NOW, ctx.admin_id])

    links.flush()
    return _saved_line("Zat Aktif Produk", links.written)


def import_suppliers(db: Session, workbook, ctx: ImportContext) -> str:
    sheet = ctx.worksheet(workbook, "Supplier Produk")
    links = BatchInserter(db, "rel_product_supplier", SUPPLIER_COLUMNS, ctx.batch_size)

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        code = cell_text(row, 0)
        if code is None:
            continue
        product_id = ctx.resolver.resolve("product", code)
        if product_id is None:
            logger.warning("Row %s skipped: unknown product code %s", row_number, code)
            continue
        supplier_name = cell_str(row, 2)
        supplier = ctx.resolver.fetch(
            "supplier",
            supplier_name,
            "SELECT supplier_id FROM list_supplier WHERE supplier_name LIKE :pattern LIMIT 1",
            {"pattern": f"%{supplier_name}%"},
        )
        if supplier is None:
            logger.warning("Row %s skipped: supplier %s not found", row_number, supplier_name)
            continue
        flag_id = SUPPLIER_FLAGS.get(cell_str(row, 3).lower(), 3)
        links.add([product_id, supplier["supplier_id"], flag_id, NOW, ctx.admin_id])

    links.flush()
    return _saved_line("Supplier Produk", links.written)


def import_groups(db: Session, workbook, ctx: ImportContext) -> str:
    sheet = ctx.worksheet(workbook, "Grup Produk")
    links = BatchInserter(db, "rel_product_tag", TAG_COLUMNS, ctx.batch_size)
    tags: dict[str, int] = {}

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        code = cell_text(row, 0)
        if code is None:
            continue
        product_id = ctx.resolver.resolve("product", code)
        if product_id is None:
            logger.warning("Row %s skipped: unknown product code %s", row_number, code)
            continue
        group_name = cell_str(row, 2).split(",")[-1].strip()
        if group_name not in tags:
            tag = ctx.resolver.fetch(
                "tag",
                group_name,
                "SELECT tag_id FROM list_tag WHERE tag_name LIKE :pattern LIMIT 1",
                {"pattern": f"%{group_name}%"},
            )
            if tag is not None:
                tags[group_name] = tag["tag_id"]
            else:
                tags[group_name] = ctx.resolver.insert_row(
                    "list_tag",
                    {"tag_name": group_name, "tag_type_id": 2, "createdAt": NOW, "createdBy": 1},
                )
                logger.info("Created list_tag row %s for '%s'", tags[group_name], group_name)
        links.add([product_id, tags[group_name], NOW, ctx.admin_id])

    links.flush()
    return _saved_line("Grup Produk", links.written)


def import_licenses(db: Session, workbook, ctx: ImportContext) -> str:
    sheet = ctx.worksheet(workbook, "Izin Produk")
    licenses = BatchInserter(db, "list_license", LICENSE_COLUMNS, ctx.batch_size)

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        product_name = cell_text(row, 0)
        if product_name is None:
            continue
        product_id = ctx.resolver.resolve("product_by_name", product_name)
        if product_id is None:
            logger.warning("Row %s skipped: unknown product %s", row_number, product_name)
            continue
        licenses.add(
            [
                3,
                cell_str(row, 2),
                cell_str(row, 3),
                parse_date(cell(row, 4)),
                parse_date(cell(row, 5)),
                NOW,
                ctx.admin_id,
                product_id,
                1,
            ]
        )

    licenses.flush()
    return _saved_line("Izin Produk", licenses.written)


SHEETS = (import_product_list, import_substances, import_suppliers, import_groups, import_licenses)


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    # Every sheet is addressed by name; a --sheet override does not apply here.
    ctx.sheet = None
    lines = [handler(db, workbook, ctx) for handler in SHEETS]
    return ImportResult(
        message="Import Product Success",
        detail=" ".join(lines),
        activity=("IMPORT DATA PRODUCT", "product/view_product_list"),
    )
