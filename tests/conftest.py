from datetime import datetime
from pathlib import Path
import sys

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine, event, text

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from kp_importer.database import build_session_factory
from kp_importer.importers.balance import LEDGER_COLUMNS
from kp_importer.importers.deposit import DEPOSIT_COLUMNS
from kp_importer.importers.giro import GIRO_COLUMNS
from kp_importer.importers.intransit import SKB_COLUMNS as INTRANSIT_SKB_COLUMNS
from kp_importer.importers.invoice import INVOICE_COLUMNS, ORDER_COLUMNS, SKB_COLUMNS
from kp_importer.importers.invoice_return import RETURN_COLUMNS, STB_COLUMNS
from kp_importer.importers.invoice_return_product import ITEM_COLUMNS as RETURN_ITEM_COLUMNS
from kp_importer.importers.outlet import HISTORY_COLUMNS, OUTLET_COLUMNS
from kp_importer.importers.product import (
    LICENSE_COLUMNS,
    PRODUCT_COLUMNS,
    SUBSTANCE_COLUMNS,
    SUPPLIER_COLUMNS,
    TAG_COLUMNS,
)
from kp_importer.runner import run_import

ITEM_LINE = [
    "product_id", "quoted_price", "discount_value", "discount_routine_value", "discount_program_value",
    "discount_routine_branch", "discount_program_branch", "dpp", "unit", "qty", "qty_extra",
    "group_id", "temp_iteration",
]

# table -> (id column, other columns). Columns are untyped so SQLite keeps values as written.
TABLES = {
    "list_town": ("town_id", ["town_name"]),
    "list_branch": (
        "branch_id",
        ["branch_name", "branch_code", "branch_postal_code", "town_id", "createdAt", "createdBy"],
    ),
    "list_outlet_segment": (
        "segment_id",
        ["segment_name", "segment_type_id", "segment_classification_id", "createdAt"],
    ),
    "list_outlet": ("outlet_id", OUTLET_COLUMNS[1:]),
    "list_outlet_history": ("history_id", HISTORY_COLUMNS),
    "list_principal": ("principal_id", ["principal_name", "principal_code", "createdAt", "createdBy"]),
    "list_principal_division": ("principal_division_id", ["division_name", "principal_id", "old_code", "division_code"]),
    "list_product_classification": ("classification_id", ["classification_name"]),
    "list_product_form": ("form_id", ["form_name", "createdAt", "createdBy"]),
    "list_unit": ("unit_id", ["unit_name", "createdAt", "createdBy"]),
    "list_product": ("product_id", PRODUCT_COLUMNS[1:]),
    "list_substance": ("substance_id", ["substance_name", "createdAt", "createdBy"]),
    "rel_product_substance": ("rel_id", SUBSTANCE_COLUMNS),
    "list_supplier": ("supplier_id", ["supplier_name"]),
    "rel_product_supplier": ("rel_id", SUPPLIER_COLUMNS),
    "list_tag": ("tag_id", ["tag_name", "tag_type_id", "createdAt", "createdBy"]),
    "rel_product_tag": ("rel_id", TAG_COLUMNS),
    "list_license": ("license_id", LICENSE_COLUMNS),
    "list_product_batch": ("batch_id", ["batch_number", "product_id", "expired_date", "createdAt", "createdBy"]),
    "list_warehouse": (
        "warehouse_id",
        ["warehouse_name", "branch_id", "warehouse_type_id", "warehouse_status_id", "createdAt", "createdBy"],
    ),
    "list_tx": (
        "tx_id",
        ["tx_date", "tx_type_id", "product_id", "warehouse_id", "is_consignment", "unit", "debit", "credit", "batch_number"],
    ),
    "rel_tx_batch": ("rel_id", ["tx_id", "batch_id", "qty"]),
    "gemstone_admin": (
        "admin_id",
        ["admin_name", "admin_fullname", "admin_tier_id", "password", "admin_status", "last_active",
         "is_collector DEFAULT 0"],
    ),
    "rel_admin_region": ("rel_id", ["admin_id", "region_id", "is_active", "is_exclusive"]),
    "list_region": (
        "region_id",
        ["region_code", "region_name", "branch_id", "region_purpose_id", "region_type_id", "region_status_id",
         "createdAt", "createdBy"],
    ),
    "list_sales_source": ("source_id", ["source_name"]),
    "list_sales_order": ("sales_order_id", ORDER_COLUMNS),
    "list_sales_invoice": ("sales_invoice_id", INVOICE_COLUMNS),
    "list_skb": ("skb_id", list(dict.fromkeys(SKB_COLUMNS + INTRANSIT_SKB_COLUMNS))),
    "rel_skb_item": (
        "rel_id",
        ["skb_id", "product_id", "unit", "qty", "quoted_price", "batch_number", "expired_date",
         "reference_type_id", "reference_id", "is_extra DEFAULT 0"],
    ),
    "rel_sales_order_item": ("rel_id", ["sales_order_id"] + ITEM_LINE),
    "rel_sales_invoice_item": ("rel_id", ["sales_invoice_id", "salesman_id", "batch_number"] + ITEM_LINE),
    "rel_sales_invoice_skb": ("rel_id", ["sales_invoice_id", "skb_id"]),
    "rel_sales_invoice_fees": ("rel_id", ["sales_invoice_id", "fee_type_id", "amount"]),
    "list_invoice_return": ("return_invoice_id", RETURN_COLUMNS),
    "list_stb": ("stb_id", STB_COLUMNS),
    "rel_return_invoice_stb": ("rel_id", RETURN_ITEM_COLUMNS),
    "list_outlet_deposit": ("deposit_id", DEPOSIT_COLUMNS),
    "list_giro_check": ("giro_id", GIRO_COLUMNS + ["settlement_id"]),
    "rel_giro_invoice": ("rel_id", ["giro_id", "sales_invoice_id", "amount"]),
    "list_debt_collection": (
        "debt_collection_id",
        ["debt_collection_draft_number", "debt_collection_number", "debt_collection_date",
         "debt_collection_status_id", "debt_collection_type_id", "collector", "branch_id", "region_id",
         "createdAt", "createdBy", "approvedAt", "approvedBy"],
    ),
    "rel_debt_collection_invoice": ("rel_id", ["debt_collection_id", "outlet_id", "invoice_id", "amount_invoice"]),
    "list_cashier_receipt": (
        "cashier_receipt_id",
        ["cashier_receipt_number", "cashier_receipt_status_id", "debt_collection_id", "cash", "giro", "transfer",
         "createdAt", "createdBy"],
    ),
    "list_settlement": (
        "settlement_id",
        ["settlement_date", "settlement_draft_number", "settlement_number", "debt_collection_id",
         "cashier_receipt_id", "settlement_status_id", "branch_id", "createdAt", "createdBy"],
    ),
    "list_settlement_group": (
        "settlement_group_id",
        ["settlement_id", "outlet_id", "payment_method_id", "settlement_amount", "giro_number", "giro_due_date"],
    ),
    "rel_settle_invoice": (
        "rel_id",
        ["sales_invoice_id", "settlement_id", "settlement_group_id", "payment_amount", "rounding_amount",
         "outstanding_balance"],
    ),
    "list_deposit_transfer": (
        "deposit_transfer_id",
        ["branch_source_id", "branch_destination_id", "request_number", "transfer_note", "requestedAt", "requestedBy"],
    ),
    "rel_deposit_transfer_transaction": ("rel_id", ["deposit_transfer_id", "deposit_id"]),
    "list_outstanding_transfer": (
        "outstanding_transfer_id",
        ["branch_source_id", "branch_destination_id", "request_number", "transfer_note", "requestedAt", "requestedBy"],
    ),
    "rel_outstanding_transfer_transaction": (
        "rel_id",
        ["outstanding_transfer_id", "sales_invoice_id", "outlet_id", "snapshot_amount", "snapshot_settlement"],
    ),
    "list_account_type": ("account_type_id", ["account_type_name"]),
    "list_bank_account": ("bank_account_id", ["account_number"]),
    "list_cash_ledger": ("ledger_id", LEDGER_COLUMNS),
    "list_courier": ("courier_id", ["courier_name", "branch_id", "is_active", "createdAt", "createdBy"]),
    "list_sales_invoice_track_history": (
        "track_history_id",
        ["track_number", "invoice_track_status_id", "invoice_track_type_id", "branch_id", "loper_id",
         "courier_id", "receipt_number", "markedAt", "markedBy", "note"],
    ),
    "rel_track_history_invoice": (
        "rel_id",
        ["track_history_id", "outlet_id", "sales_invoice_id", "track_status_id", "track_position_id",
         "date_track", "admin_track", "track_used_id"],
    ),
    "gemstone_activity_log": ("log_id", ["label", "target_link", "meta_data", "legacy_log"]),
}


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'import.db'}")

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, _):
        # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite.
        dbapi_conn.isolation_level = None
        dbapi_conn.create_function("NOW", 0, lambda: datetime.now().isoformat(sep=" ", timespec="seconds"))

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    with engine.begin() as conn:
        for table, (id_column, columns) in TABLES.items():
            body = ", ".join([f"{id_column} INTEGER PRIMARY KEY AUTOINCREMENT"] + list(columns))
            conn.execute(text(f"CREATE TABLE {table} ({body})"))

    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture()
def seed(engine):
    def insert(table: str, **values) -> int:
        columns = ", ".join(values)
        placeholders = ", ".join(f":{name}" for name in values)
        with engine.begin() as conn:
            result = conn.execute(text(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"), values)
            return int(result.lastrowid)

    return insert


@pytest.fixture()
def fetch(engine):
    def query(sql: str, **params) -> list[dict]:
        with engine.begin() as conn:
            return [dict(row) for row in conn.execute(text(sql), params).mappings().all()]

    return query


@pytest.fixture()
def xlsx(tmp_path):
    """Write rows to a workbook; a one-cell header row is prepended unless ``sheets`` is given."""

    def make(rows=None, *, sheets=None, title="Sheet1", name="import.xlsx") -> Path:
        if sheets is None:
            sheets = {title: [["header"]] + list(rows or [])}
        workbook = Workbook()
        workbook.remove(workbook.active)
        for sheet_title, sheet_rows in sheets.items():
            sheet = workbook.create_sheet(sheet_title)
            for row in sheet_rows:
                sheet.append(list(row))
        path = tmp_path / name
        workbook.save(path)
        return path

    return make


@pytest.fixture()
def run(session_factory):
    def invoke(importer, path, **options):
        options.setdefault("admin_id", 1)
        return run_import(importer, path, session_factory=session_factory, **options)

    return invoke


@pytest.fixture()
def branch(seed):
    return seed("list_branch", branch_name="Jakarta", branch_code="01", town_id=1)


@pytest.fixture()
def outlet(seed, branch):
    return seed(
        "list_outlet",
        outlet_name="Apotek Sehat",
        outlet_code="OUT1",
        top_value=30,
        branch_id=branch,
    )
