from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from .batch import NOW, build_multi_insert

logger = logging.getLogger(__name__)


class _Admin:
    def __repr__(self) -> str:
        return "ADMIN"


# Replaced by the acting admin id when a row is inserted.
ADMIN = _Admin()

PLACEHOLDER_PASSWORD = "$2y$10$BpYtQGwQSSTM79aUVJdW7.gwdOCJ.cY29g.sc1KS3qusyU8U4eHFu"


@dataclass(frozen=True)
class Dimension:
    """One lookup-or-create reference.

    ``scope`` columns take part in the match; keyword arguments passed to
    :meth:`Resolver.resolve` that are not in ``scope`` are only written on
    insert. ``fixed`` values are matched and written. ``copy_key_to`` repeats
    the natural key into other columns of a new row.
    """

    table: str
    id_column: str
    key_column: str
    like: bool = False
    scope: tuple[str, ...] = ()
    fixed: Mapping[str, Any] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)
    copy_key_to: tuple[str, ...] = ()
    soft: bool = True


DIMENSIONS: dict[str, Dimension] = {
    "warehouse": Dimension(
        table="list_warehouse",
        id_column="warehouse_id",
        key_column="warehouse_name",
        like=True,
        scope=("branch_id",),
        defaults={"warehouse_type_id": 1, "warehouse_status_id": 2, "createdAt": NOW, "createdBy": ADMIN},
    ),
    "issuer_warehouse": Dimension(
        table="list_warehouse",
        id_column="warehouse_id",
        key_column="warehouse_type_id",
        scope=("branch_id",),
        defaults={"warehouse_name": "Default", "createdAt": NOW, "createdBy": ADMIN},
    ),
    "branch_warehouse": Dimension(
        table="list_warehouse",
        id_column="warehouse_id",
        key_column="warehouse_type_id",
        scope=("branch_id",),
        soft=False,
    ),
    "product_batch": Dimension(
        table="list_product_batch",
        id_column="batch_id",
        key_column="batch_number",
        scope=("product_id", "expired_date"),
        defaults={"createdAt": NOW, "createdBy": ADMIN},
    ),
    "sales_region": Dimension(
        table="list_region",
        id_column="region_id",
        key_column="region_code",
        scope=("branch_id",),
        fixed={"region_purpose_id": 1},
        defaults={"region_type_id": 1, "region_status_id": 2, "createdAt": NOW, "createdBy": ADMIN},
        copy_key_to=("region_name",),
    ),
    "admin": Dimension(
        table="gemstone_admin",
        id_column="admin_id",
        key_column="admin_name",
        defaults={
            "admin_tier_id": 30,
            "password": PLACEHOLDER_PASSWORD,
            "admin_status": 1,
            "last_active": NOW,
        },
        copy_key_to=("admin_fullname",),
    ),
    "courier": Dimension(
        table="list_courier",
        id_column="courier_id",
        key_column="courier_name",
        defaults={"is_active": 1, "createdAt": NOW, "createdBy": ADMIN},
    ),
    "stub_product": Dimension(
        table="list_product",
        id_column="product_id",
        key_column="product_code",
        defaults={"createdAt": NOW, "createdBy": ADMIN},
        copy_key_to=("product_name",),
    ),
    "product": Dimension("list_product", "product_id", "product_code", soft=False),
    "product_by_name": Dimension("list_product", "product_id", "product_name", soft=False),
    "principal": Dimension("list_principal", "principal_id", "principal_name", soft=False),
    "sales_source": Dimension("list_sales_source", "source_id", "source_name", soft=False),
    "sales_order": Dimension("list_sales_order", "sales_order_id", "sales_number", soft=False),
    "invoice_return": Dimension("list_invoice_return", "return_invoice_id", "return_number", soft=False),
    "stb": Dimension("list_stb", "stb_id", "stb_number", soft=False),
    "deposit": Dimension("list_outlet_deposit", "deposit_id", "deposit_number", soft=False),
    "account_type": Dimension("list_account_type", "account_type_id", "account_type_name", soft=False),
    "bank_account": Dimension("list_bank_account", "bank_account_id", "account_number", soft=False),
    "collection_region": Dimension(
        table="list_region",
        id_column="region_id",
        key_column="branch_id",
        fixed={"region_purpose_id": 2},
        soft=False,
    ),
}


@dataclass(frozen=True)
class LikeDefaults:
    """Insert rule for :meth:`Resolver.column_id` misses."""

    values: Mapping[str, Any] = field(default_factory=dict)
    title_case: bool = False
    town_lookup: bool = False
    never_insert: bool = False


LIKE_DEFAULTS: dict[str, LikeDefaults] = {
    "list_branch": LikeDefaults(
        values={"branch_code": "00", "branch_postal_code": "0000", "createdAt": NOW, "createdBy": "1"},
        title_case=True,
        town_lookup=True,
    ),
    "list_outlet_segment": LikeDefaults(values={"segment_classification_id": 1, "createdAt": NOW}),
    "list_town": LikeDefaults(never_insert=True),
    "list_principal_division": LikeDefaults(values={"old_code": None, "division_code": None}),
    "list_tag": LikeDefaults(values={"tag_type_id": 1, "createdAt": NOW, "createdBy": 1}),
}


class Resolver:
    """Per-run reference lookups with lookup-or-create semantics.

    Every cache lives on the instance, so nothing leaks between runs.
    """

    def __init__(self, db: Session, admin_id: int):
        self.db = db
        self.admin_id = admin_id
        self._caches: dict[str, dict[Any, Any]] = {}
        self._table_columns: dict[str, set[str]] = {}

    def _cache(self, name: str) -> dict[Any, Any]:
        return self._caches.setdefault(name, {})

    def exists(self, table: str, column: str, value: Any) -> bool:
        if value is None or value == "":
            return False
        found = self.db.execute(
            text(f"SELECT 1 FROM {table} WHERE {column} = :value LIMIT 1"),
            {"value": value},
        ).scalar()
        return found is not None

    def fetch(self, cache: str, key: Any, sql: str, params: dict[str, Any]) -> Mapping[str, Any] | None:
        store = self._cache(cache)
        if key in store:
            return store[key]
        row = self.db.execute(text(sql), params).mappings().first()
        if row is None:
            return None
        store[key] = row
        return row

    def insert_row(self, table: str, values: Mapping[str, Any]) -> int:
        """Insert one row and return its generated id."""
        row = [self.admin_id if value is ADMIN else value for value in values.values()]
        statement, params = build_multi_insert(table, list(values.keys()), [row])
        return int(self.db.execute(statement, params).lastrowid)

    def _columns_of(self, table: str) -> set[str]:
        if table not in self._table_columns:
            inspector = inspect(self.db.connection())
            self._table_columns[table] = {col["name"] for col in inspector.get_columns(table)}
        return self._table_columns[table]

    def column_id(self, column: str, table: str, value: Any, **options: Any) -> int | None:
        """First id whose ``column`` contains ``value``; inserts one on a miss."""
        raw = "" if value is None else str(value)
        cache_key = (table, column, raw, tuple(sorted(options.items())))
        store = self._cache("column_id")
        if cache_key in store:
            return store[cache_key]

        found = self.db.execute(
            text(f"SELECT * FROM {table} WHERE {column} LIKE :pattern ORDER BY 1 ASC LIMIT 1"),
            {"pattern": f"%{raw}%"},
        ).first()
        if found is not None:
            store[cache_key] = int(found[0])
            return store[cache_key]

        rule = LIKE_DEFAULTS.get(table)
        if rule is not None and rule.never_insert:
            return None

        values: dict[str, Any] = {}
        if rule is None:
            values[column] = raw
            available = self._columns_of(table)
            if "createdAt" in available and "createdBy" in available:
                values["createdAt"] = NOW
                values["createdBy"] = 1
        else:
            name = raw.lower().title() if rule.title_case else raw
            values[column] = name
            values.update(rule.values)
            if rule.town_lookup:
                town_id = self.db.execute(
                    text("SELECT town_id FROM list_town WHERE town_name LIKE :pattern ORDER BY 1 ASC LIMIT 1"),
                    {"pattern": f"%{name}%"},
                ).scalar()
                values["town_id"] = town_id if town_id is not None else 1
            if table == "list_outlet_segment":
                values["segment_type_id"] = 2 if options.get("external") else 1
            if table == "list_principal_division":
                values["principal_id"] = options.get("principal_id")

        new_id = self.insert_row(table, values)
        logger.info("Created %s row %s for '%s'", table, new_id, raw)
        store[cache_key] = new_id
        return new_id

    def resolve(self, name: str, value: Any, **fields: Any) -> int | None:
        """Look up a :data:`DIMENSIONS` entry by natural key, creating it when soft."""
        dim = DIMENSIONS[name]
        scope = {col: fields.get(col) for col in dim.scope}
        cache_key = (value, tuple(scope.values()))
        store = self._cache(name)
        if cache_key in store:
            return store[cache_key]

        clauses = []
        params: dict[str, Any] = {}
        if dim.like:
            clauses.append(f"{dim.key_column} LIKE :key")
            params["key"] = f"%{value}%"
        else:
            clauses.append(f"{dim.key_column} = :key")
            params["key"] = value
        for idx, (col, col_value) in enumerate(list(scope.items()) + list(dim.fixed.items())):
            if col_value is None:
                clauses.append(f"{col} IS NULL")
                continue
            clauses.append(f"{col} = :p{idx}")
            params[f"p{idx}"] = col_value

        found = self.db.execute(
            text(
                f"SELECT {dim.id_column} FROM {dim.table} WHERE {' AND '.join(clauses)} "
                f"ORDER BY {dim.id_column} ASC LIMIT 1"
            ),
            params,
        ).scalar()
        if found is not None:
            store[cache_key] = int(found)
            return store[cache_key]

        if not dim.soft:
            return None

        values: dict[str, Any] = {dim.key_column: value}
        for col in dim.copy_key_to:
            values[col] = value
        values.update(fields)
        values.update(dim.fixed)
        for col, default in dim.defaults.items():
            values.setdefault(col, default)
        new_id = self.insert_row(dim.table, values)
        logger.info("Created %s row %s for '%s'", dim.table, new_id, value)
        store[cache_key] = new_id
        return new_id
