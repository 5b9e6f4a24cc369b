from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


class _Now:
    def __repr__(self) -> str:
        return "NOW()"


# Rendered inline as the database's NOW() instead of being bound.
NOW = _Now()


def build_multi_insert(table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]):
    if not columns:
        raise ValueError(f"No columns given for insert into {table}")
    if not rows:
        raise ValueError(f"No rows given for insert into {table}")

    params: dict[str, Any] = {}
    groups: list[str] = []
    for row_idx, row in enumerate(rows):
        if len(row) != len(columns):
            raise ValueError(
                f"Row {row_idx} for {table} has {len(row)} values; expected {len(columns)}"
            )
        placeholders = []
        for col_idx, value in enumerate(row):
            if value is NOW:
                placeholders.append("NOW()")
                continue
            key = f"r{row_idx}_{col_idx}"
            params[key] = value
            placeholders.append(f":{key}")
        groups.append("(" + ", ".join(placeholders) + ")")

    statement = f"INSERT INTO {table} ({', '.join(columns)}) VALUES " + ", ".join(groups)
    return text(statement), params


class BatchInserter:
    """Queues rows for one table and writes them as multi-row INSERTs."""

    def __init__(self, db: Session, table: str, columns: Sequence[str], batch_size: int = DEFAULT_BATCH_SIZE):
        self.db = db
        self.table = table
        self.columns = list(columns)
        self.batch_size = max(int(batch_size), 1)
        self.pending: list[list[Any]] = []
        self.written = 0

    def add(self, values: Sequence[Any]) -> None:
        if len(values) != len(self.columns):
            raise ValueError(
                f"{self.table} expects {len(self.columns)} values; got {len(values)}"
            )
        self.pending.append(list(values))
        if len(self.pending) >= self.batch_size:
            self.flush()

    def flush(self) -> int:
        if not self.pending:
            return 0
        statement, params = build_multi_insert(self.table, self.columns, self.pending)
        self.db.execute(statement, params)
        count = len(self.pending)
        self.written += count
        self.pending = []
        logger.debug("Flushed %s rows into %s", count, self.table)
        return count
