from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable

from openpyxl import load_workbook
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .batch import DEFAULT_BATCH_SIZE
from .config import settings
from .database import build_engine, build_session_factory
from .errors import ImportAbort
from .resolver import Resolver

logger = logging.getLogger(__name__)


@dataclass
class ImportContext:
    resolver: Resolver
    admin_id: int = 1
    batch_size: int = DEFAULT_BATCH_SIZE
    sheet: str | None = None
    log_id: str | None = None
    legacy_date: str = settings.legacy_date
    today: str = field(default_factory=lambda: date.today().isoformat())

    def worksheet(self, workbook, default: str | None = None):
        """The ``--sheet`` override, else ``default``, else the first sheet."""
        name = self.sheet or default
        if name is None:
            if not workbook.sheetnames:
                raise ImportAbort("workbook has no sheets")
            return workbook[workbook.sheetnames[0]]
        if name not in workbook.sheetnames:
            raise ImportAbort(f"sheet '{name}' not found")
        return workbook[name]


@dataclass
class ImportResult:
    message: str
    detail: str
    activity: tuple[str, str] | None = None


Importer = Callable[[Session, Any, ImportContext], ImportResult]


def open_workbook(file_path: str | Path):
    path = Path(file_path)
    if not path.is_file():
        raise ImportAbort(f"file not found: {file_path}")
    try:
        return load_workbook(path, data_only=True, read_only=True)
    except Exception as exc:
        raise ImportAbort(f"error opening file: {exc}") from exc


def _payload(success: bool, message: str, detail: str) -> dict[str, Any]:
    return {"success": success, "message": message, "message_detail": detail}


def update_activity(session_factory, log_id: str, label: str, target_link: str) -> None:
    try:
        with session_factory() as db, db.begin():
            db.execute(
                text(
                    """
                    UPDATE gemstone_activity_log
                    SET label = :label, target_link = :target_link, meta_data = '{}', legacy_log = 0
                    WHERE log_id = :log_id
                    """
                ),
                {"label": label, "target_link": target_link, "log_id": log_id},
            )
    except SQLAlchemyError:
        logger.exception("Could not update activity log %s", log_id)


def run_import(
    importer: Importer,
    file_path: str | Path,
    database_url: str | None = None,
    *,
    admin_id: int = settings.admin_id,
    batch_size: int = settings.batch_size,
    log_id: str | None = None,
    sheet: str | None = None,
    legacy_date: str | None = None,
    session_factory=None,
) -> tuple[int, dict[str, Any]]:
    """Run one importer inside a single transaction.

    Returns the process exit code and the JSON payload. Any failure rolls the
    whole run back and yields exit code 1.
    """
    started = time.perf_counter()

    def elapsed() -> str:
        return f"Execution Time: {time.perf_counter() - started:.4f}s"

    try:
        workbook = open_workbook(file_path)
    except ImportAbort as exc:
        logger.error("%s", exc.message)
        return 1, _payload(False, exc.message, elapsed())

    engine = None
    try:
        if session_factory is None:
            try:
                engine = build_engine(database_url or settings.database_url)
            except (SQLAlchemyError, ImportError) as exc:
                logger.error("Cannot connect to database: %s", exc)
                return 1, _payload(False, f"database error: {exc}", elapsed())
            session_factory = build_session_factory(engine)

        with session_factory() as db:
            ctx = ImportContext(
                resolver=Resolver(db, admin_id),
                admin_id=admin_id,
                batch_size=batch_size,
                sheet=sheet,
                log_id=log_id,
                legacy_date=legacy_date or settings.legacy_date,
            )
            try:
                result = importer(db, workbook, ctx)
                db.commit()
            except ImportAbort as exc:
                db.rollback()
                logger.error("Import aborted: %s", exc.message)
                return 1, _payload(False, exc.message, elapsed())
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Database error during import, transaction rolled back")
                reason = getattr(exc, "orig", None) or exc
                return 1, _payload(False, f"database error: {reason}", elapsed())
            except Exception as exc:
                db.rollback()
                logger.exception("Import failed, transaction rolled back")
                return 1, _payload(False, f"import error: {exc}", elapsed())

        if log_id and result.activity is not None:
            label, target_link = result.activity
            update_activity(session_factory, log_id, label, target_link)

        logger.info("%s. %s", result.message, result.detail)
        return 0, _payload(True, result.message, f"{result.detail} {elapsed()}")
    finally:
        workbook.close()
        if engine is not None:
            engine.dispose()
