from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Sequence

from openpyxl.utils.datetime import from_excel

logger = logging.getLogger(__name__)

WHITESPACE_RUN = re.compile(r"\s+")
DATE_LAYOUTS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d %b %Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%d-%b-%Y",
)


def cell(row: Sequence[Any], idx: int) -> Any:
    if idx < len(row):
        return row[idx]
    return None


def row_width(row: Sequence[Any]) -> int:
    """Number of columns up to the last populated cell.

    openpyxl pads every row to the sheet's max column, so short rows have to be
    measured by their content.
    """
    for idx in range(len(row) - 1, -1, -1):
        value = row[idx]
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return idx + 1
    return 0


def clean(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    collapsed = WHITESPACE_RUN.sub(" ", str(value).replace("\xa0", " ")).strip()
    return collapsed or None


def cell_text(row: Sequence[Any], idx: int) -> str | None:
    return clean(cell(row, idx))


def cell_str(row: Sequence[Any], idx: int) -> str:
    return cell_text(row, idx) or ""


def is_yes(value: Any) -> bool:
    raw = clean(value)
    return raw is not None and raw.lower() == "ya"


def denormalize_number(value: Any) -> str:
    raw = clean(value)
    if raw is None:
        return "0"
    return raw.replace(",", "")


def to_float(value: Any) -> float:
    """Comma-stripped float; ``0.0`` when unparseable or not finite."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        parsed = float(denormalize_number(value))
    except ValueError:
        return 0.0
    return parsed if math.isfinite(parsed) else 0.0


def denorm_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    raw = clean(value)
    if raw is None:
        return 0
    raw = raw.replace(",", "").replace(".", "")
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        return 0


def denorm_float(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raw = clean(value)
    if raw is None:
        return 0.0
    raw = raw.replace(" ", "")
    if "," in raw and "." in raw:
        if raw.rfind(",") > raw.rfind("."):
            raw = raw.replace(".", "").replace(",", ".")
        else:
            raw = raw.replace(",", "")
    elif "," in raw:
        raw = raw.replace(",", ".")
    try:
        parsed = float(raw)
    except ValueError:
        return 0.0
    return parsed if math.isfinite(parsed) else 0.0


def _from_serial(value: float) -> str | None:
    if value <= 0:
        return None
    try:
        converted = from_excel(value)
    except (ValueError, OverflowError, TypeError):
        return None
    if converted is None:
        return None
    if isinstance(converted, datetime):
        return converted.date().isoformat()
    if isinstance(converted, date):
        return converted.isoformat()
    return None


def _serial_or_none(raw: str) -> str | None:
    try:
        number = float(raw)
    except ValueError:
        return None
    return _from_serial(number)


def _manual_dmy(raw: str) -> str | None:
    parts = [part.strip() for part in raw.split("/")]
    if len(parts) != 3:
        return None
    day, month, year = parts
    if len(year) == 2 and year.isdigit():
        year = f"19{year}" if int(year) >= 50 else f"20{year}"
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def parse_date(value: Any) -> str | None:
    """Best-effort conversion of a cell to ``YYYY-MM-DD``.

    Tries spreadsheet serial numbers first, then the textual layouts in
    ``DATE_LAYOUTS``, then a manual D/M/Y split with two-digit years. Anything
    else is logged and returned as ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = _from_serial(float(value))
        if parsed is None:
            logger.warning("Cannot parse date '%s'; storing NULL", value)
        return parsed

    raw = clean(value)
    if raw is None:
        return None

    parsed = _serial_or_none(raw)
    if parsed is not None:
        return parsed

    for layout in DATE_LAYOUTS:
        try:
            return datetime.strptime(raw, layout).date().isoformat()
        except ValueError:
            continue

    if "/" in raw:
        parsed = _manual_dmy(raw)
        if parsed is not None:
            return parsed

    logger.warning("Cannot parse date '%s'; storing NULL", raw)
    return None


def parse_excel_date(value: Any) -> str:
    """Header-date variant used by the invoice sheet: unknown text is returned as-is."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_serial(float(value)) or clean(value) or ""

    raw = clean(value)
    if raw is None:
        return ""
    for layout in ("%d/%m/%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(raw, layout).date().isoformat()
        except ValueError:
            continue
    return _serial_or_none(raw) or raw
