from __future__ import annotations

import logging
import time

from sqlalchemy.orm import Session

from ..batch import NOW, BatchInserter
from ..cells import cell, cell_str, cell_text, denorm_float, parse_date, row_width
from ..runner import ImportContext, ImportResult
from .lookups import branch_by_code, principal_by_code

logger = logging.getLogger(__name__)

LEDGER_COLUMNS = [
    "ledger_date", "ledger_number", "branch_id", "principal_id", "account_type_id",
    "bank_account_id", "debit", "note", "createdAt", "createdBy", "is_verified",
    "group_id", "snapshot_start_balance",
]

# Sheet labels that differ from list_account_type names.
ACCOUNT_TYPE_ALIASES = {"Bank Kas Besar": "Bank Besar", "Bank Kas Kecil": "Bank Kecil"}


def run(db: Session, workbook, ctx: ImportContext) -> ImportResult:
    sheet = ctx.worksheet(workbook)
    resolver = ctx.resolver
    ledger = BatchInserter(db, "list_cash_ledger", LEDGER_COLUMNS, ctx.batch_size)
    stamp = int(time.time())
    group = 0

    for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row_width(row) < 6 or cell_text(row, 0) is None:
            continue
        branch_code = cell_text(row, 1)
        account_type = cell_text(row, 3)
        if branch_code is None or account_type is None:
            continue
        group += 1

        branch = branch_by_code(resolver, branch_code)
        if branch is None:
            logger.warning("Row %s skipped: unknown branch code %s", row_number, branch_code)
            continue

        principal_id = None
        principal_code = cell_text(row, 2)
        if principal_code is not None:
            principal = principal_by_code(resolver, principal_code)
            if principal is None:
                logger.warning("Row %s: unknown principal code %s, stored without principal", row_number, principal_code)
            else:
                principal_id = principal["principal_id"]

        account_type = ACCOUNT_TYPE_ALIASES.get(account_type, account_type)
        account_type_id = resolver.resolve("account_type", account_type)
        if account_type_id is None:
            logger.warning("Row %s skipped: unknown account type '%s'", row_number, account_type)
            continue

        bank_account_id = None
        account_number = cell_text(row, 4)
        if account_number is not None:
            bank_account_id = resolver.resolve("bank_account", account_number)
            if bank_account_id is None:
                logger.warning("Row %s skipped: unknown bank account %s", row_number, account_number)
                continue

        balance = denorm_float(cell(row, 5))
        ledger.add(
            [
                parse_date(cell(row, 0)) or ctx.today,
                f"LEDGER-{stamp}-{group}",
                branch["branch_id"],
                principal_id,
                account_type_id,
                bank_account_id,
                balance,
                cell_str(row, 6),
                NOW,
                ctx.admin_id,
                1,
                group,
                balance,
            ]
        )

    ledger.flush()
    return ImportResult(
        message="Import Beginning Balance Success", detail=f"Total {ledger.written} ledger entries inserted."
    )
