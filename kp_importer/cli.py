from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import settings
from .importers import (
    balance,
    deposit,
    dmf,
    giro,
    intransit,
    intransit_product,
    invoice,
    invoice_fee,
    invoice_product,
    invoice_return,
    invoice_return_product,
    outlet,
    product,
    settlement,
    stock,
    transfer,
)
from .runner import Importer, run_import

COMMANDS: dict[str, Importer] = {
    "outlet": outlet.run,
    "product": product.run,
    "stock": stock.run,
    "invoice": invoice.run,
    "invoice-product": invoice_product.run,
    "invoice-outstanding-product": invoice_product.run,
    "invoice-fee": invoice_fee.run,
    "invoice-return": invoice_return.run,
    "invoice-return-product": invoice_return_product.run,
    "deposit": deposit.run,
    "giro": giro.run,
    "settlement": settlement.run,
    "intransit": intransit.run,
    "intransit-product": intransit_product.run,
    "transfer": transfer.run,
    "balance": balance.run,
    "dmf": dmf.run,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kp-importer", description="Load spreadsheet workbooks into the back-office database")
    subparsers = parser.add_subparsers(dest="command", required=True, metavar="command")
    for name in COMMANDS:
        sub = subparsers.add_parser(name, help=f"import {name} workbook")
        sub.add_argument("--file", default=f"./uploads/{name}.xlsx", help="path to the .xlsx file")
        sub.add_argument(
            "--database-url",
            "--dsn",
            dest="database_url",
            default=settings.database_url,
            help="SQLAlchemy database URL",
        )
        sub.add_argument("--admin-id", type=int, default=settings.admin_id, help="createdBy admin id")
        sub.add_argument("--batch", type=int, default=settings.batch_size, help="rows per multi-row INSERT")
        sub.add_argument("--log-id", default=None, help="activity log id to update after a successful import")
        sub.add_argument("--sheet", default=None, help="sheet name; defaults to the importer's sheet")
        sub.add_argument("--legacy-date", default=settings.legacy_date, help="timestamp for legacy transactions")
    return parser


def configure_logging(level: str = settings.log_level) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    exit_code, payload = run_import(
        COMMANDS[args.command],
        args.file,
        args.database_url,
        admin_id=args.admin_id,
        batch_size=args.batch,
        log_id=args.log_id,
        sheet=args.sheet,
        legacy_date=args.legacy_date,
    )
    print(json.dumps(payload))
    return exit_code
