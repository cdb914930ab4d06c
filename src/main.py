from __future__ import annotations

import argparse
import logging
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from config import config
from db.db import init_db
from domain.base_types import AccountId, Currency
from services.exchange_rates import ExchangeRateProvider
from services.ledger_service import LedgerService
from services.operator_payments import OperatorPaymentService
from services.recurring_payments import RecurringPaymentService
from services.vat_service import VatService
from utils.formatting import format_currency

logger = logging.getLogger(__name__)


def cmd_init_db(session: Session, args: argparse.Namespace) -> None:
    print(f"Database ready at {args.database_url}")


def cmd_sweep_overdue(session: Session, args: argparse.Namespace) -> None:
    swept = OperatorPaymentService(session).sweep_overdue()
    print(f"Marked {swept} operator payments as overdue")


def cmd_generate_recurring(session: Session, args: argparse.Namespace) -> None:
    result = RecurringPaymentService(session).generate_all()
    print(f"Generated {result.generated} recurring operator payments")
    for error in result.errors:
        print(f"  failed: {error}")


def cmd_refresh_rate(session: Session, args: argparse.Namespace) -> None:
    fetched = ExchangeRateProvider(session).refresh_rate(args.date)
    print(f"{fetched.rate_date} {fetched.from_currency}/{fetched.to_currency} = {fetched.rate} ({fetched.source})")


def cmd_set_rate(session: Session, args: argparse.Namespace) -> None:
    rate_id = ExchangeRateProvider(session).upsert_rate(args.date, args.rate, notes=args.notes, user_id=args.user)
    print(f"Stored rate {args.rate} for {args.date} ({rate_id})")


def cmd_vat_position(session: Session, args: argparse.Namespace) -> None:
    position = VatService(session).get_monthly_vat_payable(args.year, args.month)
    print(f"VAT position {args.year}-{args.month:02d}:")
    print(f"  Sales VAT:     {format_currency(position.sales_vat, Currency.ARS)}")
    print(f"  Purchases VAT: {format_currency(position.purchases_vat, Currency.ARS)}")
    print(f"  Net payable:   {format_currency(position.net, Currency.ARS)}")


def cmd_balance(session: Session, args: argparse.Namespace) -> None:
    account_id = AccountId(args.account_id)
    balance = LedgerService(session).get_account_balance(account_id)
    print(f"Balance of {account_id}: {balance}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Travel agency accounting maintenance commands.")
    parser.add_argument("--database-url", default=None)
    parser.add_argument("--log-level", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create the database schema.")
    init_parser.set_defaults(handler=cmd_init_db)

    sweep_parser = subparsers.add_parser("sweep-overdue", help="Mark past-due operator payments as OVERDUE.")
    sweep_parser.set_defaults(handler=cmd_sweep_overdue)

    recurring_parser = subparsers.add_parser(
        "generate-recurring", help="Open operator payments for every recurring payment that is due."
    )
    recurring_parser.set_defaults(handler=cmd_generate_recurring)

    refresh_parser = subparsers.add_parser("refresh-rate", help="Fetch the USD/ARS rate from Open Exchange Rates.")
    refresh_parser.add_argument("--date", type=date.fromisoformat, default=date.today())
    refresh_parser.set_defaults(handler=cmd_refresh_rate)

    set_rate_parser = subparsers.add_parser("set-rate", help="Store a manual USD/ARS rate.")
    set_rate_parser.add_argument("date", type=date.fromisoformat)
    set_rate_parser.add_argument("rate", type=Decimal)
    set_rate_parser.add_argument("--notes", default=None)
    set_rate_parser.add_argument("--user", default=None)
    set_rate_parser.set_defaults(handler=cmd_set_rate)

    vat_parser = subparsers.add_parser("vat-position", help="Print the VAT payable for a month.")
    vat_parser.add_argument("year", type=int)
    vat_parser.add_argument("month", type=int)
    vat_parser.set_defaults(handler=cmd_vat_position)

    balance_parser = subparsers.add_parser("balance", help="Print the balance of a financial account.")
    balance_parser.add_argument("account_id", type=UUID)
    balance_parser.set_defaults(handler=cmd_balance)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = config()
    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    args.database_url = args.database_url or settings.database_url

    with init_db(args.database_url) as session:
        logger.debug("Running %s", args.command)
        args.handler(session, args)


if __name__ == "__main__":
    main()
