"""
Command-line entry point for the valuation and snapshot engine.

Every command prints JSON to stdout; logs go to stderr.
"""

import argparse
import asyncio
import json
import logging
import sys

from wealthledger import db
from wealthledger.db import connection
from wealthledger.dates import current_fy_dates
from wealthledger.exceptions import WealthLedgerError
from wealthledger.goals import simulate_goal
from wealthledger.models import InvestmentType, parse_date
from wealthledger.settings import load_rate_settings, save_rate
from wealthledger.snapshots import (
    calculate_monthly_snapshots,
    calculate_net_worth_snapshot,
    generate_historical_snapshots,
    get_net_worth_history,
)
from wealthledger.tax import calculate_capital_gains
from wealthledger.valuation import calculate_type_xirr

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _date_arg(value):
    parsed = parse_date(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r} (expected YYYY-MM-DD)")
    return parsed


def cmd_init(args):
    db.init_db()
    _print_json({'database': str(connection.DB_PATH), 'rates': load_rate_settings().to_dict()})


def cmd_snapshot(args):
    count = calculate_monthly_snapshots(args.month, owner_id=args.owner)
    result = {'monthly_snapshots': count}
    if args.owner is not None:
        result['net_worth'] = calculate_net_worth_snapshot(args.owner, args.month).to_dict()
    _print_json(result)


def cmd_reconstruct(args):
    months = asyncio.run(generate_historical_snapshots(args.owner, months=args.month or None))
    _print_json({'months_processed': months})


def cmd_history(args):
    _print_json(get_net_worth_history(args.owner))


def cmd_tax(args):
    fy_start, fy_end = current_fy_dates()
    summary = calculate_capital_gains(args.fy_start or fy_start, args.fy_end or fy_end, owner_id=args.owner)
    _print_json(summary.to_dict())


def cmd_xirr(args):
    inv_type = InvestmentType(args.type)
    _print_json({'investment_type': inv_type.value, 'xirr': calculate_type_xirr(inv_type, args.owner)})


def cmd_simulate(args):
    simulation = simulate_goal(args.goal, round(args.sip * 100), args.rate)
    _print_json(simulation.to_dict())


def cmd_rate(args):
    save_rate(InvestmentType(args.type), args.value)
    _print_json(load_rate_settings().to_dict())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Value a multi-asset portfolio and reconstruct its history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s init
  %(prog)s snapshot --owner 1
  %(prog)s reconstruct --owner 1
  %(prog)s tax --owner 1 --fy-start 2025-04-01 --fy-end 2026-03-31
  %(prog)s simulate --goal 3 --sip 10000 --rate 12
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress all output except errors")

    types = [t.value for t in InvestmentType]
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create the database schema")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("snapshot", help="Snapshot current values for a month")
    p.add_argument("--month", help="Year-month (YYYY-MM), default current month")
    p.add_argument("--owner", type=int, help="Owner id; also writes the net-worth snapshot")
    p.set_defaults(func=cmd_snapshot)

    p = sub.add_parser("reconstruct", help="Rebuild historical monthly snapshots")
    p.add_argument("--owner", type=int, required=True)
    p.add_argument("--month", action="append", help="Year-month to rebuild (repeatable), default the standard set")
    p.set_defaults(func=cmd_reconstruct)

    p = sub.add_parser("history", help="Net worth history")
    p.add_argument("--owner", type=int, required=True)
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("tax", help="Capital gains for a financial year")
    p.add_argument("--owner", type=int)
    p.add_argument("--fy-start", type=_date_arg, help="Default: start of the current FY")
    p.add_argument("--fy-end", type=_date_arg, help="Default: end of the current FY")
    p.set_defaults(func=cmd_tax)

    p = sub.add_parser("xirr", help="Pooled XIRR for an asset class")
    p.add_argument("--type", choices=types, required=True)
    p.add_argument("--owner", type=int)
    p.set_defaults(func=cmd_xirr)

    p = sub.add_parser("simulate", help="What-if projection for a goal")
    p.add_argument("--goal", type=int, required=True)
    p.add_argument("--sip", type=float, default=0.0, help="Monthly SIP in rupees")
    p.add_argument("--rate", type=float, default=12.0, help="Expected annual return in percent")
    p.set_defaults(func=cmd_simulate)

    p = sub.add_parser("rate", help="Set the default annual rate for an asset class")
    p.add_argument("--type", choices=types, required=True)
    p.add_argument("--value", required=True)
    p.set_defaults(func=cmd_rate)

    return parser


def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    try:
        db.init_db()
        args.func(args)
    except WealthLedgerError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.exception(f"Command '{args.command}' failed")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
