#!/usr/bin/env python3
"""
distribute_fees.py: Inspect, record and distribute the pending fee ledger.

Fees are split into the configured buckets (burn, charity, liquidity,
treasury) and sent from the treasury wallet. A failed bucket leaves the
ledger pending; running --distribute again resends only what is still owed.

Usage:
    python scripts/distribute_fees.py [--dry-run | --distribute | --export FILE]
                                      [--record AMOUNT [--tx-count N]]

Examples:
    python scripts/distribute_fees.py --dry-run
    python scripts/distribute_fees.py --record 5000000000 --tx-count 12
    python scripts/distribute_fees.py --distribute
    python scripts/distribute_fees.py --export fee_history.json
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from tortoise import Tortoise, connections

# ── Paths ──────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent

# ── Colors ─────────────────────────────────────────────────────
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
CYAN = "\033[0;36m"
NC = "\033[0m"


def log(msg: str) -> None:
    print(f"{CYAN}[fees]{NC} {msg}")


def ok(msg: str) -> None:
    print(f"{GREEN}[  ok  ]{NC} {msg}")


def warn(msg: str) -> None:
    print(f"{YELLOW}[ warn ]{NC} {msg}")


def err(msg: str) -> None:
    print(f"{RED}[error ]{NC} {msg}", file=sys.stderr)


def load_env() -> None:
    """Load .env from project root or backend."""
    for env_path in (PROJECT_ROOT / ".env", PROJECT_ROOT / "backend" / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            return
    warn("No .env file found, using environment variables only.")


async def run(args: argparse.Namespace) -> int:
    from app.core.config import settings
    from app.core.errors import TreasuryError
    from app.services import locks
    from app.services.solana import solana_ledger
    from app.workers.fee_distribution import (
        distribute_pending_fees,
        export_fee_history,
        record_fee_collection,
    )

    await Tortoise.init(config=settings.tortoise_config)
    try:
        if args.record is not None:
            shares = await record_fee_collection(args.record, args.tx_count)
            ok(f"Recorded {args.record} from {args.tx_count} transactions")
            for name, share in shares.items():
                log(f"  {name:<10} {share}")

        if args.export:
            history = await export_fee_history()
            Path(args.export).write_text(json.dumps(history, indent=2))
            ok(f"Exported fee history to {YELLOW}{args.export}{NC}")
            return 0

        if args.distribute or args.dry_run:
            report = await distribute_pending_fees(dry_run=not args.distribute)
            log(f"Pending:      {report.total_collected} from {report.transaction_count} transactions")
            for name, amount in report.distribution.items():
                log(f"  {name:<10} {amount}")

            if report.dry_run:
                warn("Dry run, no transactions sent")
                return 0

            for payout in report.payouts:
                if payout.tx_signature and payout.status.value == "confirmed":
                    ok(f"{payout.bucket}: {payout.amount} tx={payout.tx_signature}")
                    log(f"Explorer: {settings.explorer_url(payout.tx_signature)}")
                elif payout.status.value != "confirmed":
                    err(f"{payout.bucket}: {payout.status.value} {payout.error or ''}")

            if not report.completed:
                err(f"Distribution incomplete, failed buckets: {report.failed_buckets}")
                return 1
            ok("Distribution complete")
        return 0
    except TreasuryError as e:
        err(str(e))
        return 1
    finally:
        await solana_ledger.close()
        await locks.close()
        await connections.close_all()


def main() -> None:
    parser = argparse.ArgumentParser(description="Distribute collected transaction fees")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview the split (default)")
    mode.add_argument("--distribute", action="store_true", help="Send the pending fees")
    mode.add_argument("--export", metavar="FILE", help="Write fee history as JSON")
    parser.add_argument("--record", type=int, metavar="AMOUNT", help="Record collected fees first")
    parser.add_argument("--tx-count", type=int, default=1, help="Transactions the fees came from")
    args = parser.parse_args()

    if args.record is None and not (args.distribute or args.export):
        args.dry_run = True

    load_env()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
