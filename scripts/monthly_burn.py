#!/usr/bin/env python3
"""
monthly_burn.py: Run or inspect the monthly fee burn.

The burn normally runs from the API's background worker on the last day of
each month (UTC). This script runs it by hand or shows its history.

Usage:
    python scripts/monthly_burn.py [--execute | --history | --stats | --schedule]

Examples:
    python scripts/monthly_burn.py --schedule
    python scripts/monthly_burn.py --execute
    python scripts/monthly_burn.py --history
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timezone
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
    print(f"{CYAN}[burn]{NC} {msg}")


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


def show_schedule() -> None:
    from app.workers.monthly_burn import days_until_burn, is_last_day_of_month, next_burn_date

    today = datetime.now(timezone.utc).date()
    log(f"Today:       {today.isoformat()}")
    log(f"Next burn:   {YELLOW}{next_burn_date(today).isoformat()}{NC}")
    log(f"Days until:  {days_until_burn(today)}")
    if is_last_day_of_month(today):
        ok("Today is burn day")


async def run(args: argparse.Namespace) -> int:
    from app.core.config import settings
    from app.core.errors import TreasuryError
    from app.services import locks
    from app.services.solana import solana_ledger
    from app.workers.monthly_burn import get_burn_history, get_burn_stats, run_monthly_burn

    await Tortoise.init(config=settings.tortoise_config)
    try:
        if args.execute:
            record = await run_monthly_burn(force=True)
            if record is None:
                warn("Nothing burned (already burned this month or no pending burn funds)")
                return 0
            if record.status.value != "confirmed":
                err(f"Burn for {record.period} failed: {record.error}")
                return 1
            ok(f"Burned {record.amount} for {record.period}: {YELLOW}{record.tx_signature}{NC}")
            log(f"Explorer: {record.explorer_url}")
            return 0

        if args.history:
            records = await get_burn_history()
            if not records:
                log("No burns recorded yet")
            for r in records:
                line = f"{r.period}  {r.status.value:<10} {r.amount:>20}  {r.tx_signature or r.error or ''}"
                if r.status.value == "confirmed":
                    ok(line)
                else:
                    err(line)
            return 0

        stats = await get_burn_stats()
        log(f"Total burns:      {stats['total_burns']}")
        log(f"Successful:       {stats['successful_burns']}")
        log(f"Failed:           {stats['failed_burns']}")
        log(f"Total burned:     {YELLOW}{stats['total_burned']}{NC}")
        last = stats["last_burn_date"]
        log(f"Last burn:        {last.isoformat() if last else 'never'}")
        return 0
    except TreasuryError as e:
        err(str(e))
        return 1
    finally:
        await solana_ledger.close()
        await locks.close()
        await connections.close_all()


def main() -> None:
    parser = argparse.ArgumentParser(description="Monthly fee burn")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--execute", action="store_true", help="Run this month's burn now")
    mode.add_argument("--history", action="store_true", help="List recorded burns")
    mode.add_argument("--stats", action="store_true", help="Show burn statistics")
    mode.add_argument("--schedule", action="store_true", help="Show the next burn date (default)")
    args = parser.parse_args()

    load_env()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not (args.execute or args.history or args.stats):
        show_schedule()
        return

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
