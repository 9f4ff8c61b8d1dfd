"""Operator script: pay out withdrawals or expire stale offers by hand.

Runs the same service code as the Celery tasks, for use when the beat
scheduler is down or a single payout needs to be pushed through.

Usage:
    cd backend
    python -m scripts.process_withdrawal 42          # one withdrawal
    python -m scripts.process_withdrawal --pending   # every pending withdrawal
    python -m scripts.process_withdrawal --expire-offers
"""

import asyncio
import sys

from marketplace.core.errors import MarketplaceError
from marketplace.core.logging_config import setup_logging
from marketplace.core.redis import close_redis
from marketplace.db.session import async_session_factory, engine
from marketplace.services.offer import expire_stale_offers
from marketplace.services.withdrawal import list_pending_withdrawal_ids, process_withdrawal


async def _process(withdrawal_ids: list[int]) -> None:
    for withdrawal_id in withdrawal_ids:
        async with async_session_factory() as db:
            try:
                withdrawal = await process_withdrawal(db, withdrawal_id)
            except MarketplaceError as exc:
                await db.rollback()
                print(f"Withdrawal #{withdrawal_id}: skipped ({exc.code}: {exc.detail})")
                continue
        if withdrawal.status == "completed":
            print(f"Withdrawal #{withdrawal_id}: completed, transaction {withdrawal.transaction_id}")
        else:
            print(f"Withdrawal #{withdrawal_id}: {withdrawal.status} ({withdrawal.failure_reason})")


async def run(args: list[str]) -> None:
    try:
        if args == ["--expire-offers"]:
            async with async_session_factory() as db:
                count = await expire_stale_offers(db)
            print(f"Expired {count} offers")
            return

        if args == ["--pending"]:
            async with async_session_factory() as db:
                ids = await list_pending_withdrawal_ids(db)
            print(f"{len(ids)} pending withdrawals")
        else:
            ids = [int(args[0])]
        await _process(ids)
    finally:
        await close_redis()
        await engine.dispose()


def main() -> None:
    args = sys.argv[1:]
    if len(args) != 1 or not (args[0].isdigit() or args[0] in ("--pending", "--expire-offers")):
        print("Usage: python -m scripts.process_withdrawal <withdrawal_id> | --pending | --expire-offers")
        sys.exit(1)
    setup_logging("script")
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
