#!/usr/bin/env python3
"""
Stuck Reservation Reconciliation

Refunds credit debits whose request never completed: no refund entry and no
generation row share the debit's request id. Such debits are left behind when
a process dies (or times out) between reserving credits and finishing the
request. A stuck drone tour also gives back its free-plan tour claim.

The refund goes through the same ledger path as live compensation, so a late
compensation racing with this script is rejected by the (request_id, kind)
unique constraint instead of crediting twice.

Usage:
    # Refund debits older than 30 minutes (default)
    python3 scripts/reconcile_reservations.py

    # Only list what would be refunded
    python3 scripts/reconcile_reservations.py --dry-run

    # Custom age threshold
    python3 scripts/reconcile_reservations.py --older-than-minutes 120
"""

import argparse
import asyncio
import sys
from datetime import UTC, datetime, timedelta

from app.db.session import close_engines, get_session_factory
from app.exceptions import AccountNotFoundError, DuplicateRefundError
from app.observability.logging import get_logger, setup_logging
from app.services.ledger import CreditLedger
from app.services.orchestrator import DRONE_TOUR_RESERVATION_REASON

logger = get_logger("reconcile_reservations")


async def reconcile(older_than_minutes: int, dry_run: bool) -> int:
    """Refund stuck reservations. Returns the number refunded (or found, in dry run)."""
    ledger = CreditLedger(get_session_factory())
    cutoff = datetime.now(UTC) - timedelta(minutes=older_than_minutes)

    stuck = await ledger.find_stuck_reservations(cutoff)
    logger.info("stuck_reservations_found", count=len(stuck), cutoff=cutoff.isoformat())

    refunded = 0
    for reservation in stuck:
        if dry_run:
            logger.info(
                "stuck_reservation",
                account_id=str(reservation.account_id),
                request_id=reservation.request_id,
                amount=reservation.amount,
                reason=reservation.reason,
                created_at=reservation.created_at.isoformat(),
            )
            refunded += 1
            continue

        try:
            await ledger.refund(
                reservation.account_id,
                reservation.amount,
                reservation.request_id,
                reason=f"reconciliation:{reservation.reason}",
            )
        except DuplicateRefundError:
            logger.info("stuck_reservation_already_refunded", request_id=reservation.request_id)
            continue
        except AccountNotFoundError:
            logger.warning("stuck_reservation_account_missing", request_id=reservation.request_id)
            continue
        if reservation.reason == DRONE_TOUR_RESERVATION_REASON:
            await ledger.release_drone_tour(reservation.account_id)
        refunded += 1

    logger.info("reconciliation_completed", refunded=refunded, dry_run=dry_run)
    return refunded


async def run(older_than_minutes: int, dry_run: bool) -> int:
    try:
        return await reconcile(older_than_minutes, dry_run)
    finally:
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Refund credit reservations that never completed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=30,
        help="Only consider debits older than this (default: 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List stuck reservations without refunding",
    )
    args = parser.parse_args()

    if args.older_than_minutes < 1:
        parser.error("--older-than-minutes must be at least 1")

    setup_logging()
    try:
        asyncio.run(run(args.older_than_minutes, args.dry_run))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
