"""
Credit Ledger - Atomic balance mutations with an append-only audit trail.

NO DICTIONARIES - All operations use strongly typed domain models.

Balances are never computed in application memory. Every debit and refund is a
single conditional UPDATE ... RETURNING statement committed together with its
ledger entry, so concurrent requests for the same account cannot overdraw it
and a request id can be refunded at most once.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import and_, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.db.models import CreditLedgerEntry, Generation, Profile, utc_now
from app.exceptions import (
    AccountNotFoundError,
    DuplicateRefundError,
    InsufficientCreditsError,
)
from app.models.api import LedgerEntryKind, PlanTier
from app.models.domain import AccountData, StuckReservation
from app.observability.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncSession]


class Ledger(Protocol):
    """Credit ledger interface used by the orchestrator."""

    async def get_account(self, account_id: UUID) -> AccountData:
        """Load the account snapshot (plan + balance)."""
        ...

    async def get_balance(self, account_id: UUID) -> int:
        """Read the current balance."""
        ...

    async def reserve(self, account_id: UUID, amount: int, request_id: str, reason: str) -> int:
        """Debit credits atomically. Returns the balance after the debit."""
        ...

    async def refund(self, account_id: UUID, amount: int, request_id: str, reason: str) -> int:
        """Credit back a reservation. Returns the balance after the refund."""
        ...

    async def claim_drone_tour(self, account_id: UUID, limit: int | None) -> bool:
        """Count one drone tour against the account. False when the cap is reached."""
        ...

    async def release_drone_tour(self, account_id: UUID) -> None:
        """Give back a claimed drone tour."""
        ...


class CreditLedger:
    """
    Postgres-backed credit ledger.

    Each call opens its own session and commits before returning, so a
    reservation is durable before the backend is invoked and a later failure
    in another session cannot roll it back.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        """Initialize ledger with a session factory."""
        self._session_factory = session_factory

    async def get_account(self, account_id: UUID) -> AccountData:
        """Load the account snapshot. Raises AccountNotFoundError if missing."""
        async with self._session_factory() as session:
            stmt = select(Profile).where(Profile.id == account_id)
            result = await session.execute(stmt)
            profile = result.scalar_one_or_none()

        if profile is None:
            raise AccountNotFoundError(account_id)

        return AccountData(
            account_id=profile.id,
            email=profile.email,
            plan=PlanTier(profile.plan),
            credits_remaining=profile.credits_remaining,
            created_at=profile.created_at,
        )

    async def get_balance(self, account_id: UUID) -> int:
        """Read the current balance. Raises AccountNotFoundError if missing."""
        async with self._session_factory() as session:
            balance = await self._read_balance(session, account_id)

        if balance is None:
            raise AccountNotFoundError(account_id)
        return balance

    async def reserve(self, account_id: UUID, amount: int, request_id: str, reason: str) -> int:
        """
        Debit `amount` credits if and only if the balance covers it.

        Zero matched rows means either the account is missing or the balance
        is too low; the balance is left untouched in both cases.
        """
        if amount <= 0:
            raise ValueError(f"Reservation amount must be positive: {amount}")

        async with self._session_factory() as session:
            stmt = (
                update(Profile)
                .where(Profile.id == account_id, Profile.credits_remaining >= amount)
                .values(
                    credits_remaining=Profile.credits_remaining - amount,
                    updated_at=utc_now(),
                )
                .returning(Profile.credits_remaining)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            balance_after = result.scalar_one_or_none()

            if balance_after is None:
                await session.rollback()
                balance = await self._read_balance(session, account_id)
                if balance is None:
                    raise AccountNotFoundError(account_id)
                logger.info(
                    "reservation_rejected",
                    account_id=str(account_id),
                    balance=balance,
                    required=amount,
                )
                raise InsufficientCreditsError(balance=balance, required=amount)

            session.add(
                CreditLedgerEntry(
                    account_id=account_id,
                    request_id=request_id,
                    kind=LedgerEntryKind.DEBIT,
                    amount=amount,
                    balance_after=balance_after,
                    reason=reason,
                )
            )
            await session.commit()

        logger.info(
            "credits_reserved",
            account_id=str(account_id),
            request_id=request_id,
            amount=amount,
            balance_after=balance_after,
        )
        return int(balance_after)

    async def refund(self, account_id: UUID, amount: int, request_id: str, reason: str) -> int:
        """
        Return `amount` credits for `request_id`.

        The unique (request_id, kind) constraint on the ledger rejects a
        second refund for the same request; the balance change is rolled back
        with it and DuplicateRefundError is raised.
        """
        if amount <= 0:
            raise ValueError(f"Refund amount must be positive: {amount}")

        async with self._session_factory() as session:
            stmt = (
                update(Profile)
                .where(Profile.id == account_id)
                .values(
                    credits_remaining=Profile.credits_remaining + amount,
                    updated_at=utc_now(),
                )
                .returning(Profile.credits_remaining)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            balance_after = result.scalar_one_or_none()

            if balance_after is None:
                await session.rollback()
                raise AccountNotFoundError(account_id)

            session.add(
                CreditLedgerEntry(
                    account_id=account_id,
                    request_id=request_id,
                    kind=LedgerEntryKind.REFUND,
                    amount=amount,
                    balance_after=balance_after,
                    reason=reason,
                )
            )
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(
                    "duplicate_refund_rejected",
                    account_id=str(account_id),
                    request_id=request_id,
                    error=str(e),
                )
                raise DuplicateRefundError(request_id) from e

        logger.info(
            "credits_refunded",
            account_id=str(account_id),
            request_id=request_id,
            amount=amount,
            balance_after=balance_after,
        )
        return int(balance_after)

    async def claim_drone_tour(self, account_id: UUID, limit: int | None) -> bool:
        """
        Increment drone_tours_used, bounded by `limit` when one is given.

        The bound is part of the UPDATE's WHERE clause, so two concurrent
        claims for the last free tour cannot both match.
        """
        conditions = [Profile.id == account_id]
        if limit is not None:
            conditions.append(Profile.drone_tours_used < limit)

        async with self._session_factory() as session:
            stmt = (
                update(Profile)
                .where(*conditions)
                .values(drone_tours_used=Profile.drone_tours_used + 1, updated_at=utc_now())
                .returning(Profile.drone_tours_used)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            used = result.scalar_one_or_none()

            if used is None:
                await session.rollback()
                if await self._read_balance(session, account_id) is None:
                    raise AccountNotFoundError(account_id)
                logger.info("drone_tour_claim_rejected", account_id=str(account_id), limit=limit)
                return False

            await session.commit()

        logger.info("drone_tour_claimed", account_id=str(account_id), used=used)
        return True

    async def release_drone_tour(self, account_id: UUID) -> None:
        """Decrement drone_tours_used (never below zero)."""
        async with self._session_factory() as session:
            stmt = (
                update(Profile)
                .where(Profile.id == account_id, Profile.drone_tours_used > 0)
                .values(drone_tours_used=Profile.drone_tours_used - 1, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
            await session.commit()

        logger.info("drone_tour_released", account_id=str(account_id))

    async def find_stuck_reservations(self, older_than: datetime) -> list[StuckReservation]:
        """
        Debits created before older_than with no refund and no generation row.

        These are requests that died between reservation and completion.
        """
        refund = aliased(CreditLedgerEntry)
        debit = CreditLedgerEntry
        stmt = (
            select(debit)
            .where(
                debit.kind == LedgerEntryKind.DEBIT,
                debit.created_at < older_than,
                ~exists().where(
                    and_(
                        refund.request_id == debit.request_id,
                        refund.kind == LedgerEntryKind.REFUND,
                    )
                ),
                ~exists().where(Generation.request_id == debit.request_id),
            )
            .order_by(debit.created_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            entries = result.scalars().all()

        return [
            StuckReservation(
                account_id=entry.account_id,
                request_id=entry.request_id,
                amount=entry.amount,
                reason=entry.reason,
                created_at=entry.created_at,
            )
            for entry in entries
        ]

    async def _read_balance(self, session: AsyncSession, account_id: UUID) -> int | None:
        """Read the balance without locking."""
        stmt = select(Profile.credits_remaining).where(Profile.id == account_id)
        result = await session.execute(stmt)
        balance = result.scalar_one_or_none()
        return None if balance is None else int(balance)
