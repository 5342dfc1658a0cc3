"""Token ledger service.

This service provides business logic for:
- Deriving user balances from the append-only ledger
- Crediting tokens (top-ups, grants, refunds)
- Debiting tokens inside the caller's unit of work
- Tracking transaction history

A balance is never stored. It is the sum of the signed ``amount`` of a
user's transactions. Every debit goes through ``spend``: it serializes
per user, re-checks the balance, writes the negative row and lets the
caller add the rows that depend on the debit before a single commit.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InsufficientTokensError, NotFoundError, ValidationError
from app.core.locks import user_key, user_locks
from app.models.transaction import TokenTransaction, TransactionType
from app.models.user import User

logger = logging.getLogger(__name__)


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive whole number of tokens")


class TokenService:
    """Service for managing user token balances and transactions."""

    def __init__(self, db: AsyncSession):
        """Initialize the token service.

        Args:
            db: Database session for token operations
        """
        self.db = db

    async def get_user_balance(self, user_id: int) -> int:
        """Current balance: the sum of all signed ledger amounts (0 if none)."""
        stmt = select(func.coalesce(func.sum(TokenTransaction.amount), 0)).where(
            TokenTransaction.user_id == user_id
        )
        return int(await self.db.scalar(stmt) or 0)

    async def record_topup(
        self,
        user_id: int,
        amount: int,
        meta: Optional[dict] = None,
        external_ref: Optional[str] = None,
    ) -> TokenTransaction:
        """Credit tokens to a user.

        Args:
            user_id: The user's ID
            amount: Number of tokens to credit (must be positive)
            meta: Reason and context (package, price, refund origin, ...)
            external_ref: Payment reference; a repeated reference returns the
                original transaction instead of crediting twice

        Returns:
            The ledger row for this credit

        Raises:
            ValidationError: If amount is not positive, or external_ref was
                recorded for another user
            NotFoundError: If the user does not exist
        """
        _require_positive(amount)

        if external_ref:
            existing = await self._get_by_external_ref(user_id, external_ref)
            if existing is not None:
                logger.info(f"Top-up {external_ref} already recorded as transaction {existing.id}")
                return existing

        async with user_locks.acquire(user_key(user_id)):
            await self._lock_user(user_id)
            transaction = TokenTransaction(
                user_id=user_id,
                type=TransactionType.TOPUP,
                amount=amount,
                external_ref=external_ref,
                meta=meta or {},
            )
            self.db.add(transaction)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                existing = (
                    await self._get_by_external_ref(user_id, external_ref) if external_ref else None
                )
                if existing is None:
                    raise
                logger.info(f"Top-up {external_ref} recorded concurrently as {existing.id}")
                return existing

        logger.info(
            f"Credited {amount} tokens to user {user_id} "
            f"({(meta or {}).get('reason', 'topup')}), transaction {transaction.id}"
        )
        return transaction

    @asynccontextmanager
    async def spend(
        self,
        user_id: int,
        amount: int,
        meta: Optional[dict] = None,
    ) -> AsyncIterator[TokenTransaction]:
        """Debit tokens as one unit of work with whatever the caller adds.

        Usage:
            async with token_service.spend(user.id, cost, {"reason": "booking"}) as tx:
                db.add(Booking(..., transaction_id=tx.id))

        The balance check and the debit run under the per-user lock and a
        row lock on the user. Rows added inside the block commit together
        with the debit; any exception rolls all of them back.

        Raises:
            ValidationError: If amount is not positive
            NotFoundError: If the user does not exist
            InsufficientTokensError: If the balance is below amount
        """
        _require_positive(amount)

        async with user_locks.acquire(user_key(user_id)):
            try:
                await self._lock_user(user_id)
                balance = await self.get_user_balance(user_id)
                if balance < amount:
                    raise InsufficientTokensError(required=amount, available=balance)

                transaction = TokenTransaction(
                    user_id=user_id,
                    type=TransactionType.SPEND,
                    amount=-amount,
                    meta=meta or {},
                )
                self.db.add(transaction)
                await self.db.flush()

                yield transaction

                await self.db.commit()
            except BaseException:
                await self.db.rollback()
                raise

        logger.info(
            f"Debited {amount} tokens from user {user_id} "
            f"({(meta or {}).get('reason', 'spend')}). New balance: {balance - amount}"
        )

    async def record_spend(
        self,
        user_id: int,
        amount: int,
        meta: Optional[dict] = None,
    ) -> TokenTransaction:
        """Debit tokens with no dependent rows."""
        async with self.spend(user_id, amount, meta) as transaction:
            pass
        return transaction

    async def refund(
        self,
        user_id: int,
        amount: int,
        reason: str,
        meta: Optional[dict] = None,
    ) -> TokenTransaction:
        """Offset an earlier spend with a credit (e.g., for failed generation).

        Args:
            user_id: The user's ID
            amount: Number of tokens to give back
            reason: Why the refund happened
            meta: Optional context (request_id, course_id, ...)
        """
        refund_meta = dict(meta or {})
        refund_meta["reason"] = "refund"
        refund_meta["refund_reason"] = reason

        return await self.record_topup(user_id=user_id, amount=amount, meta=refund_meta)

    async def get_transaction_history(
        self,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
        transaction_type: Optional[TransactionType] = None,
    ) -> tuple[list[TokenTransaction], int]:
        """Get transaction history for a user.

        Args:
            user_id: The user's ID
            limit: Maximum number of transactions to return
            offset: Offset for pagination
            transaction_type: Optional filter by transaction type

        Returns:
            Tuple of (list of transactions, total count)
        """
        # Build base query
        base_query = select(TokenTransaction).where(TokenTransaction.user_id == user_id)

        if transaction_type:
            base_query = base_query.where(TokenTransaction.type == transaction_type)

        # Get total count
        count_query = select(func.count()).select_from(base_query.subquery())
        total = await self.db.scalar(count_query) or 0

        # Get paginated results
        query = (
            base_query
            .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(query)
        transactions = list(result.scalars().all())

        return transactions, total

    async def _lock_user(self, user_id: int) -> None:
        """Row-lock the user for the rest of the transaction."""
        stmt = select(User.id).where(User.id == user_id).with_for_update()
        if await self.db.scalar(stmt) is None:
            raise NotFoundError("User", user_id)

    async def _get_by_external_ref(
        self, user_id: int, external_ref: str
    ) -> Optional[TokenTransaction]:
        """The caller's transaction for a payment reference, if any.

        References are unique across the ledger; one recorded for another
        user is rejected rather than returned.
        """
        stmt = select(TokenTransaction).where(TokenTransaction.external_ref == external_ref)
        existing = (await self.db.execute(stmt)).scalar_one_or_none()
        if existing is not None and existing.user_id != user_id:
            logger.warning(f"Payment reference {external_ref} reused by user {user_id}")
            raise ValidationError("Payment reference already used")
        return existing


def get_token_service(db: AsyncSession) -> TokenService:
    """Factory function to create TokenService.

    Args:
        db: Database session

    Returns:
        Configured TokenService instance
    """
    return TokenService(db)
