"""Credit ledger — every change to User.credits goes through here.

Each mutation is one atomic UPDATE ... RETURNING statement, and the matching
CreditLog row is added to the same session. The caller owns the transaction:
the balance change and its log entry commit (or roll back) together, so
``balance_after`` is always the balance that statement produced.

Grant semantics are intentionally asymmetric:
- ``credit`` adds (new subscription checkouts, top-ups)
- ``overwrite`` sets (subscription created/updated, cancellation)
- ``debit`` subtracts only when the balance covers the full amount
"""

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from promptverse.core.exceptions import InsufficientCreditsError, LedgerValidationError, UserNotFoundError
from promptverse.db.models.credit_log import CreditLog
from promptverse.db.models.user import User

logger = structlog.get_logger(__name__)


def _require_positive(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise LedgerValidationError(f"Credit amount must be a positive integer, got {amount!r}")
    return amount


def _append_log(
    session: AsyncSession,
    user_id: str,
    amount: int,
    balance_after: int,
    *,
    type: str,
    source: str,
    description: str,
    metadata: dict | None,
) -> CreditLog:
    entry = CreditLog(
        user_id=user_id,
        amount=amount,
        type=type,
        source=source,
        description=description,
        details=metadata,
        balance_after=balance_after,
    )
    session.add(entry)
    return entry


async def get_balance(session: AsyncSession, user_id: str) -> int:
    """Current balance; raises UserNotFoundError for unknown users."""
    result = await session.execute(select(User.credits).where(User.id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return balance


async def credit(
    session: AsyncSession,
    user_id: str,
    amount: int,
    *,
    source: str,
    description: str = "",
    type: str = "purchased",
    metadata: dict | None = None,
    fields: dict | None = None,
) -> int:
    """Add ``amount`` credits and append a log entry.

    Args:
        session: Open session; caller commits
        user_id: Target user
        amount: Positive number of credits to grant
        source: Origin of the grant ("subscription", "purchase", ...)
        description: Human-readable note for the log entry
        type: CreditLog type ("purchased", "earned")
        metadata: Extra context stored on the log entry
        fields: Other User columns to set in the same statement

    Returns:
        Balance after the grant

    Raises:
        LedgerValidationError: amount is not a positive integer
        UserNotFoundError: no such user
    """
    amount = _require_positive(amount)

    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(credits=User.credits + amount, **(fields or {}))
        .returning(User.credits)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    balance_after = result.scalar_one_or_none()
    if balance_after is None:
        raise UserNotFoundError(f"User {user_id} not found")

    _append_log(
        session,
        user_id,
        amount,
        balance_after,
        type=type,
        source=source,
        description=description,
        metadata=metadata,
    )
    logger.info("credits_granted", user_id=user_id, amount=amount, source=source, balance_after=balance_after)
    return balance_after


async def debit(
    session: AsyncSession,
    user_id: str,
    amount: int,
    *,
    source: str,
    description: str = "",
    metadata: dict | None = None,
) -> int:
    """Spend ``amount`` credits if the balance covers it.

    The balance check and the decrement are one conditional UPDATE, so two
    concurrent debits can never take the balance below zero.

    Returns:
        Balance after the debit

    Raises:
        LedgerValidationError: amount is not a positive integer
        InsufficientCreditsError: balance < amount (nothing is changed)
        UserNotFoundError: no such user
    """
    amount = _require_positive(amount)

    stmt = (
        update(User)
        .where(User.id == user_id, User.credits >= amount)
        .values(
            credits=User.credits - amount,
            credits_used=User.credits_used + amount,
        )
        .returning(User.credits)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    balance_after = result.scalar_one_or_none()

    if balance_after is None:
        available = await get_balance(session, user_id)
        logger.info("credits_insufficient", user_id=user_id, needed=amount, available=available)
        raise InsufficientCreditsError(needed=amount, available=available)

    _append_log(
        session,
        user_id,
        -amount,
        balance_after,
        type="spent",
        source=source,
        description=description,
        metadata=metadata,
    )
    logger.info("credits_debited", user_id=user_id, amount=amount, source=source, balance_after=balance_after)
    return balance_after


async def overwrite(
    session: AsyncSession,
    user_id: str,
    credits: int,
    *,
    source: str,
    description: str = "",
    metadata: dict | None = None,
    fields: dict | None = None,
) -> int:
    """Set the balance to ``credits`` (plan resets, cancellations).

    The previous balance is read under a row lock in the same transaction so the
    logged delta matches the change actually applied. A log entry of type
    ``adjusted`` is written only when the balance changes.

    Returns:
        Balance after the overwrite
    """
    if isinstance(credits, bool) or not isinstance(credits, int) or credits < 0:
        raise LedgerValidationError(f"Credit balance must be a non-negative integer, got {credits!r}")

    current = await session.execute(select(User.credits).where(User.id == user_id).with_for_update())
    previous = current.scalar_one_or_none()
    if previous is None:
        raise UserNotFoundError(f"User {user_id} not found")

    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(credits=credits, **(fields or {}))
        .returning(User.credits)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    balance_after = result.scalar_one()

    delta = balance_after - previous
    if delta:
        _append_log(
            session,
            user_id,
            delta,
            balance_after,
            type="adjusted",
            source=source,
            description=description,
            metadata=metadata,
        )
    logger.info("credits_overwritten", user_id=user_id, previous=previous, balance_after=balance_after, source=source)
    return balance_after


async def history(session: AsyncSession, user_id: str, limit: int = 50) -> list[CreditLog]:
    """Most recent ledger entries for a user, newest first."""
    result = await session.execute(
        select(CreditLog)
        .where(CreditLog.user_id == user_id)
        .order_by(CreditLog.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
