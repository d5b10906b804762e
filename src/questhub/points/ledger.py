"""Points ledger engine.

Invariant: for every user, ``users.total_points`` equals the sum of that
user's ``user_point_history.points_earned``. Every function here changes the
history and the cached total in the same transaction, and the total is always
moved with a single ``total_points = total_points + :delta`` UPDATE so two
concurrent writers cannot lose an increment.

Leaving a task or deleting a step hard-deletes the affected history rows
(no compensating negative entries). Manual adjustments are the only source
of rows with ``step_id IS NULL``.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.clock import utcnow
from questhub.db.models import User, UserPointHistory
from questhub.errors import Conflict, UserNotFound, ValidationFailed
from questhub.points.coercion import coerce_points, is_clean_points

logger = structlog.get_logger()


class AdjustOperation(str, enum.Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    SET = "set"
    RESET = "reset"


@dataclass
class Reconciliation:
    user_id: str
    total_points: int
    ledger_sum: int

    @property
    def drift(self) -> int:
        return self.total_points - self.ledger_sum

    @property
    def consistent(self) -> bool:
        return self.drift == 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_points": self.total_points,
            "ledger_sum": self.ledger_sum,
            "drift": self.drift,
            "consistent": self.consistent,
        }


@dataclass
class IntegrityReport:
    total_points_sum: int
    ledger_sum: int
    inconsistent_users: list[Reconciliation] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.total_points_sum == self.ledger_sum and not self.inconsistent_users

    def as_dict(self) -> dict[str, Any]:
        return {
            "consistent": self.consistent,
            "total_points_sum": self.total_points_sum,
            "ledger_sum": self.ledger_sum,
            "difference": self.total_points_sum - self.ledger_sum,
            "inconsistent_users": [r.as_dict() for r in self.inconsistent_users],
        }


async def _shift_total(db: AsyncSession, user_id: str, delta: int) -> None:
    if delta == 0:
        return
    await db.execute(
        update(User)
        .where(User.user_id == user_id)
        .values(total_points=User.total_points + delta)
    )


async def lock_user(db: AsyncSession, user_id: str) -> None:
    """Hold the user's row lock until the transaction ends.

    Credit, submit and leave all take it first, so a leave never interleaves
    with an approval or submission for the same user.
    """
    await db.execute(select(User.user_id).where(User.user_id == user_id).with_for_update())


async def lock_users(db: AsyncSession, user_ids: Iterable[str]) -> None:
    """Lock several users in ``user_id`` order, the same order every caller uses."""
    user_ids = sorted(set(user_ids))
    if user_ids:
        await db.execute(
            select(User.user_id).where(User.user_id.in_(user_ids)).order_by(User.user_id).with_for_update()
        )


async def credit(
    db: AsyncSession,
    user_id: str,
    step_id: int,
    amount: Any,
    reason: str = "step_approved",
) -> UserPointHistory:
    """Credit a step's reward to a user exactly once.

    Raises Conflict if the (user, step) pair already has a ledger row. The
    UNIQUE(user_id, step_id) constraint backs the pre-check under races.
    """
    points = coerce_points(amount)
    if not is_clean_points(amount):
        logger.warning("points_reward_coerced", user_id=user_id, step_id=step_id, raw=repr(amount), coerced=points)

    existing = await db.execute(
        select(UserPointHistory.history_id).where(
            UserPointHistory.user_id == user_id,
            UserPointHistory.step_id == step_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise Conflict("Points for this step were already credited.")

    entry = UserPointHistory(
        user_id=user_id,
        step_id=step_id,
        points_earned=points,
        reason=reason,
        earned_at=utcnow(),
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict("Points for this step were already credited.") from e

    await _shift_total(db, user_id, points)
    logger.info("points_credited", user_id=user_id, step_id=step_id, points=points)
    return entry


async def debit(
    db: AsyncSession,
    user_id: str,
    step_ids: Iterable[int],
    reason: str,
) -> int:
    """Remove a user's ledger rows for ``step_ids`` and take their sum off the total.

    Returns the number of points removed. Running it again removes nothing.
    """
    step_ids = list(step_ids)
    if not step_ids:
        return 0

    result = await db.execute(
        select(UserPointHistory.history_id, UserPointHistory.points_earned).where(
            UserPointHistory.user_id == user_id,
            UserPointHistory.step_id.in_(step_ids),
        )
    )
    rows = result.all()
    if not rows:
        return 0

    removed = sum(row.points_earned for row in rows)
    await db.execute(
        delete(UserPointHistory).where(UserPointHistory.history_id.in_([row.history_id for row in rows]))
    )
    await _shift_total(db, user_id, -removed)
    logger.info("points_debited", user_id=user_id, points=removed, entries=len(rows), reason=reason)
    return removed


async def debit_all_users(
    db: AsyncSession,
    step_ids: Iterable[int],
    reason: str,
) -> dict[str, int]:
    """Debit every user holding ledger rows for ``step_ids``. Returns points removed per user."""
    step_ids = list(step_ids)
    if not step_ids:
        return {}

    result = await db.execute(
        select(UserPointHistory.user_id)
        .where(UserPointHistory.step_id.in_(step_ids))
        .distinct()
    )
    reversed_points: dict[str, int] = {}
    for user_id in result.scalars().all():
        reversed_points[user_id] = await debit(db, user_id, step_ids, reason)
    return reversed_points


async def adjust_points(
    db: AsyncSession,
    user_id: str,
    operation: AdjustOperation,
    amount: Any,
    actor_id: str,
) -> dict[str, Any]:
    """Manually move a user's total. The result never goes below zero.

    The applied delta is recorded as a ledger row with no step so the
    invariant keeps holding.
    """
    result = await db.execute(
        select(User)
        .where(User.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound()

    points = coerce_points(amount)
    if operation in (AdjustOperation.INCREASE, AdjustOperation.DECREASE, AdjustOperation.SET) and amount is None:
        raise ValidationFailed("An amount is required for this operation.")

    previous = user.total_points
    if operation is AdjustOperation.INCREASE:
        target = previous + points
    elif operation is AdjustOperation.DECREASE:
        target = max(0, previous - points)
    elif operation is AdjustOperation.SET:
        target = points
    else:
        target = 0

    delta = target - previous
    if delta:
        db.add(UserPointHistory(
            user_id=user_id,
            step_id=None,
            points_earned=delta,
            reason=f"manual:{operation.value}",
            created_by=actor_id,
            earned_at=utcnow(),
        ))
        await db.flush()
        await _shift_total(db, user_id, delta)
        logger.info("points_adjusted", user_id=user_id, operation=operation.value, delta=delta, actor=actor_id)

    return {"user_id": user_id, "previous_points": previous, "total_points": previous + delta, "delta": delta}


async def ledger_sum(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(UserPointHistory.points_earned), 0)).where(
            UserPointHistory.user_id == user_id
        )
    )
    return int(result.scalar_one())


async def reconcile(db: AsyncSession, user_id: str) -> Reconciliation:
    """Compare a user's cached total with the summed ledger (read-only)."""
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        raise UserNotFound()
    return Reconciliation(user_id=user_id, total_points=user.total_points, ledger_sum=await ledger_sum(db, user_id))


async def integrity_report(db: AsyncSession) -> IntegrityReport:
    """Global points-integrity check across all users."""
    totals = await db.execute(select(func.coalesce(func.sum(User.total_points), 0)))
    ledger = await db.execute(select(func.coalesce(func.sum(UserPointHistory.points_earned), 0)))

    per_user = (
        select(
            UserPointHistory.user_id.label("user_id"),
            func.sum(UserPointHistory.points_earned).label("earned"),
        )
        .group_by(UserPointHistory.user_id)
        .subquery()
    )
    earned = func.coalesce(per_user.c.earned, 0)
    mismatches = await db.execute(
        select(User.user_id, User.total_points, earned.label("earned"))
        .outerjoin(per_user, per_user.c.user_id == User.user_id)
        .where(User.total_points != earned)
        .order_by(User.user_id)
    )

    return IntegrityReport(
        total_points_sum=int(totals.scalar_one()),
        ledger_sum=int(ledger.scalar_one()),
        inconsistent_users=[
            Reconciliation(user_id=row.user_id, total_points=row.total_points, ledger_sum=int(row.earned))
            for row in mismatches
        ],
    )
