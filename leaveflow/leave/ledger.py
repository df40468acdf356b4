"""Balance ledgers: the only code that reads or writes LeaveBalance and
MonthlyLeaveUsage rows.

Every call re-queries the database; nothing is cached between requests.
Mutations go through ``apply_delta`` on a row obtained from
``get_for_update`` so concurrent transitions on the same balance serialize
on the row lock instead of double-applying a delta.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leaveflow.common.exceptions import (
    InvalidStateException,
    MonthlyLimitExceededException,
)
from leaveflow.leave.models import LeaveBalance, LeaveType, MonthlyLeaveUsage
from leaveflow.leave.schemas import (
    LeaveBalanceOut,
    LeaveSummaryOut,
    LeaveTypeBrief,
    MonthlyUsageOut,
)

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Async balance repository operations."""

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> Sequence[LeaveBalance]:
        """All balance rows for a user and year, with their leave types."""
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.user_id == user_id,
                LeaveBalance.year == year,
            )
            .options(selectinload(LeaveBalance.leave_type))
            .order_by(LeaveBalance.leave_type_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    @staticmethod
    async def get_for_update(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        """One balance row, locked until the end of the transaction."""
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.user_id == user_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_delta(
        db: AsyncSession,
        balance: LeaveBalance,
        *,
        pending: int = 0,
        used: int = 0,
    ) -> LeaveBalance:
        """Shift pending/used counters; remaining follows from the generated column."""
        new_pending = balance.pending_days + pending
        new_used = balance.used_days + used
        if new_pending < 0 or new_used < 0:
            raise InvalidStateException(
                "Balance change would make pending or used days negative."
            )

        balance.pending_days = new_pending
        balance.used_days = new_used
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()

        logger.debug(
            "Balance %s: pending %+d used %+d -> total=%s used=%s pending=%s",
            balance.id, pending, used,
            balance.total_days, balance.used_days, balance.pending_days,
        )
        return balance

    @staticmethod
    async def provision_year(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalance]:
        """Create one row per active leave type; existing rows are left untouched.

        Returns only the rows created by this call.
        """
        types = (
            await db.execute(
                select(LeaveType).where(LeaveType.is_active.is_(True))
            )
        ).scalars().all()

        existing = set(
            (
                await db.execute(
                    select(LeaveBalance.leave_type_id).where(
                        LeaveBalance.user_id == user_id,
                        LeaveBalance.year == year,
                    )
                )
            ).scalars().all()
        )

        created: list[LeaveBalance] = []
        now = datetime.now(timezone.utc)
        for lt in types:
            if lt.id in existing:
                continue
            balance = LeaveBalance(
                user_id=user_id,
                leave_type_id=lt.id,
                leave_type=lt,
                year=year,
                total_days=lt.annual_days,
                used_days=0,
                pending_days=0,
                carried_forward_days=0,
                updated_at=now,
            )
            db.add(balance)
            created.append(balance)

        if created:
            await db.flush()
            logger.info(
                "Provisioned %d balance row(s) for user %s, year %d",
                len(created), user_id, year,
            )
        return created

    @staticmethod
    async def rollover_year(
        db: AsyncSession,
        from_year: int,
    ) -> list[LeaveBalance]:
        """Carry unused days of *from_year* into new rows for the next year.

        Only leave types with ``carry_forward_days > 0`` roll over; the carried
        amount is capped at that value and folded into ``total_days``. Rows
        that already exist for the next year are never modified.
        """
        to_year = from_year + 1
        result = await db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(
                LeaveBalance.year == from_year,
                LeaveType.carry_forward_days > 0,
                LeaveType.is_active.is_(True),
            )
            .options(selectinload(LeaveBalance.leave_type))
        )
        source_rows = result.scalars().all()

        existing = {
            (row.user_id, row.leave_type_id)
            for row in (
                await db.execute(
                    select(LeaveBalance.user_id, LeaveBalance.leave_type_id).where(
                        LeaveBalance.year == to_year,
                    )
                )
            ).all()
        }

        created: list[LeaveBalance] = []
        now = datetime.now(timezone.utc)
        for prev in source_rows:
            if (prev.user_id, prev.leave_type_id) in existing:
                continue
            lt = prev.leave_type
            carried = max(0, min(prev.available_days, lt.carry_forward_days))
            balance = LeaveBalance(
                user_id=prev.user_id,
                leave_type_id=lt.id,
                leave_type=lt,
                year=to_year,
                total_days=lt.annual_days + carried,
                used_days=0,
                pending_days=0,
                carried_forward_days=carried,
                updated_at=now,
            )
            db.add(balance)
            created.append(balance)

        if created:
            await db.flush()
        logger.info(
            "Rolled over %d balance row(s) from %d into %d",
            len(created), from_year, to_year,
        )
        return created

    # ─────────────────────────────────────────────────────────────────
    # Presentation helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def to_out(balance: LeaveBalance) -> LeaveBalanceOut:
        """Build LeaveBalanceOut from ORM; remaining is recomputed by the schema."""
        out = LeaveBalanceOut(
            id=balance.id,
            user_id=balance.user_id,
            leave_type_id=balance.leave_type_id,
            year=balance.year,
            total_days=balance.total_days,
            used_days=balance.used_days,
            pending_days=balance.pending_days,
            carried_forward_days=balance.carried_forward_days,
        )
        if "leave_type" not in inspect(balance).unloaded and balance.leave_type is not None:
            out.leave_type = LeaveTypeBrief.model_validate(balance.leave_type)
        return out

    @staticmethod
    def summarize(year: int, balances: Sequence[LeaveBalance]) -> LeaveSummaryOut:
        """Totals across leave types, as shown on the employee dashboard."""
        rows = [BalanceLedger.to_out(b) for b in balances]
        return LeaveSummaryOut(
            year=year,
            total_days=sum(r.total_days for r in rows),
            used_days=sum(r.used_days for r in rows),
            pending_days=sum(r.pending_days for r in rows),
            remaining_days=sum(r.remaining_days for r in rows),
            balances=rows,
        )


def split_by_month(start: date, end: date) -> dict[tuple[int, int], int]:
    """Count the days of ``start..end`` (inclusive) per ``(year, month)``."""
    days: dict[tuple[int, int], int] = {}
    current = start
    while current <= end:
        key = (current.year, current.month)
        days[key] = days.get(key, 0) + 1
        current += timedelta(days=1)
    return days


class MonthlyUsageLedger:
    """Per-month usage counters for leave types with a monthly cap.

    Usage is keyed by the month the leave days fall in. Days are held when a
    request is submitted and given back when it is rejected or cancelled.
    """

    @staticmethod
    async def get_for_update(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        month: int,
    ) -> Optional[MonthlyLeaveUsage]:
        result = await db.execute(
            select(MonthlyLeaveUsage)
            .where(
                MonthlyLeaveUsage.user_id == user_id,
                MonthlyLeaveUsage.leave_type_id == leave_type_id,
                MonthlyLeaveUsage.year == year,
                MonthlyLeaveUsage.month == month,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def reserve(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type: LeaveType,
        start: date,
        end: date,
        *,
        emergency: bool = False,
    ) -> list[MonthlyLeaveUsage]:
        """Check every touched month against the cap, then record the days.

        Nothing is written unless all months fit. Emergency requests skip the
        cap but are still counted.
        """
        limit = leave_type.monthly_limit_days
        if limit is None:
            return []

        chunks = split_by_month(start, end)
        rows: dict[tuple[int, int], Optional[MonthlyLeaveUsage]] = {}
        for (year, month), days in chunks.items():
            row = await MonthlyUsageLedger.get_for_update(
                db, user_id, leave_type.id, year, month,
            )
            used = row.used_days if row is not None else 0
            if not emergency and used + days > limit:
                logger.warning(
                    "Monthly limit hit for user %s: %s %d-%02d used=%d limit=%d requested=%d",
                    user_id, leave_type.category.value, year, month, used, limit, days,
                )
                raise MonthlyLimitExceededException(
                    leave_type.name, year, month, used, limit, days,
                )
            rows[(year, month)] = row

        now = datetime.now(timezone.utc)
        touched: list[MonthlyLeaveUsage] = []
        for (year, month), days in chunks.items():
            row = rows[(year, month)]
            if row is None:
                row = MonthlyLeaveUsage(
                    user_id=user_id,
                    leave_type_id=leave_type.id,
                    year=year,
                    month=month,
                    used_days=0,
                )
                db.add(row)
            row.used_days += days
            row.max_allowed = limit
            row.updated_at = now
            touched.append(row)

        await db.flush()
        return touched

    @staticmethod
    async def release(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        start: date,
        end: date,
    ) -> None:
        """Give back the days of a rejected or cancelled request."""
        now = datetime.now(timezone.utc)
        changed = False
        for (year, month), days in split_by_month(start, end).items():
            row = await MonthlyUsageLedger.get_for_update(
                db, user_id, leave_type_id, year, month,
            )
            if row is None:
                continue
            row.used_days = max(0, row.used_days - days)
            row.updated_at = now
            changed = True
        if changed:
            await db.flush()

    @staticmethod
    async def usage_for(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        month: int,
    ) -> list[MonthlyUsageOut]:
        """Usage of every active capped leave type; missing rows read as zero."""
        types = (
            await db.execute(
                select(LeaveType)
                .where(
                    LeaveType.is_active.is_(True),
                    LeaveType.monthly_limit_days.is_not(None),
                )
                .order_by(LeaveType.name)
            )
        ).scalars().all()

        used = {
            lt_id: days
            for lt_id, days in (
                await db.execute(
                    select(MonthlyLeaveUsage.leave_type_id, MonthlyLeaveUsage.used_days)
                    .where(
                        MonthlyLeaveUsage.user_id == user_id,
                        MonthlyLeaveUsage.year == year,
                        MonthlyLeaveUsage.month == month,
                    )
                )
            ).all()
        }

        return [
            MonthlyUsageOut(
                leave_type_id=lt.id,
                leave_type=LeaveTypeBrief.model_validate(lt),
                year=year,
                month=month,
                used_days=used.get(lt.id, 0),
                max_allowed=lt.monthly_limit_days,
            )
            for lt in types
        ]
