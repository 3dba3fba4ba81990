"""
Balance Ledger

Per (user, leave type, year) accounting of allotted, carried-forward, used and
pending days. Rows are created lazily from the resolved policy and are only
mutated through reserve / commit / release / adjust_balance.

reserve, commit and release never commit the session: they run inside the
unit of work of the request operation that triggered them, so a ledger change
is never visible without its status change.
"""
from typing import List, Optional

from sqlalchemy import distinct

from leave_engine.core.exceptions import (
    InsufficientBalance,
    InvalidBalanceAdjustment,
    LedgerInvariantError,
    PolicyNotFound,
)
from leave_engine.database import unit_of_work
from leave_engine.models.leave_balance import LeaveBalance, ManualLeaveAdjustment
from leave_engine.models.leave_request import LeaveRequest
from leave_engine.models.leave_type import LeavePolicy
from leave_engine.schemas.leave import RolloverResult
from leave_engine.services.base import BaseService
from leave_engine.services.policy_resolver import PolicyResolver


class BalanceLedger(BaseService):

    def _locked_balance(self, user_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.user_id == user_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year,
            )
            .with_for_update()
            .first()
        )

    def ensure_balance(self, user_id: int, leave_type_id: int, year: int) -> LeaveBalance:
        """
        Return the balance row, creating it from the policy when absent.
        Carry-forward is the prior year's leftover capped by the policy.
        """
        balance = self._locked_balance(user_id, leave_type_id, year)
        if balance is not None:
            return balance

        shadowed_id = PolicyResolver(self.db, self.tenant_id).shadowed_type_id(leave_type_id)
        if shadowed_id is not None:
            adopted = self._adopt_shadowed_balance(user_id, leave_type_id, shadowed_id, year)
            if adopted is not None:
                return adopted

        policy = self.db.query(LeavePolicy).filter(LeavePolicy.leave_type_id == leave_type_id).first()
        if policy is None:
            raise PolicyNotFound(
                message="Cannot open a balance for a leave type without a policy",
                details={"leave_type_id": leave_type_id},
            )

        carry_forward = 0
        prior = self._locked_balance(user_id, leave_type_id, year - 1)
        if prior is None and shadowed_id is not None:
            prior = self._locked_balance(user_id, shadowed_id, year - 1)
        if prior is not None:
            carry_forward = min(max(prior.available_days, 0), policy.carry_forward_days)

        balance = LeaveBalance(
            user_id=user_id,
            leave_type_id=leave_type_id,
            year=year,
            total_days=policy.default_days,
            used_days=0,
            pending_days=0,
            carry_forward_days=carry_forward,
        )
        self.db.add(balance)
        self.db.flush()
        self._logger.info(
            "Opened leave balance",
            extra={
                "user_id": user_id, "leave_type_id": leave_type_id, "year": year,
                "total_days": balance.total_days, "carry_forward_days": carry_forward,
            },
        )
        return balance

    def _adopt_shadowed_balance(
        self, user_id: int, leave_type_id: int, shadowed_id: int, year: int
    ) -> Optional[LeaveBalance]:
        """
        Move the user's balance for the global type onto the tenant override
        that replaced it, together with the requests settling against it, so
        days already used or reserved keep counting.
        """
        balance = self._locked_balance(user_id, shadowed_id, year)
        if balance is None:
            return None
        balance.leave_type_id = leave_type_id
        (
            self.db.query(LeaveRequest)
            .filter(
                LeaveRequest.tenant_id == self.tenant_id,
                LeaveRequest.user_id == user_id,
                LeaveRequest.leave_type_id == shadowed_id,
                LeaveRequest.balance_year == year,
            )
            .update({LeaveRequest.leave_type_id: leave_type_id}, synchronize_session="fetch")
        )
        self.db.flush()
        self.db.expire(balance, ["leave_type"])
        self._logger.info(
            "Moved leave balance onto tenant override",
            extra={"user_id": user_id, "year": year, "from_leave_type_id": shadowed_id,
                   "leave_type_id": leave_type_id},
        )
        return balance

    def reserve(self, user_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        balance = self.ensure_balance(user_id, leave_type_id, year)
        available = balance.available_days
        if available < days:
            raise InsufficientBalance(available=available, requested=days)
        balance.pending_days += days
        self._log_mutation("reserve", balance, days)
        return balance

    def commit(self, user_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        """Move reserved days to used."""
        balance = self._reserved_balance(user_id, leave_type_id, year, days, "commit")
        balance.pending_days -= days
        balance.used_days += days
        self._log_mutation("commit", balance, days)
        return balance

    def release(self, user_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        """Drop a reservation without using it."""
        balance = self._reserved_balance(user_id, leave_type_id, year, days, "release")
        balance.pending_days -= days
        self._log_mutation("release", balance, days)
        return balance

    def _reserved_balance(self, user_id, leave_type_id, year, days, operation) -> LeaveBalance:
        balance = self._locked_balance(user_id, leave_type_id, year)
        if balance is None or balance.pending_days < days:
            pending = balance.pending_days if balance is not None else None
            self._logger.error(
                f"Ledger invariant violated on {operation}",
                extra={
                    "user_id": user_id, "leave_type_id": leave_type_id, "year": year,
                    "days": days, "pending_days": pending,
                },
            )
            raise LedgerInvariantError(
                f"{operation} of {days} days exceeds pending days ({pending}) "
                f"for user {user_id}, leave type {leave_type_id}, year {year}"
            )
        return balance

    def _log_mutation(self, operation: str, balance: LeaveBalance, days: int) -> None:
        self.db.flush()
        self._logger.info(
            f"Ledger {operation}",
            extra={
                "user_id": balance.user_id, "leave_type_id": balance.leave_type_id, "year": balance.year,
                "days": days, "used_days": balance.used_days, "pending_days": balance.pending_days,
            },
        )

    # --- Year end ---

    def rollover_year(self, user_id: int, year: int) -> List[LeaveBalance]:
        """Open year+1 balances for every leave type the user holds in `year`. Safe to re-run."""
        resolver = PolicyResolver(self.db, self.tenant_id)
        with unit_of_work(self.db):
            leave_type_ids = []
            for (held_type_id,) in (
                self.db.query(LeaveBalance.leave_type_id)
                .filter(LeaveBalance.user_id == user_id, LeaveBalance.year == year)
                .order_by(LeaveBalance.leave_type_id)
                .all()
            ):
                # Next year opens under the override when the tenant has replaced the type
                effective_id = resolver.effective_type_id(held_type_id)
                if effective_id not in leave_type_ids:
                    leave_type_ids.append(effective_id)
            rolled = [self.ensure_balance(user_id, leave_type_id, year + 1) for leave_type_id in leave_type_ids]
        return rolled

    def rollover_all(self, year: int) -> RolloverResult:
        """Roll every user over, one transaction each; one user's failure does not stop the batch."""
        user_ids = [
            user_id
            for (user_id,) in self.db.query(distinct(LeaveBalance.user_id))
            .filter(LeaveBalance.year == year)
            .order_by(LeaveBalance.user_id)
            .all()
        ]
        result = RolloverResult(year=year)
        for user_id in user_ids:
            try:
                self.rollover_year(user_id, year)
                result.processed.append(user_id)
            except Exception:
                self._logger.exception("Rollover failed", extra={"user_id": user_id, "year": year})
                result.failed.append(user_id)

        self._logger.info(
            f"Rollover of {year} finished",
            extra={"processed": len(result.processed), "failed": len(result.failed)},
        )
        return result

    # --- Administration ---

    def adjust_balance(
        self,
        user_id: int,
        leave_type_id: int,
        year: int,
        total_days: int,
        adjusted_by: int,
        reason: str,
    ) -> LeaveBalance:
        """Set total_days by hand, keeping an audit row of the change."""
        if not reason or not reason.strip():
            raise InvalidBalanceAdjustment("A reason is required for manual adjustments")
        if total_days < 0:
            raise InvalidBalanceAdjustment("total_days cannot be negative", details={"total_days": total_days})

        with unit_of_work(self.db):
            balance = self.ensure_balance(user_id, leave_type_id, year)
            committed = balance.used_days + balance.pending_days
            if total_days + balance.carry_forward_days < committed:
                raise InvalidBalanceAdjustment(
                    "New total is below days already used or reserved",
                    details={
                        "total_days": total_days,
                        "carry_forward_days": balance.carry_forward_days,
                        "used_days": balance.used_days,
                        "pending_days": balance.pending_days,
                    },
                )
            before = balance.total_days
            balance.total_days = total_days
            self.db.add(ManualLeaveAdjustment(
                user_id=user_id,
                leave_type_id=leave_type_id,
                year=year,
                adjusted_by=adjusted_by,
                before_value=before,
                after_value=total_days,
                reason=reason.strip(),
            ))
            self._logger.info(
                "Manual balance adjustment",
                extra={"user_id": user_id, "leave_type_id": leave_type_id, "year": year,
                       "before": before, "after": total_days, "adjusted_by": adjusted_by},
            )
        self.db.refresh(balance)
        return balance

    def balance_summary(self, user_id: int, year: int) -> List[LeaveBalance]:
        """One balance per active effective leave type of the tenant, opened on demand."""
        resolver = PolicyResolver(self.db, self.tenant_id)
        with unit_of_work(self.db):
            balances = [
                self.ensure_balance(user_id, leave_type.id, year)
                for leave_type in resolver.resolve_leave_types(active_only=True)
                if leave_type.policy is not None
            ]
        return balances
