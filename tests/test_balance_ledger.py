import pytest

from leave_engine.core.exceptions import InsufficientBalance, InvalidBalanceAdjustment, LedgerInvariantError
from leave_engine.models.leave_balance import LeaveBalance, ManualLeaveAdjustment
from leave_engine.schemas.leave import LeaveTypeFields
from leave_engine.services.balance_ledger import BalanceLedger
from leave_engine.services.policy_resolver import PolicyResolver
from tests.conftest import TENANT_ID

USER = 100
YEAR = 2026


def _invariant_holds(balance):
    return (
        balance.used_days >= 0
        and balance.pending_days >= 0
        and balance.total_days + balance.carry_forward_days - balance.used_days - balance.pending_days >= 0
    )


def test_ensure_balance_opens_from_policy(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    balance = ledger.ensure_balance(USER, casual_leave.id, YEAR)
    assert (balance.total_days, balance.used_days, balance.pending_days, balance.carry_forward_days) == (12, 0, 0, 0)
    # Second call returns the same row
    assert ledger.ensure_balance(USER, casual_leave.id, YEAR).id == balance.id


def test_reserve_commit_release_conserve_days(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    balance = ledger.reserve(USER, casual_leave.id, YEAR, 3)
    assert balance.pending_days == 3

    ledger.commit(USER, casual_leave.id, YEAR, 2)
    assert (balance.used_days, balance.pending_days) == (2, 1)

    ledger.release(USER, casual_leave.id, YEAR, 1)
    assert (balance.used_days, balance.pending_days) == (2, 0)
    assert balance.available_days == 10
    assert _invariant_holds(balance)


def test_reserve_beyond_available_fails(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    balance = ledger.reserve(USER, casual_leave.id, YEAR, 10)
    with pytest.raises(InsufficientBalance) as exc:
        ledger.reserve(USER, casual_leave.id, YEAR, 3)
    assert exc.value.available == 2
    assert exc.value.requested == 3
    assert balance.pending_days == 10


@pytest.mark.parametrize("operation", ["commit", "release"])
def test_commit_or_release_without_reservation_is_fatal(db_session, casual_leave, operation):
    ledger = BalanceLedger(db_session, TENANT_ID)
    ledger.reserve(USER, casual_leave.id, YEAR, 1)
    with pytest.raises(LedgerInvariantError):
        getattr(ledger, operation)(USER, casual_leave.id, YEAR, 2)


def test_rollover_caps_carry_forward_by_policy(db_session, catalogue):
    earned = catalogue["Privilege/Earned Leave (PL/EL)"]  # 18 days, carry forward up to 30
    casual = catalogue["Casual Leave (CL)"]  # no carry forward
    ledger = BalanceLedger(db_session, TENANT_ID)
    ledger.reserve(USER, earned.id, YEAR, 5)
    ledger.commit(USER, earned.id, YEAR, 5)
    ledger.ensure_balance(USER, casual.id, YEAR)
    db_session.commit()

    rolled = {b.leave_type_id: b for b in ledger.rollover_year(USER, YEAR)}

    assert rolled[earned.id].year == YEAR + 1
    assert rolled[earned.id].carry_forward_days == 13
    assert rolled[earned.id].total_days == 18
    assert rolled[casual.id].carry_forward_days == 0


def test_rollover_is_idempotent(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    ledger.ensure_balance(USER, casual_leave.id, YEAR)
    db_session.commit()
    ledger.rollover_year(USER, YEAR)
    ledger.rollover_year(USER, YEAR)
    rows = db_session.query(LeaveBalance).filter(LeaveBalance.year == YEAR + 1).all()
    assert len(rows) == 1


def test_rollover_all_reports_each_user(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    for user_id in (1, 2, 3):
        ledger.ensure_balance(user_id, casual_leave.id, YEAR)
    db_session.commit()

    result = ledger.rollover_all(YEAR)
    assert result.processed == [1, 2, 3]
    assert result.failed == []
    assert db_session.query(LeaveBalance).filter(LeaveBalance.year == YEAR + 1).count() == 3


def test_adjust_balance_records_audit_row(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    balance = ledger.adjust_balance(USER, casual_leave.id, YEAR, 15, adjusted_by=300, reason="Long service bonus")
    assert balance.total_days == 15
    adjustment = db_session.query(ManualLeaveAdjustment).one()
    assert (adjustment.before_value, adjustment.after_value, adjustment.adjusted_by) == (12, 15, 300)


def test_adjust_balance_cannot_break_invariant(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    ledger.reserve(USER, casual_leave.id, YEAR, 3)
    db_session.commit()
    with pytest.raises(InvalidBalanceAdjustment):
        ledger.adjust_balance(USER, casual_leave.id, YEAR, 2, adjusted_by=300, reason="Correction")
    with pytest.raises(InvalidBalanceAdjustment):
        ledger.adjust_balance(USER, casual_leave.id, YEAR, 10, adjusted_by=300, reason="  ")
    assert db_session.query(ManualLeaveAdjustment).count() == 0


def test_balance_summary_covers_effective_types(db_session, catalogue):
    balances = BalanceLedger(db_session, TENANT_ID).balance_summary(USER, YEAR)
    assert len(balances) == 16
    assert all(_invariant_holds(b) for b in balances)


def test_tenant_override_keeps_days_held_under_global_type(db_session, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    ledger.reserve(USER, casual_leave.id, YEAR, 10)
    ledger.commit(USER, casual_leave.id, YEAR, 4)
    db_session.commit()

    override = PolicyResolver(db_session, TENANT_ID).update_leave_type(
        casual_leave.id, LeaveTypeFields(description="Edited for this tenant")
    )
    assert override.id != casual_leave.id

    with pytest.raises(InsufficientBalance) as exc:
        ledger.reserve(USER, override.id, YEAR, 3)
    assert exc.value.available == 2

    rows = db_session.query(LeaveBalance).filter(LeaveBalance.user_id == USER).all()
    assert [(b.leave_type_id, b.used_days, b.pending_days) for b in rows] == [(override.id, 4, 6)]

    # The moved reservation still settles against the same row
    balance = ledger.commit(USER, override.id, YEAR, 6)
    assert (balance.used_days, balance.pending_days, balance.available_days) == (10, 0, 2)


def test_rollover_after_override_carries_from_global_balance(db_session, catalogue):
    earned = catalogue["Privilege/Earned Leave (PL/EL)"]
    ledger = BalanceLedger(db_session, TENANT_ID)
    ledger.reserve(USER, earned.id, YEAR, 5)
    ledger.commit(USER, earned.id, YEAR, 5)
    db_session.commit()
    override = PolicyResolver(db_session, TENANT_ID).update_leave_type(
        earned.id, LeaveTypeFields(description="Edited")
    )

    rolled = ledger.rollover_year(USER, YEAR)

    assert [(b.leave_type_id, b.year, b.carry_forward_days) for b in rolled] == [(override.id, YEAR + 1, 13)]
