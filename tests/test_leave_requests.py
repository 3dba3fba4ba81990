from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from leave_engine.core.exceptions import (
    InsufficientBalance,
    InvalidDateRange,
    InvalidLeaveType,
    InvalidStateTransition,
    MaxConsecutiveExceeded,
    NoticePeriodViolation,
    NotEligible,
    NoWorkflowConfigured,
    OverlappingRequest,
    PolicyRuleViolation,
)
from leave_engine.database import lock_key
from leave_engine.models.leave_balance import LeaveBalance
from leave_engine.models.leave_request import LeaveRequest, LeaveStatus
from leave_engine.schemas.leave import (
    BlackoutPeriodRule,
    DocumentationRequiredOverDaysRule,
    HolidayCreate,
    LeaveDocumentIn,
    LeavePolicyFields,
    LeaveRequestCreate,
    LeaveTypeCreate,
    LeaveTypeFields,
    MaxRequestsPerYearRule,
    MinDaysPerRequestRule,
    TenantOverride,
)
from leave_engine.services import leave_request_service
from leave_engine.services.balance_ledger import BalanceLedger
from leave_engine.services.holiday_service import HolidayService
from leave_engine.services.leave_request_service import SUBMISSION_LOCK, LeaveRequestService
from leave_engine.services.policy_resolver import PolicyResolver
from tests.conftest import TENANT_ID, TODAY

TOMORROW = TODAY + timedelta(days=1)


def _request(leave_type, start, days, **extra):
    return LeaveRequestCreate(
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=start + timedelta(days=days - 1),
        **extra,
    )


def _balance(db, user_id, leave_type):
    return (
        db.query(LeaveBalance)
        .filter(LeaveBalance.user_id == user_id, LeaveBalance.leave_type_id == leave_type.id)
        .first()
    )


def _override_casual(db, **fields):
    return PolicyResolver(db, TENANT_ID).upsert_tenant_override(
        "Casual Leave (CL)", TenantOverride(policy=LeavePolicyFields(**fields))
    )


def test_two_days_from_tomorrow_is_accepted(db_session, employee, casual_leave):
    request = LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 2), today=TODAY)

    assert request.status == LeaveStatus.PENDING.value
    assert request.days_requested == 2
    assert request.balance_year == 2026
    assert request.workflow_id is not None
    assert request.current_level.role == "group_admin"
    balance = _balance(db_session, employee.user_id, casual_leave)
    assert (balance.total_days, balance.used_days, balance.pending_days) == (12, 0, 2)


def test_four_consecutive_days_exceeds_cap(db_session, employee, casual_leave):
    with pytest.raises(MaxConsecutiveExceeded) as exc:
        LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 4), today=TODAY)
    assert exc.value.max_allowed == 3
    balance = _balance(db_session, employee.user_id, casual_leave)
    assert balance is None or balance.pending_days == 0
    assert db_session.query(LeaveRequest).count() == 0


def test_insufficient_balance_reports_available(db_session, employee, casual_leave):
    ledger = BalanceLedger(db_session, TENANT_ID)
    ledger.reserve(employee.user_id, casual_leave.id, 2026, 10)
    ledger.commit(employee.user_id, casual_leave.id, 2026, 10)
    db_session.commit()

    with pytest.raises(InsufficientBalance) as exc:
        LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 3), today=TODAY)
    assert (exc.value.available, exc.value.requested) == (2, 3)
    balance = _balance(db_session, employee.user_id, casual_leave)
    assert (balance.used_days, balance.pending_days) == (10, 0)


def test_notice_period_surfaces_earliest_date(db_session, employee, casual_leave):
    _override_casual(db_session, notice_period_days=5)
    with pytest.raises(NoticePeriodViolation) as exc:
        LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 1), today=TODAY)
    assert exc.value.earliest_valid_date == TODAY + timedelta(days=5)


def test_gender_restricted_type(db_session, make_principal, catalogue):
    male = make_principal(101, gender="male")
    maternity = catalogue["Maternity Leave (ML)"]
    with pytest.raises(NotEligible):
        LeaveRequestService(db_session, male).submit(
            _request(maternity, TODAY + timedelta(days=40), 10), today=TODAY
        )


def test_min_service_enforced_when_hire_date_known(db_session, make_principal, casual_leave):
    newcomer = make_principal(102, hired_on=TODAY - timedelta(days=30))
    with pytest.raises(NotEligible) as exc:
        LeaveRequestService(db_session, newcomer).submit(_request(casual_leave, TOMORROW, 1), today=TODAY)
    assert exc.value.details["min_service_days"] == 90


@pytest.mark.parametrize("start,end", [
    (TODAY + timedelta(days=5), TODAY + timedelta(days=4)),
    (TODAY - timedelta(days=1), TODAY + timedelta(days=1)),
])
def test_invalid_date_ranges(db_session, employee, casual_leave, start, end):
    payload = LeaveRequestCreate(leave_type_id=casual_leave.id, start_date=start, end_date=end)
    with pytest.raises(InvalidDateRange):
        LeaveRequestService(db_session, employee).submit(payload, today=TODAY)


def test_inactive_or_unknown_type(db_session, employee, casual_leave):
    service = LeaveRequestService(db_session, employee)
    with pytest.raises(InvalidLeaveType):
        service.submit(LeaveRequestCreate(leave_type_id=424242, start_date=TOMORROW, end_date=TOMORROW), today=TODAY)

    _override_casual(db_session, is_active=False)
    with pytest.raises(InvalidLeaveType):
        service.submit(_request(casual_leave, TOMORROW, 1), today=TODAY)


def test_overlapping_request_rejected(db_session, employee, casual_leave):
    service = LeaveRequestService(db_session, employee)
    first = service.submit(_request(casual_leave, TOMORROW, 2), today=TODAY)
    with pytest.raises(OverlappingRequest) as exc:
        service.submit(_request(casual_leave, TOMORROW + timedelta(days=1), 2), today=TODAY)
    assert exc.value.details["conflicting_request_id"] == first.id
    assert _balance(db_session, employee.user_id, casual_leave).pending_days == 2


def test_cancelled_request_frees_dates(db_session, employee, casual_leave):
    service = LeaveRequestService(db_session, employee)
    first = service.submit(_request(casual_leave, TOMORROW, 2), today=TODAY)
    service.cancel(first.id)
    second = service.submit(_request(casual_leave, TOMORROW, 2), today=TODAY)
    assert second.status == LeaveStatus.PENDING.value
    assert _balance(db_session, employee.user_id, casual_leave).pending_days == 2


def test_missing_workflow_blocks_before_reservation(db_session, employee, catalogue):
    custom = PolicyResolver(db_session, TENANT_ID).create_leave_type(
        LeaveTypeCreate(name="Volunteering", max_days=5)
    )
    with pytest.raises(NoWorkflowConfigured):
        LeaveRequestService(db_session, employee).submit(_request(custom, TOMORROW, 1), today=TODAY)
    assert _balance(db_session, employee.user_id, custom) is None


def test_cancel_releases_reservation(db_session, employee, casual_leave):
    service = LeaveRequestService(db_session, employee)
    request = service.submit(_request(casual_leave, TOMORROW, 2), today=TODAY)
    cancelled = service.cancel(request.id)
    assert cancelled.status == LeaveStatus.CANCELLED.value
    balance = _balance(db_session, employee.user_id, casual_leave)
    assert (balance.used_days, balance.pending_days) == (0, 0)

    with pytest.raises(InvalidStateTransition):
        service.cancel(request.id)


def test_documents_are_attached(db_session, employee, catalogue):
    sick = catalogue["Sick Leave (SL)"]
    request = LeaveRequestService(db_session, employee).submit(
        _request(sick, TODAY, 2, documents=[LeaveDocumentIn(document_ref="doc-1", file_name="note.pdf")]),
        today=TODAY,
    )
    assert request.requires_documentation is True
    assert request.has_documentation is True
    assert [d.document_ref for d in request.documents] == ["doc-1"]


def test_weekends_and_holidays_excluded_when_configured(db_session, employee, casual_leave):
    _override_casual(db_session, exclude_non_working_days=True, max_consecutive_days=10)
    HolidayService(db_session, TENANT_ID).add_holiday(HolidayCreate(name="Founders Day", date=date(2026, 3, 10)))

    # Fri 6th .. Tue 10th: Fri, Mon working; Sat/Sun weekend; Tue holiday
    payload = LeaveRequestCreate(leave_type_id=casual_leave.id, start_date=date(2026, 3, 6), end_date=date(2026, 3, 10))
    request = LeaveRequestService(db_session, employee).submit(payload, today=TODAY)
    assert request.days_requested == 2


def test_weekend_only_range_is_invalid(db_session, employee, casual_leave):
    _override_casual(db_session, exclude_non_working_days=True)
    payload = LeaveRequestCreate(leave_type_id=casual_leave.id, start_date=date(2026, 3, 7), end_date=date(2026, 3, 8))
    with pytest.raises(InvalidDateRange):
        LeaveRequestService(db_session, employee).submit(payload, today=TODAY)


def test_min_days_rule(db_session, employee, casual_leave):
    _override_casual(db_session, rules=[MinDaysPerRequestRule(value=2)])
    with pytest.raises(PolicyRuleViolation) as exc:
        LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 1), today=TODAY)
    assert exc.value.rule_type == "min_days_per_request"


def test_max_requests_per_year_rule(db_session, employee, casual_leave):
    _override_casual(db_session, rules=[MaxRequestsPerYearRule(value=1)])
    service = LeaveRequestService(db_session, employee)
    service.submit(_request(casual_leave, TOMORROW, 1), today=TODAY)
    with pytest.raises(PolicyRuleViolation) as exc:
        service.submit(_request(casual_leave, TOMORROW + timedelta(days=7), 1), today=TODAY)
    assert exc.value.rule_type == "max_requests_per_year"


def test_blackout_period_rule(db_session, employee, casual_leave):
    _override_casual(db_session, rules=[BlackoutPeriodRule(start=date(2026, 3, 9), end=date(2026, 3, 13))])
    with pytest.raises(PolicyRuleViolation) as exc:
        LeaveRequestService(db_session, employee).submit(
            _request(casual_leave, date(2026, 3, 12), 2), today=TODAY
        )
    assert exc.value.details["blackout_start"] == "2026-03-09"


def test_documentation_rule(db_session, employee, casual_leave):
    _override_casual(db_session, rules=[DocumentationRequiredOverDaysRule(value=1)])
    service = LeaveRequestService(db_session, employee)
    with pytest.raises(PolicyRuleViolation):
        service.submit(_request(casual_leave, TOMORROW, 2), today=TODAY)
    accepted = service.submit(
        _request(casual_leave, TOMORROW, 2, documents=[LeaveDocumentIn(document_ref="d", file_name="x.pdf")]),
        today=TODAY,
    )
    assert accepted.status == LeaveStatus.PENDING.value


def test_statistics_by_status_and_type(db_session, employee, casual_leave):
    service = LeaveRequestService(db_session, employee)
    first = service.submit(_request(casual_leave, TOMORROW, 1), today=TODAY)
    service.submit(_request(casual_leave, TOMORROW + timedelta(days=7), 1), today=TODAY)
    service.cancel(first.id)

    stats = service.leave_statistics(2026)
    assert stats["total_requests"] == 2
    assert stats["by_status"] == {"pending": 1, "cancelled": 1}
    assert stats["by_leave_type"] == {"Casual Leave (CL)": 2}


def test_cleared_consecutive_cap_allows_long_requests(db_session, employee, casual_leave):
    override = _override_casual(db_session, max_consecutive_days=None)
    assert override.policy.max_consecutive_days is None

    request = LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 5), today=TODAY)
    assert request.days_requested == 5
    assert request.leave_type_id == override.id


def test_zero_consecutive_cap_blocks_every_request(db_session, employee, casual_leave):
    _override_casual(db_session, max_consecutive_days=0)
    with pytest.raises(MaxConsecutiveExceeded):
        LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 1), today=TODAY)


def test_editing_a_type_does_not_grant_a_fresh_allotment(db_session, employee, casual_leave):
    service = LeaveRequestService(db_session, employee)
    for offset in (1, 8, 15, 22):
        service.submit(_request(casual_leave, TODAY + timedelta(days=offset), 3), today=TODAY)

    PolicyResolver(db_session, TENANT_ID).update_leave_type(casual_leave.id, LeaveTypeFields(description="Edited"))

    with pytest.raises(InsufficientBalance) as exc:
        service.submit(_request(casual_leave, TODAY + timedelta(days=29), 3), today=TODAY)
    assert exc.value.available == 0
    balances = db_session.query(LeaveBalance).filter(LeaveBalance.user_id == employee.user_id).all()
    assert [b.pending_days for b in balances] == [12]


def test_released_days_after_edit_are_reusable_under_override(db_session, employee, casual_leave):
    service = LeaveRequestService(db_session, employee)
    first = service.submit(_request(casual_leave, TOMORROW, 3), today=TODAY)
    override = PolicyResolver(db_session, TENANT_ID).update_leave_type(
        casual_leave.id, LeaveTypeFields(description="Edited")
    )

    second = service.submit(_request(casual_leave, TODAY + timedelta(days=8), 2), today=TODAY)
    service.cancel(first.id)

    assert second.leave_type_id == override.id
    db_session.refresh(first)
    assert first.leave_type_id == override.id
    balances = db_session.query(LeaveBalance).filter(LeaveBalance.user_id == employee.user_id).all()
    assert [(b.leave_type_id, b.pending_days) for b in balances] == [(override.id, 2)]


def test_submission_locks_requester_before_overlap_check(db_session, employee, casual_leave, monkeypatch):
    calls = []
    monkeypatch.setattr(
        leave_request_service, "lock_key", lambda db, namespace, key: calls.append(("lock", namespace, key))
    )
    find_overlap = LeaveRequestService._find_overlap

    def recording_find_overlap(self, start_date, end_date):
        calls.append(("overlap",))
        return find_overlap(self, start_date, end_date)

    monkeypatch.setattr(LeaveRequestService, "_find_overlap", recording_find_overlap)

    LeaveRequestService(db_session, employee).submit(_request(casual_leave, TOMORROW, 2), today=TODAY)

    assert calls == [("lock", SUBMISSION_LOCK, employee.user_id), ("overlap",)]


class _RecordingSession:
    def __init__(self, dialect):
        self.bind = SimpleNamespace(dialect=SimpleNamespace(name=dialect))
        self.statements = []

    def get_bind(self):
        return self.bind

    def execute(self, statement, params=None):
        self.statements.append((str(statement), params))


def test_lock_key_uses_advisory_lock_on_postgresql():
    session = _RecordingSession("postgresql")
    lock_key(session, SUBMISSION_LOCK, 100)
    [(sql, params)] = session.statements
    assert "pg_advisory_xact_lock" in sql
    assert params == {"namespace": SUBMISSION_LOCK, "key": 100}

    sqlite_session = _RecordingSession("sqlite")
    lock_key(sqlite_session, SUBMISSION_LOCK, 100)
    assert sqlite_session.statements == []
