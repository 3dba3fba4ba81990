"""
Typed evaluation of stored policy rules.

Rows in leave_policy_rules hold a rule_type tag and a JSON value; they are
parsed back into the PolicyRuleSpec union before evaluation so each known kind
is checked by its own function. `custom` rules are kept for reference only.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import List

from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from leave_engine.core.exceptions import PolicyRuleViolation
from leave_engine.models.leave_request import LeaveRequest, LeaveStatus
from leave_engine.models.leave_type import LeavePolicy, LeavePolicyRule, RuleKind
from leave_engine.schemas.leave import (
    BlackoutPeriodRule,
    CustomRule,
    DocumentationRequiredOverDaysRule,
    MaxRequestsPerYearRule,
    MinDaysPerRequestRule,
    PolicyRuleSpec,
)

logger = logging.getLogger(__name__)

_rule_adapter = TypeAdapter(PolicyRuleSpec)
_KNOWN_KINDS = {kind.value for kind in RuleKind}


@dataclass
class RuleContext:
    db: Session
    user_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    days_requested: int
    document_count: int


def parse_rule(row: LeavePolicyRule):
    if row.rule_type not in _KNOWN_KINDS:
        logger.debug(f"Treating unknown rule type '{row.rule_type}' as custom")
        return CustomRule(name=row.rule_type, value=row.rule_value)
    return _rule_adapter.validate_python({**(row.rule_value or {}), "rule_type": row.rule_type})


def _check_min_days(rule: MinDaysPerRequestRule, ctx: RuleContext) -> None:
    if ctx.days_requested < rule.value:
        raise PolicyRuleViolation(
            rule.rule_type,
            f"Requests for this leave type must be at least {rule.value} days",
            {"min_days": rule.value, "requested_days": ctx.days_requested},
        )


def _check_max_requests(rule: MaxRequestsPerYearRule, ctx: RuleContext) -> None:
    year = ctx.start_date.year
    taken = (
        ctx.db.query(LeaveRequest)
        .filter(
            LeaveRequest.user_id == ctx.user_id,
            LeaveRequest.leave_type_id == ctx.leave_type_id,
            LeaveRequest.balance_year == year,
            LeaveRequest.status.notin_([LeaveStatus.CANCELLED.value, LeaveStatus.REJECTED.value]),
        )
        .count()
    )
    if taken >= rule.value:
        raise PolicyRuleViolation(
            rule.rule_type,
            f"No more than {rule.value} requests of this leave type are allowed per year",
            {"max_requests": rule.value, "existing_requests": taken, "year": year},
        )


def _check_blackout(rule: BlackoutPeriodRule, ctx: RuleContext) -> None:
    if ctx.start_date <= rule.end and ctx.end_date >= rule.start:
        raise PolicyRuleViolation(
            rule.rule_type,
            f"Leave cannot be taken between {rule.start.isoformat()} and {rule.end.isoformat()}",
            {"blackout_start": rule.start.isoformat(), "blackout_end": rule.end.isoformat(), "label": rule.label},
        )


def _check_documentation(rule: DocumentationRequiredOverDaysRule, ctx: RuleContext) -> None:
    if ctx.days_requested > rule.value and ctx.document_count == 0:
        raise PolicyRuleViolation(
            rule.rule_type,
            f"Supporting documents are required for requests over {rule.value} days",
            {"threshold_days": rule.value, "requested_days": ctx.days_requested},
        )


def _ignore(rule: CustomRule, ctx: RuleContext) -> None:
    return None


_CHECKS = {
    MinDaysPerRequestRule: _check_min_days,
    MaxRequestsPerYearRule: _check_max_requests,
    BlackoutPeriodRule: _check_blackout,
    DocumentationRequiredOverDaysRule: _check_documentation,
    CustomRule: _ignore,
}


def evaluate_rules(policy: LeavePolicy, ctx: RuleContext) -> List:
    """Raise PolicyRuleViolation on the first failing rule; return the parsed rules otherwise."""
    parsed = [parse_rule(row) for row in policy.rules]
    for rule in parsed:
        _CHECKS[type(rule)](rule, ctx)
    return parsed
