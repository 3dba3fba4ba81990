"""
Policy Resolver

Produces the effective leave-type/policy set for a tenant. Global rows
(tenant_id IS NULL) are shared defaults; a tenant row with the same name
shadows the global one for that tenant.

Tenant edits never touch global rows: the first edit materializes a tenant
copy (copy-on-write) and every later edit updates that copy in place.
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_

from leave_engine.core.exceptions import DuplicateLeaveType, InvalidMaxDays, PolicyNotFound
from leave_engine.database import unit_of_work
from leave_engine.models.approval_workflow import ApprovalWorkflow
from leave_engine.models.leave_type import LeavePolicy, LeavePolicyRule, LeaveType
from leave_engine.schemas.leave import (
    LeavePolicyFields,
    LeaveTypeCreate,
    LeaveTypeFields,
    TenantOverride,
)
from leave_engine.services.base import BaseService

_TYPE_COPY_FIELDS = ("description", "requires_documentation", "max_days", "is_paid", "is_active")
_POLICY_COPY_FIELDS = (
    "default_days", "carry_forward_days", "min_service_days", "requires_approval",
    "notice_period_days", "max_consecutive_days", "gender_specific",
    "exclude_non_working_days", "is_active",
)
# Fields where an explicit null is meaningful: no restriction, no cap
_CLEARABLE_POLICY_FIELDS = ("gender_specific", "max_consecutive_days")


class PolicyResolver(BaseService):

    # --- Reads ---

    def _visible_types(self) -> List[LeaveType]:
        return (
            self.db.query(LeaveType)
            .filter(or_(LeaveType.tenant_id.is_(None), LeaveType.tenant_id == self.tenant_id))
            .order_by(LeaveType.name, LeaveType.id)
            .all()
        )

    def resolve_leave_types(self, active_only: bool = False) -> List[LeaveType]:
        """Effective leave types for the tenant, tenant overrides replacing their global counterpart."""
        rows = self._visible_types()
        overridden = {row.name for row in rows if row.tenant_id is not None}
        effective = [row for row in rows if not (row.tenant_id is None and row.name in overridden)]
        if active_only:
            effective = [row for row in effective if row.is_active]
        return effective

    def _tenant_type_by_name(self, name: str) -> Optional[LeaveType]:
        return (
            self.db.query(LeaveType)
            .filter(LeaveType.tenant_id == self.tenant_id, LeaveType.name == name)
            .first()
        )

    def _global_type_by_name(self, name: str) -> Optional[LeaveType]:
        return (
            self.db.query(LeaveType)
            .filter(LeaveType.tenant_id.is_(None), LeaveType.name == name)
            .first()
        )

    def resolve_leave_type(self, leave_type_id: int) -> LeaveType:
        """
        Map a leave type id to the tenant's effective type.
        The id of a global type the tenant has overridden resolves to the override.
        """
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None or leave_type.tenant_id not in (None, self.tenant_id):
            raise PolicyNotFound(details={"leave_type_id": leave_type_id})
        if leave_type.tenant_id is None:
            override = self._tenant_type_by_name(leave_type.name)
            if override is not None:
                return override
        return leave_type

    def shadowed_type_id(self, leave_type_id: int) -> Optional[int]:
        """Id of the global type a tenant row replaces, or None."""
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None or leave_type.tenant_id is None:
            return None
        shadowed = self._global_type_by_name(leave_type.name)
        return shadowed.id if shadowed is not None else None

    def effective_type_id(self, leave_type_id: int) -> int:
        """The tenant override's id for an overridden global type, otherwise the id itself."""
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is not None and leave_type.tenant_id is None:
            override = self._tenant_type_by_name(leave_type.name)
            if override is not None:
                return override.id
        return leave_type_id

    def resolve_leave_type_by_name(self, name: str) -> LeaveType:
        leave_type = self._tenant_type_by_name(name) or self._global_type_by_name(name)
        if leave_type is None:
            raise PolicyNotFound(details={"name": name})
        return leave_type

    def resolve_leave_policy(self, leave_type_id: int) -> LeavePolicy:
        """The policy attached to the effective type for this id."""
        leave_type = self.resolve_leave_type(leave_type_id)
        if leave_type.policy is None:
            raise PolicyNotFound(
                message=f"No policy configured for {leave_type.name}",
                details={"leave_type_id": leave_type.id},
            )
        return leave_type.policy

    def list_effective_policies(self, show_all: bool = False) -> List[Dict[str, Any]]:
        """
        Administrative listing. Without show_all the shadowed global rows are
        hidden; with it they are included so admins can compare.
        """
        rows = self._visible_types()
        tenant_names = {row.name for row in rows if row.tenant_id is not None}
        global_names = {row.name for row in rows if row.tenant_id is None}

        entries = []
        for row in rows:
            if row.is_global:
                has_override = row.name in tenant_names
                if has_override and not show_all:
                    continue
            else:
                has_override = row.name in global_names
            entries.append({
                "leave_type": row,
                "is_global": row.is_global,
                "has_tenant_override": has_override,
            })
        return entries

    # --- Copy-on-write writes ---

    def materialize_tenant_override(self, leave_type_name: str) -> Tuple[LeaveType, bool]:
        """
        Return the tenant's own row for this name, cloning the global type,
        policy and rules on first use. The second element is True when a copy
        was created. Does not commit.
        """
        existing = self._tenant_type_by_name(leave_type_name)
        if existing is not None:
            return existing, False

        source = self._global_type_by_name(leave_type_name)
        if source is None:
            raise PolicyNotFound(details={"name": leave_type_name})

        clone = LeaveType(tenant_id=self.tenant_id, name=source.name)
        for field in _TYPE_COPY_FIELDS:
            setattr(clone, field, getattr(source, field))

        if source.policy is not None:
            policy = LeavePolicy()
            for field in _POLICY_COPY_FIELDS:
                setattr(policy, field, getattr(source.policy, field))
            policy.rules = [
                LeavePolicyRule(rule_type=rule.rule_type, rule_value=rule.rule_value)
                for rule in source.policy.rules
            ]
            clone.policy = policy

        self.db.add(clone)
        self.db.flush()
        self._repoint_workflows(source.id, clone.id)

        self._logger.info(
            f"Materialized tenant override of '{source.name}'",
            extra={"tenant_id": self.tenant_id, "global_type_id": source.id, "tenant_type_id": clone.id},
        )
        return clone, True

    def _repoint_workflows(self, global_type_id: int, tenant_type_id: int) -> None:
        workflows = (
            self.db.query(ApprovalWorkflow)
            .filter(
                ApprovalWorkflow.tenant_id == self.tenant_id,
                ApprovalWorkflow.leave_type_id == global_type_id,
            )
            .all()
        )
        for workflow in workflows:
            workflow.leave_type_id = tenant_type_id

    @staticmethod
    def _check_max_days(type_updates: Dict[str, Any]) -> None:
        max_days = type_updates.get("max_days")
        if max_days is not None and max_days < 0:
            raise InvalidMaxDays(max_days)

    def _apply(self, leave_type: LeaveType, fields: TenantOverride) -> None:
        type_updates = fields.leave_type.model_dump(exclude_unset=True)
        policy_updates = fields.policy.model_dump(mode="json", exclude_unset=True, exclude={"rules"})

        for field, value in type_updates.items():
            if value is not None:
                setattr(leave_type, field, value)

        policy = leave_type.policy
        if policy is None:
            policy = LeavePolicy(default_days=leave_type.max_days)
            leave_type.policy = policy
        for field, value in policy_updates.items():
            if value is not None or field in _CLEARABLE_POLICY_FIELDS:
                setattr(policy, field, value)

        if fields.policy.rules is not None:
            policy.rules = _build_rules(fields.policy)

        _clamp_default_days(leave_type, policy)

    def upsert_tenant_override(self, leave_type_name: str, fields: TenantOverride) -> LeaveType:
        """Create or update the tenant's copy of a leave type. Idempotent for identical input."""
        self._check_max_days(fields.leave_type.model_dump(exclude_unset=True))
        with unit_of_work(self.db):
            leave_type, _ = self.materialize_tenant_override(leave_type_name)
            self._apply(leave_type, fields)
        self.db.refresh(leave_type)
        return leave_type

    def update_leave_type(self, leave_type_id: int, fields: LeaveTypeFields) -> LeaveType:
        name = self.resolve_leave_type(leave_type_id).name
        return self.upsert_tenant_override(name, TenantOverride(leave_type=fields))

    def update_leave_policy(self, leave_type_id: int, fields: LeavePolicyFields) -> LeaveType:
        name = self.resolve_leave_type(leave_type_id).name
        return self.upsert_tenant_override(name, TenantOverride(policy=fields))

    def create_leave_type(self, payload: LeaveTypeCreate) -> LeaveType:
        """Create a tenant-only leave type with its policy."""
        self._check_max_days({"max_days": payload.max_days})
        if self._tenant_type_by_name(payload.name) is not None:
            raise DuplicateLeaveType(payload.name)

        with unit_of_work(self.db):
            leave_type = LeaveType(
                tenant_id=self.tenant_id,
                name=payload.name,
                description=payload.description,
                requires_documentation=payload.requires_documentation,
                max_days=payload.max_days,
                is_paid=payload.is_paid,
                is_active=payload.is_active,
            )
            policy_values = payload.policy.model_dump(mode="json", exclude={"rules"}, exclude_none=True)
            policy_values.setdefault("default_days", payload.max_days)
            policy = LeavePolicy(**policy_values)
            policy.rules = _build_rules(payload.policy)
            leave_type.policy = policy
            _clamp_default_days(leave_type, policy)
            self.db.add(leave_type)
            self.db.flush()

            shadowed = self._global_type_by_name(payload.name)
            if shadowed is not None:
                self._repoint_workflows(shadowed.id, leave_type.id)

        self._logger.info(
            f"Created leave type '{leave_type.name}'",
            extra={"tenant_id": self.tenant_id, "leave_type_id": leave_type.id},
        )
        self.db.refresh(leave_type)
        return leave_type


def _build_rules(fields: LeavePolicyFields) -> List[LeavePolicyRule]:
    return [
        LeavePolicyRule(
            rule_type=rule.rule_type,
            rule_value=rule.model_dump(mode="json", exclude={"rule_type"}),
        )
        for rule in (fields.rules or [])
    ]


def _clamp_default_days(leave_type: LeaveType, policy: LeavePolicy) -> None:
    # default_days may never exceed max_days, nor go below zero
    ceiling = max(leave_type.max_days or 0, 0)
    if policy.default_days is None:
        policy.default_days = ceiling
    elif policy.default_days > ceiling:
        policy.default_days = ceiling
