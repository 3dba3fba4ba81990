from typing import List, Optional

from leave_engine.core.exceptions import WorkflowNotFound
from leave_engine.database import unit_of_work
from leave_engine.models.approval_workflow import ApprovalLevel, ApprovalWorkflow
from leave_engine.schemas.leave import WorkflowCreate
from leave_engine.services.base import BaseService
from leave_engine.services.policy_resolver import PolicyResolver


class WorkflowService(BaseService):
    """Approval routing configuration for one tenant."""

    def create_workflow(self, payload: WorkflowCreate) -> ApprovalWorkflow:
        leave_type = PolicyResolver(self.db, self.tenant_id).resolve_leave_type(payload.leave_type_id)
        with unit_of_work(self.db):
            workflow = ApprovalWorkflow(
                tenant_id=self.tenant_id,
                leave_type_id=leave_type.id,
                min_days=payload.min_days,
                max_days=payload.max_days,
                requires_all_levels=payload.requires_all_levels,
                is_active=True,
            )
            workflow.levels = [
                ApprovalLevel(level_order=order, level_name=level.level_name, role=level.role.value)
                for order, level in enumerate(payload.levels, start=1)
            ]
            self.db.add(workflow)
        self.db.refresh(workflow)
        self._logger.info(
            f"Created approval workflow for '{leave_type.name}'",
            extra={"tenant_id": self.tenant_id, "workflow_id": workflow.id,
                   "min_days": workflow.min_days, "max_days": workflow.max_days},
        )
        return workflow

    def list_workflows(self, leave_type_id: Optional[int] = None) -> List[ApprovalWorkflow]:
        query = self.db.query(ApprovalWorkflow).filter(ApprovalWorkflow.tenant_id == self.tenant_id)
        if leave_type_id is not None:
            leave_type = PolicyResolver(self.db, self.tenant_id).resolve_leave_type(leave_type_id)
            query = query.filter(ApprovalWorkflow.leave_type_id == leave_type.id)
        return query.order_by(ApprovalWorkflow.leave_type_id, ApprovalWorkflow.min_days).all()

    def deactivate_workflow(self, workflow_id: int) -> ApprovalWorkflow:
        workflow = (
            self.db.query(ApprovalWorkflow)
            .filter(ApprovalWorkflow.id == workflow_id, ApprovalWorkflow.tenant_id == self.tenant_id)
            .first()
        )
        if workflow is None:
            raise WorkflowNotFound(workflow_id)
        with unit_of_work(self.db):
            workflow.is_active = False
        self.db.refresh(workflow)
        return workflow

    def resolve_workflow(self, leave_type_id: int, days: int) -> Optional[ApprovalWorkflow]:
        """Active workflow whose day range covers `days`; the narrowest (greatest min_days) wins."""
        candidates = (
            self.db.query(ApprovalWorkflow)
            .filter(
                ApprovalWorkflow.tenant_id == self.tenant_id,
                ApprovalWorkflow.leave_type_id == leave_type_id,
                ApprovalWorkflow.is_active.is_(True),
            )
            .order_by(ApprovalWorkflow.min_days.desc(), ApprovalWorkflow.id)
            .all()
        )
        for workflow in candidates:
            if workflow.covers(days) and workflow.levels:
                return workflow
        return None
