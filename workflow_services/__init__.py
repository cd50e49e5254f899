"""Orchestration layer: the WorkflowEngine facade."""

from workflow_services.workflow_engine import (
    WorkflowEngine,
    checklists_from_policy,
    import_rules_from_policy,
)

__all__ = ["WorkflowEngine", "checklists_from_policy", "import_rules_from_policy"]
