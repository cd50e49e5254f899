"""
Policy validation (``workflow_config.validator``).

Structural checks on a parsed ``WorkflowPolicy``.  Every problem is
collected; nothing short-circuits.
"""

from __future__ import annotations

from dataclasses import dataclass

from workflow_config.schema import CLOSURE_TYPES, WorkflowPolicy


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_policy(policy: WorkflowPolicy) -> ValidationResult:
    errors: list[str] = []

    if policy.consent.auto_consent_window_days <= 0:
        errors.append("consent.auto_consent_window_days must be positive")
    if policy.consent.validity_days <= 0:
        errors.append("consent.validity_days must be positive")
    if policy.screening.sla_days <= 0:
        errors.append("screening.sla_days must be positive")

    rules = policy.import_rules
    if rules.grade_min > rules.grade_max:
        errors.append(
            f"import.grade_range min {rules.grade_min} is above max {rules.grade_max}"
        )
    if not rules.duplicate_key_fields:
        errors.append("import.duplicate_key_fields must not be empty")

    checklists = dict(policy.case.checklists)
    for closure_type in CLOSURE_TYPES:
        if not checklists.get(closure_type):
            errors.append(f"case.checklists.{closure_type} must list at least one item")
    for closure_type in sorted(set(checklists) - set(CLOSURE_TYPES)):
        errors.append(f"case.checklists.{closure_type} is not a known closure type")

    return ValidationResult(errors=tuple(errors))
