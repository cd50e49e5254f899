"""
Workflow policy schema.

Frozen dataclasses for the human-authored YAML policy.  The loader parses
YAML into these types; ``workflow_config.get_active_policy()`` validates and
returns them.  Nothing here imports the kernel: closure types are plain
strings and the engine maps them onto kernel enums.
"""

from __future__ import annotations

from dataclasses import dataclass, field

CLOSURE_TYPES = ("success", "transfer", "discontinue")


@dataclass(frozen=True)
class ConsentPolicy:
    auto_consent_window_days: int = 7
    validity_days: int = 365


@dataclass(frozen=True)
class ScreeningPolicy:
    sla_days: int = 30


@dataclass(frozen=True)
class ImportPolicy:
    """Row validation rules for bulk student import."""

    required_fields: tuple[str, ...] = ("name", "grade", "guardian")
    grade_min: int = 0
    grade_max: int = 5
    grade_aliases: tuple[tuple[str, int], ...] = (("k", 0),)  # case-folded
    duplicate_key_fields: tuple[str, ...] = ("name", "grade")


@dataclass(frozen=True)
class CasePolicy:
    """Checklist items required per closure type, in display order."""

    checklists: tuple[tuple[str, tuple[str, ...]], ...] = ()

    def checklist_for(self, closure_type: str) -> tuple[str, ...]:
        return dict(self.checklists)[closure_type]


@dataclass(frozen=True)
class WorkflowPolicy:
    """The complete runtime policy.  ``checksum`` identifies its source."""

    config_id: str
    version: int
    consent: ConsentPolicy = field(default_factory=ConsentPolicy)
    screening: ScreeningPolicy = field(default_factory=ScreeningPolicy)
    import_rules: ImportPolicy = field(default_factory=ImportPolicy)
    case: CasePolicy = field(default_factory=CasePolicy)
    checksum: str = ""
