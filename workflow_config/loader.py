"""
Policy loader (``workflow_config.loader``).

Responsibility
--------------
Loads the YAML policy file and parses it into typed
``workflow_config.schema`` dataclass instances.  Runtime callers go through
``workflow_config.get_active_policy()``, never through this module.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Keys absent from the YAML fall back to the schema defaults; keys present
  with the wrong type raise ``ValueError``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  source, for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from workflow_config.schema import (
    CasePolicy,
    ConsentPolicy,
    ImportPolicy,
    ScreeningPolicy,
    WorkflowPolicy,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _str_tuple(data: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings, got {value!r}")
    return tuple(value)


def parse_consent(data: dict[str, Any]) -> ConsentPolicy:
    defaults = ConsentPolicy()
    return ConsentPolicy(
        auto_consent_window_days=_int(
            data, "auto_consent_window_days", defaults.auto_consent_window_days
        ),
        validity_days=_int(data, "validity_days", defaults.validity_days),
    )


def parse_screening(data: dict[str, Any]) -> ScreeningPolicy:
    return ScreeningPolicy(sla_days=_int(data, "sla_days", ScreeningPolicy().sla_days))


def parse_import(data: dict[str, Any]) -> ImportPolicy:
    """Parse import rules; alias keys are case-folded ("K" -> "k")."""
    defaults = ImportPolicy()
    grade_range = data.get("grade_range") or {}
    aliases = data.get("grade_aliases")
    if aliases is None:
        parsed_aliases = defaults.grade_aliases
    else:
        if not isinstance(aliases, dict):
            raise ValueError(f"grade_aliases must be a mapping, got {aliases!r}")
        parsed_aliases = tuple(
            sorted((str(k).casefold(), _int(aliases, k, 0)) for k in aliases)
        )
    return ImportPolicy(
        required_fields=_str_tuple(data, "required_fields", defaults.required_fields),
        grade_min=_int(grade_range, "min", defaults.grade_min),
        grade_max=_int(grade_range, "max", defaults.grade_max),
        grade_aliases=parsed_aliases,
        duplicate_key_fields=_str_tuple(
            data, "duplicate_key_fields", defaults.duplicate_key_fields
        ),
    )


def parse_case(data: dict[str, Any]) -> CasePolicy:
    checklists = data.get("checklists") or {}
    if not isinstance(checklists, dict):
        raise ValueError(f"case.checklists must be a mapping, got {checklists!r}")
    return CasePolicy(
        checklists=tuple(
            (str(closure_type), _str_tuple(checklists, closure_type, ()))
            for closure_type in sorted(checklists)
        )
    )


def parse_policy(data: dict[str, Any]) -> WorkflowPolicy:
    """Parse the whole policy document.  ``checksum`` is left for the caller."""
    return WorkflowPolicy(
        config_id=str(data.get("config_id", "workflow")),
        version=_int(data, "version", 1),
        consent=parse_consent(data.get("consent") or {}),
        screening=parse_screening(data.get("screening") or {}),
        import_rules=parse_import(data.get("import") or {}),
        case=parse_case(data.get("case") or {}),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
