"""
workflow_config -- single public entrypoint for workflow policy.

Responsibility:
    Provides the ONLY way to obtain policy at runtime through
    ``get_active_policy()``: waiting periods, validity, SLA, import rules
    and closure checklists.  Returns a frozen ``WorkflowPolicy``.

Architecture position:
    Configuration.  Sits beside ``workflow_kernel`` and below
    ``workflow_services``.  The kernel MUST NEVER import from
    ``workflow_config``; the engine facade translates the policy into
    service arguments.

Invariants enforced:
    - Single entrypoint: all runtime policy flows through ``get_active_policy()``.
    - Validation: windows positive, grade range ordered, every closure type
      has a non-empty checklist.
    - Deterministic: the same YAML always yields the same checksum.

Audit relevance:
    Every successful call emits a ``workflow_config_loaded`` log entry with
    config_id, version and checksum, tying later decisions to the exact
    policy that governed them.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from workflow_config.loader import compute_checksum, load_yaml_file, parse_policy
from workflow_config.schema import WorkflowPolicy
from workflow_config.validator import validate_policy

_logger = logging.getLogger("workflow_kernel.config")

DEFAULT_POLICY_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_policy(path: Path | str | None = None) -> WorkflowPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML policy file.  Defaults to the packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If parsing or validation fails.
    """
    source = Path(path) if path is not None else DEFAULT_POLICY_PATH
    data = load_yaml_file(source)
    policy = replace(parse_policy(data), checksum=compute_checksum(data))

    validation = validate_policy(policy)
    if not validation.is_valid:
        raise ValueError(
            "Policy validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )

    _logger.info(
        "workflow_config_loaded",
        extra={
            "trace_type": "workflow_config_loaded",
            "config_id": policy.config_id,
            "config_version": policy.version,
            "checksum": policy.checksum,
            "source": str(source),
        },
    )
    return policy


__all__ = ["DEFAULT_POLICY_PATH", "WorkflowPolicy", "get_active_policy"]
