"""
Workflow Kernel

A state-machine core for screening, consent, import and case-closure
workflows with:
- Pure transition tables per entity kind
- Pull-based policy timing (auto-consent, expiry, SLA)
- Optimistic per-entity versioning
- Append-only audit trail
"""

__version__ = "0.1.0"
