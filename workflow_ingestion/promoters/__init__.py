"""Roster promoters: validated import row -> live StudentRecord."""

from workflow_ingestion.promoters.student import PromoteResult, StudentPromoter

__all__ = ["PromoteResult", "StudentPromoter"]
