"""Import orchestration services."""

from workflow_ingestion.services.import_service import ImportService, content_hash

__all__ = ["ImportService", "content_hash"]
