"""Import staging ORM models (batches and rows)."""

from workflow_ingestion.domain.types import ImportBatch
from workflow_ingestion.models.staging import ImportBatchModel, ImportRowModel


def ingestion_model_registry() -> dict[type, type]:
    """Kernel entity registry extended with the import batch."""
    from workflow_kernel.models import default_model_registry

    return {**default_model_registry(), ImportBatch: ImportBatchModel}


def register_staging_immutability_listeners() -> None:
    """Committed and failed batches accept no further writes.  Idempotent."""
    from workflow_kernel.db.immutability import protect_terminal_states
    from workflow_kernel.domain.types import ImportBatchStatus

    protect_terminal_states(
        ImportBatchModel, "ImportBatch",
        (ImportBatchStatus.COMMITTED, ImportBatchStatus.FAILED),
    )


__all__ = [
    "ImportBatchModel",
    "ImportRowModel",
    "ingestion_model_registry",
    "register_staging_immutability_listeners",
]
