"""
EntityStore -- versioned persistence for workflow entity snapshots.

Responsibility:
    Maps frozen entity snapshots (Screening, ConsentRecord, CaseFile,
    StudentRecord, ImportBatch) onto their ORM rows.  ``put`` is the only
    write path services use for these entities.

Architecture position:
    Kernel > Services.  Model classes are supplied through a registry
    (``workflow_kernel.models.default_model_registry``), so outer packages
    extend the store with their own models without the kernel importing
    them.

Invariants enforced:
    - Optimistic concurrency.  Every versioned model declares ``version``
      as its mapper's version_id_col.  ``put`` refuses a snapshot whose
      version differs from the stored one, and a concurrent writer that
      slips in between read and flush makes the UPDATE match zero rows
      (StaleDataError).  Both surface as ConcurrentModificationError.
    - An INSERT that collides with a unique constraint (two writers
      creating the same logical entity) is also ConcurrentModificationError.
    - Flush only; the caller owns commit/rollback.

Failure modes:
    - EntityNotFoundError from ``get`` for an unknown id.
    - ConcurrentModificationError from ``put`` (retryable).
    - KeyError for a snapshot type with no registered model.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from workflow_kernel.exceptions import ConcurrentModificationError, EntityNotFoundError
from workflow_kernel.logging_config import get_logger

logger = get_logger("services.entity_store")

T = TypeVar("T")


class EntityStore:
    """
    Read/write access to versioned entity snapshots.

    Contract:
        ``put(entity)`` with ``version == 0`` inserts; otherwise it updates
        the row at exactly that version.  The returned snapshot carries the
        version now stored.
    """

    def __init__(
        self,
        session: Session,
        registry: dict[type, type] | None = None,
    ):
        if registry is None:
            from workflow_kernel.models import default_model_registry

            registry = default_model_registry()
        self.session = session
        self._registry = dict(registry)

    def _model_for(self, entity_type: type) -> type:
        try:
            return self._registry[entity_type]
        except KeyError:
            raise KeyError(f"No model registered for {entity_type.__name__}") from None

    def find(self, entity_type: type[T], entity_id: UUID) -> T | None:
        model = self.session.get(self._model_for(entity_type), entity_id)
        return model.to_dto() if model is not None else None

    def get(self, entity_type: type[T], entity_id: UUID) -> T:
        found = self.find(entity_type, entity_id)
        if found is None:
            raise EntityNotFoundError(entity_type.__name__, str(entity_id))
        return found

    def list_by_parent(self, entity_type: type[T], parent_id: Any) -> list[T]:
        """All entities of ``entity_type`` under ``parent_id``.

        Ordered by the model's ``list_order`` columns, then by id so that
        ties come back in a stable order.
        """
        model_cls = self._model_for(entity_type)
        parent_column = getattr(model_cls, model_cls.parent_attribute)
        ordering = [getattr(model_cls, name) for name in model_cls.list_order]
        rows = self.session.scalars(
            select(model_cls)
            .where(parent_column == parent_id)
            .order_by(*ordering, model_cls.id)
        ).all()
        return [row.to_dto() for row in rows]

    def put(self, entity: T, actor_id: UUID) -> T:
        entity_type = type(entity)
        model_cls = self._model_for(entity_type)
        entity_id = entity.entity_id

        try:
            if entity.version == 0:
                model = model_cls.from_dto(entity, created_by_id=actor_id)
                self.session.add(model)
            else:
                model = self.session.get(model_cls, entity_id)
                if model is None:
                    raise EntityNotFoundError(entity_type.__name__, str(entity_id))
                if model.version != entity.version:
                    self._conflict(entity_type, entity_id, entity.version, model.version)
                model.apply_dto(entity, updated_by_id=actor_id)
            self.session.flush()
        except StaleDataError as exc:
            self._conflict(entity_type, entity_id, entity.version, None, exc)
        except IntegrityError as exc:
            self._conflict(entity_type, entity_id, entity.version, None, exc)

        logger.debug(
            "entity_stored",
            extra={
                "entity_type": entity_type.__name__,
                "entity_id": str(entity_id),
                "version": model.version,
            },
        )
        return replace(entity, version=model.version)

    def _conflict(
        self,
        entity_type: type,
        entity_id: UUID,
        expected: int,
        actual: int | None,
        cause: Exception | None = None,
    ):
        logger.warning(
            "concurrent_modification",
            extra={
                "entity_type": entity_type.__name__,
                "entity_id": str(entity_id),
                "expected_version": expected,
                "stored_version": actual,
            },
        )
        raise ConcurrentModificationError(entity_type.__name__, str(entity_id)) from cause
