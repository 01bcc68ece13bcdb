"""
Upsert Orchestrator -- the public face of the data engine.

The orchestrator ties together:
- Tenant Context: organization and actor validation for every call
- Services: organization, entity, dynamic data, relationship, transaction
  and reversal writes
- Selectors: filtered reads with hydration

Each public operation is one atomic unit of work.  The call runs inside a
savepoint; on success the savepoint is released and, by default, the session
commits.  On any failure the savepoint (and, with auto_commit, the session)
is rolled back, so nothing of a failed call is ever persisted.

Results are OperationResult envelopes.  Engine errors become
``{"success": False, "error": {"code", "message"}}``; store failures and any
other unexpected exception become INTERNAL_ERROR with the cause logged.
Nothing is retried.
"""

import inspect
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hera_kernel.domain.clock import Clock, SystemClock
from hera_kernel.domain.dtos import to_plain
from hera_kernel.domain.settings import EngineSettings
from hera_kernel.domain.tenant import TenantContext, resolve_actor
from hera_kernel.exceptions import HeraEngineError, InternalError, InvalidPayloadError
from hera_kernel.logging_config import LogContext, get_logger
from hera_kernel.selectors.entity_selector import EntitySelector
from hera_kernel.selectors.relationship_selector import RelationshipSelector
from hera_kernel.selectors.transaction_selector import TransactionSelector
from hera_kernel.services.dynamic_data_service import DynamicDataService
from hera_kernel.services.entity_service import EntityService
from hera_kernel.services.organization_service import OrganizationService
from hera_kernel.services.relationship_service import RelationshipService
from hera_kernel.services.reversal_service import ReversalService
from hera_kernel.services.transaction_service import EmitOutcome, TransactionService

logger = get_logger("services.upsert_orchestrator")

DUPLICATE_SUPPRESSED = "DUPLICATE_SUPPRESSED"

OPERATIONS: dict[str, str] = {
    "organization.upsert": "organization_upsert",
    "organization.read": "organization_read",
    "entity.upsert": "entity_upsert",
    "entity.read": "entity_read",
    "entity.delete": "entity_delete",
    "dynamic.set": "dynamic_set",
    "dynamic.set_batch": "dynamic_set_batch",
    "dynamic.read": "dynamic_read",
    "dynamic.delete": "dynamic_delete",
    "relationship.upsert": "relationship_upsert",
    "relationship.read": "relationship_read",
    "relationship.deactivate": "relationship_deactivate",
    "transaction.emit": "transaction_emit",
    "transaction.read": "transaction_read",
    "transaction.reverse": "transaction_reverse",
}


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of one public operation.

    ``data`` holds DTOs; ``to_dict()`` renders the JSON-shaped envelope.
    A duplicate suppressed by idempotency is a success with the
    DUPLICATE_SUPPRESSED flag.
    """

    success: bool
    data: Any = None
    error: dict[str, str] | None = None
    flags: tuple[str, ...] = ()

    @property
    def error_code(self) -> str | None:
        return self.error["code"] if self.error else None

    @property
    def duplicate_suppressed(self) -> bool:
        return DUPLICATE_SUPPRESSED in self.flags

    def to_dict(self) -> dict[str, Any]:
        envelope: dict[str, Any] = {
            "success": self.success,
            "data": to_plain(self.data),
            "error": self.error,
        }
        if self.flags:
            envelope["flags"] = list(self.flags)
        return envelope


def _outcome(outcome: EmitOutcome) -> tuple[Any, tuple[str, ...]]:
    flags = (DUPLICATE_SUPPRESSED,) if outcome.duplicate_suppressed else ()
    return outcome.transaction, flags


class UpsertOrchestrator:
    """
    Runs the engine's named operations.

    Contract:
        ``execute(operation, payload)`` returns the envelope dict; the typed
        methods (``entity_upsert`` and friends) return OperationResult.
        Every call takes organization_id and actor_user_id explicitly
        (organization operations take the actor only).

    Guarantees:
        - One savepoint per call; a failed call leaves no trace.
        - With auto_commit (default) the session commits after each
          successful call and rolls back after each failed one.  With
          auto_commit=False the caller owns the outer transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._auto_commit = auto_commit

        self._organizations = OrganizationService(session, self._clock, self._settings)
        self._entities = EntityService(session, self._clock, self._settings)
        self._dynamic = DynamicDataService(session, self._clock, self._settings)
        self._relationships = RelationshipService(session, self._clock, self._settings)
        self._transactions = TransactionService(session, self._clock, self._settings)
        self._reversals = ReversalService(session, self._clock, self._settings)

        self._entity_reads = EntitySelector(session, self._settings)
        self._relationship_reads = RelationshipSelector(session, self._settings)
        self._transaction_reads = TransactionSelector(session, self._settings)

    # -- dispatch ----------------------------------------------------------

    def execute(self, operation: str, payload: Any) -> dict[str, Any]:
        """
        Run a named operation with a JSON-shaped payload.

        Unknown operations, non-object payloads and unknown payload keys are
        rejected with INVALID_PAYLOAD.  The paged reads (entity, relationship
        and transaction) take unknown keys as filters that match nothing.
        """
        method_name = OPERATIONS.get(operation)
        if method_name is None:
            return self._rejected(
                operation,
                InvalidPayloadError(f"Unknown operation: {operation!r}", field="operation"),
            ).to_dict()
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            return self._rejected(
                operation, InvalidPayloadError("payload must be an object", field="payload")
            ).to_dict()

        method = getattr(self, method_name)
        accepted = inspect.signature(method).parameters
        open_filters = any(
            p.kind is inspect.Parameter.VAR_KEYWORD for p in accepted.values()
        )
        unknown = sorted(str(key) for key in payload if key not in accepted)
        if unknown and not open_filters:
            return self._rejected(
                operation,
                InvalidPayloadError(
                    f"Unknown fields for {operation}: {', '.join(unknown)}",
                    field=unknown[0],
                ),
            ).to_dict()
        return method(**{str(key): value for key, value in payload.items()}).to_dict()

    def _rejected(self, operation: str, error: HeraEngineError) -> OperationResult:
        logger.warning(
            "operation_failed",
            extra={"operation": operation, "error_code": error.code, "duration_ms": 0.0},
        )
        return OperationResult(success=False, error=error.to_error())

    def _run(
        self,
        operation: str,
        work: Callable[[], tuple[Any, tuple[str, ...]]],
    ) -> OperationResult:
        """Run ``work`` as one unit of work and wrap the outcome."""
        with LogContext.bind_operation(operation):
            logger.info("operation_started")
            t0 = time.monotonic()
            savepoint = self._session.begin_nested()
            try:
                data, flags = work()
                savepoint.commit()
                if self._auto_commit:
                    self._session.commit()
            except HeraEngineError as exc:
                self._abort(savepoint)
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.warning(
                    "operation_failed",
                    extra={"error_code": exc.code, "duration_ms": duration_ms},
                )
                return OperationResult(success=False, error=exc.to_error())
            except Exception as exc:
                # SQLAlchemyError and anything else unexpected
                self._abort(savepoint)
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                error = InternalError(operation, exc)
                logger.error(
                    "operation_failed",
                    extra={
                        "error_code": error.code,
                        "duration_ms": duration_ms,
                        "store_error": isinstance(exc, SQLAlchemyError),
                    },
                    exc_info=True,
                )
                return OperationResult(success=False, error=error.to_error())

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "operation_completed",
                extra={"duration_ms": duration_ms, "flags": list(flags)},
            )
            return OperationResult(success=True, data=data, flags=flags)

    def _abort(self, savepoint) -> None:
        if savepoint.is_active:
            savepoint.rollback()
        if self._auto_commit:
            self._session.rollback()

    def _tenant(
        self,
        organization_id: Any,
        actor_user_id: Any,
        write: bool,
    ) -> TenantContext:
        return TenantContext.resolve(organization_id, actor_user_id, write=write)

    def _in_tenant(
        self,
        operation: str,
        organization_id: Any,
        actor_user_id: Any,
        write: bool,
        work: Callable[[TenantContext], tuple[Any, tuple[str, ...]]],
    ) -> OperationResult:
        def run():
            ctx = self._tenant(organization_id, actor_user_id, write)
            with LogContext.bind_tenant(ctx):
                self._organizations.require(ctx)
                return work(ctx)

        return self._run(operation, run)

    def _unmatched(self, selector, filters, limit, offset) -> tuple[Any, tuple[str, ...]]:
        logger.info("read_filter_unmatched", extra={"filters": sorted(filters)})
        return selector.nothing(limit, offset), ()

    # -- organizations -----------------------------------------------------

    def organization_upsert(
        self,
        actor_user_id: Any = None,
        organization_code: Any = None,
        organization_name: Any = None,
        settings: Any = None,
        status: Any = None,
    ) -> OperationResult:
        def work():
            actor = resolve_actor(actor_user_id, write=True)
            with LogContext.bind(actor_id=str(actor)):
                info = self._organizations.upsert(
                    actor, organization_code, organization_name, settings, status
                )
            return info, ()

        return self._run("organization.upsert", work)

    def organization_read(
        self,
        actor_user_id: Any = None,
        organization_id: Any = None,
        organization_code: Any = None,
    ) -> OperationResult:
        def work():
            resolve_actor(actor_user_id, write=False)
            return self._organizations.get(organization_id, organization_code), ()

        return self._run("organization.read", work)

    # -- entities ----------------------------------------------------------

    def entity_upsert(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_type: Any = None,
        entity_name: Any = None,
        smart_code: Any = None,
        entity_code: Any = None,
        entity_id: Any = None,
        metadata: Any = None,
        status: Any = None,
        dynamic_fields: Any = None,
        relationships: Any = None,
        include_dynamic: bool = True,
        include_relationships: bool = True,
    ) -> OperationResult:
        def work(ctx):
            info = self._entities.upsert(
                ctx,
                entity_type=entity_type,
                entity_name=entity_name,
                smart_code=smart_code,
                entity_code=entity_code,
                entity_id=entity_id,
                metadata=metadata,
                status=status,
                dynamic_fields=dynamic_fields,
                relationships=relationships,
                include_dynamic=include_dynamic,
                include_relationships=include_relationships,
            )
            return info, ()

        return self._in_tenant("entity.upsert", organization_id, actor_user_id, True, work)

    def entity_read(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_type: str | None = None,
        entity_code: str | None = None,
        entity_id: Any = None,
        smart_code: str | None = None,
        status: str | None = None,
        text_search: str | None = None,
        include_dynamic: bool = False,
        include_relationships: bool = False,
        limit: int | None = None,
        offset: int | None = 0,
        **other_filters: Any,
    ) -> OperationResult:
        def work(ctx):
            if other_filters:
                return self._unmatched(self._entity_reads, other_filters, limit, offset)
            page = self._entity_reads.find(
                ctx,
                entity_type=entity_type,
                entity_code=entity_code,
                entity_id=entity_id,
                smart_code=smart_code,
                status=status,
                text_search=text_search,
                include_dynamic=include_dynamic,
                include_relationships=include_relationships,
                limit=limit,
                offset=offset,
            )
            return page, ()

        return self._in_tenant("entity.read", organization_id, actor_user_id, False, work)

    def entity_delete(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_id: Any = None,
        hard: bool = False,
    ) -> OperationResult:
        def work(ctx):
            return self._entities.delete(ctx, entity_id, hard=bool(hard)), ()

        return self._in_tenant("entity.delete", organization_id, actor_user_id, True, work)

    # -- dynamic data ------------------------------------------------------

    def dynamic_set(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_id: Any = None,
        field_name: Any = None,
        field_type: Any = None,
        value: Any = None,
        smart_code: Any = None,
    ) -> OperationResult:
        def work(ctx):
            info = self._dynamic.set(
                ctx, entity_id, field_name, field_type, value, smart_code
            )
            return info, ()

        return self._in_tenant("dynamic.set", organization_id, actor_user_id, True, work)

    def dynamic_set_batch(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_id: Any = None,
        fields: Any = None,
    ) -> OperationResult:
        def work(ctx):
            return self._dynamic.set_batch(ctx, entity_id, fields), ()

        return self._in_tenant(
            "dynamic.set_batch", organization_id, actor_user_id, True, work
        )

    def dynamic_read(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_id: Any = None,
    ) -> OperationResult:
        def work(ctx):
            entity = self._entity_reads.get(ctx, entity_id, include_dynamic=True)
            return entity.dynamic_fields, ()

        return self._in_tenant("dynamic.read", organization_id, actor_user_id, False, work)

    def dynamic_delete(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_id: Any = None,
        field_name: Any = None,
    ) -> OperationResult:
        def work(ctx):
            return self._dynamic.delete(ctx, entity_id, field_name), ()

        return self._in_tenant("dynamic.delete", organization_id, actor_user_id, True, work)

    # -- relationships -----------------------------------------------------

    def relationship_upsert(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        from_entity_id: Any = None,
        to_entity_id: Any = None,
        relationship_type: Any = None,
        smart_code: Any = None,
        relationship_data: Any = None,
        is_active: Any = True,
        relationship_id: Any = None,
        effective_date: Any = None,
        expiration_date: Any = None,
    ) -> OperationResult:
        def work(ctx):
            info = self._relationships.upsert(
                ctx,
                from_entity_id=from_entity_id,
                to_entity_id=to_entity_id,
                relationship_type=relationship_type,
                smart_code=smart_code,
                relationship_data=relationship_data,
                is_active=is_active,
                relationship_id=relationship_id,
                effective_date=effective_date,
                expiration_date=expiration_date,
            )
            return info, ()

        return self._in_tenant(
            "relationship.upsert", organization_id, actor_user_id, True, work
        )

    def relationship_read(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        entity_id: Any = None,
        from_entity_id: Any = None,
        to_entity_id: Any = None,
        relationship_type: str | None = None,
        active_only: bool = True,
        limit: int | None = None,
        offset: int | None = 0,
        **other_filters: Any,
    ) -> OperationResult:
        def work(ctx):
            if other_filters:
                return self._unmatched(
                    self._relationship_reads, other_filters, limit, offset
                )
            page = self._relationship_reads.find(
                ctx,
                entity_id=entity_id,
                from_entity_id=from_entity_id,
                to_entity_id=to_entity_id,
                relationship_type=relationship_type,
                active_only=active_only,
                limit=limit,
                offset=offset,
            )
            return page, ()

        return self._in_tenant(
            "relationship.read", organization_id, actor_user_id, False, work
        )

    def relationship_deactivate(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        relationship_id: Any = None,
    ) -> OperationResult:
        def work(ctx):
            return self._relationships.deactivate(ctx, relationship_id), ()

        return self._in_tenant(
            "relationship.deactivate", organization_id, actor_user_id, True, work
        )

    # -- transactions ------------------------------------------------------

    def transaction_emit(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        header: Any = None,
        lines: Any = None,
        idempotency_key: Any = None,
    ) -> OperationResult:
        def work(ctx):
            return _outcome(
                self._transactions.emit(ctx, header, lines, idempotency_key)
            )

        return self._in_tenant(
            "transaction.emit", organization_id, actor_user_id, True, work
        )

    def transaction_read(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        transaction_id: Any = None,
        transaction_type: str | None = None,
        transaction_code: str | None = None,
        status: str | None = None,
        source_entity_id: Any = None,
        target_entity_id: Any = None,
        smart_code: str | None = None,
        date_from: Any = None,
        date_to: Any = None,
        include_lines: bool = True,
        limit: int | None = None,
        offset: int | None = 0,
        **other_filters: Any,
    ) -> OperationResult:
        def work(ctx):
            if other_filters:
                return self._unmatched(
                    self._transaction_reads, other_filters, limit, offset
                )
            page = self._transaction_reads.find(
                ctx,
                transaction_id=transaction_id,
                transaction_type=transaction_type,
                transaction_code=transaction_code,
                status=status,
                source_entity_id=source_entity_id,
                target_entity_id=target_entity_id,
                smart_code=smart_code,
                date_from=date_from,
                date_to=date_to,
                include_lines=include_lines,
                limit=limit,
                offset=offset,
            )
            return page, ()

        return self._in_tenant(
            "transaction.read", organization_id, actor_user_id, False, work
        )

    def transaction_reverse(
        self,
        organization_id: Any = None,
        actor_user_id: Any = None,
        transaction_id: Any = None,
        reason: Any = None,
    ) -> OperationResult:
        def work(ctx):
            return _outcome(self._reversals.reverse(ctx, transaction_id, reason))

        return self._in_tenant(
            "transaction.reverse", organization_id, actor_user_id, True, work
        )
