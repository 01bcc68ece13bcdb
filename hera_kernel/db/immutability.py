"""
ORM-level immutability enforcement for posted transactions.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Record              | When Immutable                 | Allowed changes
--------------------|--------------------------------|-------------------------
Transaction         | After status = posted          | updated_at, updated_by
TransactionLine     | When parent header is posted   | none
Transaction         | DELETE after status = posted   | none

A posted transaction is corrected by emitting a reversal (a new header whose
ledger lines flip sides), never by editing the original.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() -------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The posting itself (draft -> posted) is allowed: the header check looks at
the attribute history and only blocks rows that were ALREADY posted before
the current flush.

===============================================================================
USAGE
===============================================================================

    init_engine_from_url(url)            # registers the listeners
    register_immutability_listeners()    # idempotent; for engines built elsewhere

    # TESTS ONLY
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from hera_kernel.exceptions import ImmutabilityViolationError
from hera_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by"})


def _blocked(record_type: str, record_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "record_type": record_type,
            "record_id": str(record_id),
            "db_operation": operation,
            **extra,
        },
    )
    return ImmutabilityViolationError(
        record_type=record_type,
        record_id=record_id,
        reason=reason,
    )


def _was_posted(target) -> bool:
    """True when the header was posted before the current flush began."""
    from hera_kernel.models.transaction import TransactionStatus

    posted = TransactionStatus.POSTED.value
    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0] == posted
    if not status_history.added:
        return target.status == posted
    return False


def _check_transaction_immutability(mapper, connection, target):
    """Block field changes on a header that was already posted."""
    if not _was_posted(target):
        return

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "Transaction",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on posted transaction",
                field=attr.key,
            )


def _check_transaction_delete(mapper, connection, target):
    from hera_kernel.models.transaction import TransactionStatus

    if target.status == TransactionStatus.POSTED.value:
        raise _blocked(
            "Transaction",
            target.id,
            "DELETE",
            "Posted transactions cannot be deleted",
        )


def _parent_is_posted(target) -> bool:
    from hera_kernel.models.transaction import TransactionStatus

    parent = target.transaction
    return parent is not None and parent.status == TransactionStatus.POSTED.value


def _check_transaction_line_immutability(mapper, connection, target):
    if _parent_is_posted(target):
        raise _blocked(
            "TransactionLine",
            target.id,
            "UPDATE",
            "Lines cannot be modified after the transaction is posted",
        )


def _check_transaction_line_delete(mapper, connection, target):
    if _parent_is_posted(target):
        raise _blocked(
            "TransactionLine",
            target.id,
            "DELETE",
            "Lines cannot be deleted after the transaction is posted",
        )


_LISTENERS = (
    ("Transaction", "before_update", _check_transaction_immutability),
    ("Transaction", "before_delete", _check_transaction_delete),
    ("TransactionLine", "before_update", _check_transaction_line_immutability),
    ("TransactionLine", "before_delete", _check_transaction_line_delete),
)


def _models():
    from hera_kernel.models.transaction import Transaction, TransactionLine

    return {"Transaction": Transaction, "TransactionLine": TransactionLine}


def register_immutability_listeners() -> None:
    """
    Register the transaction immutability listeners.

    Idempotent: a listener that is already registered is not added twice.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        model = models[model_name]
        if not event.contains(model, event_name, fn):
            event.listen(model, event_name, fn)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. FOR TESTING ONLY."""
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        model = models[model_name]
        if event.contains(model, event_name, fn):
            event.remove(model, event_name, fn)
