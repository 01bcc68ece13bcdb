"""
Typed exception hierarchy for the Universal Data Engine.

Every error carries a class-level ``code`` (a stable, machine-readable
string callers branch on) and its context as attributes, never only as
message text.  Services raise these; the UpsertOrchestrator is the single
place that turns them into ``{success, data, error}`` envelopes.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    HeraEngineError (base)
    |
    +-- ContractError                  input rejected before any write
    |   +-- MissingTenantContextError
    |   +-- MissingActorError
    |   +-- InvalidSmartCodeError
    |   +-- TypeMismatchError
    |   +-- InvalidPayloadError
    |       +-- InvalidCurrencyError
    |
    +-- InvariantError                 rejected atomically, nothing persisted
    |   +-- CrossTenantViolationError
    |   +-- EndpointNotFoundError
    |   +-- UnbalancedLedgerError
    |   +-- EntityReferencedError
    |   +-- ImmutabilityViolationError
    |
    +-- NotFoundError
    |   +-- OrganizationNotFoundError
    |   +-- EntityNotFoundError
    |   +-- DynamicFieldNotFoundError
    |   +-- RelationshipNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- InternalError                  unexpected store failure, cause attached

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|------------------------------------------------------
MISSING_TENANT_CONTEXT  | organization_id absent/malformed, or actor on reads
MISSING_ACTOR           | write without a well-formed actor_user_id
INVALID_SMART_CODE      | smart code does not match the HERA grammar
TYPE_MISMATCH           | dynamic value does not match its field_type
INVALID_PAYLOAD         | required field missing, duplicate line_number, ...
INVALID_CURRENCY        | currency is not an ISO 4217 code
CROSS_TENANT_VIOLATION  | row belongs to another organization
ENDPOINT_NOT_FOUND      | relationship/transaction party does not exist
UNBALANCED_LEDGER       | ledger lines do not balance per currency
ENTITY_REFERENCED       | hard delete of an entity that is still referenced
IMMUTABILITY_VIOLATION  | change to a posted transaction's lines/header
NOT_FOUND               | addressed row does not exist in this tenant
INTERNAL_ERROR          | store failure not anticipated above

DUPLICATE_SUPPRESSED is informational and is surfaced as a result flag,
never raised.
"""

from typing import Any


class HeraEngineError(Exception):
    """
    Base exception for all engine errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "HERA_ENGINE_ERROR"

    def to_error(self) -> dict[str, str]:
        """Envelope form: ``{"code": ..., "message": ...}``."""
        return {"code": self.code, "message": str(self)}


# Input / contract errors


class ContractError(HeraEngineError):
    """Input rejected before any write; safe to retry once corrected."""

    code: str = "CONTRACT_ERROR"


class MissingTenantContextError(ContractError):
    """organization_id (or the actor on a read) is absent or malformed."""

    code: str = "MISSING_TENANT_CONTEXT"

    def __init__(self, field: str, value: Any = None, reason: str | None = None):
        self.field = field
        self.value = None if value is None else str(value)
        detail = reason or "absent or not a well-formed identifier"
        super().__init__(f"Tenant context field '{field}' is {detail}")


class MissingActorError(ContractError):
    """A write was attempted without a well-formed actor identity."""

    code: str = "MISSING_ACTOR"

    def __init__(self, value: Any = None):
        self.value = None if value is None else str(value)
        super().__init__("actor_user_id is required for every write")


class InvalidSmartCodeError(ContractError):
    """Smart code does not match the HERA grammar."""

    code: str = "INVALID_SMART_CODE"

    def __init__(self, smart_code: Any, reason: str, field: str = "smart_code"):
        self.smart_code = None if smart_code is None else str(smart_code)
        self.reason = reason
        self.field = field
        super().__init__(f"Invalid smart code for {field} '{smart_code}': {reason}")


class TypeMismatchError(ContractError):
    """A dynamic attribute value does not match its declared field_type."""

    code: str = "TYPE_MISMATCH"

    def __init__(self, field_name: str, field_type: str, value: Any):
        self.field_name = field_name
        self.field_type = field_type
        self.value_type = type(value).__name__
        super().__init__(
            f"Field '{field_name}' declared as {field_type} "
            f"cannot hold a {self.value_type} value"
        )


class InvalidPayloadError(ContractError):
    """A required field is missing or a payload is structurally invalid."""

    code: str = "INVALID_PAYLOAD"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidCurrencyError(InvalidPayloadError):
    """Currency is not a recognised ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: Any):
        self.currency = None if currency is None else str(currency)
        super().__init__(
            f"Invalid ISO 4217 currency code: '{currency}'", field="currency"
        )


# Invariant violations


class InvariantError(HeraEngineError):
    """Rejected atomically; nothing was persisted."""

    code: str = "INVARIANT_ERROR"


class CrossTenantViolationError(InvariantError):
    """A read or write would cross an organization boundary."""

    code: str = "CROSS_TENANT_VIOLATION"

    def __init__(self, record_type: str, record_id: Any, organization_id: Any):
        self.record_type = record_type
        self.record_id = str(record_id)
        self.organization_id = str(organization_id)
        super().__init__(
            f"{record_type} {record_id} does not belong to organization "
            f"{organization_id}"
        )


class EndpointNotFoundError(InvariantError):
    """A relationship or transaction party does not exist."""

    code: str = "ENDPOINT_NOT_FOUND"

    def __init__(self, entity_id: Any, role: str):
        self.entity_id = None if entity_id is None else str(entity_id)
        self.role = role
        super().__init__(f"{role} entity not found: {entity_id}")


class UnbalancedLedgerError(InvariantError):
    """Ledger lines do not balance (DR == CR) for a currency."""

    code: str = "UNBALANCED_LEDGER"

    def __init__(
        self,
        currency: str,
        debits: Any,
        credits: Any,
        reason: str | None = None,
    ):
        self.currency = currency
        self.debits = str(debits)
        self.credits = str(credits)
        self.reason = reason
        message = reason or (
            f"Ledger not balanced for {currency}: DR={debits}, CR={credits}"
        )
        super().__init__(message)


class EntityReferencedError(InvariantError):
    """Entity cannot be hard-deleted while other rows reference it."""

    code: str = "ENTITY_REFERENCED"

    def __init__(self, entity_id: Any, referenced_by: str):
        self.entity_id = str(entity_id)
        self.referenced_by = referenced_by
        super().__init__(
            f"Entity {entity_id} is still referenced by {referenced_by}"
        )


class ImmutabilityViolationError(InvariantError):
    """Attempted change to a posted transaction."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, record_type: str, record_id: Any, reason: str):
        self.record_type = record_type
        self.record_id = str(record_id)
        self.reason = reason
        super().__init__(f"Cannot modify {record_type} {record_id}: {reason}")


# Not found


class NotFoundError(HeraEngineError):
    """The addressed row does not exist within the caller's organization."""

    code: str = "NOT_FOUND"
    record_type: str = "record"

    def __init__(self, record_id: Any):
        self.record_id = None if record_id is None else str(record_id)
        super().__init__(f"{self.record_type} not found: {record_id}")


class OrganizationNotFoundError(NotFoundError):
    record_type = "Organization"


class EntityNotFoundError(NotFoundError):
    record_type = "Entity"


class DynamicFieldNotFoundError(NotFoundError):
    record_type = "Dynamic field"

    def __init__(self, entity_id: Any, field_name: str):
        self.entity_id = str(entity_id)
        self.field_name = field_name
        super().__init__(f"{entity_id}.{field_name}")


class RelationshipNotFoundError(NotFoundError):
    record_type = "Relationship"


class TransactionNotFoundError(NotFoundError):
    record_type = "Transaction"


# Store failures


class InternalError(HeraEngineError):
    """Unexpected store failure; the underlying cause is attached."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause_type = type(cause).__name__
        super().__init__(f"{operation} failed: {self.cause_type}")
