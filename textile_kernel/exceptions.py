"""
Typed Exception Hierarchy for the Textile Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every error that reaches an operator is turned into a chat reply, and
every error that reaches a reviewer callback must be a *specific* denial.
Callers therefore catch by type, never by message text:

    try:
        orchestrator.submit(action, actor)
    except ThanNotAvailableError as e:
        reply(e.user_message)          # "Than 3 in package 5801 is sold."
    except UpstreamError:
        reply("Storage is unavailable, please retry later.")

Each exception has:
  1. A ``code`` class attribute (machine-readable, stable).
  2. Structured attributes (package_no, request_id, ...).
  3. A ``user_message`` suitable for sending back to the actor.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TextileKernelError (base)
    |
    +-- ValidationError
    |   +-- MissingSlotError
    |   +-- ThanNotFoundError
    |   +-- PackageNotFoundError
    |   +-- CustomerNotFoundError
    |   +-- ThanNotAvailableError
    |   +-- SameWarehouseError
    |   +-- InvalidAmountError
    |   +-- UnknownActionError
    |
    +-- NotFoundError
    |   +-- ApprovalNotFoundError
    |   +-- NothingToReturnError
    |
    +-- PermissionDeniedError
    |
    +-- DuplicateSubmissionError
    |
    +-- UpstreamError
    |   +-- ConcurrencyError
    |       +-- OptimisticLockError
    |       +-- LockTimeoutError
    |
    +-- LedgerError
    |   +-- UnbalancedEntryError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|-------------------------------------
Validation    | MISSING_SLOT             | Intent lacks a required slot
              | THAN_NOT_FOUND           | No than with (package_no, than_no)
              | PACKAGE_NOT_FOUND        | No thans share the package_no
              | CUSTOMER_NOT_FOUND       | Payment for an unknown customer
              | THAN_NOT_AVAILABLE       | Selling/transferring a sold than
              | SAME_WAREHOUSE           | Transfer destination == source
              | INVALID_AMOUNT           | Price/amount <= 0
              | UNKNOWN_ACTION           | Payload kind not recognised
--------------|--------------------------|-------------------------------------
Not found     | APPROVAL_NOT_FOUND       | Request absent or already resolved
              | NOTHING_TO_RETURN        | Return of an available than/package
--------------|--------------------------|-------------------------------------
Permission    | PERMISSION_DENIED        | Non-admin resolving an approval
--------------|--------------------------|-------------------------------------
Idempotency   | DUPLICATE_SUBMISSION     | Same action resubmitted within TTL
--------------|--------------------------|-------------------------------------
Upstream      | UPSTREAM_ERROR           | Store or channel failure
              | OPTIMISTIC_LOCK_CONFLICT | Row version changed, retries spent
              | LOCK_TIMEOUT             | Keyed mutex not acquired in time
--------------|--------------------------|-------------------------------------
Ledger        | UNBALANCED_ENTRY         | Debits != credits for a txn
--------------|--------------------------|-------------------------------------
Immutability  | IMMUTABILITY_VIOLATION   | Update/delete of an append-only row
"""


class TextileKernelError(Exception):
    """
    Base exception for all textile kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "TEXTILE_KERNEL_ERROR"

    @property
    def user_message(self) -> str:
        """Text suitable for replying to the operator."""
        return str(self)


# Validation errors (non-fatal, reported as a corrective prompt)


class ValidationError(TextileKernelError):
    """Base exception for invalid input or violated preconditions."""

    code: str = "VALIDATION_ERROR"


class MissingSlotError(ValidationError):
    """A required slot was not extracted from the operator's message."""

    code: str = "MISSING_SLOT"

    def __init__(self, slot: str, prompt: str):
        self.slot = slot
        self.prompt = prompt
        super().__init__(f"Missing slot '{slot}': {prompt}")

    @property
    def user_message(self) -> str:
        return self.prompt


class ThanNotFoundError(ValidationError):
    """No than exists for the given package and than number."""

    code: str = "THAN_NOT_FOUND"

    def __init__(self, package_no: str, than_no: int):
        self.package_no = package_no
        self.than_no = than_no
        super().__init__(f"Than {than_no} not found in package {package_no}.")


class PackageNotFoundError(ValidationError):
    """No thans share the given package number."""

    code: str = "PACKAGE_NOT_FOUND"

    def __init__(self, package_no: str):
        self.package_no = package_no
        super().__init__(f"Package {package_no} not found.")


class CustomerNotFoundError(ValidationError):
    """Customer lookup by id or name failed."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer: str):
        self.customer = customer
        super().__init__(f'Customer "{customer}" not found.')


class ThanNotAvailableError(ValidationError):
    """The than (or every than in a package) is not in the available state."""

    code: str = "THAN_NOT_AVAILABLE"

    def __init__(self, package_no: str, than_no: int | None, status: str):
        self.package_no = package_no
        self.than_no = than_no
        self.status = status
        if than_no is None:
            message = f"Package {package_no} has no available thans."
        else:
            message = f"Than {than_no} in package {package_no} is {status}, not available."
        super().__init__(message)


class SameWarehouseError(ValidationError):
    """Transfer destination equals the current warehouse."""

    code: str = "SAME_WAREHOUSE"

    def __init__(self, package_no: str, than_no: int | None, warehouse: str):
        self.package_no = package_no
        self.than_no = than_no
        self.warehouse = warehouse
        target = f"Package {package_no}" if than_no is None else f"Than {than_no} in package {package_no}"
        super().__init__(f"{target} is already in {warehouse}.")


class InvalidAmountError(ValidationError):
    """A price or amount is missing, zero or negative."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be greater than zero (got {value!r}).")


class UnknownActionError(ValidationError):
    """An action kind is not one of the supported kinds."""

    code: str = "UNKNOWN_ACTION"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown action kind: {kind!r}")


# Not-found errors (non-fatal, no state change)


class NotFoundError(TextileKernelError):
    """Base exception for targets that do not exist in the expected state."""

    code: str = "NOT_FOUND"


class ApprovalNotFoundError(NotFoundError):
    """Approval request is absent or has already been resolved."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} not found or already resolved.")


class NothingToReturnError(NotFoundError):
    """Return requested for a than or package that has nothing sold."""

    code: str = "NOTHING_TO_RETURN"

    def __init__(self, package_no: str, than_no: int | None = None):
        self.package_no = package_no
        self.than_no = than_no
        if than_no is None:
            message = f"Nothing to return: package {package_no} has no sold thans."
        else:
            message = f"Nothing to return: than {than_no} in package {package_no} is not sold."
        super().__init__(message)


# Permission errors


class PermissionDeniedError(TextileKernelError):
    """Actor's role does not allow the requested operation."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, role: str | None, operation: str):
        self.actor_id = actor_id
        self.role = role
        self.operation = operation
        super().__init__(
            f"Actor {actor_id} with role {role or 'none'} may not {operation}."
        )

    @property
    def user_message(self) -> str:
        return f"Only admins can {self.operation}."


# Idempotency


class DuplicateSubmissionError(TextileKernelError):
    """The same action was submitted again within the idempotency window."""

    code: str = "DUPLICATE_SUBMISSION"

    def __init__(self, fingerprint: str):
        self.fingerprint = fingerprint
        super().__init__(f"Duplicate submission suppressed: {fingerprint}")

    @property
    def user_message(self) -> str:
        return "This request was already received a moment ago."


# Upstream errors (store / channel)


class UpstreamError(TextileKernelError):
    """The backing store or messaging channel failed."""

    code: str = "UPSTREAM_ERROR"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        message = f"Upstream failure during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return "Something went wrong talking to storage. Please try again later."


class ConcurrencyError(UpstreamError):
    """Base exception for concurrent-modification failures."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Row version changed between read and write, and retries were exhausted."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity: str, attempts: int):
        self.entity = entity
        self.attempts = attempts
        super().__init__(
            "optimistic update",
            f"{entity} modified concurrently ({attempts} attempts)",
        )


class LockTimeoutError(ConcurrencyError):
    """A keyed mutex could not be acquired before the timeout."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__("lock acquisition", f"{key} busy for {timeout}s")


# Ledger errors


class LedgerError(TextileKernelError):
    """Base exception for ledger posting errors."""

    code: str = "LEDGER_ERROR"


class UnbalancedEntryError(LedgerError):
    """Debits do not equal credits for a transaction."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, txn_id: str, debits: str, credits: str):
        self.txn_id = txn_id
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced entry for {txn_id}: debits={debits}, credits={credits}"
        )


# Immutability


class ImmutabilityViolationError(TextileKernelError):
    """Attempted modification of an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
