"""
Typed Exception Hierarchy for the Cash-Up Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the kernel reports must be catchable by type and carry a
machine-readable ``code`` plus the structured data a caller needs to build a
user-facing message.  Callers never parse message strings:

    try:
        invoices.submit_invoice(actor, request)
    except OpenExceptionsBlockInvoiceError as e:
        respond(409, code=e.code, open_count=e.open_count)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CashupKernelError (base)
    |
    +-- ValidationError
    |   +-- MissingFieldError
    |   +-- InvalidFieldError
    |   +-- UnknownFieldError
    |   +-- IneligibleTripLeaderError
    |   +-- FeeAdjustmentReasonRequiredError
    |
    +-- AuthorizationError
    |   +-- AdminRequiredError
    |   +-- NotTripEditorError
    |   +-- TripLockedError
    |   +-- GuideLinkRequiredError
    |   +-- AccountInactiveError
    |
    +-- NotFoundError
    |   +-- TripNotFoundError
    |   +-- GuideNotFoundError
    |   +-- TripGuideNotFoundError
    |   +-- PaymentExceptionNotFoundError
    |   +-- AccountNotFoundError
    |   +-- NoTripsInPeriodError
    |
    +-- ConflictError
    |   +-- ExceptionAlreadyResolvedError
    |   +-- OpenExceptionsBlockInvoiceError
    |   +-- GuideHasTripsError
    |   +-- GuideLeadsTripsError
    |   +-- GuideHasExceptionsError
    |   +-- DuplicateGuideNameError
    |   +-- PeriodNotFinalError
    |
    +-- IntegrityRepairableError
    |   +-- LeaderMissingFromRosterError
    |
    +-- AuditError
        +-- ImmutabilityViolationError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|-----------------------------------
Validation      | MISSING_FIELD                | Required request field absent
                | INVALID_FIELD                | Field has the wrong type/value
                | UNKNOWN_FIELD                | Request carries unexpected keys
                | INELIGIBLE_TRIP_LEADER       | Leader rank not SENIOR/INTERMEDIATE
                | FEE_REASON_REQUIRED          | Manual fee override without reason
----------------|------------------------------|-----------------------------------
Authorization   | ADMIN_REQUIRED               | Admin-only operation
                | NOT_TRIP_EDITOR              | Not admin, creator or trip leader
                | TRIP_LOCKED                  | Non-admin edit of a LOCKED trip
                | GUIDE_LINK_REQUIRED          | Account has no linked guide
                | ACCOUNT_INACTIVE             | Sign-in of a deactivated account
----------------|------------------------------|-----------------------------------
Not found       | TRIP_NOT_FOUND               | Trip id does not exist
                | GUIDE_NOT_FOUND              | Guide id does not exist
                | TRIP_GUIDE_NOT_FOUND         | Roster row does not exist
                | PAYMENT_EXCEPTION_NOT_FOUND  | Exception id does not exist
                | ACCOUNT_NOT_FOUND            | Account id does not exist
                | NO_TRIPS_IN_PERIOD           | Invoice period has no trips
----------------|------------------------------|-----------------------------------
Conflict        | EXCEPTION_ALREADY_RESOLVED   | Second handover for one exception
                | OPEN_EXCEPTIONS_BLOCK_INVOICE| Guide has unresolved exceptions
                | GUIDE_HAS_TRIPS              | Delete of a guide with trips
                | GUIDE_LEADS_TRIPS            | Demotion of a current trip leader
                | GUIDE_HAS_EXCEPTIONS         | Delete of a guide with exceptions
                | DUPLICATE_GUIDE_NAME         | Guide display name already taken
                | PERIOD_NOT_FINAL             | Report hand-off before period end
----------------|------------------------------|-----------------------------------
Integrity       | LEADER_MISSING_FROM_ROSTER   | Trip leader absent from roster
----------------|------------------------------|-----------------------------------
Audit           | IMMUTABILITY_VIOLATION       | UPDATE/DELETE of an audit row
                | AUDIT_CHAIN_BROKEN           | Hash chain validation failed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, etc.)?
   Domain exceptions should be catchable as a group without mixing them with
   programming errors raised by the standard library.

2. WHY A CATEGORY CLASS PER ERROR KIND?
   The request-routing layer maps categories to responses (ValidationError
   -> 400, AuthorizationError -> 403, NotFoundError -> 404,
   ConflictError -> 409) without knowing every concrete subclass.

===============================================================================
"""


class CashupKernelError(Exception):
    """
    Base exception for all cash-up kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CASHUP_KERNEL_ERROR"

    @property
    def kind(self) -> str:
        """Category name used by callers to pick a response."""
        for klass in type(self).__mro__:
            if klass in _CATEGORIES:
                return klass.__name__
        return CashupKernelError.__name__


# Validation


class ValidationError(CashupKernelError):
    """Request rejected before any write."""

    code: str = "VALIDATION_ERROR"


class MissingFieldError(ValidationError):
    """A required request field is absent or blank."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} is required")


class InvalidFieldError(ValidationError):
    """A request field has the wrong type or an out-of-range value."""

    code: str = "INVALID_FIELD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class UnknownFieldError(ValidationError):
    """A request carries keys that the operation does not accept."""

    code: str = "UNKNOWN_FIELD"

    def __init__(self, request_type: str, fields: list[str]):
        self.request_type = request_type
        self.fields = fields
        super().__init__(
            f"Unknown field(s) for {request_type}: {', '.join(sorted(fields))}"
        )


class IneligibleTripLeaderError(ValidationError):
    """Only SENIOR and INTERMEDIATE guides can lead a trip."""

    code: str = "INELIGIBLE_TRIP_LEADER"

    def __init__(self, guide_id: str, rank: str):
        self.guide_id = guide_id
        self.rank = rank
        super().__init__(
            f"Only SENIOR and INTERMEDIATE guides can be trip leaders "
            f"(guide {guide_id} is {rank})"
        )


class FeeAdjustmentReasonRequiredError(ValidationError):
    """Manual fee overrides must carry a human-readable reason."""

    code: str = "FEE_REASON_REQUIRED"

    def __init__(self, trip_guide_id: str):
        self.trip_guide_id = trip_guide_id
        super().__init__(f"Reason is required to adjust fee {trip_guide_id}")


# Authorization


class AuthorizationError(CashupKernelError):
    """Caller is not allowed to perform the operation."""

    code: str = "AUTHORIZATION_ERROR"


class AdminRequiredError(AuthorizationError):
    """Operation is restricted to admins."""

    code: str = "ADMIN_REQUIRED"

    def __init__(self, operation: str, actor_id: str):
        self.operation = operation
        self.actor_id = actor_id
        super().__init__(f"{operation} is admin-only (actor {actor_id})")


class NotTripEditorError(AuthorizationError):
    """Caller is neither admin, trip creator nor trip leader."""

    code: str = "NOT_TRIP_EDITOR"

    def __init__(self, trip_id: str, actor_id: str):
        self.trip_id = trip_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} may not edit trip {trip_id}")


class TripLockedError(AuthorizationError):
    """LOCKED trips are edited by admins only."""

    code: str = "TRIP_LOCKED"

    def __init__(self, trip_id: str, actor_id: str):
        self.trip_id = trip_id
        self.actor_id = actor_id
        super().__init__(f"Trip {trip_id} is locked; actor {actor_id} may not edit it")


class GuideLinkRequiredError(AuthorizationError):
    """Operation requires an account linked to a guide profile."""

    code: str = "GUIDE_LINK_REQUIRED"

    def __init__(self, actor_id: str):
        self.actor_id = actor_id
        super().__init__(f"Account {actor_id} is not linked to a guide profile")


class AccountInactiveError(AuthorizationError):
    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} is deactivated")


# Not found


class NotFoundError(CashupKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class TripNotFoundError(NotFoundError):
    code: str = "TRIP_NOT_FOUND"

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"Trip not found: {trip_id}")


class GuideNotFoundError(NotFoundError):
    code: str = "GUIDE_NOT_FOUND"

    def __init__(self, guide_id: str):
        self.guide_id = guide_id
        super().__init__(f"Guide not found: {guide_id}")


class TripGuideNotFoundError(NotFoundError):
    code: str = "TRIP_GUIDE_NOT_FOUND"

    def __init__(self, trip_guide_id: str):
        self.trip_guide_id = trip_guide_id
        super().__init__(f"Trip guide record not found: {trip_guide_id}")


class PaymentExceptionNotFoundError(NotFoundError):
    code: str = "PAYMENT_EXCEPTION_NOT_FOUND"

    def __init__(self, exception_id: str):
        self.exception_id = exception_id
        super().__init__(f"Payment exception not found: {exception_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class NoTripsInPeriodError(NotFoundError):
    """An invoice was requested for a period in which the guide has no trips."""

    code: str = "NO_TRIPS_IN_PERIOD"

    def __init__(self, guide_id: str, period_label: str):
        self.guide_id = guide_id
        self.period_label = period_label
        super().__init__(f"No trips found for {period_label}")


# Conflict


class ConflictError(CashupKernelError):
    """Operation conflicts with the current state."""

    code: str = "CONFLICT"


class ExceptionAlreadyResolvedError(ConflictError):
    code: str = "EXCEPTION_ALREADY_RESOLVED"

    def __init__(self, exception_id: str):
        self.exception_id = exception_id
        super().__init__(f"Payment exception {exception_id} already resolved")


class OpenExceptionsBlockInvoiceError(ConflictError):
    """Unresolved cash/card/EFT exceptions block invoice submission."""

    code: str = "OPEN_EXCEPTIONS_BLOCK_INVOICE"

    def __init__(self, guide_id: str, open_count: int):
        self.guide_id = guide_id
        self.open_count = open_count
        super().__init__(
            f"You have {open_count} unresolved cash/card/EFT handover(s). "
            f"Please hand over and let admin confirm first."
        )


class GuideHasTripsError(ConflictError):
    code: str = "GUIDE_HAS_TRIPS"

    def __init__(self, guide_id: str, trip_count: int):
        self.guide_id = guide_id
        self.trip_count = trip_count
        super().__init__(
            f"Guide {guide_id} has {trip_count} associated trip(s). "
            f"Cannot delete without reassigning trips first."
        )


class GuideLeadsTripsError(ConflictError):
    """A guide may not drop below a leading rank while leading trips."""

    code: str = "GUIDE_LEADS_TRIPS"

    def __init__(self, guide_id: str, rank: str, trip_count: int):
        self.guide_id = guide_id
        self.rank = rank
        self.trip_count = trip_count
        super().__init__(
            f"Guide {guide_id} leads {trip_count} trip(s); "
            f"rank {rank} cannot lead. Reassign the trip leader first."
        )


class GuideHasExceptionsError(ConflictError):
    """Payment exceptions keep their guide; such guides are deactivated instead."""

    code: str = "GUIDE_HAS_EXCEPTIONS"

    def __init__(self, guide_id: str, exception_count: int):
        self.guide_id = guide_id
        self.exception_count = exception_count
        super().__init__(
            f"Guide {guide_id} has {exception_count} payment exception(s). "
            f"Deactivate the guide instead."
        )


class DuplicateGuideNameError(ConflictError):
    code: str = "DUPLICATE_GUIDE_NAME"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A guide named {name!r} already exists")


class PeriodNotFinalError(ConflictError):
    """Report data is handed off only after the period has ended."""

    code: str = "PERIOD_NOT_FINAL"

    def __init__(self, period_end: str, today: str):
        self.period_end = period_end
        self.today = today
        super().__init__(
            f"Period ending {period_end} is not final yet (today is {today})"
        )


# Integrity


class IntegrityRepairableError(CashupKernelError):
    """Stored data violates an invariant that a repair operation can fix."""

    code: str = "INTEGRITY_REPAIRABLE"


class LeaderMissingFromRosterError(IntegrityRepairableError):
    code: str = "LEADER_MISSING_FROM_ROSTER"

    def __init__(self, trip_id: str, leader_id: str):
        self.trip_id = trip_id
        self.leader_id = leader_id
        super().__init__(
            f"Trip leader {leader_id} is missing from the roster of trip {trip_id}"
        )


# Audit


class AuditError(CashupKernelError):
    code: str = "AUDIT_ERROR"


class ImmutabilityViolationError(AuditError):
    """Attempted UPDATE or DELETE of an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class AuditChainBrokenError(AuditError):
    """Hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_seq: int, expected_hash: str, actual_hash: str):
        self.audit_seq = audit_seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {audit_seq}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


_CATEGORIES = (
    ValidationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    IntegrityRepairableError,
    AuditError,
)
