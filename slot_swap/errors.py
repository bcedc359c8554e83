"""
Exceptions raised by the swap negotiation engine.

Every class maps to one caller-visible reason; the HTTP layer turns them into
JSON error bodies using ``status_code`` and ``code``.
"""


class SwapError(Exception):
    """Base class for all swap-related errors."""

    status_code = 400
    code = "swap_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInput(SwapError):
    """Raised for malformed identifiers or inconsistent slot times."""

    code = "invalid_input"


class SlotNotFound(SwapError):
    status_code = 404
    code = "slot_not_found"


class ProposalNotFound(SwapError):
    status_code = 404
    code = "proposal_not_found"


class OwnershipMismatch(SwapError):
    """Raised when the offered slot does not belong to the proposer."""

    status_code = 403
    code = "ownership_mismatch"


class SelfSwap(SwapError):
    """Raised when a user tries to swap with themselves or a slot with itself."""

    code = "self_swap"


class SlotNotExchangeable(SwapError):
    status_code = 409
    code = "slot_not_exchangeable"


class ProposalConflict(SwapError):
    """Raised when a slot is already tied to an open proposal."""

    status_code = 409
    code = "conflict"


class NotAuthorized(SwapError):
    """Raised when someone other than the recipient tries to resolve a proposal."""

    status_code = 403
    code = "unauthorized"


class AlreadyProcessed(SwapError):
    status_code = 409
    code = "already_processed"


class SlotLocked(SwapError):
    """Raised when a slot under an open proposal is edited or deleted."""

    status_code = 409
    code = "slot_locked"


class SlotReferenced(SwapError):
    """Raised when deleting a slot that a past or present proposal points to."""

    status_code = 409
    code = "slot_referenced"


class IntegrityViolation(SwapError):
    """Raised when slot and proposal states disagree. This is a data bug, not a user error."""

    status_code = 500
    code = "integrity_violation"


class InfrastructureError(SwapError):
    """Raised when the store fails or a commit does not go through. Safe to retry."""

    status_code = 503
    code = "infrastructure_error"
