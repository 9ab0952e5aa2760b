"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""

    status_code: int = 500

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    status_code = 400


class AuthenticationError(AppError):
    """Raised when the request carries no usable actor identity."""
    status_code = 401


class AuthorizationError(AppError):
    """Raised when the acting role lacks a capability."""
    status_code = 403


# Policy resolution

class PolicyResolutionError(ValidationError):
    """Base exception for policy resolution failures."""
    pass


class PolicyNotFoundError(PolicyResolutionError):
    """No policy matches the supplied id or policy number."""
    pass


class PolicyNotOwnedError(PolicyResolutionError):
    """The policy does not belong to the requesting farmer."""
    status_code = 403


class PolicyInactiveError(PolicyResolutionError):
    """The policy is not in Active status."""
    pass


class PolicyUnassignedError(PolicyResolutionError):
    """The policy has no issuing service provider to route the claim to."""
    pass


class PolicyCoverageError(PolicyResolutionError):
    """The incident date falls outside the policy coverage period."""
    pass


# Claim intake

class FileRejectedError(ValidationError):
    """An uploaded file failed validation or scanning."""
    pass


class ClaimPersistError(AppError):
    """Claim could not be persisted after policy resolution succeeded."""
    pass


class ClaimNotFoundError(AppError):
    """Raised when a claim is not found or not visible to the actor."""
    status_code = 404


# Idempotency ledger

class IdempotencyConflictError(AppError):
    """A live idempotency record already exists for the key."""
    status_code = 409


class IdempotencyKeyReuseError(ValidationError):
    """An idempotency key was replayed with a different request body."""
    status_code = 422


# AI task queue

class AiTaskError(AppError):
    """Base exception for AI task queue errors."""
    pass


class AiTaskNotFoundError(AiTaskError):
    """Raised when an AI task does not exist."""
    status_code = 404


class AiTaskStateError(AiTaskError):
    """Raised when an AI task is not in a state that allows the operation."""
    status_code = 409


class AiTaskEnqueueError(AiTaskError):
    """Raised when an AI task could not be recorded or dispatched."""
    pass


class AiHandlerError(AiTaskError):
    """Raised by AI handlers (or on their behalf) when analysis fails."""
    pass


# Review workflow

class InvalidTransitionError(ValidationError):
    """Raised when a claim status transition is not allowed."""
    status_code = 409


class ConcurrentUpdateError(AppError):
    """Raised when a conditional update lost a race with another writer."""
    status_code = 409


class RejectionReasonRequiredError(ValidationError):
    """Raised when a high-damage claim is rejected without a detailed reason."""
    pass


class PayoutError(ValidationError):
    """Raised when a payout request is invalid."""
    pass


class PayoutExceedsSumInsuredError(PayoutError):
    """Raised when the payout amount is above the policy sum insured."""
    pass
