"""Custom exception hierarchy for coop-ledger."""


class LedgerError(Exception):
    """Base exception for all coop-ledger errors."""


class EntityNotFoundError(LedgerError):
    """Raised when a referenced entity does not exist."""


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when a foreign key reference is violated."""


class ValidationError(LedgerError):
    """Raised when caller-supplied input is rejected before any mutation."""


class InvalidAmountError(ValidationError):
    """Raised when an amount is missing, non-finite or not strictly positive."""


class InvalidEntityStateError(LedgerError):
    """Raised when an entity is in an invalid state for the operation."""


class InvalidStatusTransitionError(InvalidEntityStateError):
    """Raised when a loan status change is not in the transition table."""


class ConfirmationError(LedgerError):
    """Raised when the year-end confirmation passphrase does not match."""


class ConfigurationError(LedgerError):
    """Raised when configuration is invalid or missing."""


class StoreError(LedgerError):
    """Raised when the backing store rejects an operation."""


class TransactionFailureError(StoreError):
    """Raised when a multi-statement unit of work fails partway.

    Always fatal: the caller must treat the ledger as needing attention.
    """
