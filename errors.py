class LedgerError(ValueError):
    """Base class for every error the ledger core reports to callers.

    None of these are transient: retrying without changing the input
    fails the same way.
    """


class ValidationError(LedgerError):
    """Bad input: non-positive amount, missing category/account, type mismatch."""


class ConflictError(LedgerError):
    """A uniqueness key is already taken; existing data is left untouched."""


class InvalidReferenceError(LedgerError):
    """A foreign key points at nothing, or at a record owned by another user."""
