"""Error taxonomy for loan ledger operations."""


class LoanLedgerError(ValueError):
    """Base exception for all loan ledger errors."""


class InvalidTerms(LoanLedgerError):
    """Raised when loan creation inputs are out of range."""


class InvalidAmount(LoanLedgerError):
    """Raised when a payment amount is not positive."""


class InvalidPaymentType(LoanLedgerError):
    """Raised when a payment type is neither EMI nor LUMP_SUM."""


class LoanNotFound(LoanLedgerError):
    """Raised when a referenced loan does not exist."""


class LoanAlreadySettled(LoanLedgerError):
    """Raised when a payment targets a loan that is already paid off."""


class NoLoansForCustomer(LoanLedgerError):
    """Raised when a customer has no loans on record."""
