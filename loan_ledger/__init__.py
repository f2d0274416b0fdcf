"""
Loan Ledger

Simple-interest loan accounting: origination with a fixed installment,
append-only repayments, and balances derived from payment history using
Decimal arithmetic, with a hash-chained audit trail.
"""

__version__ = "1.0.0"
