"""
Loan Accounting Engine

Pure simple-interest computations. Origination turns loan terms into the
total payable and the fixed monthly installment; derivation folds a loan's
payment history into amount paid, balance and installments remaining.

Nothing here touches storage, and identical inputs always give identical
outputs. Balances are always derived from the full payment history and
never cached.
"""

from decimal import Decimal, ROUND_CEILING
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .exceptions import InvalidTerms
from .money import Numeric, ZERO, round2, to_decimal


MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class Origination:
    """Validated terms and the figures fixed at loan creation"""
    principal: Decimal
    rate_percent: Decimal
    term_years: int
    interest: Decimal
    total_payable: Decimal
    installment_amount: Decimal


@dataclass(frozen=True)
class LoanPosition:
    """Derived state of a loan given its payment history"""
    amount_paid: Decimal
    balance: Decimal
    installments_remaining: Optional[int]  # None when the installment is degenerate
    satisfied: bool


def _validate_term_years(term_years) -> int:
    if isinstance(term_years, bool):
        raise InvalidTerms("Loan period must be a whole number of years")
    if isinstance(term_years, int):
        years = term_years
    else:
        try:
            value = to_decimal(term_years)
        except ValueError as e:
            raise InvalidTerms(f"Invalid loan period: {e}")
        if value != value.to_integral_value():
            raise InvalidTerms("Loan period must be a whole number of years")
        years = int(value)

    if years <= 0:
        raise InvalidTerms("Loan period must be positive")
    return years


def compute_origination(principal: Numeric, rate_percent: Numeric, term_years: Union[int, Numeric]) -> Origination:
    """
    Compute simple-interest totals for new loan terms

    Args:
        principal: Amount lent, must be positive
        rate_percent: Annual interest rate in percent (10 means 10%), >= 0
        term_years: Whole number of years, must be positive

    Returns:
        Origination with the normalized terms, interest and total rounded
        to cents, and the installment computed from the unrounded total

    Raises:
        InvalidTerms: If any input is out of range or not a finite number
    """
    try:
        principal = to_decimal(principal)
        rate = to_decimal(rate_percent)
    except ValueError as e:
        raise InvalidTerms(f"Invalid loan terms: {e}")

    if principal <= ZERO:
        raise InvalidTerms("Loan amount must be positive")
    if rate < ZERO:
        raise InvalidTerms("Interest rate cannot be negative")
    years = _validate_term_years(term_years)

    interest = principal * years * rate / Decimal('100')
    total = principal + interest
    try:
        return Origination(
            principal=principal,
            rate_percent=rate,
            term_years=years,
            interest=round2(interest),
            total_payable=round2(total),
            installment_amount=round2(total / (years * MONTHS_PER_YEAR))
        )
    except ValueError as e:
        raise InvalidTerms(f"Invalid loan terms: {e}")


def _payment_amount(payment) -> Decimal:
    amount = getattr(payment, 'amount', payment)
    return to_decimal(amount)


def installments_for(balance: Decimal, installment_amount: Decimal) -> Optional[int]:
    """Number of installments needed to clear a balance, None if it cannot be computed"""
    if balance <= ZERO:
        return 0
    if installment_amount <= ZERO:
        return None
    return int((balance / installment_amount).to_integral_value(rounding=ROUND_CEILING))


def derive_status(
    total_payable: Numeric,
    installment_amount: Numeric,
    payments: Iterable
) -> LoanPosition:
    """
    Fold a loan's payment history into its current position

    Args:
        total_payable: Loan total fixed at origination
        installment_amount: Monthly installment fixed at origination
        payments: Every recorded payment of the loan; items may be payment
            records with an ``amount`` attribute or bare amounts

    Returns:
        LoanPosition. Overpayment is absorbed: the balance never goes
        below zero and no credit is tracked.
    """
    total_payable = to_decimal(total_payable)
    installment_amount = to_decimal(installment_amount)

    amount_paid = round2(sum((_payment_amount(p) for p in payments), ZERO))
    balance = max(ZERO, round2(total_payable - amount_paid))
    # Normalize to two places so a clamped zero reads as 0.00
    balance = round2(balance)

    return LoanPosition(
        amount_paid=amount_paid,
        balance=balance,
        installments_remaining=installments_for(balance, installment_amount),
        satisfied=balance <= ZERO
    )
