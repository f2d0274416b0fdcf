"""
Loan Module

Handles loan origination, repayment recording, ledger statements and customer
overviews. Interest math lives in the engine; this module records what the
engine computed and hands payment history back to it for every balance.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
from enum import Enum
import uuid

from .audit import AuditTrail, AuditEventType
from .customers import CustomerManager
from .engine import LoanPosition, compute_origination, derive_status
from .exceptions import (
    InvalidAmount, InvalidPaymentType, InvalidTerms, LoanAlreadySettled,
    LoanNotFound, NoLoansForCustomer
)
from .logging_config import get_logger, log_action
from .money import Numeric, ZERO, format_amount, round2, to_decimal
from .storage import StorageInterface, StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "ACTIVE"
    PAID_OFF = "PAID_OFF"


class PaymentType(Enum):
    """Payment kinds; both reduce the balance identically"""
    EMI = "EMI"
    LUMP_SUM = "LUMP_SUM"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Loan(StorageRecord):
    """Loan with immutable terms; status is the only field ever updated"""
    customer_id: str
    principal: Decimal
    interest_rate: Decimal              # Annual percent, e.g. 10 for 10%
    term_years: int
    total_interest: Decimal
    total_payable: Decimal
    installment_amount: Decimal
    sequence: int
    status: LoanStatus = LoanStatus.ACTIVE

    @property
    def is_paid_off(self) -> bool:
        return self.status == LoanStatus.PAID_OFF

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        data = dict(data)
        for field in ['principal', 'interest_rate', 'total_interest', 'total_payable', 'installment_amount']:
            data[field] = Decimal(data[field])
        data['status'] = LoanStatus(data['status'])
        return super().from_dict(data)


@dataclass
class LoanPayment(StorageRecord):
    """Append-only record of a repayment"""
    loan_id: str
    amount: Decimal
    payment_type: PaymentType
    paid_at: datetime
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['payment_type'] = self.payment_type.value
        result['paid_at'] = self.paid_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanPayment':
        data = dict(data)
        data['amount'] = Decimal(data['amount'])
        data['payment_type'] = PaymentType(data['payment_type'])
        data['paid_at'] = datetime.fromisoformat(data['paid_at'])
        return super().from_dict(data)


@dataclass(frozen=True)
class PaymentReceipt:
    """Outcome of recording a payment"""
    payment_id: str
    loan_id: str
    amount: Decimal
    payment_type: PaymentType
    remaining_balance: Decimal
    installments_remaining: Optional[int]
    status: LoanStatus
    message: str = "Payment recorded successfully"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "loan_id": self.loan_id,
            "message": self.message,
            "remaining_balance": self.remaining_balance,
            "emis_left": self.installments_remaining,
            "status": self.status.value
        }


@dataclass(frozen=True)
class LedgerTransaction:
    transaction_id: str
    date: datetime
    amount: Decimal
    type: PaymentType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "date": self.date.isoformat(),
            "amount": self.amount,
            "type": self.type.value
        }


@dataclass(frozen=True)
class LoanStatement:
    """Loan terms, derived position and ordered transaction history"""
    loan: Loan
    amount_paid: Decimal
    balance_amount: Decimal
    installments_remaining: Optional[int]
    status: LoanStatus
    transactions: Tuple[LedgerTransaction, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan.id,
            "customer_id": self.loan.customer_id,
            "principal": round2(self.loan.principal),
            "interest_rate": self.loan.interest_rate,
            "loan_period_years": self.loan.term_years,
            "total_amount": self.loan.total_payable,
            "monthly_emi": self.loan.installment_amount,
            "amount_paid": self.amount_paid,
            "balance_amount": self.balance_amount,
            "emis_left": self.installments_remaining,
            "status": self.status.value,
            "transactions": [t.to_dict() for t in self.transactions]
        }


@dataclass(frozen=True)
class LoanSummary:
    """One loan as shown in a customer overview"""
    loan: Loan
    position: LoanPosition

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan.id,
            "principal": round2(self.loan.principal),
            "total_amount": self.loan.total_payable,
            "total_interest": round2(self.loan.total_payable - self.loan.principal),
            "emi_amount": self.loan.installment_amount,
            "amount_paid": self.position.amount_paid,
            "balance_amount": self.position.balance,
            "emis_left": self.position.installments_remaining,
            "status": self.loan.status.value,
            "created_at": self.loan.created_at.isoformat()
        }


@dataclass(frozen=True)
class CustomerOverview:
    customer_id: str
    loans: Tuple[LoanSummary, ...]

    @property
    def total_loans(self) -> int:
        return len(self.loans)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "total_loans": self.total_loans,
            "loans": [summary.to_dict() for summary in self.loans]
        }


class LoanLedger:
    """
    Durable record of loans and repayments

    Every mutation runs inside one storage transaction. The transaction holds
    the storage lock until it commits, so two concurrent payments can never
    both see the pre-payment balance.
    """

    def __init__(
        self,
        storage: StorageInterface,
        customer_manager: Optional[CustomerManager] = None,
        audit_trail: Optional[AuditTrail] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.customer_manager = customer_manager or CustomerManager(storage, audit_trail)
        self.logger = get_logger("loan_ledger.loans")

        self.loans_table = "loans"
        self.payments_table = "loan_payments"

    def _log_audit(self, event_type: AuditEventType, entity_type: str, entity_id: str, metadata: Dict) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                metadata=metadata
            )

    def create_loan(
        self,
        customer_id: str,
        principal: Numeric,
        rate_percent: Numeric,
        term_years: Union[int, Numeric],
        customer_name: Optional[str] = None
    ) -> Loan:
        """
        Originate a new ACTIVE loan

        Args:
            customer_id: Borrower; created on the fly if unknown
            principal: Amount lent
            rate_percent: Annual simple interest rate in percent
            term_years: Loan period in whole years
            customer_name: Display name used only when the customer is new

        Returns:
            Created Loan; ``loan.id`` is the loan identifier

        Raises:
            InvalidTerms: If the customer id is missing or the terms are out
                of range. Nothing is persisted in that case.
        """
        if not customer_id or not isinstance(customer_id, str):
            raise InvalidTerms("customer_id is required")

        origination = compute_origination(principal, rate_percent, term_years)

        with self.storage.atomic():
            self.customer_manager.ensure_customer(customer_id, name=customer_name)

            now = datetime.now(timezone.utc)
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                customer_id=customer_id,
                principal=origination.principal,
                interest_rate=origination.rate_percent,
                term_years=origination.term_years,
                total_interest=origination.interest,
                total_payable=origination.total_payable,
                installment_amount=origination.installment_amount,
                sequence=self.storage.next_sequence(self.loans_table),
                status=LoanStatus.ACTIVE
            )
            self._save_loan(loan)

            self._log_audit(AuditEventType.LOAN_ORIGINATED, "loan", loan.id, {
                "customer_id": customer_id,
                "principal": str(loan.principal),
                "interest_rate": str(loan.interest_rate),
                "term_years": loan.term_years,
                "total_payable": str(loan.total_payable),
                "installment_amount": str(loan.installment_amount)
            })

        log_action(
            self.logger, "info", "Loan originated",
            action="create_loan", resource=f"loan:{loan.id}",
            extra={
                "customer_id": customer_id,
                "principal": format_amount(loan.principal),
                "total_payable": format_amount(loan.total_payable),
                "installment_amount": format_amount(loan.installment_amount)
            }
        )
        return loan

    def record_payment(
        self,
        loan_id: str,
        amount: Numeric,
        payment_type: Union[PaymentType, str],
        paid_at: Optional[datetime] = None
    ) -> PaymentReceipt:
        """
        Append a repayment and settle the loan if it is now fully paid

        Args:
            loan_id: Loan being repaid
            amount: Payment amount, rounded to cents on entry
            payment_type: EMI or LUMP_SUM (enum or its string value)
            paid_at: When the payment occurred (defaults to now)

        Returns:
            PaymentReceipt with the post-payment balance

        Raises:
            LoanNotFound, InvalidAmount, InvalidPaymentType, LoanAlreadySettled
        """
        with self.storage.atomic():
            loan = self.get_loan(loan_id)
            if not loan:
                raise LoanNotFound(f"Loan {loan_id} not found")

            amount = self._validate_amount(amount)
            payment_type = self._validate_payment_type(payment_type)

            if loan.is_paid_off:
                raise LoanAlreadySettled(f"Loan {loan_id} is already paid off")

            now = datetime.now(timezone.utc)
            payment = LoanPayment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan_id,
                amount=amount,
                payment_type=payment_type,
                paid_at=_as_utc(paid_at) if paid_at else now,
                sequence=self.storage.next_sequence(self.payments_table)
            )
            self.storage.save(self.payments_table, payment.id, payment.to_dict())

            try:
                position = derive_status(
                    loan.total_payable, loan.installment_amount, self.get_loan_payments(loan_id)
                )
            except ValueError as e:
                raise InvalidAmount(f"amount is too large: {e}")

            self._log_audit(AuditEventType.LOAN_PAYMENT_MADE, "loan", loan_id, {
                "payment_id": payment.id,
                "amount": str(amount),
                "payment_type": payment_type.value,
                "balance": str(position.balance)
            })

            settled_now = position.satisfied and not loan.is_paid_off
            if settled_now:
                loan.status = LoanStatus.PAID_OFF
                loan.updated_at = now
                self._save_loan(loan)
                self._log_audit(AuditEventType.LOAN_PAID_OFF, "loan", loan_id, {
                    "amount_paid": str(position.amount_paid)
                })

        log_action(
            self.logger, "info", f"Payment recorded: {payment_type.value}",
            action="record_payment", resource=f"loan:{loan_id}",
            extra={
                "payment_id": payment.id,
                "amount": format_amount(amount),
                "balance": format_amount(position.balance),
                "installments_remaining": position.installments_remaining
            }
        )
        if settled_now:
            log_action(self.logger, "info", "Loan paid off", action="settle_loan", resource=f"loan:{loan_id}")

        return PaymentReceipt(
            payment_id=payment.id,
            loan_id=loan_id,
            amount=amount,
            payment_type=payment_type,
            remaining_balance=position.balance,
            installments_remaining=position.installments_remaining,
            status=loan.status
        )

    def get_ledger(self, loan_id: str) -> LoanStatement:
        """
        Loan terms, derived balance and transactions oldest first

        Transactions sharing a timestamp keep the order they were recorded in.

        Raises:
            LoanNotFound: If the loan does not exist
        """
        loan = self.get_loan(loan_id)
        if not loan:
            raise LoanNotFound(f"Loan {loan_id} not found")

        payments = self.get_loan_payments(loan_id)
        position = derive_status(loan.total_payable, loan.installment_amount, payments)

        transactions = tuple(
            LedgerTransaction(
                transaction_id=p.id,
                date=p.paid_at,
                amount=p.amount,
                type=p.payment_type
            )
            for p in payments
        )

        return LoanStatement(
            loan=loan,
            amount_paid=position.amount_paid,
            balance_amount=position.balance,
            installments_remaining=position.installments_remaining,
            status=loan.status,
            transactions=transactions
        )

    def get_customer_overview(self, customer_id: str) -> CustomerOverview:
        """
        Every loan of a customer, most recent first, each with a freshly
        derived balance

        Raises:
            NoLoansForCustomer: If the customer has no loans
        """
        loans = self.get_customer_loans(customer_id)
        if not loans:
            raise NoLoansForCustomer(f"No loans for customer {customer_id}")

        summaries = []
        for loan in reversed(loans):
            position = derive_status(
                loan.total_payable, loan.installment_amount, self.get_loan_payments(loan.id)
            )
            summaries.append(LoanSummary(loan=loan, position=position))

        return CustomerOverview(customer_id=customer_id, loans=tuple(summaries))

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def get_customer_loans(self, customer_id: str) -> List[Loan]:
        """Customer's loans in creation order"""
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, {'customer_id': customer_id})]
        loans.sort(key=lambda loan: (loan.created_at, loan.sequence))
        return loans

    def get_loan_payments(self, loan_id: str) -> List[LoanPayment]:
        """Payments of a loan ordered by payment time, ties by insertion sequence"""
        payments = [
            LoanPayment.from_dict(data)
            for data in self.storage.find(self.payments_table, {'loan_id': loan_id})
        ]
        payments.sort(key=lambda p: (p.paid_at, p.sequence))
        return payments

    def _validate_amount(self, amount: Numeric) -> Decimal:
        try:
            value = round2(to_decimal(amount))
        except ValueError as e:
            raise InvalidAmount(f"amount must be > 0: {e}")
        if value <= ZERO:
            raise InvalidAmount("amount must be > 0")
        return value

    def _validate_payment_type(self, payment_type: Union[PaymentType, str]) -> PaymentType:
        if isinstance(payment_type, PaymentType):
            return payment_type
        try:
            return PaymentType(payment_type)
        except ValueError:
            raise InvalidPaymentType("payment_type must be 'EMI' or 'LUMP_SUM'")

    def _save_loan(self, loan: Loan) -> None:
        """Save loan, never moving a paid-off loan back to ACTIVE"""
        existing = self.storage.load(self.loans_table, loan.id)
        if existing and existing['status'] == LoanStatus.PAID_OFF.value and not loan.is_paid_off:
            raise ValueError(f"Loan {loan.id} is paid off and cannot be reactivated")
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
