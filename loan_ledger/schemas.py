"""
Pydantic request models for the loan ledger API
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class CreateLoanRequest(BaseModel):
    customer_id: str = Field(..., min_length=1, description="Borrower identifier")
    loan_amount: Decimal = Field(..., description="Principal amount")
    loan_period_years: int = Field(..., description="Loan period in whole years")
    interest_rate_yearly: Decimal = Field(..., description="Annual simple interest rate in percent")
    customer_name: Optional[str] = Field(None, description="Display name for a new customer")


class RecordPaymentRequest(BaseModel):
    amount: Decimal = Field(..., description="Payment amount")
    payment_type: str = Field(..., description="EMI or LUMP_SUM")
