"""
FastAPI REST API Module

Thin HTTP layer over the loan ledger: validates request shape, calls the
ledger, and maps its error taxonomy onto status codes.
"""

from typing import Optional
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from .audit import AuditTrail
from .config import LedgerConfig, get_config
from .exceptions import (
    InvalidAmount, InvalidPaymentType, InvalidTerms, LoanAlreadySettled,
    LoanLedgerError, LoanNotFound, NoLoansForCustomer
)
from .loans import LoanLedger
from .logging_config import get_logger, setup_logging
from .money import round2
from .schemas import CreateLoanRequest, RecordPaymentRequest
from .storage import InMemoryStorage, SQLiteStorage, StorageInterface


logger = get_logger("loan_ledger.api")

ERROR_STATUS = {
    InvalidTerms: status.HTTP_400_BAD_REQUEST,
    InvalidAmount: status.HTTP_400_BAD_REQUEST,
    InvalidPaymentType: status.HTTP_400_BAD_REQUEST,
    LoanNotFound: status.HTTP_404_NOT_FOUND,
    NoLoansForCustomer: status.HTTP_404_NOT_FOUND,
    LoanAlreadySettled: status.HTTP_409_CONFLICT,
}


def build_storage(config: LedgerConfig) -> StorageInterface:
    if config.storage_backend == "memory":
        return InMemoryStorage()
    if config.storage_backend == "sqlite":
        return SQLiteStorage(config.database_path)
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")


def build_ledger(config: LedgerConfig) -> LoanLedger:
    """Wire storage, audit trail and ledger from configuration"""
    storage = build_storage(config)
    audit_trail = AuditTrail(storage) if config.enable_audit_logging else None
    return LoanLedger(storage, audit_trail=audit_trail)


def get_ledger(request: Request) -> LoanLedger:
    return request.app.state.ledger


loans_router = APIRouter()
customers_router = APIRouter()


@loans_router.post("", status_code=status.HTTP_201_CREATED)
def create_loan(request: CreateLoanRequest, ledger: LoanLedger = Depends(get_ledger)):
    """Originate a new loan"""
    loan = ledger.create_loan(
        customer_id=request.customer_id,
        principal=request.loan_amount,
        rate_percent=request.interest_rate_yearly,
        term_years=request.loan_period_years,
        customer_name=request.customer_name
    )
    return {
        "loan_id": loan.id,
        "customer_id": loan.customer_id,
        "principal": round2(loan.principal),
        "total_interest": loan.total_interest,
        "total_amount_payable": loan.total_payable,
        "monthly_emi": loan.installment_amount
    }


@loans_router.post("/{loan_id}/payments")
def record_payment(loan_id: str, request: RecordPaymentRequest, ledger: LoanLedger = Depends(get_ledger)):
    """Record an EMI or lump-sum payment"""
    receipt = ledger.record_payment(loan_id, request.amount, request.payment_type)
    return receipt.to_dict()


@loans_router.get("/{loan_id}/ledger")
def get_loan_ledger(loan_id: str, ledger: LoanLedger = Depends(get_ledger)):
    """Loan status and transaction history"""
    return ledger.get_ledger(loan_id).to_dict()


@customers_router.get("/{customer_id}/overview")
def get_customer_overview(customer_id: str, ledger: LoanLedger = Depends(get_ledger)):
    """All loans of a customer"""
    return ledger.get_customer_overview(customer_id).to_dict()


async def ledger_error_handler(request: Request, exc: LoanLedgerError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err['loc'][-1]) for err in exc.errors() if err.get('loc')})
    message = f"Invalid or missing fields: {', '.join(fields)}" if fields else "Invalid request body"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def create_app(ledger: Optional[LoanLedger] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Loan Ledger API",
        description="Simple-interest loan origination, repayments and ledgers",
        version="1.0.0"
    )
    app.state.ledger = ledger or build_ledger(get_config())

    app.add_exception_handler(LoanLedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(loans_router, prefix="/api/v1/loans", tags=["Loans"])
    app.include_router(customers_router, prefix="/api/v1/customers", tags=["Customers"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"ok": True, "service": "loan_ledger", "version": "1.0.0"}

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the API with uvicorn using configured logging and storage"""
    config = get_config()
    setup_logging(config.log_level, fmt=config.log_format, log_file=config.log_file)
    app = create_app()
    logger.info(f"Loan ledger API on {host or config.api_host}:{port or config.api_port}")
    uvicorn.run(app, host=host or config.api_host, port=port or config.api_port)
