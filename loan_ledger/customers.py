"""
Customer Management Module

Customers are identified by an externally supplied id and are created
implicitly the first time a loan is taken out. They are never deleted.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Optional

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .logging_config import get_logger


@dataclass
class Customer(StorageRecord):
    """Borrower profile"""
    name: Optional[str] = None


class CustomerManager:
    """
    Manages customer records
    """

    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "customers"
        self.logger = get_logger("loan_ledger.customers")

    def ensure_customer(self, customer_id: str, name: Optional[str] = None) -> Customer:
        """
        Return the customer, creating a bare record if it does not exist yet

        Idempotent: repeating the call never creates a second record and never
        overwrites an existing one.
        """
        if not customer_id:
            raise ValueError("Customer ID is required")

        with self.storage.atomic():
            existing = self.get_customer(customer_id)
            if existing:
                return existing

            now = datetime.now(timezone.utc)
            customer = Customer(id=customer_id, created_at=now, updated_at=now, name=name)
            self.storage.save(self.table_name, customer.id, customer.to_dict())

            if self.audit_trail:
                self.audit_trail.log_event(
                    event_type=AuditEventType.CUSTOMER_CREATED,
                    entity_type="customer",
                    entity_id=customer.id,
                    metadata={"name": name}
                )
            self.logger.info(f"Customer created: {customer_id}")
            return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        data = self.storage.load(self.table_name, customer_id)
        if data:
            return Customer.from_dict(data)
        return None
