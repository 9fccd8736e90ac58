# Overview: Customer Credit Ledger; customer resolution, derived balances and on-account entries.

"""
Customer Credit Ledger

DESIGN PRINCIPLES:
- The balance is never stored: balance = SUM(charge, debit_adjustment)
  - SUM(payment, credit_adjustment) over the customer's transactions
- The ledger is append-only; reversals are new credit_adjustment rows
- On-account selling requires a real, active, non-walk-in customer
- Limit check is inclusive: balance + charge == credit_limit is accepted
- Reads happen inside the caller's transaction, with the customer row
  locked, so two concurrent on-account sales cannot both pass the check
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import (
    CreditLimitExceeded,
    CustomerNotFound,
    CustomerRequired,
    DefaultCustomerNoCredit,
    DefaultCustomerUnavailable,
    ValidationError,
)
from ..models import Customer, CustomerTransaction
from tillcore.time_utils import utcnow
from tillcore.validation import money, parse_int
from .concurrency import lock_for_update


# =============================================================================
# TRANSACTION TYPES (CONSTANTS)
# =============================================================================

TXN_CHARGE = "charge"
TXN_DEBIT_ADJUSTMENT = "debit_adjustment"
TXN_PAYMENT = "payment"
TXN_CREDIT_ADJUSTMENT = "credit_adjustment"

BALANCE_INCREASING_TYPES = (TXN_CHARGE, TXN_DEBIT_ADJUSTMENT)


# =============================================================================
# WALK-IN CUSTOMER
# =============================================================================

def _default_identity() -> tuple[str, str]:
    return (
        current_app.config["DEFAULT_CUSTOMER_DOCUMENT"],
        current_app.config["DEFAULT_CUSTOMER_NAME"],
    )


def is_default_customer(customer: Customer) -> bool:
    document, name = _default_identity()
    return customer.is_walk_in(document, name)


def get_or_create_default_customer() -> Customer:
    """
    Return the reserved walk-in customer, creating it on first use.

    Joins the caller's transaction (flush only, no commit).

    Raises:
        DefaultCustomerUnavailable: if it cannot be read or created
    """
    document, name = _default_identity()
    try:
        customer = db.session.query(Customer).filter_by(
            document_number=document,
            name=name,
            is_active=True,
        ).order_by(Customer.id).first()
        if customer:
            return customer

        customer = Customer(
            name=name,
            document_type="ID",
            document_number=document,
            credit_limit=Decimal("0"),
            is_active=True,
            notes="Default customer for quick sales. Cannot buy on account.",
        )
        db.session.add(customer)
        db.session.flush()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to obtain default customer")
        raise DefaultCustomerUnavailable() from exc

    current_app.logger.info("Created default customer %s", customer.id)
    return customer


# =============================================================================
# RESOLUTION
# =============================================================================

def _coerce_customer_id(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return parse_int(value, field="customer_id")
    except ValidationError:
        return None


def _get_active_customer(customer_id: int, *, lock: bool = False) -> Customer | None:
    query = db.session.query(Customer).filter_by(id=customer_id, is_active=True)
    if lock:
        query = lock_for_update(query)
    return query.first()


def resolve_customer(requested_id: Any, on_account: bool) -> Customer:
    """
    Pick the customer a sale is recorded against.

    on_account=True: the customer is mandatory, must be active and must not
    be the walk-in identity. The row is locked for the credit check.

    on_account=False: an active customer is used when given; an absent or
    unknown id silently falls back to the walk-in customer.

    Raises:
        CustomerRequired, CustomerNotFound, DefaultCustomerNoCredit,
        DefaultCustomerUnavailable
    """
    customer_id = _coerce_customer_id(requested_id)

    if on_account:
        if customer_id is None:
            raise CustomerRequired()

        customer = _get_active_customer(customer_id, lock=True)
        if customer is None:
            raise CustomerNotFound(details={"customer_id": customer_id})

        if is_default_customer(customer):
            raise DefaultCustomerNoCredit()

        return customer

    if customer_id is not None:
        customer = _get_active_customer(customer_id)
        if customer is not None:
            return customer

    return get_or_create_default_customer()


# =============================================================================
# BALANCE AND LIMIT
# =============================================================================

def get_balance(customer_id: int) -> Decimal:
    """Current on-account balance, derived from the ledger."""
    signed = case(
        (CustomerTransaction.transaction_type.in_(BALANCE_INCREASING_TYPES), CustomerTransaction.amount),
        else_=-CustomerTransaction.amount,
    )
    total = db.session.query(
        func.coalesce(func.sum(signed), 0)
    ).filter(
        CustomerTransaction.customer_id == customer_id,
    ).scalar()
    return money(Decimal(str(total or 0)))


def check_credit_limit(customer: Customer, proposed_charge: Decimal) -> Decimal:
    """
    Validate a prospective on-account charge against the credit limit.

    Returns:
        The balance the customer would have after the charge

    Raises:
        CreditLimitExceeded: balance + proposed_charge > credit_limit
    """
    balance = get_balance(customer.id)
    limit = money(Decimal(customer.credit_limit or 0))
    new_balance = balance + money(proposed_charge)

    if new_balance > limit:
        raise CreditLimitExceeded(
            details={
                "customer_id": customer.id,
                "current_balance": float(balance),
                "requested": float(proposed_charge),
                "credit_limit": float(limit),
                "available": float(limit - balance),
            },
        )
    return new_balance


def get_credit_summary(customer_id: int) -> dict:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(details={"customer_id": customer_id})

    balance = get_balance(customer.id)
    limit = money(Decimal(customer.credit_limit or 0))
    return {
        "customer_id": customer.id,
        "name": customer.name,
        "balance": float(balance),
        "credit_limit": float(limit),
        "available_credit": float(limit - balance),
    }


# =============================================================================
# LEDGER WRITES
# =============================================================================

def _append(
    transaction_type: str,
    customer_id: int,
    amount: Decimal,
    *,
    description: str,
    reference: str,
    sale_id: int | None,
    user_id: int | None,
) -> CustomerTransaction:
    txn = CustomerTransaction(
        customer_id=customer_id,
        transaction_type=transaction_type,
        amount=money(amount),
        description=description,
        reference=reference,
        sale_id=sale_id,
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(txn)
    return txn


def record_charge(customer_id: int, amount: Decimal, *, description: str, reference: str,
                  sale_id: int | None = None, user_id: int | None = None) -> CustomerTransaction:
    """Append an on-account charge (no commit)."""
    return _append(TXN_CHARGE, customer_id, amount, description=description, reference=reference,
                   sale_id=sale_id, user_id=user_id)


def record_credit_adjustment(customer_id: int, amount: Decimal, *, description: str, reference: str,
                             sale_id: int | None = None, user_id: int | None = None) -> CustomerTransaction:
    """Append a compensating credit adjustment (no commit)."""
    return _append(TXN_CREDIT_ADJUSTMENT, customer_id, amount, description=description, reference=reference,
                   sale_id=sale_id, user_id=user_id)


def get_transactions(customer_id: int) -> list[CustomerTransaction]:
    return db.session.query(CustomerTransaction).filter_by(
        customer_id=customer_id
    ).order_by(CustomerTransaction.id).all()
