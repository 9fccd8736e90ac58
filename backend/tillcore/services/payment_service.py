# Overview: Payment split validation; pure functions, no database access.

"""
Payment Split Validator

WHY: A sale total may be settled with one method or split across several.
The allocation is validated at the boundary and turned into a tagged value
before it reaches any ledger.

DESIGN PRINCIPLES:
- SinglePayment(method): the whole total on one method
- SplitPayment(allocations): ordered [{method, amount}], two or more entries
- A split list with one entry (or none) is a single payment
- Split amounts are strictly positive and add up to the total (within 0.01)
- Nothing here touches the database
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ..errors import InvalidPaymentAmount, InvalidPaymentMethod, PaymentAmountMismatch, ValidationError
from ..validation import money, parse_decimal


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CREDIT_CARD = "credit_card"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_ON_ACCOUNT = "on_account"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CREDIT_CARD,
    METHOD_BANK_TRANSFER,
    METHOD_ON_ACCOUNT,
]

# Stored in Sale.payment_method when the allocation is split
METHOD_MULTIPLE = "multiple"

PAYMENT_METHOD_LABELS = {
    METHOD_CASH: "Cash",
    METHOD_CREDIT_CARD: "Credit Card",
    METHOD_BANK_TRANSFER: "Bank Transfer",
    METHOD_ON_ACCOUNT: "On Account",
}

DEFAULT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class Allocation:
    method: str
    amount: Decimal

    def to_dict(self) -> dict:
        return {"method": self.method, "amount": float(self.amount)}


@dataclass(frozen=True)
class SinglePayment:
    method: str
    total: Decimal

    @property
    def allocations(self) -> list[Allocation]:
        return [Allocation(self.method, self.total)]

    @property
    def stored_method(self) -> str:
        return self.method

    @property
    def stored_allocations(self) -> list[dict] | None:
        return None


@dataclass(frozen=True)
class SplitPayment:
    parts: tuple[Allocation, ...]

    @property
    def allocations(self) -> list[Allocation]:
        return list(self.parts)

    @property
    def stored_method(self) -> str:
        return METHOD_MULTIPLE

    @property
    def stored_allocations(self) -> list[dict] | None:
        return [part.to_dict() for part in self.parts]


def on_account_amount(payment: SinglePayment | SplitPayment) -> Decimal:
    """Portion of the payment charged to the customer's account."""
    return sum(
        (a.amount for a in payment.allocations if a.method == METHOD_ON_ACCOUNT),
        Decimal("0"),
    )


def uses_on_account(payment: SinglePayment | SplitPayment) -> bool:
    return any(a.method == METHOD_ON_ACCOUNT for a in payment.allocations)


def _require_method(method: Any) -> str:
    if not isinstance(method, str) or method not in VALID_PAYMENT_METHODS:
        raise InvalidPaymentMethod(
            f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}"
        )
    return method


def validate_payment(
    total: Decimal,
    payment_method: Any = None,
    payment_methods: Any = None,
    *,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> SinglePayment | SplitPayment:
    """
    Validate a payment declaration against the sale total.

    Args:
        total: Declared sale total (already validated as > 0)
        payment_method: Single method token
        payment_methods: Optional list of {"method", "amount"} dicts

    Returns:
        SinglePayment or SplitPayment

    Raises:
        InvalidPaymentMethod: unknown method token
        InvalidPaymentAmount: split amount missing or not strictly positive
        PaymentAmountMismatch: split amounts do not add up to the total
    """
    if payment_methods is not None and not isinstance(payment_methods, list):
        raise InvalidPaymentMethod("payment_methods must be a list of {method, amount} objects")

    if payment_methods and len(payment_methods) > 1:
        parts = []
        for entry in payment_methods:
            if not isinstance(entry, dict):
                raise InvalidPaymentMethod("Each payment must be an object with method and amount")
            method = _require_method(entry.get("method"))
            try:
                amount = money(parse_decimal(entry.get("amount"), field="amount"))
            except ValidationError:
                raise InvalidPaymentAmount(f"Invalid amount for payment method {method}")
            if amount <= 0:
                raise InvalidPaymentAmount()
            parts.append(Allocation(method, amount))

        allocated = sum((p.amount for p in parts), Decimal("0"))
        if abs(allocated - total) > tolerance:
            raise PaymentAmountMismatch(
                details={"total": float(total), "allocated": float(allocated)},
            )
        return SplitPayment(tuple(parts))

    method = payment_method
    if method is None and payment_methods:
        entry = payment_methods[0]
        method = entry.get("method") if isinstance(entry, dict) else None
    return SinglePayment(_require_method(method), money(total))


def payment_from_sale(sale) -> SinglePayment | SplitPayment:
    """
    Rebuild the tagged payment from a stored sale.

    Stored allocations were validated on the way in, so they are trusted here.
    """
    if sale.payment_method == METHOD_MULTIPLE and sale.payment_methods:
        return SplitPayment(tuple(
            Allocation(entry["method"], money(Decimal(str(entry["amount"]))))
            for entry in sale.payment_methods
        ))
    return SinglePayment(sale.payment_method, money(sale.total))


def payment_method_label(method: str) -> str:
    return PAYMENT_METHOD_LABELS.get(method, method)


def describe_payment(payment: SinglePayment | SplitPayment) -> str:
    """Human summary, e.g. "Cash: 50.00, On Account: 100.00"."""
    if isinstance(payment, SplitPayment):
        return ", ".join(
            f"{payment_method_label(a.method)}: {a.amount:.2f}" for a in payment.allocations
        )
    return payment_method_label(payment.method)
