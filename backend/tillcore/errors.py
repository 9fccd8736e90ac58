# Overview: Error taxonomy shared by services and routes.

"""
Sale workflow errors.

Every business failure carries a stable machine-readable ``code``, a human
``message`` and a ``kind``. Routes turn these into
``{"success": false, "code": ..., "message": ...}`` responses.

KINDS:
- VALIDATION: malformed, missing or out-of-range input
- PRECONDITION: the system is not in a state that allows the operation
- CONFLICT: the request contradicts current data (stock, credit, totals)
- NOT_FOUND: the referenced record does not exist

Infrastructure failures are not modelled here; they surface as
SQLAlchemyError and become a generic internal error.
"""

from __future__ import annotations


KIND_VALIDATION = "VALIDATION"
KIND_PRECONDITION = "PRECONDITION"
KIND_CONFLICT = "CONFLICT"
KIND_NOT_FOUND = "NOT_FOUND"


class PosError(Exception):
    """Base class for business-rule failures."""

    kind = KIND_VALIDATION
    code = "BAD_REQUEST"
    http_status = 400
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, *, code: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"success": False, "code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PosError):
    kind = KIND_VALIDATION


class PreconditionError(PosError):
    kind = KIND_PRECONDITION


class ConflictError(PosError):
    kind = KIND_CONFLICT


class NotFoundError(PosError):
    kind = KIND_NOT_FOUND
    http_status = 404


# =============================================================================
# PAYMENT
# =============================================================================

class InvalidPaymentMethod(ValidationError):
    code = "INVALID_PAYMENT_METHOD"
    default_message = "Invalid payment method"


class InvalidPaymentAmount(ValidationError):
    code = "INVALID_PAYMENT_AMOUNT"
    default_message = "Every payment method must carry a positive amount"


class PaymentAmountMismatch(ConflictError):
    code = "PAYMENT_AMOUNT_MISMATCH"
    default_message = "Sum of payments does not match the sale total"


class CalculationError(ValidationError):
    code = "CALCULATION_ERROR"
    default_message = "Subtotal plus tax does not match the total"


# =============================================================================
# CASH SESSION
# =============================================================================

class CashClosed(PreconditionError):
    code = "CASH_CLOSED"
    default_message = "The cash register is closed. Open a cash session first."


class CashAlreadyOpen(PreconditionError):
    code = "CASH_ALREADY_OPEN"
    default_message = "A cash session is already open"


# =============================================================================
# CUSTOMERS
# =============================================================================

class CustomerRequired(PreconditionError):
    code = "CUSTOMER_REQUIRED"
    default_message = "A valid customer is required for on-account sales"


class CustomerNotFound(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"
    http_status = 400
    default_message = "Customer not found or inactive"


class DefaultCustomerNoCredit(PreconditionError):
    code = "DEFAULT_CUSTOMER_NO_CREDIT"
    default_message = "The walk-in customer cannot buy on account"


class DefaultCustomerUnavailable(PosError):
    code = "DEFAULT_CUSTOMER_ERROR"
    http_status = 500
    default_message = "Could not obtain the default customer"


class CreditLimitExceeded(ConflictError):
    code = "CREDIT_LIMIT_EXCEEDED"
    default_message = "The on-account amount exceeds the customer's credit limit"


# =============================================================================
# INVENTORY
# =============================================================================

class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"
    http_status = 400
    default_message = "Product not found"


class ProductInactive(ConflictError):
    code = "PRODUCT_INACTIVE"
    default_message = "Product is not active"


class InsufficientStock(ConflictError):
    code = "INSUFFICIENT_STOCK"
    default_message = "Insufficient stock"


# =============================================================================
# SALES
# =============================================================================

class SaleNotFound(NotFoundError):
    code = "SALE_NOT_FOUND"
    default_message = "Sale not found"


class SaleNotFoundOrCancelled(ConflictError):
    code = "SALE_NOT_FOUND_OR_CANCELLED"
    http_status = 404
    default_message = "Sale not found or already cancelled"
