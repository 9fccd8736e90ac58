# Overview: Sale Transaction Coordinator; create/cancel workflows plus sale listing and detail.

"""
Sale Transaction Coordinator

WHY: A sale is the only operation that changes several ledgers at once
(stock, stock movements, customer account, cash drawer). They must never
disagree, including after a cancellation.

createSale: Validate -> Plan -> Commit -> Post-commit delivery
- Every check runs before the first write, inside the same transaction
- Sale, items, stock, stock movements, customer charges and the pending
  cash-movement tasks commit together
- Cash movements are applied after commit from the outbox; a failure
  there leaves the task pending, it never fails the sale

cancelSale: completed -> cancelled, exactly once
- Restores the recorded item quantities additively
- Writes compensating credit adjustments and cash withdrawals
- A second cancellation is an error, never a no-op
"""

from __future__ import annotations

import math
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Any, Mapping

from flask import current_app
from sqlalchemy import String, and_, cast, func, or_
from sqlalchemy.orm import aliased

from ..extensions import db
from ..errors import CalculationError, SaleNotFound, SaleNotFoundOrCancelled, ValidationError
from ..models import Customer, Sale, SaleItem, User
from tillcore.time_utils import parse_calendar_date, to_utc_z, utcnow
from tillcore.validation import money, parse_decimal, parse_int, quantity
from . import customer_service, inventory_service, outbox_service, payment_service, register_service
from .concurrency import begin_immediate, lock_for_update, run_with_retry


STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = [STATUS_COMPLETED, STATUS_CANCELLED]

DEFAULT_CANCEL_REASON = "Cancelled by user"


# =============================================================================
# INPUT PARSING
# =============================================================================

def _parse_items(raw_items: Any) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("The sale must contain at least one item", code="NO_ITEMS")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object", code="INVALID_PRODUCT_ID")

        product_id = parse_int(raw.get("product_id"), field="product_id", code="INVALID_PRODUCT_ID")
        if product_id <= 0:
            raise ValidationError(f"Invalid product ID: {raw.get('product_id')}", code="INVALID_PRODUCT_ID")

        qty = quantity(parse_decimal(raw.get("quantity"), field="quantity", code="INVALID_QUANTITY"))
        if qty <= 0:
            raise ValidationError(
                f"Invalid quantity for product {product_id}", code="INVALID_QUANTITY"
            )

        unit_price = money(parse_decimal(raw.get("unit_price"), field="unit_price", code="INVALID_UNIT_PRICE"))
        if unit_price <= 0:
            raise ValidationError(
                f"Invalid unit price for product {product_id}", code="INVALID_UNIT_PRICE"
            )

        items.append({
            "product_id": product_id,
            "quantity": qty,
            "unit_price": unit_price,
            "subtotal": money(qty * unit_price),
        })
    return items


def _parse_positive_amount(value: Any, *, field: str, code: str) -> Decimal:
    amount = money(parse_decimal(value, field=field, code=code))
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", code=code)
    return amount


def _parse_tax(value: Any) -> Decimal:
    # Missing or non-numeric tax counts as zero
    if value is None or value == "":
        return Decimal("0.00")
    try:
        return money(parse_decimal(value, field="tax"))
    except ValidationError:
        return Decimal("0.00")


def _tolerance() -> Decimal:
    return Decimal(str(current_app.config.get("AMOUNT_TOLERANCE", "0.01")))


def _parse_sale_id(sale_id: Any) -> int:
    parsed = parse_int(sale_id, field="sale_id", code="INVALID_SALE_ID")
    if parsed <= 0:
        raise ValidationError("Invalid sale ID", code="INVALID_SALE_ID")
    return parsed


# =============================================================================
# CREATE
# =============================================================================

def _ledger_suffix(payment, method: str) -> str:
    return f" ({method})" if isinstance(payment, payment_service.SplitPayment) else ""


def create_sale(data: Mapping[str, Any], user_id: int | None = None) -> Sale:
    """
    Record a completed sale.

    Args:
        data: Request body (items, subtotal, tax, total, payment_method or
              payment_methods, payment_data, customer_id, notes)
        user_id: Cashier recording the sale

    Returns:
        The committed Sale

    Raises:
        PosError subclasses for every business-rule failure; nothing is
        written in that case.
    """
    tolerance = _tolerance()

    def _op():
        try:
            begin_immediate()
            session = register_service.require_open_session()

            items = _parse_items(data.get("items"))

            subtotal = _parse_positive_amount(data.get("subtotal"), field="subtotal", code="INVALID_SUBTOTAL")
            total = _parse_positive_amount(data.get("total"), field="total", code="INVALID_TOTAL")
            tax = _parse_tax(data.get("tax"))

            payment = payment_service.validate_payment(
                total,
                data.get("payment_method"),
                data.get("payment_methods"),
                tolerance=tolerance,
            )

            if abs(subtotal + tax - total) > tolerance:
                raise CalculationError(
                    f"Calculation error: subtotal ({subtotal}) + tax ({tax}) != total ({total})",
                    details={"subtotal": float(subtotal), "tax": float(tax), "total": float(total)},
                )

            on_account = payment_service.uses_on_account(payment)
            customer = customer_service.resolve_customer(data.get("customer_id"), on_account)
            if on_account:
                customer_service.check_credit_limit(customer, payment_service.on_account_amount(payment))

            plan = inventory_service.check_and_plan(
                (item["product_id"], item["quantity"]) for item in items
            )

            now = utcnow()
            sale = Sale(
                subtotal=subtotal,
                tax=tax,
                total=total,
                payment_method=payment.stored_method,
                payment_methods=payment.stored_allocations,
                payment_data=data.get("payment_data") or {},
                customer_id=customer.id,
                user_id=user_id,
                status=STATUS_COMPLETED,
                notes=data.get("notes"),
                created_at=now,
                updated_at=now,
            )
            for item in items:
                sale.items.append(SaleItem(
                    product_id=item["product_id"],
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                    subtotal=item["subtotal"],
                    created_at=now,
                ))
            db.session.add(sale)
            db.session.flush()

            inventory_service.apply_outflow(
                plan, sale_id=sale.id, user_id=user_id, reason=f"Sale #{sale.id}"
            )

            is_split = isinstance(payment, payment_service.SplitPayment)
            for allocation in payment.allocations:
                if allocation.method != payment_service.METHOD_ON_ACCOUNT:
                    continue
                if is_split:
                    description = f"Partial on-account sale: {allocation.amount:.2f}"
                    reference = f"Sale #{sale.id} (partial)"
                else:
                    description = f"On-account sale: {allocation.amount:.2f}"
                    reference = f"Sale #{sale.id}"
                customer_service.record_charge(
                    customer.id,
                    allocation.amount,
                    description=description,
                    reference=reference,
                    sale_id=sale.id,
                    user_id=user_id,
                )

            tasks = [
                outbox_service.enqueue(
                    outbox_service.KIND_CASH_MOVEMENT,
                    {
                        "session_id": session.id,
                        "sale_id": sale.id,
                        "movement_type": register_service.MOVEMENT_SALE,
                        "payment_method": allocation.method,
                        "amount": str(allocation.amount),
                        "description": f"Sale #{sale.id}{_ledger_suffix(payment, allocation.method)}",
                        "user_id": user_id,
                    },
                    sale_id=sale.id,
                )
                for allocation in payment.allocations
            ]

            db.session.commit()
            return sale.id, [task.id for task in tasks]
        except Exception:
            db.session.rollback()
            raise

    sale_id, task_ids = run_with_retry(
        _op, attempts=current_app.config.get("STOCK_CONFLICT_RETRIES", 3)
    )

    for task_id in task_ids:
        outbox_service.deliver_task(task_id)

    current_app.logger.info("Sale %s created by user %s", sale_id, user_id)
    return db.session.get(Sale, sale_id)


# =============================================================================
# CANCEL
# =============================================================================

def cancel_sale(sale_id: Any, reason: str | None = None, user_id: int | None = None) -> dict:
    """
    Cancel a completed sale and reverse its ledgers.

    Returns:
        Confirmation with the number of products restored and the total
        amount reverted

    Raises:
        ValidationError: malformed sale id
        SaleNotFoundOrCancelled: unknown sale, or not in completed state
    """
    sale_pk = _parse_sale_id(sale_id)
    reason = (reason or "").strip() or DEFAULT_CANCEL_REASON

    def _op():
        try:
            begin_immediate()
            sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_pk)).first()
            if sale is None or sale.status != STATUS_COMPLETED:
                raise SaleNotFoundOrCancelled(details={"sale_id": sale_pk})

            plan = inventory_service.plan_restock(sale.items)

            now = utcnow()
            sale.status = STATUS_CANCELLED
            sale.cancellation_reason = reason
            sale.cancelled_by = user_id
            sale.cancelled_at = now
            sale.notes = f"{sale.notes or ''} - Cancelled: {reason}"
            sale.updated_at = now

            inventory_service.apply_inflow(
                plan, sale_id=sale.id, user_id=user_id, reason=f"Sale #{sale.id} cancelled - {reason}"
            )

            payment = payment_service.payment_from_sale(sale)
            is_split = isinstance(payment, payment_service.SplitPayment)

            for allocation in payment.allocations:
                if allocation.method != payment_service.METHOD_ON_ACCOUNT:
                    continue
                if is_split:
                    description = f"Partial cancellation of sale #{sale.id} - {reason}"
                    reference = f"Sale #{sale.id} cancelled (partial)"
                else:
                    description = f"Cancellation of sale #{sale.id} - {reason}"
                    reference = f"Sale #{sale.id} cancelled"
                customer_service.record_credit_adjustment(
                    sale.customer_id,
                    allocation.amount,
                    description=description,
                    reference=reference,
                    sale_id=sale.id,
                    user_id=user_id,
                )

            session_id = register_service.current_session_id()
            if session_id is None:
                current_app.logger.warning(
                    "No open cash session; sale %s cancelled without cash withdrawals", sale.id
                )
            else:
                for allocation in payment.allocations:
                    register_service.record_movement(
                        session_id,
                        register_service.MOVEMENT_WITHDRAWAL,
                        -abs(allocation.amount),
                        description=(
                            f"Sale #{sale.id} cancelled{_ledger_suffix(payment, allocation.method)} - {reason}"
                        ),
                        payment_method=allocation.method,
                        sale_id=sale.id,
                        user_id=user_id,
                    )

            db.session.commit()
            return {
                "saleId": sale.id,
                "reason": reason,
                "stockRestored": len(plan),
                "totalReverted": float(sale.total),
                "cancelled_by": user_id,
                "cancelled_at": to_utc_z(now),
            }
        except Exception:
            db.session.rollback()
            raise

    result = run_with_retry(_op, attempts=current_app.config.get("STOCK_CONFLICT_RETRIES", 3))
    current_app.logger.info("Sale %s cancelled by user %s: %s", result["saleId"], user_id, reason)
    return result


# =============================================================================
# READ
# =============================================================================

def serialize_item(item: SaleItem) -> dict:
    data = item.to_dict()
    product = item.product
    data["product_name"] = product.name if product else None
    data["product_barcode"] = product.barcode if product else None
    data["product_unit_type"] = product.unit_type if product else None
    return data


def serialize_sale(sale: Sale, *, include_items: bool = False) -> dict:
    """Sale with its resolved display fields."""
    data = sale.to_dict()
    payment = payment_service.payment_from_sale(sale)

    data["payment_methods"] = payment.stored_allocations
    data["payment_method_display"] = payment_service.describe_payment(payment)
    data["customer_name"] = sale.customer.name if sale.customer else None
    data["customer_document"] = sale.customer.document_number if sale.customer else None
    data["cashier_name"] = sale.cashier.name if sale.cashier else None
    data["cancelled_by_name"] = sale.cancelled_by_user.name if sale.cancelled_by_user else None

    if include_items:
        data["items"] = [serialize_item(item) for item in sale.items]
    return data


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return parse_int(value, field="value")
    except ValidationError:
        return None


def _parse_date_filter(value: Any, field: str):
    try:
        return parse_calendar_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format", code="INVALID_DATE")


def list_sales(filters: Mapping[str, Any]) -> dict:
    """
    Paginated sale listing, newest first.

    Unknown payment methods, statuses and non-numeric customer ids are
    ignored; malformed dates are rejected.
    """
    start_date = _parse_date_filter(filters.get("start_date"), "start_date")
    end_date = _parse_date_filter(filters.get("end_date"), "end_date")

    page = _optional_int(filters.get("page")) or 1
    page = max(page, 1)

    max_limit = current_app.config.get("SALES_MAX_PAGE_SIZE", 100)
    limit = _optional_int(filters.get("limit"))
    if limit is None:
        limit = current_app.config.get("SALES_PAGE_SIZE", 25)
    limit = min(max(limit, 1), max_limit)

    cashier = aliased(User)
    query = db.session.query(Sale).outerjoin(
        Customer, Sale.customer_id == Customer.id
    ).outerjoin(
        cashier, Sale.user_id == cashier.id
    )

    if start_date:
        query = query.filter(Sale.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Sale.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

    payment_method = filters.get("payment_method")
    if payment_method in payment_service.VALID_PAYMENT_METHODS:
        query = query.filter(or_(
            Sale.payment_method == payment_method,
            and_(
                Sale.payment_method == payment_service.METHOD_MULTIPLE,
                cast(Sale.payment_methods, String).like(f'%"{payment_method}"%'),
            ),
        ))
    elif payment_method == payment_service.METHOD_MULTIPLE:
        query = query.filter(Sale.payment_method == payment_service.METHOD_MULTIPLE)

    status = filters.get("status")
    if status in VALID_STATUSES:
        query = query.filter(Sale.status == status)

    customer_id = _optional_int(filters.get("customer_id"))
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            cast(Sale.id, String).like(pattern),
            Customer.name.ilike(pattern),
            cashier.name.ilike(pattern),
        ))

    total = query.count()
    sales = query.order_by(
        Sale.created_at.desc(), Sale.id.desc()
    ).offset((page - 1) * limit).limit(limit).all()

    counts = {}
    if sales:
        rows = db.session.query(
            SaleItem.sale_id,
            func.count(SaleItem.id),
            func.coalesce(func.sum(SaleItem.quantity), 0),
        ).filter(
            SaleItem.sale_id.in_([sale.id for sale in sales])
        ).group_by(SaleItem.sale_id).all()
        counts = {sale_id: (count, qty) for sale_id, count, qty in rows}

    results = []
    for sale in sales:
        data = serialize_sale(sale)
        items_count, total_items = counts.get(sale.id, (0, 0))
        data["items_count"] = items_count
        data["total_items"] = float(total_items)
        results.append(data)

    return {
        "sales": results,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


def get_sale(sale_id: Any) -> dict:
    """
    Raises:
        ValidationError: malformed sale id
        SaleNotFound: no sale with that id
    """
    sale_pk = _parse_sale_id(sale_id)
    sale = db.session.get(Sale, sale_pk)
    if sale is None:
        raise SaleNotFound(details={"sale_id": sale_pk})
    return serialize_sale(sale, include_items=True)
