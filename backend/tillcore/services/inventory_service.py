# Overview: Inventory Stock Guard; availability checks, stock plans and stock writes.

"""
Inventory Stock Guard

Stock invariants (authoritative):
- Product.stock is a real number (weighed goods sell fractions).
- A sale never drives stock negative: availability is checked against the
  locked product row before any write.
- Every stock change writes exactly one StockMovement per product per
  event, recording previous and new stock.
- Stock writes are optimistic: Product carries a version_id, so a write
  based on a stale read fails with StaleDataError instead of overwriting a
  concurrent sale. The caller retries the whole workflow.
- Cancellation restores the quantities recorded on the sale's items,
  added to the CURRENT stock (additive, never a reset). Products deleted
  since the sale are skipped with a warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStock, ProductInactive, ProductNotFound
from ..models import Product, StockMovement
from tillcore.time_utils import utcnow
from .concurrency import lock_for_update


MOVEMENT_OUT = "out"
MOVEMENT_IN = "in"


@dataclass(frozen=True)
class StockLine:
    """Planned stock change for one product."""
    product_id: int
    product_name: str
    unit_type: str
    previous_stock: Decimal
    quantity: Decimal
    new_stock: Decimal


def _aggregate(lines: Iterable[tuple[int, Decimal]]) -> dict[int, Decimal]:
    # Keeps first-seen order so movements follow the ticket order
    totals: dict[int, Decimal] = {}
    for product_id, qty in lines:
        totals[product_id] = totals.get(product_id, Decimal("0")) + Decimal(qty)
    return totals


def _load_product(product_id: int) -> Product | None:
    return lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()


def check_and_plan(lines: Iterable[tuple[int, Decimal]]) -> list[StockLine]:
    """
    Check availability for (product_id, quantity) pairs and plan the outflow.

    Read-only: nothing is written. Product rows are locked for the rest of
    the transaction where the backend supports it.

    Raises:
        ProductNotFound, ProductInactive, InsufficientStock
    """
    plan = []
    for product_id, qty in _aggregate(lines).items():
        product = _load_product(product_id)
        if product is None:
            raise ProductNotFound(
                f"Product with ID {product_id} not found",
                details={"product_id": product_id},
            )

        if not product.is_active:
            raise ProductInactive(
                f'Product "{product.name}" is not active',
                details={"product_id": product_id},
            )

        current = Decimal(product.stock)
        if current < qty:
            raise InsufficientStock(
                f'Insufficient stock for "{product.name}". Available: {current}, requested: {qty}',
                details={
                    "product_id": product_id,
                    "requested_quantity": float(qty),
                    "on_hand": float(current),
                },
            )

        plan.append(StockLine(
            product_id=product.id,
            product_name=product.name,
            unit_type=product.unit_type,
            previous_stock=current,
            quantity=qty,
            new_stock=current - qty,
        ))
    return plan


def plan_restock(items) -> list[StockLine]:
    """
    Plan the inflow that reverses a sale, from its recorded line items.

    Products that no longer exist are skipped (logged), so a cancellation
    still succeeds after a product was deleted.
    """
    plan = []
    recorded = []
    for item in items:
        if item.product_id is None:
            current_app.logger.warning(
                "Sale item %s lost its product reference; skipping stock restoration", item.id
            )
            continue
        recorded.append((item.product_id, item.quantity))

    for product_id, qty in _aggregate(recorded).items():
        product = _load_product(product_id)
        if product is None:
            current_app.logger.warning(
                "Product %s not found; skipping stock restoration of %s", product_id, qty
            )
            continue

        current = Decimal(product.stock)
        plan.append(StockLine(
            product_id=product.id,
            product_name=product.name,
            unit_type=product.unit_type,
            previous_stock=current,
            quantity=qty,
            new_stock=current + qty,
        ))
    return plan


def _apply(plan: list[StockLine], *, movement_type: str, sign: int, sale_id: int | None,
           user_id: int | None, reason: str) -> list[StockMovement]:
    movements = []
    now = utcnow()
    for line in plan:
        product = db.session.get(Product, line.product_id)
        product.stock = line.new_stock

        movement = StockMovement(
            product_id=line.product_id,
            movement_type=movement_type,
            quantity=sign * line.quantity,
            previous_stock=line.previous_stock,
            new_stock=line.new_stock,
            reason=reason,
            sale_id=sale_id,
            user_id=user_id,
            created_at=now,
        )
        db.session.add(movement)
        movements.append(movement)

    # Version check on products happens here; StaleDataError on a lost race
    db.session.flush()
    return movements


def apply_outflow(plan: list[StockLine], *, sale_id: int | None, user_id: int | None,
                  reason: str) -> list[StockMovement]:
    """Subtract planned quantities and log negative 'out' movements (no commit)."""
    return _apply(plan, movement_type=MOVEMENT_OUT, sign=-1, sale_id=sale_id, user_id=user_id, reason=reason)


def apply_inflow(plan: list[StockLine], *, sale_id: int | None, user_id: int | None,
                 reason: str) -> list[StockMovement]:
    """Add planned quantities back and log positive 'in' movements (no commit)."""
    return _apply(plan, movement_type=MOVEMENT_IN, sign=1, sale_id=sale_id, user_id=user_id, reason=reason)


def get_stock_movements(product_id: int, limit: int = 50) -> list[StockMovement]:
    """Most recent movements first."""
    return db.session.query(StockMovement).filter_by(
        product_id=product_id
    ).order_by(StockMovement.id.desc()).limit(limit).all()
