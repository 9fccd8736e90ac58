from __future__ import annotations

from ..extensions import db
from tillcore.time_utils import to_utc_z
from tillcore.validation import as_float


class Sale(db.Model):
    """
    One committed (or cancelled) retail sale.

    LIFECYCLE:
    - completed: created once, with stock and ledgers already applied
    - cancelled: the only transition allowed, exactly once, never reversed

    PAYMENT:
    - payment_method holds the single method, or "multiple" for a split
    - payment_methods holds the ordered [{method, amount}] allocation only
      when more than one method was used; otherwise it is NULL

    INVARIANT: total = subtotal + tax (tolerance 0.01).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    payment_methods = db.Column(db.JSON, nullable=True)
    payment_data = db.Column(db.JSON, nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    # Cancellation audit trail
    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[user_id])
    cancelled_by_user = db.relationship("User", foreign_keys=[cancelled_by])
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subtotal": as_float(self.subtotal),
            "tax": as_float(self.tax),
            "total": as_float(self.total),
            "payment_method": self.payment_method,
            "payment_methods": self.payment_methods,
            "payment_data": self.payment_data,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "status": self.status,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class SaleItem(db.Model):
    """
    Line item of a sale. Immutable once written.

    The recorded quantity is the exact stock delta applied on sale and
    restored on cancellation.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": as_float(self.quantity),
            "unit_price": as_float(self.unit_price),
            "subtotal": as_float(self.subtotal),
            "created_at": to_utc_z(self.created_at),
        }
