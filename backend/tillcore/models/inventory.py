from __future__ import annotations

from ..extensions import db
from tillcore.time_utils import to_utc_z
from tillcore.validation import as_float


class Product(db.Model):
    """
    Product master data, as far as the sale workflows touch it.

    STOCK:
    - stock is a real number: weighed goods sell fractional quantities.
    - stock never goes negative as a result of a sale.
    - version_id guards every stock write (UPDATE ... WHERE version_id = ?),
      so two sales racing on the same stale stock value cannot both win.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    # "unit" for counted goods, "kg" for weighed goods
    unit_type = db.Column(db.String(16), nullable=False, default="unit")

    price = db.Column(db.Numeric(12, 2), nullable=True)
    stock = db.Column(db.Numeric(12, 3), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "unit_type": self.unit_type,
            "price": as_float(self.price),
            "stock": as_float(self.stock),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit trail of stock changes.

    MOVEMENT TYPES:
    - out: stock leaving on a sale (quantity negative)
    - in: stock returning on a cancellation (quantity positive)

    IMMUTABLE: Records are never updated or deleted. They reference the
    sale but outlive it as historical fact.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)  # out, in

    # Signed: negative for out, positive for in
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    previous_stock = db.Column(db.Numeric(12, 3), nullable=False)
    new_stock = db.Column(db.Numeric(12, 3), nullable=False)

    reason = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": as_float(self.quantity),
            "previous_stock": as_float(self.previous_stock),
            "new_stock": as_float(self.new_stock),
            "reason": self.reason,
            "sale_id": self.sale_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
