from __future__ import annotations

from ..extensions import db
from tillcore.time_utils import to_utc_z
from tillcore.validation import as_float


class Customer(db.Model):
    """
    Customer master data for on-account (credit) selling.

    WALK-IN IDENTITY: one reserved customer, identified by a fixed document
    number and name, absorbs every sale without a specific customer. It is
    created lazily and can never carry an on-account balance.

    BALANCE: never stored here. It is derived from CustomerTransaction rows.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_document_active", "document_number", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    document_type = db.Column(db.String(16), nullable=True)
    document_number = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    credit_limit = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def is_walk_in(self, document_number: str, name: str) -> bool:
        return self.document_number == document_number and self.name == name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "email": self.email,
            "phone": self.phone,
            "credit_limit": as_float(self.credit_limit),
            "is_active": self.is_active,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerTransaction(db.Model):
    """
    Append-only ledger of on-account activity.

    TRANSACTION TYPES:
    - charge: on-account portion of a sale (raises balance)
    - debit_adjustment: manual increase (raises balance)
    - payment: customer settles part of the balance (lowers balance)
    - credit_adjustment: reversal, e.g. a cancelled sale (lowers balance)

    Amounts are always positive; the type carries the sign.
    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "customer_transactions"
    __table_args__ = (
        db.Index("ix_customer_txns_customer_type", "customer_id", "transaction_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    description = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "transaction_type": self.transaction_type,
            "amount": as_float(self.amount),
            "description": self.description,
            "reference": self.reference,
            "sale_id": self.sale_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
