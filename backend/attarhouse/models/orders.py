from __future__ import annotations

from ..extensions import db
from ..item_refs import ItemRef
from ..money import format_money
from attarhouse.time_utils import to_utc_z, to_iso_date


ORDER_SALE = "sale"
ORDER_PURCHASE = "purchase"
ORDER_TYPES = (ORDER_SALE, ORDER_PURCHASE)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)

PAYMENT_UNPAID = "unpaid"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_UNPAID, PAYMENT_PARTIAL, PAYMENT_PAID)


class Order(db.Model):
    """
    Sale or purchase order against one party.

    LIFECYCLE:
    - Created atomically with its items (status=pending, payment_status=unpaid)
    - Amended in place: status, payment_status, message and existing item
      quantities/prices. Items cannot be added through amendment.
    - type is fixed at creation.

    bill_details is a denormalized snapshot of party contact fields and item
    lines, rebuilt whenever items change so printed bills do not drift when
    the catalog or party record is edited later.

    ledger_transaction_id points at the debit (sale) or credit (purchase)
    entry posted at creation, so amendments can correct it without matching
    on description text.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_party_date", "party_id", "order_date"),
        db.Index("ix_orders_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    party_id = db.Column(db.Integer, db.ForeignKey("parties.id"), nullable=False, index=True)
    order_date = db.Column(db.Date, nullable=False)

    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_UNPAID)

    # GST-inclusive
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=True)

    bill_details = db.Column(db.JSON, nullable=True)
    message = db.Column(db.Text, nullable=True)

    ledger_transaction_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    party = db.relationship("Party", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} type={self.type} party_id={self.party_id} total={self.total_amount}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "party_id": self.party_id,
            "order_date": to_iso_date(self.order_date),
            "type": self.type,
            "status": self.status,
            "payment_status": self.payment_status,
            "total_amount": format_money(self.total_amount),
            "gst_rate": format_money(self.gst_rate),
            "bill_details": self.bill_details,
            "message": self.message,
            "ledger_transaction_id": self.ledger_transaction_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line on an order; references exactly one catalog item."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    item_kind = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")

    @property
    def item_ref(self) -> ItemRef:
        return ItemRef(self.item_kind, self.item_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_kind": self.item_kind,
            "item_id": self.item_id,
            self.item_ref.reference_field: self.item_id,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "total_price": format_money(self.total_price),
        }
