from __future__ import annotations

from ..extensions import db
from ..item_refs import ItemRef
from ..money import format_money
from attarhouse.time_utils import to_utc_z, to_iso_date


PARTY_CUSTOMER = "customer"
PARTY_SUPPLIER = "supplier"
PARTY_KINDS = (PARTY_CUSTOMER, PARTY_SUPPLIER)


class Party(db.Model):
    """
    Customer or supplier with a running account balance.

    BALANCE SIGN:
    - Positive: the party owes the shop (unpaid sales)
    - Negative: the shop owes the party (unpaid purchases)

    The balance always equals SUM(debit) - SUM(credit) over the party's
    transactions. Only the order engine and ledger service move it.
    """
    __tablename__ = "parties"
    __table_args__ = (
        db.Index("ix_parties_kind_name", "kind", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default=PARTY_CUSTOMER)

    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    gst_no = db.Column(db.String(32), nullable=True)

    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

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
        return f"<Party id={self.id} name={self.name!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "gst_no": self.gst_no,
            "balance": format_money(self.balance),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PartyItemPrice(db.Model):
    """Per-party unit price override for one catalog item."""
    __tablename__ = "party_item_prices"
    __table_args__ = (
        db.UniqueConstraint("party_id", "item_kind", "item_id", name="uq_party_item_prices_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    party_id = db.Column(db.Integer, db.ForeignKey("parties.id", ondelete="CASCADE"), nullable=False, index=True)
    item_kind = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    party = db.relationship("Party", backref=db.backref("item_prices", lazy=True, cascade="all, delete-orphan"))

    @property
    def item_ref(self) -> ItemRef:
        return ItemRef(self.item_kind, self.item_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "party_id": self.party_id,
            "item_kind": self.item_kind,
            "item_id": self.item_id,
            "price": format_money(self.price),
        }


LEDGER_DEBIT = "debit"
LEDGER_CREDIT = "credit"


class Transaction(db.Model):
    """
    Party ledger entry.

    - debit: increases what the party owes the shop (sale, purchase payment made)
    - credit: decreases it (purchase, sale payment received)

    Entries are appended for every balance movement. The one exception is the
    entry that originated an order: when the order's items are amended its
    amount is rewritten to the new order total (see Order.ledger_transaction_id).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_party_date", "party_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    party_id = db.Column(db.Integer, db.ForeignKey("parties.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    transaction_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    party = db.relationship("Party", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "party_id": self.party_id,
            "order_id": self.order_id,
            "type": self.type,
            "amount": format_money(self.amount),
            "description": self.description,
            "transaction_date": to_iso_date(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
        }
