from __future__ import annotations

from ..extensions import db
from ..item_refs import ItemRef, ITEM_PRODUCT, ITEM_SET, ITEM_ATTAR
from ..money import format_money
from attarhouse.time_utils import to_utc_z


class CatalogItemMixin:
    """
    Columns shared by every orderable catalog variant.

    Products, gift sets and attars are kept in separate tables (they differ
    in catalog presentation) but are structurally identical for ordering.

    PRICING:
    - price: list price shown on the storefront
    - cost_price: wholesale/base price, the default unit price on orders
      unless the party has an override (see PartyItemPrice)
    """
    item_kind: str = ""

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    hsn_code = db.Column(db.String(32), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(12, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def item_ref(self) -> ItemRef:
        return ItemRef(self.item_kind, self.id)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.item_kind,
            "sku": self.sku,
            "name": self.name,
            "hsn_code": self.hsn_code,
            "price": format_money(self.price),
            "cost_price": format_money(self.cost_price),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(CatalogItemMixin, db.Model):
    """Standalone perfume product."""
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    item_kind = ITEM_PRODUCT


class ProductSet(CatalogItemMixin, db.Model):
    """Gift set: a bundled product sold as one line."""
    __tablename__ = "product_sets"
    __table_args__ = {"sqlite_autoincrement": True}

    item_kind = ITEM_SET


class Attar(CatalogItemMixin, db.Model):
    """Traditional oil-based perfume."""
    __tablename__ = "attars"
    __table_args__ = {"sqlite_autoincrement": True}

    item_kind = ITEM_ATTAR


CATALOG_MODELS = {
    ITEM_PRODUCT: Product,
    ITEM_SET: ProductSet,
    ITEM_ATTAR: Attar,
}


class StockRecord(db.Model):
    """
    On-hand quantity counter for one catalog item.

    At most one row per (item_kind, item_id). A missing row means the item
    has never been stocked and counts as zero on hand.

    Quantity is NOT floored at zero: sales are accepted even when they drive
    stock negative, and the order engine reports that as a warning.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("item_kind", "item_id", name="uq_stock_records_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_kind = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def item_ref(self) -> ItemRef:
        return ItemRef(self.item_kind, self.item_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_kind": self.item_kind,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
