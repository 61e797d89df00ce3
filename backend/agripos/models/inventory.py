from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


PRODUCT_TYPE_FEED = "FEED"
PRODUCT_TYPE_MEDICINE = "MEDICINE"
PRODUCT_TYPE_EQUIPMENT = "EQUIPMENT"
PRODUCT_TYPE_EGGS = "EGGS"
PRODUCT_TYPE_SUPPLIES = "SUPPLIES"
PRODUCT_TYPE_OTHERS = "OTHERS"

VALID_PRODUCT_TYPES = (
    PRODUCT_TYPE_FEED,
    PRODUCT_TYPE_MEDICINE,
    PRODUCT_TYPE_EQUIPMENT,
    PRODUCT_TYPE_EGGS,
    PRODUCT_TYPE_SUPPLIES,
    PRODUCT_TYPE_OTHERS,
)

# Finished egg products that collections feed into (stocked in dozens)
CATEGORY_HEN_EGGS = "hen_eggs"
CATEGORY_DUCK_EGGS = "duck_eggs"


class Product(db.Model):
    """
    Sellable product with on-hand stock.

    Stock is an integer count of `unit` and never goes below zero; every
    change goes through inventory_service.update_product_stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
        db.Index("ix_products_type_category", "product_type", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    product_type = db.Column(db.String(16), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pieces")

    # Pricing (cents per unit)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    wholesale_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "product_type": self.product_type,
            "category": self.category,
            "unit": self.unit,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "wholesale_price_cents": self.wholesale_price_cents,
            "stock": self.stock,
            "minimum_stock": self.minimum_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
