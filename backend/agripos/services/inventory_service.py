# Overview: Service-layer operations for products and stock; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..models.inventory import CATEGORY_DUCK_EGGS, CATEGORY_HEN_EGGS, VALID_PRODUCT_TYPES
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import run_unit
"""
Stock invariants (authoritative)

- stock is an integer count of the product's unit and never goes below zero.
- Every change is a conditional UPDATE (stock + delta >= 0), so concurrent
  sales cannot oversell between the availability check and the write.
- A shortfall is reported as InsufficientStockError listing each short line;
  nothing is clamped.
"""


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "sku", "name", "description", "product_type", "category", "unit",
        "cost_price_cents", "selling_price_cents", "wholesale_price_cents",
        "stock", "minimum_stock", "is_active",
    }),
    required_on_create=frozenset({"sku", "name", "product_type", "selling_price_cents"}),
    choices={"product_type": VALID_PRODUCT_TYPES},
    cents_fields=frozenset({"cost_price_cents", "selling_price_cents", "wholesale_price_cents"}),
    non_negative=frozenset({"stock", "minimum_stock"}),
)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(product_type: str | None = None, active_only: bool = True) -> list[Product]:
    query = db.session.query(Product)
    if product_type:
        if product_type not in VALID_PRODUCT_TYPES:
            raise ValidationError(f"product_type must be one of {VALID_PRODUCT_TYPES}")
        query = query.filter(Product.product_type == product_type)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)

    def _op():
        if db.session.query(Product.id).filter_by(sku=patch["sku"]).first():
            raise ValidationError(f"SKU '{patch['sku']}' already exists", details={"sku": patch["sku"]})
        product = Product(**patch)
        db.session.add(product)
        db.session.flush()
        return product

    return run_unit(_op, operation="create_product", context={"sku": patch.get("sku")})


# Stock only moves through update_product_stock
PRODUCT_UPDATE_POLICY = PRODUCT_POLICY.for_update("stock")


def update_product(product_id: int, payload: dict) -> Product:
    """
    Edit a product's catalogue fields (name, prices, type, reorder level...).

    SKU may change but must stay unique. Deactivating is is_active=false;
    products are never deleted because sale lines reference them.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)

    def _op():
        product = get_product(product_id)
        if "sku" in patch and patch["sku"] != product.sku:
            taken = (
                db.session.query(Product.id)
                .filter(Product.sku == patch["sku"], Product.id != product.id)
                .first()
            )
            if taken:
                raise ValidationError(f"SKU '{patch['sku']}' already exists", details={"sku": patch["sku"]})
        for key, value in patch.items():
            setattr(product, key, value)
        return product

    product = run_unit(_op, operation="update_product", context={"product_id": product_id})
    current_app.logger.info("Product %s updated: %s", product_id, ", ".join(sorted(patch)))
    return product


def update_product_stock(product_id: int, delta: int, *, commit: bool = True) -> Product:
    """
    Adjust stock by a signed delta. Never lets stock fall below zero.

    Raises InsufficientStockError when a negative delta exceeds stock on hand.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta cannot be 0")

    def _op():
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock + delta >= 0)
            .values(stock=Product.stock + delta, version_id=Product.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        applied = db.session.execute(stmt).rowcount == 1
        product = db.session.query(Product).populate_existing().filter_by(id=product_id).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        if not applied:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}: on hand {product.stock}, requested {-delta}",
                details={"shortfalls": [_shortfall(product, -delta)]},
            )
        return product

    if commit:
        return run_unit(_op, operation="update_product_stock", context={"product_id": product_id, "delta": delta})
    return _op()


def _shortfall(product: Product, requested: int) -> dict:
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "requested": requested,
        "on_hand": product.stock,
    }


def find_shortfalls(quantities: dict[int, int]) -> list[dict]:
    """Products whose stock does not cover the requested quantity."""
    shortfalls = []
    for product_id, requested in sorted(quantities.items()):
        product = get_product(product_id)
        if product.stock < requested:
            shortfalls.append(_shortfall(product, requested))
    return shortfalls


def check_availability(quantities: dict[int, int]) -> None:
    """Raise InsufficientStockError listing every short product."""
    shortfalls = find_shortfalls(quantities)
    if shortfalls:
        names = ", ".join(s["name"] for s in shortfalls)
        raise InsufficientStockError(f"Insufficient stock: {names}", details={"shortfalls": shortfalls})


def is_low_stock(product: Product) -> bool:
    return product.stock <= (product.minimum_stock or 0)


def find_egg_product(category: str) -> Product | None:
    """Active finished-egg product that collections stock up (hen_eggs / duck_eggs)."""
    if category not in (CATEGORY_HEN_EGGS, CATEGORY_DUCK_EGGS):
        raise ValidationError(f"category must be {CATEGORY_HEN_EGGS} or {CATEGORY_DUCK_EGGS}")
    product = (
        db.session.query(Product)
        .filter(Product.category == category, Product.is_active.is_(True))
        .order_by(Product.id.asc())
        .first()
    )
    if product is None:
        current_app.logger.warning("No active product with category %s; egg stock not updated", category)
    return product
