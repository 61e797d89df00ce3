# Overview: Egg collection valuation, recording and farmer settlement.

"""
Egg Collection Service

WHY: Farm-gate egg collections are the one place the store buys from its
customers. A collection converts graded egg counts into a value owed to the
farmer and adds finished eggs to stock.

VALUATION (exact):
    total_value = (total_hen_eggs / 12) * hen_price + (total_duck_eggs / 12) * duck_price
Dozens use real division (partial dozens paid pro-rata), computed with
Fractions and rounded half-up to the cent once at the end. Damaged eggs are
recorded but excluded from the totals.

SIDE EFFECTS (one unit of work):
- EggCollection row
- farmer balance -= total_value, total_egg_sales += total_value
- hen/duck egg products += whole dozens collected (floor(total / 12))
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from fractions import Fraction

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Account, CollectionRoute, EggCollection
from ..models.inventory import CATEGORY_DUCK_EGGS, CATEGORY_HEN_EGGS
from ..models.sales import PAYMENT_METHOD_CASH
from ..errors import LedgerError, NotFoundError, ValidationError
from ..validation import MAX_AMOUNT_CENTS
from agripos.time_utils import parse_iso_datetime, utcnow
from .account_service import apply_egg_collection_credit, get_account
from .auth_service import PERM_CASH_HANDLE, PERM_EGG_COLLECTION, LedgerContext
from .concurrency import lock_for_update, run_unit
from .inventory_service import find_egg_product, update_product_stock
from .payment_service import PAYMENT_TYPE_EGG_PAYMENT, record_payment


EGGS_PER_DOZEN = 12

# Share of damaged eggs above which a collection is flagged
DAMAGE_ALERT_RATE = Fraction(1, 10)


@dataclass(frozen=True)
class HenEggs:
    small: int = 0
    medium: int = 0
    large: int = 0
    extra_large: int = 0
    damaged: int = 0

    @property
    def total(self) -> int:
        return self.small + self.medium + self.large + self.extra_large


@dataclass(frozen=True)
class DuckEggs:
    small: int = 0
    medium: int = 0
    large: int = 0
    damaged: int = 0

    @property
    def total(self) -> int:
        return self.small + self.medium + self.large


@dataclass(frozen=True)
class EggValuation:
    total_hen_eggs: int
    total_duck_eggs: int
    hen_value: Fraction
    duck_value: Fraction
    total_value_cents: int

    @property
    def hen_dozens(self) -> int:
        return self.total_hen_eggs // EGGS_PER_DOZEN

    @property
    def duck_dozens(self) -> int:
        return self.total_duck_eggs // EGGS_PER_DOZEN

    def to_dict(self) -> dict:
        return {
            "total_hen_eggs": self.total_hen_eggs,
            "total_duck_eggs": self.total_duck_eggs,
            "total_value_cents": self.total_value_cents,
            "hen_dozens_to_stock": self.hen_dozens,
            "duck_dozens_to_stock": self.duck_dozens,
        }


@dataclass
class CollectionRequest:
    farmer_id: int
    hen_eggs: HenEggs
    duck_eggs: DuckEggs
    hen_egg_price_cents: int
    duck_egg_price_cents: int
    route_id: int | None = None
    quality_notes: str | None = None
    collection_date: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "CollectionRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        for key in ("farmer_id", "hen_egg_price_cents", "duck_egg_price_cents"):
            if key not in payload:
                raise ValidationError(f"Missing required field: {key}")
        return cls(
            farmer_id=payload["farmer_id"],
            hen_eggs=_eggs_from_payload(HenEggs, payload.get("hen_eggs")),
            duck_eggs=_eggs_from_payload(DuckEggs, payload.get("duck_eggs")),
            hen_egg_price_cents=payload["hen_egg_price_cents"],
            duck_egg_price_cents=payload["duck_egg_price_cents"],
            route_id=payload.get("route_id"),
            quality_notes=payload.get("quality_notes"),
            collection_date=_collection_date(payload.get("collection_date")),
        )


@dataclass
class CollectionResult:
    collection: EggCollection
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"collection": self.collection.to_dict(), "warnings": self.warnings}


def _collection_date(raw) -> datetime | None:
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("collection_date must be an ISO-8601 datetime")


def _eggs_from_payload(cls, raw):
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValidationError(f"{cls.__name__} counts must be an object")
    allowed = set(cls.__dataclass_fields__)
    unknown = set(raw) - allowed
    if unknown:
        raise ValidationError(f"Unknown egg grades: {', '.join(sorted(unknown))}")
    return cls(**raw)


def _check_counts(eggs) -> None:
    for grade, count in asdict(eggs).items():
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValidationError(f"Egg count '{grade}' must be a non-negative integer")


def _check_price(value, key: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{key} must be a positive integer number of cents per dozen")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


# =============================================================================
# VALUATION
# =============================================================================

def value_collection(
    hen_eggs: HenEggs,
    duck_eggs: DuckEggs,
    hen_egg_price_cents: int,
    duck_egg_price_cents: int,
) -> EggValuation:
    """Pure valuation; prices are cents per dozen."""
    _check_counts(hen_eggs)
    _check_counts(duck_eggs)
    _check_price(hen_egg_price_cents, "hen_egg_price_cents")
    _check_price(duck_egg_price_cents, "duck_egg_price_cents")

    hen_value = Fraction(hen_eggs.total, EGGS_PER_DOZEN) * hen_egg_price_cents
    duck_value = Fraction(duck_eggs.total, EGGS_PER_DOZEN) * duck_egg_price_cents
    total = math.floor(hen_value + duck_value + Fraction(1, 2))

    return EggValuation(
        total_hen_eggs=hen_eggs.total,
        total_duck_eggs=duck_eggs.total,
        hen_value=hen_value,
        duck_value=duck_value,
        total_value_cents=total,
    )


def _damage_warnings(hen_eggs: HenEggs, duck_eggs: DuckEggs) -> list[str]:
    warnings = []
    for label, eggs in (("hen", hen_eggs), ("duck", duck_eggs)):
        handled = eggs.total + eggs.damaged
        if handled and Fraction(eggs.damaged, handled) > DAMAGE_ALERT_RATE:
            pct = eggs.damaged * 100 // handled
            warnings.append(f"High {label} egg damage rate: {pct}%")
    return warnings


# =============================================================================
# ROUTES
# =============================================================================

def get_route(route_id: int) -> CollectionRoute:
    route = db.session.get(CollectionRoute, route_id)
    if not route:
        raise NotFoundError(f"Collection route {route_id} not found", details={"route_id": route_id})
    return route


def list_routes(active_only: bool = True) -> list[CollectionRoute]:
    query = db.session.query(CollectionRoute)
    if active_only:
        query = query.filter(CollectionRoute.is_active.is_(True))
    return query.order_by(CollectionRoute.name.asc()).all()


def create_route(name: str, farmer_ids: list[int] | None = None, description: str | None = None) -> CollectionRoute:
    if not name or not name.strip():
        raise ValidationError("name is required")

    def _op():
        if db.session.query(CollectionRoute.id).filter_by(name=name.strip()).first():
            raise ValidationError(f"Route '{name}' already exists")
        route = CollectionRoute(name=name.strip(), description=description)
        for farmer_id in farmer_ids or []:
            farmer = get_account(farmer_id)
            if not farmer.is_farmer:
                raise ValidationError(f"Account {farmer_id} is not a FARMER", details={"account_id": farmer_id})
            route.farmers.append(farmer)
        db.session.add(route)
        db.session.flush()
        return route

    return run_unit(_op, operation="create_route", context={"name": name})


# =============================================================================
# RECORDING
# =============================================================================

def _validate_farmer(farmer_id: int) -> Account:
    farmer = get_account(farmer_id)
    if not farmer.is_farmer:
        raise ValidationError("Invalid farmer: account is not a FARMER", details={"account_id": farmer_id})
    if not farmer.is_active:
        raise ValidationError("Farmer account is inactive", details={"account_id": farmer_id})
    return farmer


def record_collection(ctx: LedgerContext, request: CollectionRequest) -> CollectionResult:
    """
    Record a collection, credit the farmer and stock the eggs as one unit.

    Raises ValidationError for a non-farmer/inactive account, a route the
    farmer is not on, no eggs, or non-positive prices.
    """
    ctx.require(PERM_EGG_COLLECTION)
    farmer = _validate_farmer(request.farmer_id)

    if request.route_id is not None:
        route = get_route(request.route_id)
        if not route.is_active:
            raise ValidationError("Invalid collection route", details={"route_id": route.id})
        if farmer.id not in {f.id for f in route.farmers}:
            raise ValidationError(
                "Farmer not assigned to this route", details={"route_id": route.id, "account_id": farmer.id}
            )

    valuation = value_collection(
        request.hen_eggs, request.duck_eggs, request.hen_egg_price_cents, request.duck_egg_price_cents
    )
    if valuation.total_hen_eggs + valuation.total_duck_eggs <= 0:
        raise ValidationError("Collection must include at least one egg")
    if valuation.total_value_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Collection value cannot exceed {MAX_AMOUNT_CENTS} cents")

    warnings = _damage_warnings(request.hen_eggs, request.duck_eggs)
    context = {"account_id": farmer.id, "delta_cents": -valuation.total_value_cents}

    def _op():
        hen, duck = request.hen_eggs, request.duck_eggs
        collection = EggCollection(
            farmer_id=farmer.id,
            route_id=request.route_id,
            staff_id=ctx.staff_id,
            collection_date=request.collection_date or utcnow(),
            hen_small=hen.small,
            hen_medium=hen.medium,
            hen_large=hen.large,
            hen_extra_large=hen.extra_large,
            hen_damaged=hen.damaged,
            duck_small=duck.small,
            duck_medium=duck.medium,
            duck_large=duck.large,
            duck_damaged=duck.damaged,
            hen_egg_price_cents=request.hen_egg_price_cents,
            duck_egg_price_cents=request.duck_egg_price_cents,
            total_hen_eggs=valuation.total_hen_eggs,
            total_duck_eggs=valuation.total_duck_eggs,
            total_value_cents=valuation.total_value_cents,
            quality_notes=request.quality_notes,
        )
        db.session.add(collection)
        db.session.flush()
        context["egg_collection_id"] = collection.id

        # Sub-cent collections (a few eggs at a low rate) carry no balance change
        if valuation.total_value_cents > 0:
            apply_egg_collection_credit(
                farmer, valuation.total_value_cents,
                staff_id=ctx.staff_id, egg_collection_id=collection.id, commit=False,
            )

        for category, dozens in ((CATEGORY_HEN_EGGS, valuation.hen_dozens), (CATEGORY_DUCK_EGGS, valuation.duck_dozens)):
            if dozens <= 0:
                continue
            product = find_egg_product(category)
            if product is None:
                warnings.append(f"No active {category} product; {dozens} dozen not added to stock")
                continue
            update_product_stock(product.id, dozens, commit=False)

        return collection

    collection = run_unit(_op, operation="record_collection", context=context)
    current_app.logger.info(
        "Egg collection %s: farmer=%s hen=%s duck=%s value=%s staff=%s",
        collection.id, farmer.id, valuation.total_hen_eggs, valuation.total_duck_eggs,
        valuation.total_value_cents, ctx.staff_id,
    )
    for warning in warnings:
        current_app.logger.warning("Egg collection %s: %s", collection.id, warning)
    return CollectionResult(collection=collection, warnings=warnings)


# =============================================================================
# QUERIES
# =============================================================================

def get_collection(collection_id: int) -> EggCollection:
    collection = db.session.get(EggCollection, collection_id)
    if not collection:
        raise NotFoundError(f"Egg collection {collection_id} not found", details={"egg_collection_id": collection_id})
    return collection


def list_collections(farmer_id: int | None = None, limit: int | None = None) -> list[EggCollection]:
    query = db.session.query(EggCollection)
    if farmer_id is not None:
        query = query.filter(EggCollection.farmer_id == farmer_id)
    query = query.order_by(EggCollection.collection_date.desc(), EggCollection.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def list_unpaid_collections(farmer_id: int) -> list[EggCollection]:
    _validate_farmer(farmer_id)
    return (
        db.session.query(EggCollection)
        .filter(EggCollection.farmer_id == farmer_id, EggCollection.paid.is_(False))
        .order_by(EggCollection.collection_date.asc(), EggCollection.id.asc())
        .all()
    )


def collection_summary(start: datetime, end: datetime, route_id: int | None = None) -> dict:
    """Collection totals for start <= collection_date <= end."""
    query = db.session.query(
        func.count(EggCollection.id),
        func.coalesce(func.sum(EggCollection.total_hen_eggs), 0),
        func.coalesce(func.sum(EggCollection.total_duck_eggs), 0),
        func.coalesce(func.sum(EggCollection.hen_damaged + EggCollection.duck_damaged), 0),
        func.coalesce(func.sum(EggCollection.total_value_cents), 0),
        func.count(func.distinct(EggCollection.farmer_id)),
    ).filter(EggCollection.collection_date >= start, EggCollection.collection_date <= end)
    if route_id is not None:
        query = query.filter(EggCollection.route_id == route_id)

    count, hen, duck, damaged, value, farms = query.one()
    hen, duck, damaged = int(hen), int(duck), int(damaged)
    handled = hen + duck + damaged
    return {
        "total_collections": int(count),
        "total_hen_eggs": hen,
        "total_duck_eggs": duck,
        "total_damaged_eggs": damaged,
        "damage_rate_pct": (damaged * 100 // handled) if handled else 0,
        "total_value_cents": int(value),
        "farms_visited": int(farms),
    }


# =============================================================================
# SETTLEMENT
# =============================================================================

def pay_collections(
    ctx: LedgerContext,
    collection_ids: list[int],
    payment_method: str = PAYMENT_METHOD_CASH,
    reference_number: str | None = None,
) -> dict:
    """
    Settle unpaid collections, one EGG_PAYMENT per collection.

    Each collection is its own unit of work: a failure is reported in
    "failed" and does not undo collections already paid. A caller without
    cash_handle is refused before anything is attempted.
    """
    ctx.require(PERM_CASH_HANDLE)
    if not collection_ids:
        raise ValidationError("collection_ids must not be empty")

    paid, failed = [], []
    for collection_id in collection_ids:
        def _op(collection_id=collection_id):
            collection = lock_for_update(
                db.session.query(EggCollection).filter_by(id=collection_id)
            ).first()
            if not collection:
                raise NotFoundError(f"Egg collection {collection_id} not found")
            if collection.paid:
                raise ValidationError(f"Egg collection {collection_id} is already paid")
            if collection.total_value_cents <= 0:
                raise ValidationError(f"Egg collection {collection_id} has no value to pay")

            record = record_payment(
                ctx,
                account_id=collection.farmer_id,
                payment_type=PAYMENT_TYPE_EGG_PAYMENT,
                amount_cents=collection.total_value_cents,
                payment_method=payment_method,
                reference_number=reference_number,
                notes=f"Payment for egg collection {collection_id}",
                egg_collection_id=collection_id,
                commit=False,
            )
            collection.paid = True
            collection.paid_at = utcnow()
            collection.payment_record_id = record.id
            return record

        try:
            record = run_unit(_op, operation="pay_collection", context={"egg_collection_id": collection_id})
        except LedgerError as exc:
            current_app.logger.warning("Egg collection %s not paid: %s", collection_id, exc.message)
            failed.append({"collection_id": collection_id, "error": exc.message})
            continue
        paid.append(record)

    return {
        "paid": [record.to_dict() for record in paid],
        "failed": failed,
        "total_paid_cents": sum(record.amount_cents for record in paid),
    }
