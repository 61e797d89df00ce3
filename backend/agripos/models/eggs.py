from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


route_farmers = db.Table(
    "collection_route_farmers",
    db.Column("route_id", db.Integer, db.ForeignKey("collection_routes.id"), primary_key=True),
    db.Column("account_id", db.Integer, db.ForeignKey("accounts.id"), primary_key=True),
)


class CollectionRoute(db.Model):
    """Farm-gate collection route; a collection on a route must be from one of its farmers."""
    __tablename__ = "collection_routes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    farmers = db.relationship("Account", secondary=route_farmers, lazy="subquery",
                              backref=db.backref("collection_routes", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "farmer_ids": sorted(f.id for f in self.farmers),
            "created_at": to_utc_z(self.created_at),
        }


class EggCollection(db.Model):
    """
    Procurement of graded eggs from a farmer.

    VALUATION: total_value_cents = (total_hen_eggs / 12) * hen_egg_price_cents
    + (total_duck_eggs / 12) * duck_egg_price_cents, with real division
    (partial dozens paid pro-rata) rounded half-up to the cent once.
    Damaged eggs are recorded but excluded from the totals.
    """
    __tablename__ = "egg_collections"
    __table_args__ = (
        db.Index("ix_egg_collections_farmer_paid", "farmer_id", "paid"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    route_id = db.Column(db.Integer, db.ForeignKey("collection_routes.id"), nullable=True, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)
    collection_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # Hen eggs by grade
    hen_small = db.Column(db.Integer, nullable=False, default=0)
    hen_medium = db.Column(db.Integer, nullable=False, default=0)
    hen_large = db.Column(db.Integer, nullable=False, default=0)
    hen_extra_large = db.Column(db.Integer, nullable=False, default=0)
    hen_damaged = db.Column(db.Integer, nullable=False, default=0)

    # Duck eggs by grade
    duck_small = db.Column(db.Integer, nullable=False, default=0)
    duck_medium = db.Column(db.Integer, nullable=False, default=0)
    duck_large = db.Column(db.Integer, nullable=False, default=0)
    duck_damaged = db.Column(db.Integer, nullable=False, default=0)

    # Market rates, cents per dozen
    hen_egg_price_cents = db.Column(db.Integer, nullable=False)
    duck_egg_price_cents = db.Column(db.Integer, nullable=False)

    total_hen_eggs = db.Column(db.Integer, nullable=False)
    total_duck_eggs = db.Column(db.Integer, nullable=False)
    total_value_cents = db.Column(db.Integer, nullable=False)

    quality_notes = db.Column(db.Text, nullable=True)

    paid = db.Column(db.Boolean, nullable=False, default=False, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_record_id = db.Column(db.Integer, nullable=True)  # settling EGG_PAYMENT record

    synced = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    farmer = db.relationship("Account", backref=db.backref("egg_collections", lazy=True))
    route = db.relationship("CollectionRoute")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "farmer_id": self.farmer_id,
            "route_id": self.route_id,
            "staff_id": self.staff_id,
            "collection_date": to_utc_z(self.collection_date),
            "hen_eggs": {
                "small": self.hen_small,
                "medium": self.hen_medium,
                "large": self.hen_large,
                "extra_large": self.hen_extra_large,
                "damaged": self.hen_damaged,
            },
            "duck_eggs": {
                "small": self.duck_small,
                "medium": self.duck_medium,
                "large": self.duck_large,
                "damaged": self.duck_damaged,
            },
            "hen_egg_price_cents": self.hen_egg_price_cents,
            "duck_egg_price_cents": self.duck_egg_price_cents,
            "total_hen_eggs": self.total_hen_eggs,
            "total_duck_eggs": self.total_duck_eggs,
            "total_value_cents": self.total_value_cents,
            "quality_notes": self.quality_notes,
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at),
            "payment_record_id": self.payment_record_id,
            "synced": self.synced,
            "created_at": to_utc_z(self.created_at),
        }
