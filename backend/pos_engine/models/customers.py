from __future__ import annotations

from ..extensions import db
from pos_engine.time_utils import to_utc_z


LOYALTY_EARN = "EARN"
LOYALTY_REDEEM = "REDEEM"
LOYALTY_ADJUST = "ADJUST"
LOYALTY_BONUS = "BONUS"
LOYALTY_EXPIRE = "EXPIRE"

LOYALTY_TRANSACTION_TYPES = (
    LOYALTY_EARN,
    LOYALTY_REDEEM,
    LOYALTY_ADJUST,
    LOYALTY_BONUS,
    LOYALTY_EXPIRE,
)


class MembershipTier(db.Model):
    """
    Loyalty tier: sale discount and points multiplier.

    discount_bps is basis points of the sale subtotal (500 = 5%).
    points_multiplier_bps is basis points of 1x (12500 = 1.25x).
    """
    __tablename__ = "membership_tiers"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_membership_tiers_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    min_spend_cents = db.Column(db.Integer, nullable=False, default=0)
    max_spend_cents = db.Column(db.Integer, nullable=True)

    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    points_multiplier_bps = db.Column(db.Integer, nullable=False, default=10000)

    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "min_spend_cents": self.min_spend_cents,
            "max_spend_cents": self.max_spend_cents,
            "discount_bps": self.discount_bps,
            "points_multiplier_bps": self.points_multiplier_bps,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
        }


class CustomerGroup(db.Model):
    __tablename__ = "customer_groups"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_customer_groups_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "discount_bps": self.discount_bps,
            "is_active": self.is_active,
        }


class CustomerGroupMember(db.Model):
    __tablename__ = "customer_group_members"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "group_id", name="uq_customer_group_members"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    group_id = db.Column(db.Integer, db.ForeignKey("customer_groups.id"), nullable=False, index=True)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    group = db.relationship("CustomerGroup")


class Customer(db.Model):
    """
    Customer master data for loyalty and government discount eligibility.

    loyalty_points is only ever changed through the loyalty ledger, which
    appends a LoyaltyPointsHistory row for every change.

    WHY: Enables lifetime value tracking, tier discounts and points.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_code = db.Column(db.String(32), nullable=True, unique=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    membership_tier_id = db.Column(db.Integer, db.ForeignKey("membership_tiers.id"), nullable=True, index=True)

    is_senior_citizen = db.Column(db.Boolean, nullable=False, default=False)
    senior_citizen_id = db.Column(db.String(64), nullable=True)
    is_pwd = db.Column(db.Boolean, nullable=False, default=False)
    pwd_id = db.Column(db.String(64), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized aggregates (updated when sales complete or are reversed)
    lifetime_spend_cents = db.Column(db.Integer, nullable=False, default=0)
    total_transactions = db.Column(db.Integer, nullable=False, default=0)
    last_transaction_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    membership_tier = db.relationship("MembershipTier", backref=db.backref("customers", lazy=True))
    group_memberships = db.relationship("CustomerGroupMember", backref="customer", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def group_ids(self) -> list[int]:
        return sorted(m.group_id for m in self.group_memberships)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_code": self.customer_code,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "membership_tier_id": self.membership_tier_id,
            "is_senior_citizen": self.is_senior_citizen,
            "is_pwd": self.is_pwd,
            "loyalty_points": self.loyalty_points,
            "lifetime_spend_cents": self.lifetime_spend_cents,
            "total_transactions": self.total_transactions,
            "last_transaction_at": to_utc_z(self.last_transaction_at) if self.last_transaction_at else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LoyaltyPointsHistory(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - EARN: Points earned from a sale
    - REDEEM: Points redeemed against a sale
    - ADJUST: Manual adjustment, or reversal of a voided/refunded sale
    - BONUS: Promotional credit
    - EXPIRE: Points expired per policy

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "loyalty_points_history"
    __table_args__ = (
        db.Index("ix_loyalty_history_customer_seq", "customer_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)  # Positive for earn/bonus, negative for redeem/expire
    balance_after = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("loyalty_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "balance_after": self.balance_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
