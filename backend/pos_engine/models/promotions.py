from __future__ import annotations

from ..extensions import db
from pos_engine.time_utils import to_utc_z


PROMO_PERCENTAGE = "percentage"
PROMO_FIXED_AMOUNT = "fixed_amount"
PROMO_BUY_X_GET_Y = "buy_x_get_y"

TARGET_ALL = "all"
TARGET_PRODUCTS = "products"
TARGET_CATEGORIES = "categories"
TARGET_CUSTOMERS = "customers"
TARGET_GROUPS = "groups"


class Promotion(db.Model):
    """
    Promotions and coupons.

    Promotions with a code only apply when the cashier enters the coupon;
    promotions without one are auto-applied by priority.
    discount_value is basis points for percentage, cents for fixed_amount.
    Target id lists are JSON arrays and only the list matching
    target_type is read.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_promotions_code"),
        db.Index("ix_promotions_active_priority", "is_active", "priority"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    code = db.Column(db.String(64), nullable=True)

    promotion_type = db.Column(db.String(32), nullable=False)  # percentage, fixed_amount, buy_x_get_y
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    buy_quantity = db.Column(db.Integer, nullable=True)
    get_quantity = db.Column(db.Integer, nullable=True)

    min_purchase_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)
    min_quantity = db.Column(db.Integer, nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_limit_per_customer = db.Column(db.Integer, nullable=True)
    current_usage = db.Column(db.Integer, nullable=False, default=0)

    target_type = db.Column(db.String(16), nullable=False, default=TARGET_ALL)
    target_product_ids = db.Column(db.JSON, nullable=True)
    target_category_ids = db.Column(db.JSON, nullable=True)
    target_customer_ids = db.Column(db.JSON, nullable=True)
    target_group_ids = db.Column(db.JSON, nullable=True)
    target_membership_tiers = db.Column(db.JSON, nullable=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    active_days = db.Column(db.JSON, nullable=True)  # 0 = Sunday .. 6 = Saturday
    active_hours_start = db.Column(db.String(5), nullable=True)  # "HH:MM"
    active_hours_end = db.Column(db.String(5), nullable=True)

    is_stackable = db.Column(db.Boolean, nullable=False, default=False)
    priority = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "code": self.code,
            "promotion_type": self.promotion_type,
            "discount_value": self.discount_value,
            "buy_quantity": self.buy_quantity,
            "get_quantity": self.get_quantity,
            "min_purchase_cents": self.min_purchase_cents,
            "max_discount_cents": self.max_discount_cents,
            "min_quantity": self.min_quantity,
            "usage_limit": self.usage_limit,
            "usage_limit_per_customer": self.usage_limit_per_customer,
            "current_usage": self.current_usage,
            "target_type": self.target_type,
            "target_product_ids": self.target_product_ids,
            "target_category_ids": self.target_category_ids,
            "target_customer_ids": self.target_customer_ids,
            "target_group_ids": self.target_group_ids,
            "target_membership_tiers": self.target_membership_tiers,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "active_days": self.active_days,
            "active_hours_start": self.active_hours_start,
            "active_hours_end": self.active_hours_end,
            "is_stackable": self.is_stackable,
            "priority": self.priority,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PromotionUsage(db.Model):
    """One row per promotion applied to a sale."""
    __tablename__ = "promotion_usage"
    __table_args__ = (
        db.UniqueConstraint("promotion_id", "sale_id", name="uq_promotion_usage_promo_sale"),
        db.Index("ix_promotion_usage_promo_customer", "promotion_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    discount_amount_cents = db.Column(db.Integer, nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)  # set when the sale is voided or refunded

    promotion = db.relationship("Promotion", backref=db.backref("usages", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "promotion_id": self.promotion_id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "discount_amount_cents": self.discount_amount_cents,
            "used_at": to_utc_z(self.used_at),
            "released_at": to_utc_z(self.released_at) if self.released_at else None,
        }
