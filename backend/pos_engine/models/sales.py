from __future__ import annotations

from ..extensions import db
from pos_engine.time_utils import to_utc_z


SALE_PENDING = "PENDING"
SALE_COMPLETED = "COMPLETED"
SALE_VOIDED = "VOIDED"
SALE_REFUNDED = "REFUNDED"

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_GCASH = "GCASH"
PAYMENT_MAYA = "MAYA"
PAYMENT_SPLIT = "SPLIT"

PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_GCASH, PAYMENT_MAYA, PAYMENT_SPLIT)

DISCOUNT_SENIOR_CITIZEN = "senior_citizen"
DISCOUNT_PWD = "pwd"
DISCOUNT_MEMBERSHIP = "membership"
DISCOUNT_PROMOTION = "promotion"
DISCOUNT_MANUAL = "manual"


class Sale(db.Model):
    """
    Sale document: priced, taxed and stock-adjusted in one transaction.

    LIFECYCLE: PENDING -> COMPLETED -> (VOIDED | REFUNDED). VOIDED and
    REFUNDED are terminal. PENDING only exists inside the creating
    transaction and is never committed.

    RECONCILIATION:
    total = subtotal - discount + tax - points_value_redeemed
    discount = sum(SaleDiscount.amount) = sum(SaleItem.discount)

    Sales are never deleted.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Primary discount kind shown on the receipt
    discount_type = db.Column(db.String(32), nullable=True)

    # VAT breakdown
    is_vat_exempt = db.Column(db.Boolean, nullable=False, default=False)
    vat_exempt_reason = db.Column(db.String(32), nullable=True)
    customer_id_number = db.Column(db.String(64), nullable=True)
    vatable_cents = db.Column(db.Integer, nullable=False, default=0)
    vat_cents = db.Column(db.Integer, nullable=False, default=0)
    vat_exempt_cents = db.Column(db.Integer, nullable=False, default=0)

    # Loyalty
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    points_value_redeemed_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_PENDING, index=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Refund audit trail
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refund_authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refund_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])
    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")
    payments = db.relationship("SalePayment", backref="sale", lazy=True, order_by="SalePayment.id")
    discounts = db.relationship("SaleDiscount", backref="sale", lazy=True, order_by="SaleDiscount.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_cents": self.change_cents,
            "discount_type": self.discount_type,
            "is_vat_exempt": self.is_vat_exempt,
            "vat_exempt_reason": self.vat_exempt_reason,
            "customer_id_number": self.customer_id_number,
            "vatable_cents": self.vatable_cents,
            "vat_cents": self.vat_cents,
            "vat_exempt_cents": self.vat_exempt_cents,
            "points_earned": self.points_earned,
            "points_redeemed": self.points_redeemed,
            "points_value_redeemed_cents": self.points_value_redeemed_cents,
            "status": self.status,
            "voided_by_user_id": self.voided_by_user_id,
            "void_authorized_by_user_id": self.void_authorized_by_user_id,
            "void_reason": self.void_reason,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "refunded_by_user_id": self.refunded_by_user_id,
            "refund_authorized_by_user_id": self.refund_authorized_by_user_id,
            "refund_reason": self.refund_reason,
            "refunded_at": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "refund_cents": self.refund_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
            data["discounts"] = [discount.to_dict() for discount in self.discounts]
        return data


class SaleItem(db.Model):
    """Individual line items on a sale. Product name and SKU are frozen at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Manual discount plus this line's share of sale-level discounts
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(32), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)

    is_vat_exempt = db.Column(db.Boolean, nullable=False, default=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    quantity_refunded = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "discount_cents": self.discount_cents,
            "discount_type": self.discount_type,
            "discount_bps": self.discount_bps,
            "is_vat_exempt": self.is_vat_exempt,
            "tax_cents": self.tax_cents,
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
            "quantity_refunded": self.quantity_refunded,
        }


class SalePayment(db.Model):
    """
    One tender applied to a sale.

    A single-method sale has one row; SPLIT sales have one row per
    method used.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "reference_number": self.reference_number,
        }


class SaleDiscount(db.Model):
    """
    Applied discount record, one row per discount source.

    reference_id points at the tier (membership) or promotion (promotion)
    that produced the discount.
    """
    __tablename__ = "sale_discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    discount_type = db.Column(db.String(32), nullable=False)  # senior_citizen, pwd, membership, promotion, manual
    discount_name = db.Column(db.String(255), nullable=False)
    percentage_bps = db.Column(db.Integer, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    reference_id = db.Column(db.Integer, nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reason = db.Column(db.String(32), nullable=True)

    is_government_mandated = db.Column(db.Boolean, nullable=False, default=False)
    customer_id_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "discount_type": self.discount_type,
            "discount_name": self.discount_name,
            "percentage_bps": self.percentage_bps,
            "amount_cents": self.amount_cents,
            "reference_id": self.reference_id,
            "approved_by_user_id": self.approved_by_user_id,
            "reason": self.reason,
            "is_government_mandated": self.is_government_mandated,
            "customer_id_number": self.customer_id_number,
        }
