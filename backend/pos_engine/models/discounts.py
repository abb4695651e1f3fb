from __future__ import annotations

from ..extensions import db


class DiscountSetting(db.Model):
    """
    Government-mandated discount configuration (senior citizen, PWD, ...).

    is_vat_exempt marks discounts that also remove VAT from the sale.
    requires_id means the cashier must capture the customer's ID number.
    """
    __tablename__ = "discount_settings"
    __table_args__ = (
        db.UniqueConstraint("discount_type", name="uq_discount_settings_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    discount_type = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    percentage_bps = db.Column(db.Integer, nullable=False)
    is_vat_exempt = db.Column(db.Boolean, nullable=False, default=False)
    requires_id = db.Column(db.Boolean, nullable=False, default=False)
    id_type = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "discount_type": self.discount_type,
            "name": self.name,
            "percentage_bps": self.percentage_bps,
            "is_vat_exempt": self.is_vat_exempt,
            "requires_id": self.requires_id,
            "id_type": self.id_type,
            "is_active": self.is_active,
        }


class DiscountReason(db.Model):
    """Reason codes a cashier picks when keying a manual line discount."""
    __tablename__ = "discount_reasons"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_discount_reasons_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    requires_approval = db.Column(db.Boolean, nullable=False, default=False)
    max_percentage_bps = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "requires_approval": self.requires_approval,
            "max_percentage_bps": self.max_percentage_bps,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
