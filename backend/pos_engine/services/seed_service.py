# Overview: Idempotent default configuration rows (discounts, tiers, groups).

from __future__ import annotations

from ..extensions import db
from ..models import CustomerGroup, DiscountReason, DiscountSetting, MembershipTier


# (discount_type, name, percentage_bps, is_vat_exempt, requires_id, id_type)
DEFAULT_DISCOUNT_SETTINGS = [
    ("senior_citizen", "Senior Citizen Discount", 2000, True, True, "OSCA ID"),
    ("pwd", "PWD Discount", 2000, True, True, "PWD ID"),
    ("solo_parent", "Solo Parent Discount", 1000, False, True, "Solo Parent ID"),
    ("national_athlete", "National Athlete Discount", 2000, True, True, "NSA ID"),
    ("employee", "Employee Discount", 1000, False, False, None),
]

# (code, name, requires_approval, max_percentage_bps, sort_order)
DEFAULT_DISCOUNT_REASONS = [
    ("damaged_goods", "Damaged Goods", False, 5000, 1),
    ("customer_complaint", "Customer Complaint Resolution", True, 3000, 2),
    ("price_match", "Price Match", True, 2000, 3),
    ("bulk_purchase", "Bulk Purchase Discount", False, 1500, 4),
    ("loyalty_reward", "Loyalty Reward", False, 1000, 5),
    ("promotional", "Promotional Discount", False, 2000, 6),
    ("goodwill", "Goodwill Gesture", True, 2500, 7),
    ("partner_affiliate", "Partner/Affiliate Discount", True, 1500, 8),
    ("other", "Other (Specify)", True, 5000, 99),
]

# (name, description, min_spend_cents, max_spend_cents, discount_bps, points_multiplier_bps, sort_order)
DEFAULT_MEMBERSHIP_TIERS = [
    ("Regular", "Standard customer", 0, 499_999, 0, 10_000, 1),
    ("Bronze", "Bronze member", 500_000, 1_499_999, 300, 11_000, 2),
    ("Silver", "Silver member", 1_500_000, 4_999_999, 500, 12_500, 3),
    ("Gold", "Gold member", 5_000_000, 9_999_999, 800, 15_000, 4),
    ("Platinum", "Platinum member", 10_000_000, 24_999_999, 1000, 17_500, 5),
    ("VIP", "VIP/Corporate member", 25_000_000, None, 1500, 20_000, 6),
]

# (name, description, discount_bps)
DEFAULT_CUSTOMER_GROUPS = [
    ("Senior Citizens", "Customers aged 60 and above", 2000),
    ("PWD", "Persons with Disability", 2000),
    ("Solo Parents", "Solo parent cardholders", 1000),
    ("Students", "Student discount group", 500),
    ("Teachers", "Teachers and educators", 500),
    ("Healthcare Workers", "Medical professionals", 500),
    ("Government Employees", "Government workers", 500),
    ("Military/Police", "Armed forces and police", 500),
    ("OFW", "Overseas Filipino Workers", 500),
    ("Barangay Officials", "Local barangay officials", 500),
    ("National Athletes", "National athletes with Medal of Valor", 2000),
]


def seed_defaults() -> dict[str, int]:
    """
    Insert missing default configuration rows. Existing rows are left untouched.

    Returns how many rows of each kind were created.
    """
    created = {"discount_settings": 0, "discount_reasons": 0, "membership_tiers": 0, "customer_groups": 0}

    existing = {s.discount_type for s in db.session.query(DiscountSetting).all()}
    for discount_type, name, bps, vat_exempt, requires_id, id_type in DEFAULT_DISCOUNT_SETTINGS:
        if discount_type in existing:
            continue
        db.session.add(DiscountSetting(
            discount_type=discount_type,
            name=name,
            percentage_bps=bps,
            is_vat_exempt=vat_exempt,
            requires_id=requires_id,
            id_type=id_type,
        ))
        created["discount_settings"] += 1

    existing = {r.code for r in db.session.query(DiscountReason).all()}
    for code, name, requires_approval, max_bps, sort_order in DEFAULT_DISCOUNT_REASONS:
        if code in existing:
            continue
        db.session.add(DiscountReason(
            code=code,
            name=name,
            requires_approval=requires_approval,
            max_percentage_bps=max_bps,
            sort_order=sort_order,
        ))
        created["discount_reasons"] += 1

    existing = {t.name for t in db.session.query(MembershipTier).all()}
    for name, description, min_spend, max_spend, discount_bps, multiplier_bps, sort_order in DEFAULT_MEMBERSHIP_TIERS:
        if name in existing:
            continue
        db.session.add(MembershipTier(
            name=name,
            description=description,
            min_spend_cents=min_spend,
            max_spend_cents=max_spend,
            discount_bps=discount_bps,
            points_multiplier_bps=multiplier_bps,
            sort_order=sort_order,
        ))
        created["membership_tiers"] += 1

    existing = {g.name for g in db.session.query(CustomerGroup).all()}
    for name, description, discount_bps in DEFAULT_CUSTOMER_GROUPS:
        if name in existing:
            continue
        db.session.add(CustomerGroup(name=name, description=description, discount_bps=discount_bps))
        created["customer_groups"] += 1

    db.session.commit()
    return created
