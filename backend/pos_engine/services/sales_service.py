"""
Sale Transaction Engine.

create_sale turns a cart into a COMPLETED sale in one DB transaction:
validate -> lock products -> stock check -> manual discounts -> customer ->
evaluate discounts -> allocate and tax -> loyalty -> persist -> stock
ledger -> customer/loyalty ledger -> discount rows and promotion usage.
Any failure rolls the whole transaction back.

void_sale/refund_sale move a COMPLETED sale to VOIDED/REFUNDED and reverse
every effect it had, again atomically.

Lock order is always: sale, products by id, customer, promotions by id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import BadRequestError, InsufficientPointsError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import (
    Customer,
    DiscountReason,
    DiscountSetting,
    LoyaltyPointsHistory,
    Product,
    Sale,
    SaleDiscount,
    SaleItem,
    SalePayment,
    StockMovement,
    User,
)
from ..models.customers import LOYALTY_ADJUST
from ..models.inventory import MOVEMENT_RETURN, MOVEMENT_SALE
from ..models.sales import (
    DISCOUNT_MANUAL,
    PAYMENT_CASH,
    PAYMENT_METHODS,
    PAYMENT_SPLIT,
    SALE_COMPLETED,
    SALE_PENDING,
    SALE_REFUNDED,
    SALE_VOIDED,
)
from pos_engine.money import BPS_SCALE, allocate_proportionally, apply_bps
from pos_engine.time_utils import parse_iso_datetime, utcnow
from . import loyalty_ledger, promotions_service, stock_ledger
from .authorization_service import (
    ACTION_REFUND,
    ACTION_VOID,
    load_operator,
    resolve_authorizer,
    resolve_discount_approver,
)
from .concurrency import lock_for_update, run_in_transaction
from .discount_evaluator import (
    GOVERNMENT_PWD,
    GOVERNMENT_SENIOR_CITIZEN,
    CartLine,
    CustomerContext,
    EvaluationConfig,
    EvaluationResult,
    GovernmentSetting,
    TierRule,
    evaluate,
)
from .document_service import next_invoice_number


GOVERNMENT_TYPES = (GOVERNMENT_SENIOR_CITIZEN, GOVERNMENT_PWD)

REVERSAL_DELTA = "delta"
REVERSAL_STRICT = "strict"


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _RequestedItem:
    product_id: int
    quantity: int
    unit_price_cents: int | None
    discount_cents: int
    discount_reason: str | None


@dataclass(frozen=True)
class _RequestedPayment:
    method: str
    amount_cents: int
    reference: str | None


@dataclass(frozen=True)
class _SaleRequest:
    items: tuple[_RequestedItem, ...]
    payment_method: str | None
    amount_tendered_cents: int | None
    payments: tuple[_RequestedPayment, ...]
    reference_number: str | None
    customer_id: int | None
    is_vat_exempt: bool
    vat_exempt_reason: str | None
    customer_id_number: str | None
    points_to_redeem: int
    coupon_code: str | None
    discount_approved_by: int | None
    notes: str | None


def _int_field(value, name: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequestError(f"{name} must be an integer", details={"field": name})
    if minimum is not None and value < minimum:
        raise BadRequestError(f"{name} must be at least {minimum}", details={"field": name})
    return value


def _optional_int(value, name: str, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    return _int_field(value, name, minimum=minimum)


def _optional_str(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_request(data: dict, *, require_payment: bool = True) -> _SaleRequest:
    if not isinstance(data, dict):
        raise BadRequestError("Request body must be an object")

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise BadRequestError("Sale must contain at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise BadRequestError(f"items[{index}] must be an object")
        items.append(_RequestedItem(
            product_id=_int_field(raw.get("product_id"), f"items[{index}].product_id"),
            quantity=_int_field(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
            unit_price_cents=_optional_int(raw.get("unit_price_cents"), f"items[{index}].unit_price_cents", minimum=0),
            discount_cents=_optional_int(raw.get("discount_cents"), f"items[{index}].discount_cents", minimum=0) or 0,
            discount_reason=_optional_str(raw.get("discount_reason")),
        ))

    payment_method = _optional_str(data.get("payment_method"))
    if payment_method:
        payment_method = payment_method.upper()
    if require_payment and payment_method not in PAYMENT_METHODS:
        raise BadRequestError(
            f"payment_method must be one of {', '.join(PAYMENT_METHODS)}",
            details={"field": "payment_method"},
        )

    payments = []
    for index, raw in enumerate(data.get("payments") or []):
        if not isinstance(raw, dict):
            raise BadRequestError(f"payments[{index}] must be an object")
        method = (_optional_str(raw.get("method")) or "").upper()
        if method not in PAYMENT_METHODS or method == PAYMENT_SPLIT:
            raise BadRequestError(f"payments[{index}].method is invalid", details={"field": f"payments[{index}].method"})
        payments.append(_RequestedPayment(
            method=method,
            amount_cents=_int_field(raw.get("amount_cents"), f"payments[{index}].amount_cents", minimum=1),
            reference=_optional_str(raw.get("reference")),
        ))
    if require_payment and payment_method == PAYMENT_SPLIT and not payments:
        raise BadRequestError("Split payments require a payments list", details={"field": "payments"})

    vat_exempt_reason = _optional_str(data.get("vat_exempt_reason"))
    if vat_exempt_reason and vat_exempt_reason not in GOVERNMENT_TYPES:
        raise BadRequestError(
            f"vat_exempt_reason must be one of {', '.join(GOVERNMENT_TYPES)}",
            details={"field": "vat_exempt_reason"},
        )

    return _SaleRequest(
        items=tuple(items),
        payment_method=payment_method,
        amount_tendered_cents=_optional_int(data.get("amount_tendered_cents"), "amount_tendered_cents", minimum=0),
        payments=tuple(payments),
        reference_number=_optional_str(data.get("reference_number")),
        customer_id=_optional_int(data.get("customer_id"), "customer_id"),
        is_vat_exempt=bool(data.get("is_vat_exempt")),
        vat_exempt_reason=vat_exempt_reason,
        customer_id_number=_optional_str(data.get("customer_id_number")),
        points_to_redeem=_optional_int(data.get("points_to_redeem"), "points_to_redeem", minimum=0) or 0,
        coupon_code=_optional_str(data.get("coupon_code")),
        discount_approved_by=_optional_int(data.get("discount_approved_by"), "discount_approved_by"),
        notes=_optional_str(data.get("notes")),
    )


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

@dataclass
class _PricedLine:
    product: Product
    quantity: int
    unit_price_cents: int
    manual_discount_cents: int
    reason: DiscountReason | None
    allocated_cents: int = 0
    tax_cents: int = 0
    is_vat_exempt: bool = False

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def discount_cents(self) -> int:
        return self.manual_discount_cents + self.allocated_cents

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents + self.tax_cents

    @property
    def discount_bps(self) -> int:
        if self.subtotal_cents <= 0:
            return 0
        return (self.discount_cents * BPS_SCALE * 2 + self.subtotal_cents) // (self.subtotal_cents * 2)


@dataclass
class _Pricing:
    lines: list[_PricedLine]
    evaluation: EvaluationResult
    customer: Customer | None
    vat_exempt_reason: str | None
    customer_id_number: str | None
    approver: User | None
    points_earned: int = 0
    points_redeemed: int = 0
    points_value_cents: int = 0

    @property
    def subtotal_cents(self) -> int:
        return sum(line.subtotal_cents for line in self.lines)

    @property
    def discount_cents(self) -> int:
        return sum(line.discount_cents for line in self.lines)

    @property
    def tax_cents(self) -> int:
        return sum(line.tax_cents for line in self.lines)

    @property
    def amount_due_cents(self) -> int:
        """Total before loyalty redemption."""
        return self.subtotal_cents - self.discount_cents + self.tax_cents

    @property
    def total_cents(self) -> int:
        return self.amount_due_cents - self.points_value_cents

    @property
    def primary_discount_type(self) -> str | None:
        discounts = self.evaluation.discounts
        if discounts:
            return discounts[0].discount_type
        if any(line.manual_discount_cents for line in self.lines):
            return DISCOUNT_MANUAL
        return None


def _load_products(request: _SaleRequest, *, lock: bool) -> dict[int, Product]:
    product_ids = [item.product_id for item in request.items]
    if lock:
        return stock_ledger.lock_products(product_ids)

    ordered_ids = sorted(set(product_ids))
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ordered_ids)).all()}
    missing = [pid for pid in ordered_ids if pid not in products or not products[pid].is_sellable]
    if missing:
        raise NotFoundError("Product", details={"product_ids": missing})
    return products


def _apply_manual_discounts(request: _SaleRequest, lines: list[_PricedLine]) -> User | None:
    """Validate manual line discounts; returns the approver when one was needed."""
    reason_codes = {item.discount_reason for item in request.items if item.discount_reason}
    reasons = {}
    if reason_codes:
        rows = db.session.query(DiscountReason).filter(DiscountReason.code.in_(sorted(reason_codes))).all()
        reasons = {r.code: r for r in rows if r.is_active}

    approver = None
    for index, (item, line) in enumerate(zip(request.items, lines)):
        if line.manual_discount_cents > line.subtotal_cents:
            raise BadRequestError(
                "Line discount exceeds line subtotal",
                details={"item_index": index, "product_id": item.product_id},
            )
        if not item.discount_reason:
            continue

        reason = reasons.get(item.discount_reason)
        if reason is None:
            raise BadRequestError(
                f"Unknown discount reason: {item.discount_reason}",
                details={"item_index": index, "discount_reason": item.discount_reason},
            )
        if (
            reason.max_percentage_bps is not None
            and line.manual_discount_cents * BPS_SCALE > line.subtotal_cents * reason.max_percentage_bps
        ):
            raise BadRequestError(
                f"{reason.name} discounts are limited to {reason.max_percentage_bps / 100:g}%",
                details={"item_index": index, "max_percentage_bps": reason.max_percentage_bps},
            )
        if reason.requires_approval and line.manual_discount_cents > 0 and approver is None:
            approver = resolve_discount_approver(request.discount_approved_by)
        line.reason = reason
    return approver


def _government_settings() -> tuple[GovernmentSetting, ...]:
    rows = (
        db.session.query(DiscountSetting)
        .filter(DiscountSetting.discount_type.in_(GOVERNMENT_TYPES))
        .order_by(DiscountSetting.id.asc())
        .all()
    )
    return tuple(
        GovernmentSetting(
            discount_type=row.discount_type,
            name=row.name,
            percentage_bps=row.percentage_bps,
            is_vat_exempt=row.is_vat_exempt,
            requires_id=row.requires_id,
            is_active=row.is_active,
        )
        for row in rows
    )


def _customer_context(request: _SaleRequest, customer: Customer | None) -> CustomerContext:
    if request.vat_exempt_reason:
        is_senior = request.vat_exempt_reason == GOVERNMENT_SENIOR_CITIZEN
        is_pwd = request.vat_exempt_reason == GOVERNMENT_PWD
    else:
        is_senior = bool(customer and customer.is_senior_citizen)
        is_pwd = bool(customer and customer.is_pwd)

    if request.is_vat_exempt and not (is_senior or is_pwd):
        raise BadRequestError("vat_exempt_reason is required for VAT-exempt sales", details={"field": "vat_exempt_reason"})

    tier = None
    group_ids: frozenset[int] = frozenset()
    if customer is not None:
        if customer.membership_tier is not None:
            t = customer.membership_tier
            tier = TierRule(
                tier_id=t.id,
                name=t.name,
                discount_bps=t.discount_bps,
                points_multiplier_bps=t.points_multiplier_bps,
                is_active=t.is_active,
            )
        group_ids = frozenset(m.group_id for m in customer.group_memberships if m.group.is_active)

    return CustomerContext(
        customer_id=customer.id if customer else None,
        is_senior_citizen=is_senior,
        is_pwd=is_pwd,
        tier=tier,
        group_ids=group_ids,
        coupon_code=request.coupon_code,
    )


def _government_id_number(
    request: _SaleRequest,
    customer: Customer | None,
    context: CustomerContext,
    config: EvaluationConfig,
) -> tuple[str | None, str | None]:
    """Return (vat_exempt_reason, id number), enforcing requires_id."""
    if context.is_senior_citizen:
        discount_type = GOVERNMENT_SENIOR_CITIZEN
        on_file = customer.senior_citizen_id if customer else None
    elif context.is_pwd:
        discount_type = GOVERNMENT_PWD
        on_file = customer.pwd_id if customer else None
    else:
        return None, None

    id_number = request.customer_id_number or on_file
    setting = config.government_setting(discount_type)
    if setting is not None and setting.requires_id and not id_number:
        raise BadRequestError(
            f"{setting.name} requires a customer ID number",
            details={"field": "customer_id_number", "discount_type": discount_type},
        )
    return discount_type, id_number


def _allocate_and_tax(lines: list[_PricedLine], evaluation: EvaluationResult) -> None:
    nets = [line.subtotal_cents - line.manual_discount_cents for line in lines]
    shares = allocate_proportionally(evaluation.total_cents, nets)
    for line, share in zip(lines, shares):
        line.allocated_cents = share
        line.is_vat_exempt = evaluation.is_vat_exempt
        taxable = line.product.is_taxable and not evaluation.is_vat_exempt
        line.tax_cents = apply_bps(line.subtotal_cents - line.discount_cents, line.product.tax_rate_bps) if taxable else 0


def _apply_points(pricing: _Pricing, request: _SaleRequest) -> None:
    customer = pricing.customer
    if request.points_to_redeem and customer is None:
        raise BadRequestError("Points can only be redeemed by a customer", details={"field": "points_to_redeem"})
    if customer is None:
        return

    tier = customer.membership_tier
    multiplier = tier.points_multiplier_bps if tier is not None and tier.is_active else None
    pricing.points_earned = loyalty_ledger.points_for_amount(pricing.amount_due_cents, multiplier)

    redeem = request.points_to_redeem
    if not redeem:
        return
    if redeem > customer.loyalty_points:
        raise InsufficientPointsError(
            f"Insufficient points. Available: {customer.loyalty_points}",
            details={"available": customer.loyalty_points, "requested": redeem},
        )
    value = loyalty_ledger.points_value_cents(redeem)
    if value > pricing.amount_due_cents:
        raise BadRequestError(
            "Redeemed points exceed the amount due",
            details={"points_value_cents": value, "amount_due_cents": pricing.amount_due_cents},
        )
    pricing.points_redeemed = redeem
    pricing.points_value_cents = value


def _price_cart(request: _SaleRequest, now: datetime, *, lock: bool) -> _Pricing:
    products = _load_products(request, lock=lock)

    requested: dict[int, int] = {}
    for item in request.items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity
    stock_ledger.check_availability(products, requested)

    lines = [
        _PricedLine(
            product=products[item.product_id],
            quantity=item.quantity,
            unit_price_cents=(
                item.unit_price_cents
                if item.unit_price_cents is not None
                else products[item.product_id].selling_price_cents
            ),
            manual_discount_cents=item.discount_cents,
            reason=None,
        )
        for item in request.items
    ]
    approver = _apply_manual_discounts(request, lines)

    customer = None
    if request.customer_id is not None:
        if lock:
            customer = loyalty_ledger.lock_customer(request.customer_id)
        else:
            customer = db.session.get(Customer, request.customer_id)
            if customer is None or not customer.is_active or customer.deleted_at is not None:
                raise NotFoundError("Customer", details={"customer_id": request.customer_id})

    context = _customer_context(request, customer)
    config = EvaluationConfig(
        government_settings=_government_settings(),
        promotions=promotions_service.load_promotion_rules(context.customer_id, now),
    )
    vat_exempt_reason, id_number = _government_id_number(request, customer, context, config)

    cart = [
        CartLine(
            product_id=line.product.id,
            category_id=line.product.category_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            manual_discount_cents=line.manual_discount_cents,
        )
        for line in lines
    ]
    evaluation = evaluate(cart, context, config, now)
    _allocate_and_tax(lines, evaluation)

    pricing = _Pricing(
        lines=lines,
        evaluation=evaluation,
        customer=customer,
        vat_exempt_reason=vat_exempt_reason if evaluation.government else None,
        customer_id_number=id_number if evaluation.government else None,
        approver=approver,
    )
    _apply_points(pricing, request)
    return pricing


def _settle_payment(request: _SaleRequest, total_cents: int) -> tuple[int | None, int, list[_RequestedPayment]]:
    """Return (amount_tendered, change, payment rows) or raise when underpaid."""
    if request.payment_method == PAYMENT_SPLIT:
        paid = sum(p.amount_cents for p in request.payments)
        if paid < total_cents:
            raise BadRequestError(
                "Split payments do not cover the total",
                details={"total_cents": total_cents, "paid_cents": paid},
            )
        return paid, paid - total_cents, list(request.payments)

    tendered = request.amount_tendered_cents
    if request.payment_method == PAYMENT_CASH and tendered is None:
        raise BadRequestError("amount_tendered_cents is required for cash payments", details={"field": "amount_tendered_cents"})
    if tendered is not None and tendered < total_cents:
        raise BadRequestError(
            "Amount tendered is less than the total",
            details={"total_cents": total_cents, "amount_tendered_cents": tendered},
        )
    change = tendered - total_cents if tendered is not None else 0
    row = _RequestedPayment(method=request.payment_method, amount_cents=total_cents, reference=request.reference_number)
    return tendered, change, [row]


# ---------------------------------------------------------------------------
# Create / quote
# ---------------------------------------------------------------------------

def _write_discount_rows(sale: Sale, pricing: _Pricing) -> None:
    for line in pricing.lines:
        if line.manual_discount_cents <= 0:
            continue
        reason = line.reason
        db.session.add(SaleDiscount(
            sale_id=sale.id,
            discount_type=DISCOUNT_MANUAL,
            discount_name=f"{reason.name if reason else 'Manual discount'}: {line.product.name}",
            amount_cents=line.manual_discount_cents,
            reference_id=line.product.id,
            reason=reason.code if reason else None,
            approved_by_user_id=(
                pricing.approver.id if pricing.approver and reason and reason.requires_approval else None
            ),
        ))

    for applied in pricing.evaluation.discounts:
        db.session.add(SaleDiscount(
            sale_id=sale.id,
            discount_type=applied.discount_type,
            discount_name=applied.name,
            percentage_bps=applied.percentage_bps,
            amount_cents=applied.amount_cents,
            reference_id=applied.reference_id,
            is_government_mandated=applied.is_government_mandated,
            customer_id_number=pricing.customer_id_number if applied.is_government_mandated else None,
        ))


def create_sale(data: dict, operator_id: int, *, now: datetime | None = None) -> Sale:
    """
    Create and complete a sale atomically.

    Raises a ServiceError subclass (nothing persisted) on any failure.
    """
    request = _parse_request(data)

    def _op() -> Sale:
        at = now or utcnow()
        operator = load_operator(operator_id)
        pricing = _price_cart(request, at, lock=True)
        tendered, change, payment_rows = _settle_payment(request, pricing.total_cents)

        evaluation = pricing.evaluation
        subtotal = pricing.subtotal_cents
        discount = pricing.discount_cents
        sale = Sale(
            invoice_number=next_invoice_number(at, current_app.config.get("INVOICE_PREFIX", "INV")),
            customer_id=pricing.customer.id if pricing.customer else None,
            user_id=operator.id,
            subtotal_cents=subtotal,
            discount_cents=discount,
            tax_cents=pricing.tax_cents,
            total_cents=pricing.total_cents,
            payment_method=request.payment_method,
            amount_tendered_cents=tendered,
            change_cents=change,
            discount_type=pricing.primary_discount_type,
            is_vat_exempt=evaluation.is_vat_exempt,
            vat_exempt_reason=pricing.vat_exempt_reason,
            customer_id_number=pricing.customer_id_number,
            vatable_cents=0 if evaluation.is_vat_exempt else subtotal - discount,
            vat_cents=pricing.tax_cents,
            vat_exempt_cents=subtotal - discount if evaluation.is_vat_exempt else 0,
            points_earned=pricing.points_earned,
            points_redeemed=pricing.points_redeemed,
            points_value_redeemed_cents=pricing.points_value_cents,
            status=SALE_PENDING,
            notes=request.notes,
            created_at=at,
        )
        db.session.add(sale)
        db.session.flush()

        for line in pricing.lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line.product.id,
                product_name=line.product.name,
                product_sku=line.product.sku,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                cost_price_cents=line.product.cost_price_cents,
                discount_cents=line.discount_cents,
                discount_type=(
                    DISCOUNT_MANUAL if line.manual_discount_cents and not line.allocated_cents
                    else (sale.discount_type if line.discount_cents else None)
                ),
                discount_bps=line.discount_bps,
                is_vat_exempt=line.is_vat_exempt,
                tax_cents=line.tax_cents,
                subtotal_cents=line.subtotal_cents,
                total_cents=line.total_cents,
                quantity_refunded=0,
            ))

        for payment in payment_rows:
            db.session.add(SalePayment(
                sale_id=sale.id,
                payment_method=payment.method,
                amount_cents=payment.amount_cents,
                reference_number=payment.reference,
            ))

        for line in pricing.lines:
            if not line.product.track_inventory:
                continue
            stock_ledger.record_movement(
                line.product,
                -line.quantity,
                MOVEMENT_SALE,
                reference_type="sale",
                reference_id=sale.id,
                user_id=operator.id,
                notes=f"Sale {sale.invoice_number}",
                unit_cost_cents=line.product.cost_price_cents,
            )

        customer = pricing.customer
        if customer is not None:
            customer.lifetime_spend_cents += sale.total_cents
            customer.total_transactions += 1
            customer.last_transaction_at = at
            if sale.points_redeemed:
                loyalty_ledger.redeem(customer, sale.points_redeemed, sale_id=sale.id, user_id=operator.id)
            if sale.points_earned:
                loyalty_ledger.earn(customer, sale.points_earned, sale_id=sale.id, user_id=operator.id)

        _write_discount_rows(sale, pricing)
        promotions_service.record_usage(
            [(p.reference_id, p.amount_cents) for p in evaluation.promotions],
            sale_id=sale.id,
            customer_id=sale.customer_id,
        )

        sale.status = SALE_COMPLETED
        sale.completed_at = at
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info(
        "Sale %s completed: sale_id=%s user_id=%s customer_id=%s total_cents=%s",
        sale.invoice_number, sale.id, sale.user_id, sale.customer_id, sale.total_cents,
    )
    return sale


def quote_sale(data: dict, *, now: datetime | None = None) -> dict:
    """Price a cart exactly as create_sale would, without locking or writing."""
    request = _parse_request(data, require_payment=False)
    try:
        pricing = _price_cart(request, now or utcnow(), lock=False)
        return {
            "subtotal_cents": pricing.subtotal_cents,
            "discount_cents": pricing.discount_cents,
            "tax_cents": pricing.tax_cents,
            "amount_due_cents": pricing.amount_due_cents,
            "points_value_redeemed_cents": pricing.points_value_cents,
            "total_cents": pricing.total_cents,
            "points_earned": pricing.points_earned,
            "is_vat_exempt": pricing.evaluation.is_vat_exempt,
            "discount_type": pricing.primary_discount_type,
            "items": [
                {
                    "product_id": line.product.id,
                    "product_name": line.product.name,
                    "quantity": line.quantity,
                    "unit_price_cents": line.unit_price_cents,
                    "subtotal_cents": line.subtotal_cents,
                    "discount_cents": line.discount_cents,
                    "tax_cents": line.tax_cents,
                    "total_cents": line.total_cents,
                }
                for line in pricing.lines
            ],
            "discounts": [
                {
                    "discount_type": d.discount_type,
                    "name": d.name,
                    "percentage_bps": d.percentage_bps,
                    "amount_cents": d.amount_cents,
                    "reference_id": d.reference_id,
                }
                for d in pricing.evaluation.discounts
            ],
        }
    finally:
        db.session.rollback()


# ---------------------------------------------------------------------------
# Void / refund
# ---------------------------------------------------------------------------

def _assert_no_later_activity(sale: Sale, sale_movements: list[StockMovement]) -> None:
    """Strict reversal: refuse when stock or points moved after the sale."""
    if sale_movements:
        last_id = max(m.id for m in sale_movements)
        product_ids = sorted({m.product_id for m in sale_movements})
        later = (
            db.session.query(StockMovement.id)
            .filter(StockMovement.product_id.in_(product_ids), StockMovement.id > last_id)
            .first()
        )
        if later is not None:
            raise InvalidStateError(
                "Stock has moved since this sale; reverse it manually",
                details={"product_ids": product_ids},
            )

    if sale.customer_id is not None:
        entries = (
            db.session.query(LoyaltyPointsHistory.id)
            .filter_by(customer_id=sale.customer_id, reference_type="sale", reference_id=sale.id)
            .all()
        )
        if entries:
            last_entry = max(row.id for row in entries)
            later = (
                db.session.query(LoyaltyPointsHistory.id)
                .filter(
                    LoyaltyPointsHistory.customer_id == sale.customer_id,
                    LoyaltyPointsHistory.id > last_entry,
                )
                .first()
            )
            if later is not None:
                raise InvalidStateError(
                    "Loyalty points have changed since this sale; reverse it manually",
                    details={"customer_id": sale.customer_id},
                )


def _reverse_effects(sale: Sale, *, label: str, reason: str, user_id: int, at: datetime) -> None:
    sale_movements = (
        db.session.query(StockMovement)
        .filter_by(reference_type="sale", reference_id=sale.id, movement_type=MOVEMENT_SALE)
        .order_by(StockMovement.id.asc())
        .all()
    )
    strict = current_app.config.get("REVERSAL_POLICY", REVERSAL_DELTA) == REVERSAL_STRICT
    if strict:
        _assert_no_later_activity(sale, sale_movements)

    products = stock_ledger.lock_products([m.product_id for m in sale_movements], require_sellable=False)
    for movement in sale_movements:
        stock_ledger.record_movement(
            products[movement.product_id],
            -movement.quantity,
            MOVEMENT_RETURN,
            reference_type=label.lower(),
            reference_id=sale.id,
            user_id=user_id,
            notes=f"{label}: {reason}",
            unit_cost_cents=movement.unit_cost_cents,
        )

    if sale.customer_id is not None:
        customer = loyalty_ledger.lock_customer(sale.customer_id, require_active=False)
        if sale.points_redeemed:
            loyalty_ledger.post_points(
                customer, sale.points_redeemed, LOYALTY_ADJUST,
                reference_type=label.lower(), reference_id=sale.id,
                description=f"{label} {sale.invoice_number}: redeemed points returned", user_id=user_id,
            )
        if sale.points_earned:
            loyalty_ledger.post_points(
                customer, -sale.points_earned, LOYALTY_ADJUST,
                reference_type=label.lower(), reference_id=sale.id,
                description=f"{label} {sale.invoice_number}: earned points reversed", user_id=user_id,
                allow_negative=not strict,
            )
        customer.lifetime_spend_cents -= sale.total_cents
        customer.total_transactions = max(0, customer.total_transactions - 1)

    promotions_service.release_usage(sale.id, at)


def _validate_reason(reason) -> str:
    reason = _optional_str(reason)
    if not reason:
        raise BadRequestError("Reason is required", details={"field": "reason"})
    return reason


def _lock_completed_sale(sale_id: int, action: str) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError("Sale", details={"sale_id": sale_id})
    if sale.status != SALE_COMPLETED:
        raise InvalidStateError(
            f"Cannot {action} a sale with status {sale.status}",
            details={"sale_id": sale.id, "status": sale.status},
        )
    return sale


def void_sale(
    sale_id: int,
    operator_id: int,
    reason: str,
    *,
    supervisor_id: int | None = None,
    supervisor_pin: str | None = None,
    now: datetime | None = None,
) -> Sale:
    """Void a completed sale and reverse its stock, loyalty and promotion effects."""
    reason = _validate_reason(reason)

    def _op() -> Sale:
        at = now or utcnow()
        sale = _lock_completed_sale(sale_id, ACTION_VOID)
        actor = load_operator(operator_id)
        authorizer = resolve_authorizer(
            actor, ACTION_VOID, supervisor_id=supervisor_id, supervisor_pin=supervisor_pin
        )

        _reverse_effects(sale, label="Void", reason=reason, user_id=actor.id, at=at)

        sale.status = SALE_VOIDED
        sale.voided_by_user_id = actor.id
        sale.void_authorized_by_user_id = authorizer.id
        sale.void_reason = reason
        sale.voided_at = at
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info(
        "Sale %s voided: sale_id=%s by=%s authorized_by=%s",
        sale.invoice_number, sale.id, sale.voided_by_user_id, sale.void_authorized_by_user_id,
    )
    return sale


def refund_sale(
    sale_id: int,
    operator_id: int,
    reason: str,
    *,
    supervisor_id: int | None = None,
    supervisor_pin: str | None = None,
    now: datetime | None = None,
) -> Sale:
    """Fully refund a completed sale; every line is returned in full."""
    reason = _validate_reason(reason)

    def _op() -> Sale:
        at = now or utcnow()
        sale = _lock_completed_sale(sale_id, ACTION_REFUND)
        actor = load_operator(operator_id)
        authorizer = resolve_authorizer(
            actor, ACTION_REFUND, supervisor_id=supervisor_id, supervisor_pin=supervisor_pin
        )

        _reverse_effects(sale, label="Refund", reason=reason, user_id=actor.id, at=at)

        for item in sale.items:
            item.quantity_refunded = item.quantity

        sale.status = SALE_REFUNDED
        sale.refunded_by_user_id = actor.id
        sale.refund_authorized_by_user_id = authorizer.id
        sale.refund_reason = reason
        sale.refunded_at = at
        sale.refund_cents = sale.total_cents
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info(
        "Sale %s refunded: sale_id=%s by=%s authorized_by=%s refund_cents=%s",
        sale.invoice_number, sale.id, sale.refunded_by_user_id, sale.refund_authorized_by_user_id,
        sale.refund_cents,
    )
    return sale


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    status: str | None = None,
    payment_method: str | None = None,
    customer_id: int | None = None,
    user_id: int | None = None,
    start_date: str | datetime | None = None,
    end_date: str | datetime | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> dict:
    """List sales newest first with filters and pagination."""
    query = db.session.query(Sale).filter(Sale.status != SALE_PENDING)
    if status:
        query = query.filter(Sale.status == status.upper())
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method.upper())
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)

    try:
        start = parse_iso_datetime(start_date) if isinstance(start_date, str) else start_date
        end = parse_iso_datetime(end_date) if isinstance(end_date, str) else end_date
    except ValueError:
        raise BadRequestError("Dates must be ISO-8601")
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)

    per_page = max(1, min(per_page or 20, 100))  # Default 20, range 1-100
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = query.order_by(Sale.id.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
