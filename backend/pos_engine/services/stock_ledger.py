# Overview: Stock ledger; every quantity change is a StockMovement row.

"""
Stock Ledger invariants:

- Product.current_stock changes only through record_movement, in the same
  DB transaction as the StockMovement that explains it.
- quantity_before/quantity_after chain: for one product, each movement's
  quantity_before equals the previous movement's quantity_after.
- Outbound movements never take a tracked, non-backorder product below zero.
- Movements are append-only (no updates/deletes).
"""

from __future__ import annotations

from flask import current_app

from ..errors import BadRequestError, InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_COUNT,
    MOVEMENT_DAMAGE,
    MOVEMENT_PURCHASE,
    MOVEMENT_TYPES,
)
from .concurrency import lock_for_update, run_in_transaction


MANUAL_MOVEMENT_TYPES = (MOVEMENT_ADJUSTMENT, MOVEMENT_DAMAGE, MOVEMENT_PURCHASE)


def lock_products(product_ids, *, require_sellable: bool = True) -> dict[int, Product]:
    """
    Lock products FOR UPDATE in ascending id order.

    Raises NotFoundError listing every missing (or, with require_sellable,
    inactive or soft-deleted) product id.
    """
    ordered_ids = sorted(set(product_ids))
    products: dict[int, Product] = {}
    for product_id in ordered_ids:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is not None:
            products[product_id] = product

    missing = [
        product_id
        for product_id in ordered_ids
        if product_id not in products or (require_sellable and not products[product_id].is_sellable)
    ]
    if missing:
        raise NotFoundError("Product", details={"product_ids": missing})
    return products


def check_availability(products: dict[int, Product], requested: dict[int, int]) -> None:
    """
    Verify every requested quantity can be taken from stock.

    requested maps product id to total units across all cart lines.
    """
    short = []
    for product_id in sorted(requested):
        product = products[product_id]
        quantity = requested[product_id]
        if not product.track_inventory or product.allow_backorder:
            continue
        if product.current_stock < quantity:
            short.append({
                "product_id": product_id,
                "sku": product.sku,
                "requested_quantity": quantity,
                "on_hand": product.current_stock,
            })

    if short:
        raise InsufficientStockError("Insufficient stock", details={"items": short})


def record_movement(
    product: Product,
    delta: int,
    movement_type: str,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    user_id: int | None = None,
    notes: str | None = None,
    unit_cost_cents: int | None = None,
) -> StockMovement:
    """
    Append a movement and apply it to the (already locked) product.

    Does not commit.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise BadRequestError(f"Unknown movement type: {movement_type}")

    before = product.current_stock
    after = before + delta
    if delta < 0 and after < 0 and product.track_inventory and not product.allow_backorder:
        raise InsufficientStockError(
            "Insufficient stock",
            details={"items": [{
                "product_id": product.id,
                "sku": product.sku,
                "requested_quantity": -delta,
                "on_hand": before,
            }]},
        )

    movement = StockMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=delta,
        quantity_before=before,
        quantity_after=after,
        reference_type=reference_type,
        reference_id=reference_id,
        unit_cost_cents=unit_cost_cents,
        notes=notes,
        created_by_user_id=user_id,
    )
    product.current_stock = after
    db.session.add(movement)
    return movement


def adjust_stock(
    product_id: int,
    delta: int,
    movement_type: str = MOVEMENT_ADJUSTMENT,
    *,
    user_id: int | None = None,
    notes: str | None = None,
    unit_cost_cents: int | None = None,
) -> StockMovement:
    """Manual ADJUSTMENT, DAMAGE or PURCHASE in its own transaction."""
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise BadRequestError(f"Movement type must be one of {', '.join(MANUAL_MOVEMENT_TYPES)}")
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise BadRequestError("delta must be a non-zero integer")
    if movement_type == MOVEMENT_DAMAGE and delta > 0:
        raise BadRequestError("DAMAGE movements must remove stock")
    if movement_type == MOVEMENT_PURCHASE and delta < 0:
        raise BadRequestError("PURCHASE movements must add stock")

    def _op():
        products = lock_products([product_id], require_sellable=False)
        return record_movement(
            products[product_id],
            delta,
            movement_type,
            reference_type="manual",
            user_id=user_id,
            notes=notes,
            unit_cost_cents=unit_cost_cents,
        )

    movement = run_in_transaction(_op)
    current_app.logger.info(
        "Stock %s product_id=%s delta=%s after=%s",
        movement_type, product_id, delta, movement.quantity_after,
    )
    return movement


def count_stock(
    product_id: int,
    counted_quantity: int,
    *,
    user_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Record a physical count; the COUNT movement carries counted - current."""
    if not isinstance(counted_quantity, int) or isinstance(counted_quantity, bool) or counted_quantity < 0:
        raise BadRequestError("counted_quantity must be a non-negative integer")

    def _op():
        products = lock_products([product_id], require_sellable=False)
        product = products[product_id]
        return record_movement(
            product,
            counted_quantity - product.current_stock,
            MOVEMENT_COUNT,
            reference_type="manual",
            user_id=user_id,
            notes=notes,
        )

    return run_in_transaction(_op)


def list_movements(product_id: int, *, limit: int | None = None) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter_by(product_id=product_id).order_by(StockMovement.id.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


def replay_quantity(product_id: int) -> int | None:
    """
    Rebuild a product's quantity from its movements.

    Returns None when the product has no movements. Raises ValueError when
    the before/after chain is broken.
    """
    movements = list_movements(product_id)
    if not movements:
        return None

    quantity = movements[0].quantity_before
    for movement in movements:
        if movement.quantity_before != quantity:
            raise ValueError(f"Stock ledger chain broken at movement {movement.id}")
        quantity += movement.quantity
        if movement.quantity_after != quantity:
            raise ValueError(f"Stock ledger arithmetic broken at movement {movement.id}")
    return quantity


def verify_product(product: Product) -> dict | None:
    """Return a drift report for the product, or None when the ledger agrees."""
    try:
        replayed = replay_quantity(product.id)
    except ValueError as exc:
        return {"product_id": product.id, "sku": product.sku, "error": str(exc)}
    if replayed is not None and replayed != product.current_stock:
        return {
            "product_id": product.id,
            "sku": product.sku,
            "current_stock": product.current_stock,
            "replayed": replayed,
        }
    return None
