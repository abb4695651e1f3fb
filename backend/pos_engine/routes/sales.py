# Overview: Flask API routes for the sale engine; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator
from ..errors import ServiceError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _error_response(exc: ServiceError):
    return jsonify(exc.to_dict()), exc.status_code


def _internal_error():
    return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@sales_bp.post("/")
@require_operator
def create_sale_route():
    """
    Create and complete a sale.

    Body: items[], payment_method, amount_tendered_cents or payments[],
    optional customer_id, vat_exempt_reason, customer_id_number,
    points_to_redeem, coupon_code, discount_approved_by, notes.
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.create_sale(data, g.current_user.id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return _internal_error()


@sales_bp.post("/quote")
@require_operator
def quote_sale_route():
    """Price a cart without saving anything."""
    try:
        data = request.get_json(silent=True) or {}
        quote = sales_service.quote_sale(data)
        return jsonify({"quote": quote}), 200

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to quote sale")
        return _internal_error()


@sales_bp.get("/")
@require_operator
def list_sales_route():
    try:
        result = sales_service.list_sales(
            status=request.args.get("status"),
            payment_method=request.args.get("payment_method"),
            customer_id=request.args.get("customer_id", type=int),
            user_id=request.args.get("user_id", type=int),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify(result), 200

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return _internal_error()


@sales_bp.get("/<int:sale_id>")
@require_operator
def get_sale_route(sale_id: int):
    """Get sale with items, payments and discounts."""
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return _internal_error()


@sales_bp.post("/<int:sale_id>/void")
@require_operator
def void_sale_route(sale_id: int):
    """
    Void a completed sale and reverse its effects.

    Operators without void authority must pass supervisor_id and
    supervisor_pin.
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.void_sale(
            sale_id,
            g.current_user.id,
            data.get("reason"),
            supervisor_id=data.get("supervisor_id"),
            supervisor_pin=data.get("supervisor_pin"),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return _internal_error()


@sales_bp.post("/<int:sale_id>/refund")
@require_operator
def refund_sale_route(sale_id: int):
    """Fully refund a completed sale. Same authorization rules as void."""
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.refund_sale(
            sale_id,
            g.current_user.id,
            data.get("reason"),
            supervisor_id=data.get("supervisor_id"),
            supervisor_pin=data.get("supervisor_pin"),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return _internal_error()
