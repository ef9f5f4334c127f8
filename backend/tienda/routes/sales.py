# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes: recording, invoice view, listing and the sales report."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services import catalog_service
from ..services import customers_service
from ..services.reporting_service import sales_report
from ..services.sales_service import SaleError
from ..validation import validate_sale_payload, ValidationError, NotFoundError
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - page: int (optional) - page number (1-indexed)
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return sales_service.list_sales(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@sales_bp.get("/new")
@require_auth
def new_sale_route():
    """Choices for the sale form: sellable products and customers."""
    return jsonify({
        "products": catalog_service.list_sellable_products(),
        "customers": customers_service.all_customers(),
    }), 200


@sales_bp.post("")
@require_auth
def record_sale_route():
    """
    Record a completed sale.

    Body:
        {
            "customer_id": 3,
            "items": [{"product_id": 1, "quantity": 2}],
            "payment_method": "cash",
            "discount": "5.00",
            "notes": "..."
        }

    Stock is decremented and the invoice number assigned in the same
    transaction; on any error nothing is written.
    """
    try:
        cleaned = validate_sale_payload(request.get_json(silent=True))
        sale = sales_service.record_sale(user_id=g.current_user.id, **cleaned)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/report")
@require_auth
def sales_report_route():
    """
    Sales report for an inclusive date range.

    Query params:
    - start_date: YYYY-MM-DD (optional)
    - end_date: YYYY-MM-DD (optional)
    """
    try:
        report = sales_report(
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify(report), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    """Sale with customer, cashier and items (invoice view)."""
    try:
        sale = sales_service.get_sale(sale_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"sale": sale.to_dict(include_items=True)}), 200
