# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

Accepts JSON or multipart form data. Multipart requests may carry an
"image" file which is stored by media_service; the product keeps only the
returned reference.

Money may be sent as decimals ("price": "10.50") or cents ("price_cents": 1050).

SECURITY: All routes require authentication.
"""
from flask import Blueprint, request, current_app
from ..services import catalog_service
from ..services.media_service import staged_product_image
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_bool,
    ValidationError,
    UniquenessError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "category_id", "name", "code", "description",
        "price_cents", "cost_cents", "stock", "min_stock", "active",
    },
    required_on_create={"category_id", "name", "code", "price_cents", "cost_cents", "stock"},
    money_fields={"price": "price_cents", "cost": "cost_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _read_product_patch(*, partial: bool) -> dict:
    """Validate the request body. The image upload is handled by the caller."""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products ordered by name, each with its category.

    Query params:
    - search: str (optional) - matches name or code
    - category_id: int (optional)
    - active: bool (optional)
    - page: int (optional) - page number (1-indexed)
    - per_page: int (optional) - items per page (default 15, max 100)
    """
    active = request.args.get("active")
    try:
        active = coerce_bool(active, "active") if active is not None else None
    except ValidationError as e:
        return e.to_dict(), 400

    return catalog_service.list_products(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        active=active,
    )


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    """Products whose stock is at or below their minimum."""
    items = catalog_service.list_low_stock()
    return {"items": items, "count": len(items)}, 200


@products_bp.post("")
@require_auth
def create_product_route():
    """Create a new product."""
    try:
        patch = _read_product_patch(partial=False)
        with staged_product_image(request.files.get("image")) as image:
            if image:
                patch["image"] = image
            created = catalog_service.create_product(patch=patch)
    except UniquenessError as e:
        return e.to_dict(), 409
    except ValidationError as e:
        return e.to_dict(), 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created, 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return product.to_dict(include_category=True), 200


@products_bp.get("/<int:product_id>/edit")
@require_auth
def edit_product_route(product_id: int):
    """Product plus the category choices for the edit form."""
    try:
        product = catalog_service.get_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {
        "product": product.to_dict(include_category=True),
        "categories": catalog_service.all_categories(),
    }, 200


@products_bp.put("/<int:product_id>")
@products_bp.post("/<int:product_id>/edit")
@require_auth
def update_product_route(product_id: int):
    """Update a product (partial). Code uniqueness excludes the product itself."""
    try:
        patch = _read_product_patch(partial=True)
        with staged_product_image(request.files.get("image")) as image:
            if image:
                patch["image"] = image
            updated = catalog_service.update_product(product_id=product_id, patch=patch)
    except UniquenessError as e:
        return e.to_dict(), 409
    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return {"error": "Internal server error"}, 500

    return updated, 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """
    Delete a product.

    Products that appear on a sale cannot be deleted (409); deactivate them instead.
    """
    try:
        catalog_service.delete_product(product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200
