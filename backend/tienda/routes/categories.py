# Overview: Flask API routes for category operations; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..models import Category
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    """
    List categories ordered by name.

    Query params:
    - page: int (optional) - page number (1-indexed)
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    return catalog_service.list_categories(page=page, per_page=per_page)


@categories_bp.post("")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    except ValidationError as e:
        return e.to_dict(), 400

    created = catalog_service.create_category(patch=patch)
    current_app.logger.info("Created category %s", created["id"])
    return created, 201


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        category = catalog_service.get_category(category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return category.to_dict(), 200


@categories_bp.put("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        updated = catalog_service.update_category(category_id=category_id, patch=patch)
    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return updated, 200


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    """
    Delete a category together with all of its products.

    Refused (409) when any of those products has been sold.
    """
    try:
        result = catalog_service.delete_category(category_id=category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True, **result}, 200
