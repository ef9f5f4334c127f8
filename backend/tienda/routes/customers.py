# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Customer
from ..services import customers_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
    UniquenessError,
    NotFoundError,
)
from ..decorators import require_auth

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "document"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    return payload


@customers_bp.get("")
@require_auth
def list_customers_route():
    """
    List customers ordered by name.

    Query params:
    - search: str (optional) - matches name, email or document
    - page / per_page: pagination (default 20, max 100)
    """
    return customers_service.list_customers(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
    )


@customers_bp.post("")
@require_auth
def create_customer_route():
    try:
        patch = validate_payload(model=Customer, payload=_payload(), policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        created = customers_service.create_customer(patch=patch)
    except UniquenessError as e:
        return e.to_dict(), 409
    except ValidationError as e:
        return e.to_dict(), 400

    return created, 201


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customers_service.get_customer(customer_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return customer.to_dict(), 200


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    try:
        patch = validate_payload(model=Customer, payload=_payload(), policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        updated = customers_service.update_customer(customer_id=customer_id, patch=patch)
    except UniquenessError as e:
        return e.to_dict(), 409
    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return updated, 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    """Delete a customer. Their sales are kept with no customer attached."""
    try:
        result = customers_service.delete_customer(customer_id=customer_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"ok": True, **result}, 200
