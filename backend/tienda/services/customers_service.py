# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Sale
from ..validation import NotFoundError, UniquenessError
from .pagination import paginate

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "document"}


def _apply_patch(customer: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)


def _ensure_email_available(email: str | None, exclude_id: int | None = None) -> None:
    if email is None:
        return
    query = db.session.query(Customer.id).filter(Customer.email == email)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise UniquenessError("A customer with this email already exists.", "email")


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise UniquenessError("A customer with this email already exists.", "email")


def list_customers(page: int | None = None, per_page: int | None = None, search: str | None = None) -> dict:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Customer.name.ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.document.ilike(pattern),
            )
        )
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(
        query,
        page=page,
        per_page=per_page,
        default_per_page=current_app.config.get("DEFAULT_PER_PAGE", 20),
        serialize=lambda c: c.to_dict(),
    )


def all_customers() -> list[dict]:
    customers = db.session.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all()
    return [c.to_dict() for c in customers]


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def create_customer(*, patch: dict) -> dict:
    _ensure_email_available(patch.get("email"))
    customer = Customer()
    _apply_patch(customer, patch)
    db.session.add(customer)
    _commit()
    return customer.to_dict()


def update_customer(*, customer_id: int, patch: dict) -> dict:
    customer = get_customer(customer_id)
    if "email" in patch and patch["email"] != customer.email:
        _ensure_email_available(patch["email"], exclude_id=customer.id)
    _apply_patch(customer, patch)
    _commit()
    return customer.to_dict()


def delete_customer(*, customer_id: int) -> dict:
    """
    Delete a customer, keeping their sales.

    The customer's sales are detached (customer_id = NULL) in the same
    transaction before the customer row is removed.
    """
    customer = get_customer(customer_id)

    result = db.session.execute(
        update(Sale)
        .where(Sale.customer_id == customer_id)
        .values(customer_id=None)
        .execution_options(synchronize_session=False)
    )
    detached = result.rowcount or 0

    db.session.delete(customer)
    db.session.commit()

    current_app.logger.info("Deleted customer %s; detached %s sale(s)", customer_id, detached)
    return {"customer_id": customer_id, "detached_sales": detached}
