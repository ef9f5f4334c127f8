# backend/tienda/services/catalog_service.py
"""
Catalog Service: categories and products.

Payloads arrive already validated by tienda.validation (routes call
validate_payload + enforce_rules_product first). This layer enforces the
rules that need the database: code uniqueness, category existence, and the
delete contracts.

DELETE CONTRACTS:
- delete_category removes the category and all of its products.
- Neither a product nor a category whose products appear on a sale can be
  deleted: sales are immutable and their items reference products.
  Deactivate the product (active=false) instead.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Category, Product, SaleItem
from ..validation import ConflictError, NotFoundError, UniquenessError, ValidationError
from .concurrency import run_with_retry
from .media_service import delete_product_image
from .pagination import paginate

CATEGORY_MUTABLE_FIELDS = {"name", "description"}
PRODUCT_MUTABLE_FIELDS = {
    "name", "code", "description", "price_cents", "cost_cents",
    "stock", "min_stock", "category_id", "image", "active",
}


def _apply_patch(obj, patch: dict, fields: set[str]) -> None:
    for k, v in patch.items():
        if k not in fields:
            continue
        setattr(obj, k, v)


def _commit_unique(message: str, field: str) -> None:
    """Commit, translating a storage-level unique violation into UniquenessError."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise UniquenessError(message, field)


# =============================================================================
# Categories
# =============================================================================

def list_categories(page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Category).order_by(Category.name.asc(), Category.id.asc())
    return paginate(
        query,
        page=page,
        per_page=per_page,
        default_per_page=current_app.config.get("DEFAULT_PER_PAGE", 20),
        serialize=lambda c: c.to_dict(),
    )


def all_categories() -> list[dict]:
    """Every category ordered by name (choices for product forms)."""
    categories = db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()
    return [c.to_dict() for c in categories]


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def create_category(*, patch: dict) -> dict:
    category = Category()
    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.add(category)
    db.session.commit()
    return category.to_dict()


def update_category(*, category_id: int, patch: dict) -> dict:
    category = get_category(category_id)
    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.commit()
    return category.to_dict()


def delete_category(*, category_id: int) -> dict:
    """
    Delete a category and, by cascade, all of its products.

    Raises:
        NotFoundError: unknown category
        ConflictError: one of its products has been sold
    """
    category = get_category(category_id)

    sold = (
        db.session.query(SaleItem.id)
        .join(Product, SaleItem.product_id == Product.id)
        .filter(Product.category_id == category_id)
        .first()
    )
    if sold:
        raise ConflictError("Category has products with sales history and cannot be deleted.")

    images = [p.image for p in category.products if p.image]
    deleted_products = len(category.products)
    db.session.delete(category)
    db.session.commit()

    for image in images:
        delete_product_image(image)

    current_app.logger.info(
        "Deleted category %s with %s product(s)", category_id, deleted_products
    )
    return {"category_id": category_id, "deleted_products": deleted_products}


# =============================================================================
# Products
# =============================================================================

def _require_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise ValidationError("category_id does not reference an existing category", "category_id")
    return category


def _ensure_code_available(code: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.code == code)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise UniquenessError("Product code already exists.", "code")


def list_products(
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    category_id: int | None = None,
    active: bool | None = None,
) -> dict:
    """
    Product listing ordered by name, each with its category.

    Args:
        page: Page number (1-indexed, default 1)
        per_page: Items per page (default PRODUCTS_PER_PAGE, max MAX_PER_PAGE)
        search: case-insensitive match on name or code
        category_id: restrict to one category
        active: restrict to active/inactive products
    """
    query = db.session.query(Product).options(joinedload(Product.category))

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.code.ilike(pattern)))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if active is not None:
        query = query.filter(Product.active.is_(active))

    query = query.order_by(Product.name.asc(), Product.id.asc())

    return paginate(
        query,
        page=page,
        per_page=per_page,
        default_per_page=current_app.config.get("PRODUCTS_PER_PAGE", 15),
        serialize=lambda p: p.to_dict(include_category=True),
    )


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        ValidationError: category_id does not exist
        UniquenessError: code already used by another product
    """
    _require_category(patch["category_id"])
    _ensure_code_available(patch["code"])

    product = Product()
    _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
    db.session.add(product)
    _commit_unique("Product code already exists.", "code")

    current_app.logger.info("Created product %s (%s)", product.id, product.code)
    return product.to_dict(include_category=True)


def update_product(*, product_id: int, patch: dict) -> dict:
    """
    Update a product. Code uniqueness excludes the product itself.

    Retried on version conflicts (e.g. a sale decremented stock between the
    read and the write). A replaced image file is removed once the commit
    succeeds.
    """
    def _op():
        product = get_product(product_id)
        previous_image = product.image

        if "category_id" in patch:
            _require_category(patch["category_id"])
        if "code" in patch and patch["code"] != product.code:
            _ensure_code_available(patch["code"], exclude_id=product.id)

        _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
        _commit_unique("Product code already exists.", "code")
        return previous_image, product.to_dict(include_category=True)

    previous_image, updated = run_with_retry(_op)
    if previous_image and previous_image != updated["image"]:
        delete_product_image(previous_image)
    return updated


def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product that has never been sold.

    Raises:
        NotFoundError: unknown product
        ConflictError: product appears on at least one sale
    """
    product = get_product(product_id)

    sold = db.session.query(SaleItem.id).filter(SaleItem.product_id == product_id).first()
    if sold:
        raise ConflictError("Product has sales history; deactivate it instead of deleting.")

    image = product.image
    db.session.delete(product)
    db.session.commit()
    delete_product_image(image)


def _low_stock_query():
    return db.session.query(Product).filter(Product.stock <= Product.min_stock)


def list_low_stock() -> list[dict]:
    """All products with stock <= min_stock, each with its category."""
    products = (
        _low_stock_query()
        .options(joinedload(Product.category))
        .order_by(Product.stock.asc(), Product.name.asc(), Product.id.asc())
        .all()
    )
    return [p.to_dict(include_category=True) for p in products]


def count_low_stock() -> int:
    return _low_stock_query().count()


def list_sellable_products() -> list[dict]:
    """Active products with stock on hand (choices for the sale form)."""
    products = (
        db.session.query(Product)
        .options(joinedload(Product.category))
        .filter(Product.active.is_(True), Product.stock > 0)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    return [p.to_dict(include_category=True) for p in products]
