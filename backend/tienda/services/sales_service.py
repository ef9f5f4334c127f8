"""
Sales Service - atomic sale recording

A sale is written in one transaction: invoice number, Sale header,
SaleItems and the stock decrements either all commit or none do.

CONCURRENCY:
- SQLite: BEGIN IMMEDIATE takes the write lock before the stock check.
- Other databases: product rows are read with SELECT ... FOR UPDATE.
- In both cases the decrement itself is conditional
  (UPDATE ... WHERE stock >= quantity) so stock can never go negative.

MONEY: all amounts are integer cents. Tax is 12% of (subtotal - discount),
rounded half-up to the cent.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem, User
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_COMPLETED
from ..money import round_half_up_cents
from ..validation import NotFoundError, ValidationError
from tienda.time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import next_invoice_number
from .pagination import paginate

TAX_RATE = Decimal("0.12")


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStockError(SaleError):
    """A requested quantity exceeds the product's stock."""
    def __init__(self, product: Product, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product.name}",
            details={
                "product_id": product.id,
                "product_name": product.name,
                "requested_quantity": requested,
                "available": available,
            },
        )
        self.product_id = product.id


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int

    @property
    def taxable_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents


def compute_totals(
    line_subtotals_cents: Iterable[int],
    discount_cents: int = 0,
    tax_rate: Decimal = TAX_RATE,
) -> SaleTotals:
    """
    subtotal = sum(lines); taxable = subtotal - discount;
    tax = round_half_up(taxable * rate); total = taxable + tax.
    """
    subtotal = sum(line_subtotals_cents)
    if discount_cents < 0:
        raise ValidationError("discount must be >= 0", "discount")
    if discount_cents > subtotal:
        raise ValidationError("discount cannot exceed the subtotal", "discount")

    taxable = subtotal - discount_cents
    tax = round_half_up_cents(Decimal(taxable) * tax_rate)

    return SaleTotals(
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        tax_cents=tax,
        total_cents=taxable + tax,
    )


def _check_request(items: list[tuple[int, int]], payment_method: str) -> None:
    if not items:
        raise ValidationError("items must be a non-empty list", "items")
    for i, (_, quantity) in enumerate(items):
        if quantity < 1:
            raise ValidationError(f"items[{i}].quantity must be >= 1", f"items[{i}].quantity")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            "payment_method",
        )


def _decrement_stock(product: Product, quantity: int) -> None:
    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.refresh(product)
        raise InsufficientStockError(product, quantity, product.stock)
    db.session.expire(product, ["stock", "version_id"])


def _record_sale_locked(
    *,
    user_id: int,
    items: list[tuple[int, int]],
    payment_method: str,
    customer_id: int | None,
    discount_cents: int,
    notes: str | None,
) -> Sale:
    if not db.session.get(User, user_id):
        raise NotFoundError("User not found")

    if customer_id is not None and not db.session.get(Customer, customer_id):
        raise NotFoundError("Customer not found")

    # Same product on several lines: check stock against the combined quantity
    requested: dict[int, int] = {}
    for product_id, quantity in items:
        requested[product_id] = requested.get(product_id, 0) + quantity

    products = {
        p.id: p
        for p in lock_for_update(
            db.session.query(Product).filter(Product.id.in_(list(requested)))
        ).all()
    }

    for product_id, _ in items:
        if product_id not in products:
            raise NotFoundError(f"Product {product_id} not found")

    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.stock < quantity:
            raise InsufficientStockError(product, quantity, product.stock)

    lines = [
        (products[product_id], quantity, products[product_id].price_cents * quantity)
        for product_id, quantity in items
    ]
    totals = compute_totals([line_subtotal for _, _, line_subtotal in lines], discount_cents)

    sale = Sale(
        invoice_number=next_invoice_number(),
        customer_id=customer_id,
        user_id=user_id,
        subtotal_cents=totals.subtotal_cents,
        tax_cents=totals.tax_cents,
        discount_cents=totals.discount_cents,
        total_cents=totals.total_cents,
        status=SALE_STATUS_COMPLETED,
        payment_method=payment_method,
        notes=notes,
        created_at=utcnow(),
    )
    db.session.add(sale)

    for product, quantity, line_subtotal in lines:
        sale.items.append(
            SaleItem(
                product_id=product.id,
                quantity=quantity,
                price_cents=product.price_cents,
                subtotal_cents=line_subtotal,
            )
        )
    db.session.flush()

    for product_id, quantity in requested.items():
        _decrement_stock(products[product_id], quantity)

    return sale


def record_sale(
    *,
    user_id: int,
    items: list[tuple[int, int]],
    payment_method: str,
    customer_id: int | None = None,
    discount_cents: int = 0,
    notes: str | None = None,
) -> Sale:
    """
    Record a completed sale.

    Args:
        user_id: authenticated actor recorded on the sale
        items: ordered (product_id, quantity) pairs, quantity >= 1
        payment_method: cash, card or transfer
        customer_id: optional customer
        discount_cents: amount subtracted before tax
        notes: free text printed on the invoice

    Returns:
        The committed Sale (items loaded).

    Raises:
        ValidationError: malformed request or discount above subtotal
        NotFoundError: unknown product, customer or user
        InsufficientStockError: a line exceeds available stock; nothing is written
    """
    _check_request(items, payment_method)

    def _op():
        begin_write_transaction()
        try:
            sale = _record_sale_locked(
                user_id=user_id,
                items=items,
                payment_method=payment_method,
                customer_id=customer_id,
                discount_cents=discount_cents,
                notes=notes,
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return sale

    try:
        sale = run_with_retry(_op)
    except InsufficientStockError as e:
        current_app.logger.warning("Sale rejected: %s %s", e, e.details)
        raise

    current_app.logger.info(
        "Recorded sale %s (%s item lines, total_cents=%s) by user %s",
        sale.invoice_number, len(items), sale.total_cents, user_id,
    )
    return sale


def get_sale(sale_id: int) -> Sale:
    """Sale with customer, user and items (each with its product)."""
    sale = (
        db.session.query(Sale)
        .options(
            joinedload(Sale.customer),
            joinedload(Sale.user),
            selectinload(Sale.items).joinedload(SaleItem.product),
        )
        .filter(Sale.id == sale_id)
        .first()
    )
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(page: int | None = None, per_page: int | None = None) -> dict:
    """Sales newest first."""
    query = (
        db.session.query(Sale)
        .options(
            joinedload(Sale.customer),
            joinedload(Sale.user),
            selectinload(Sale.items),
        )
        .order_by(Sale.created_at.desc(), Sale.id.desc())
    )
    return paginate(
        query,
        page=page,
        per_page=per_page,
        default_per_page=current_app.config.get("SALES_PER_PAGE", 20),
        serialize=lambda s: s.to_dict(),
    )
