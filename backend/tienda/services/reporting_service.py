# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import desc, func
from sqlalchemy.orm import joinedload, selectinload

from tienda.extensions import db
from tienda.models import Product, Sale, SaleItem
from tienda.models.sales import SALE_STATUS_COMPLETED
from tienda.money import format_cents
from tienda.time_utils import day_bounds, parse_date
from tienda.validation import ValidationError


def _parse_day(value: str | None, field: str) -> date | None:
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format", field)


def _parse_range(start: str | None, end: str | None) -> tuple[date | None, date | None]:
    start_day = _parse_day(start, "start_date")
    end_day = _parse_day(end, "end_date")
    if start_day and end_day and start_day > end_day:
        raise ValidationError("start_date must be on or before end_date", "start_date")
    return start_day, end_day


def _apply_created_range(query, start_dt: datetime | None, end_dt: datetime | None):
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at < end_dt)
    return query


def top_products(
    *,
    limit: int = 5,
    start_dt: datetime | None = None,
    end_dt: datetime | None = None,
    include_unsold: bool = False,
) -> list[dict]:
    """
    Products ranked by quantity sold, ties broken by product id.

    include_unsold=True ranks every product (unsold ones count as 0) over all
    sale items; otherwise only products sold within [start_dt, end_dt) appear.
    """
    quantity = func.coalesce(func.sum(SaleItem.quantity), 0).label("quantity_sold")
    revenue = func.coalesce(func.sum(SaleItem.subtotal_cents), 0).label("revenue_cents")

    if include_unsold:
        query = (
            db.session.query(Product, quantity, revenue)
            .outerjoin(SaleItem, SaleItem.product_id == Product.id)
        )
    else:
        query = (
            db.session.query(Product, quantity, revenue)
            .join(SaleItem, SaleItem.product_id == Product.id)
            .join(Sale, SaleItem.sale_id == Sale.id)
            .filter(Sale.status == SALE_STATUS_COMPLETED)
        )
        query = _apply_created_range(query, start_dt, end_dt)

    rows = (
        query.group_by(Product.id)
        .order_by(desc("quantity_sold"), Product.id.asc())
        .limit(limit)
        .all()
    )

    return [
        {
            "product_id": product.id,
            "code": product.code,
            "name": product.name,
            "quantity_sold": int(qty or 0),
            "revenue_cents": int(rev or 0),
            "revenue": format_cents(int(rev or 0)),
        }
        for product, qty, rev in rows
    ]


def sales_report(*, start_date: str | None = None, end_date: str | None = None) -> dict:
    """
    Completed sales created between start_date and end_date (inclusive calendar days).

    Returns the sales newest first (each with customer and items), the sum of
    their totals, the number of units sold and the best sellers in the range.
    """
    start_day, end_day = _parse_range(start_date, end_date)
    start_dt = day_bounds(start_day)[0] if start_day else None
    end_dt = day_bounds(end_day)[1] if end_day else None

    query = (
        db.session.query(Sale)
        .options(
            joinedload(Sale.customer),
            joinedload(Sale.user),
            selectinload(Sale.items).joinedload(SaleItem.product),
        )
        .filter(Sale.status == SALE_STATUS_COMPLETED)
    )
    query = _apply_created_range(query, start_dt, end_dt)

    sales = []
    total_sales_cents = 0
    total_items = 0
    for sale in query.order_by(Sale.created_at.desc(), Sale.id.desc()):
        sales.append(sale.to_dict(include_items=True))
        total_sales_cents += sale.total_cents
        total_items += sale.item_count

    return {
        "start_date": start_day.isoformat() if start_day else None,
        "end_date": end_day.isoformat() if end_day else None,
        "sales": sales,
        "sales_count": len(sales),
        "total_sales_cents": total_sales_cents,
        "total_sales": format_cents(total_sales_cents),
        "total_items": total_items,
        "top_products": top_products(limit=5, start_dt=start_dt, end_dt=end_dt),
    }
