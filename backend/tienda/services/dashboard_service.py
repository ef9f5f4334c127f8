# Overview: Read-only dashboard aggregates, recomputed on every request.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from tienda.extensions import db
from tienda.models import Product, Sale
from tienda.models.sales import SALE_STATUS_COMPLETED
from tienda.money import format_cents
from tienda.services import catalog_service
from tienda.services.reporting_service import top_products
from tienda.time_utils import day_bounds, month_bounds, to_utc_z, utcnow

RECENT_SALES_LIMIT = 5
TOP_PRODUCTS_LIMIT = 5


def _sum_totals(start: datetime, end: datetime) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Sale.total_cents), 0))
        .filter(
            Sale.status == SALE_STATUS_COMPLETED,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .scalar()
    )
    return int(total or 0)


def dashboard_snapshot(now: datetime | None = None) -> dict:
    """
    Today's and this month's sales, stock alerts, recent sales and best sellers.

    `now` defaults to the current UTC time; periods are UTC calendar day/month.
    """
    now = now or utcnow()
    day_start, day_end = day_bounds(now.date())
    month_start, month_end = month_bounds(now)

    today_cents = _sum_totals(day_start, day_end)
    month_cents = _sum_totals(month_start, month_end)

    recent_sales = (
        db.session.query(Sale)
        .options(joinedload(Sale.customer), joinedload(Sale.user), selectinload(Sale.items))
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(RECENT_SALES_LIMIT)
        .all()
    )

    return {
        "as_of": to_utc_z(now),
        "today_sales_cents": today_cents,
        "today_sales": format_cents(today_cents),
        "month_sales_cents": month_cents,
        "month_sales": format_cents(month_cents),
        "low_stock_products": catalog_service.count_low_stock(),
        "total_products": db.session.query(func.count(Product.id)).scalar(),
        "recent_sales": [s.to_dict() for s in recent_sales],
        "top_products": top_products(limit=TOP_PRODUCTS_LIMIT, include_unsold=True),
    }
