from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from tienda.time_utils import to_utc_z


class Category(db.Model):
    """
    Product grouping.

    DELETE CONTRACT: deleting a category deletes its products
    (ORM cascade "all, delete-orphan" plus FK ON DELETE CASCADE).
    catalog_service.delete_category refuses the delete when one of those
    products already appears on a sale.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    products = db.relationship(
        "Product",
        back_populates="category",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data.

    CODE: globally unique, enforced both in catalog_service (friendly error)
    and by uq_products_code (last line of defence against races).

    STOCK: integer units on hand. Never negative: ck_products_stock_nonneg
    plus the conditional decrement in sales_service.

    Prices are stored in cents (price_cents, cost_cents).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
        db.CheckConstraint("min_stock >= 0", name="ck_products_min_stock_nonneg"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_nonneg"),
        db.CheckConstraint("cost_cents >= 0", name="ck_products_cost_nonneg"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category_id", "active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer,
        db.ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    # Opaque reference returned by media_service (e.g. "products/ab12_mug.png")
    image = db.Column(db.String(255), nullable=True)

    active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", back_populates="products")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self, include_category: bool = False) -> dict:
        data = {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "price_cents": self.price_cents,
            "price": format_cents(self.price_cents),
            "cost_cents": self.cost_cents,
            "cost": format_cents(self.cost_cents),
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "image": self.image,
            "active": self.active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_category:
            data["category"] = self.category.to_dict() if self.category else None
        return data
