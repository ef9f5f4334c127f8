from __future__ import annotations

from ..extensions import db
from tienda.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer records attached to sales.

    DELETE CONTRACT: deleting a customer keeps their sales and sets
    Sale.customer_id to NULL (customers_service.delete_customer performs the
    update explicitly; the FK also declares ON DELETE SET NULL).
    """
    __tablename__ = "customers"
    __table_args__ = (
        # NULL emails never collide, so the constraint only applies when present
        db.UniqueConstraint("email", name="uq_customers_email"),
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    # National ID / tax number printed on invoices
    document = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sales = db.relationship("Sale", back_populates="customer", lazy=True)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "document": self.document,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
