# models/product.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func

CATEGORIES = ("Clothing", "Accessories", "Shoes", "Home", "Vintage")
CONDITIONS = ("New with tags", "Like New", "Good", "Fair", "Vintage")


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonneg"),
    )

    id          = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name        = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000), nullable=False, default="")
    price       = db.Column(db.Numeric(10, 2), nullable=False)   # authoritative, server-held
    category    = db.Column(db.Enum(*CATEGORIES, name="product_category"), nullable=False)
    condition   = db.Column(db.Enum(*CONDITIONS, name="product_condition"), nullable=False)
    size        = db.Column(db.String(32), nullable=False, default="One Size")
    image       = db.Column(db.String(255), nullable=False, default="no-photo.jpg")

    quantity    = db.Column(db.Integer, nullable=False, default=1)
    is_sold     = db.Column(db.Boolean, nullable=False, default=False)  # == (quantity == 0)
    is_approved = db.Column(db.Boolean, nullable=False, default=False)

    added_by    = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at  = db.Column(db.DateTime, server_default=func.now(), nullable=False)

    owner = db.relationship("User", foreign_keys=[added_by])

    @property
    def in_stock(self) -> bool:
        return not self.is_sold and (self.quantity or 0) > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "category": self.category,
            "condition": self.condition,
            "quantity": self.quantity,
            "isSold": bool(self.is_sold),
            "addedBy": self.added_by,
        }
