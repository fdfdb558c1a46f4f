# models/order.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func

ORDER_COMPLETED = "Completed"


class Order(db.Model):
    """Immutable once created; one row per settled payment intent."""
    __tablename__ = "orders"

    id                = db.Column(db.Integer, primary_key=True, autoincrement=True)
    buyer_id          = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    total_amount      = db.Column(db.Numeric(10, 2), nullable=False)
    status            = db.Column(db.String(16), nullable=False, default=ORDER_COMPLETED)
    payment_intent_id = db.Column(db.String(255), nullable=False, unique=True)
    is_simulation     = db.Column(db.Boolean, nullable=False, default=False)
    created_at        = db.Column(db.DateTime, server_default=func.now(), nullable=False)

    buyer = db.relationship("User", foreign_keys=[buyer_id])
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer": self.buyer_id,
            "items": [i.to_dict() for i in self.items],
            "totalAmount": float(self.total_amount),
            "status": self.status,
            "paymentIntentId": self.payment_intent_id,
            "isSimulation": bool(self.is_simulation),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id         = db.Column(db.Integer, primary_key=True, autoincrement=True)
    order_id   = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    price      = db.Column(db.Numeric(10, 2), nullable=False)   # price at sale

    order   = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {"product": self.product_id, "price": float(self.price)}
