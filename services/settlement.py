# services/settlement.py
"""
Order settlement: turn a claimed successful payment into stock decrements
and exactly one order row.

Verification (live intents only):
  1) provider status must be 'succeeded'        -> PaymentNotSucceeded
  2) bound buyer id == caller                     -> AuthorizationMismatch
  3) bound product ids == declared ids (multiset) -> IntegrityCheckFailed

Mutation (both modes), one DB transaction:
  - per item: UPDATE ... SET quantity = quantity - 1 WHERE quantity > 0
    (rowcount 0 aborts the whole settlement with OutOfStock)
  - insert Order + OrderItems priced from the reloaded rows
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Sequence

from flask import current_app
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError

from db import db
from errors import (
    AuthorizationMismatch,
    EmptyOrder,
    IntegrityCheckFailed,
    IntentAlreadySettled,
    OutOfStock,
    PaymentNotSucceeded,
    TrustBoundaryError,
)
from models.order import ORDER_COMPLETED, Order, OrderItem
from models.product import Product
from models.user import User
from services import audit as audit_events
from services.audit import audit
from services.payments import STATUS_SUCCEEDED, PaymentBackend

_products = Product.__table__


def _verify_live_intent(backend: PaymentBackend, buyer: User, intent_id: str, item_ids: Sequence[int]) -> None:
    try:
        intent = backend.retrieve_intent(intent_id)
    except PaymentNotSucceeded:
        audit(buyer.id, audit_events.PAYMENT_FAILED,
              f"Payment confirmation failed for unknown intent {intent_id}")
        raise

    if intent.status != STATUS_SUCCEEDED:
        audit(buyer.id, audit_events.PAYMENT_FAILED,
              f"Payment confirmation failed for intent {intent_id} (status={intent.status})")
        raise PaymentNotSucceeded()

    if intent.buyer_id != str(buyer.id):
        audit(buyer.id, audit_events.SECURITY_ALERT,
              f"Payment metadata mismatch for intent {intent_id} - potential fraud attempt")
        raise AuthorizationMismatch()

    if sorted(intent.product_ids) != sorted(str(i) for i in item_ids):
        audit(buyer.id, audit_events.SECURITY_ALERT,
              f"Order content mismatch for intent {intent_id} - potential tampering")
        raise IntegrityCheckFailed()


def _decrement_stock(product_id: int) -> Product:
    """Take one unit; is_sold flips in the same statement when the last unit goes."""
    res = db.session.execute(
        update(_products)
        .where(
            _products.c.id == product_id,
            _products.c.quantity > 0,
            _products.c.is_sold.is_(False),
        )
        # is_sold first: MySQL evaluates SET clauses left to right
        .ordered_values(
            (_products.c.is_sold, case((_products.c.quantity <= 1, True), else_=False)),
            (_products.c.quantity, _products.c.quantity - 1),
        )
    )
    if res.rowcount != 1:
        raise OutOfStock(f"Product {product_id} is no longer available")

    return db.session.execute(
        select(Product)
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def settle_order(
    *,
    backend: PaymentBackend,
    buyer: User,
    intent_id: str,
    item_ids: Sequence[int],
) -> Order:
    if not item_ids:
        raise EmptyOrder()

    if Order.query.filter_by(payment_intent_id=intent_id).first() is not None:
        audit(buyer.id, audit_events.SECURITY_ALERT,
              f"Replayed confirmation for already settled intent {intent_id}")
        raise IntentAlreadySettled()

    simulated = backend.is_simulated_id(intent_id)
    if not simulated:
        _verify_live_intent(backend, buyer, intent_id, item_ids)

    try:
        backend.claim(intent_id)
    except PaymentNotSucceeded:
        audit(buyer.id, audit_events.PAYMENT_FAILED,
              f"Simulated intent {intent_id} was never issued or has expired")
        raise

    try:
        if simulated:
            # No provider verification exists for simulated intents
            audit(buyer.id, audit_events.SIMULATED_PAYMENT,
                  f"Simulated intent {intent_id} accepted without provider verification")

        total = Decimal("0")
        lines: List[OrderItem] = []
        for pid in item_ids:
            product = _decrement_stock(pid)
            total += Decimal(product.price)
            lines.append(OrderItem(product_id=product.id, price=product.price))

        order = Order(
            buyer_id=buyer.id,
            items=lines,
            total_amount=total,
            status=ORDER_COMPLETED,
            payment_intent_id=intent_id,
            is_simulation=simulated,
        )
        db.session.add(order)
        db.session.commit()
    except IntegrityError:
        # unique(payment_intent_id): a concurrent confirmation won
        db.session.rollback()
        backend.release(intent_id)
        current_app.logger.warning("[settle] duplicate settlement for intent %s", intent_id)
        raise IntentAlreadySettled()
    except TrustBoundaryError as e:
        db.session.rollback()
        backend.release(intent_id)
        current_app.logger.warning("[settle] settlement rolled back for intent %s: %s", intent_id, e.message)
        raise
    except Exception:
        db.session.rollback()
        backend.release(intent_id)
        current_app.logger.exception("[settle] settlement rolled back for intent %s", intent_id)
        raise

    backend.complete(intent_id)

    # The order is committed; a failed audit write must not turn it into an error
    try:
        audit(buyer.id, audit_events.ORDER_PLACED,
              f"Order #{order.id} placed successfully. Amount: ${total:.2f}")
    except Exception:
        current_app.logger.exception("[settle] audit write failed for committed order %s", order.id)
    return order
