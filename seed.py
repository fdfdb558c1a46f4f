#!/usr/bin/env python3
# seed.py

from decimal import Decimal

from db import db
from models.product import Product
from models.user import User

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    ("Bea Buyer", "buyer@example.com", "buyer"),
    ("Sam Seller", "seller@example.com", "seller"),
    ("Ada Admin", "admin@example.com", "admin"),
]

DEMO_PRODUCTS = [
    ("Levi's 501 (1990s)", "Faded, straight leg, W32 L32.", "45.00", "Clothing", "Good", 1),
    ("Suede fringe jacket", "70s style, warm lining.", "89.50", "Clothing", "Vintage", 1),
    ("Brass table lamp", "Rewired, works fine.", "32.00", "Home", "Like New", 2),
    ("Leather loafers", "Size 42, barely worn.", "28.00", "Shoes", "Like New", 1),
    ("Silk scarf", "Hand-rolled edges.", "18.00", "Accessories", "New with tags", 3),
]


def seed_demo():
    """
    Creates (or refreshes) demo accounts and a few listings.
    Must run inside an app context; safe to run repeatedly.
    """
    db.create_all()

    users = {}
    for name, email, role in DEMO_USERS:
        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(name=name, email=email, role=role)
            db.session.add(user)
            print(f"➕ Created {role} account `{email}`.")
        user.role = role
        user.set_password(DEMO_PASSWORD)
        users[role] = user
    db.session.commit()

    seller = users["seller"]
    for name, desc, price, category, condition, qty in DEMO_PRODUCTS:
        if Product.query.filter_by(name=name).first():
            continue
        db.session.add(Product(
            name=name,
            description=desc,
            price=Decimal(price),
            category=category,
            condition=condition,
            quantity=qty,
            is_approved=True,
            added_by=seller.id,
        ))
    db.session.commit()


if __name__ == "__main__":
    from app import create_app

    with create_app().app_context():
        seed_demo()
        print("✅ Seeded demo data successfully.")
