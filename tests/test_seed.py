from db import db
from models.product import Product
from models.user import User
from seed import DEMO_PASSWORD, seed_demo


def test_seed_demo_is_repeatable(app):
    with app.app_context():
        seed_demo()
        seed_demo()

        assert User.query.count() == 3
        assert Product.query.count() == 5
        admin = User.query.filter_by(email="admin@example.com").one()
        assert admin.role == "admin"
        assert admin.check_password(DEMO_PASSWORD)
        assert all(p.in_stock for p in Product.query.all())
        db.session.remove()
