from decimal import Decimal

import pytest

from errors import BadRequest, EmptyOrder, OutOfStock
from services.pricing import parse_item_ids, quote_items


def test_parse_item_ids_ignores_client_prices():
    assert parse_item_ids([{"id": 3, "price": 0.01}, {"id": "7"}]) == [3, 7]


@pytest.mark.parametrize("items", [None, "1,2", [{"name": "x"}], [{"id": "abc"}], [{"id": True}], [5]])
def test_parse_item_ids_rejects_malformed(items):
    with pytest.raises(BadRequest):
        parse_item_ids(items)


def test_quote_sums_catalog_prices(app, make_product):
    a = make_product(name="A", price="12.50")
    b = make_product(name="B", price="30.00")
    with app.app_context():
        quote = quote_items([a, b])
    assert quote.total == Decimal("42.50")
    assert quote.amount_minor == 4250
    assert quote.product_ids == [a, b]


def test_quote_skips_unknown_products(app, make_product):
    a = make_product(name="A", price="10.00")
    with app.app_context():
        quote = quote_items([999, a])
    assert quote.total == Decimal("10.00")
    assert quote.product_ids == [a]


def test_quote_aborts_on_first_unavailable_product(app, make_product):
    a = make_product(name="A", price="10.00")
    sold = make_product(name="Sold lamp", price="5.00", quantity=0, is_sold=True)
    with app.app_context():
        with pytest.raises(OutOfStock) as exc:
            quote_items([a, sold])
    assert "Sold lamp" in exc.value.message


def test_quote_rejects_flagged_sold_even_with_quantity(app, make_product):
    odd = make_product(name="Odd", quantity=2, is_sold=True)
    with app.app_context():
        with pytest.raises(OutOfStock):
            quote_items([odd])


def test_quote_rejects_more_units_than_stock(app, make_product):
    a = make_product(name="A", quantity=1)
    with app.app_context():
        with pytest.raises(OutOfStock):
            quote_items([a, a])


def test_quote_with_no_resolvable_items_is_empty(app):
    with app.app_context():
        with pytest.raises(EmptyOrder):
            quote_items([404, 405])
        with pytest.raises(EmptyOrder):
            quote_items([])
