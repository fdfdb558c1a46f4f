import stripe

from conftest import fetch, post
from models.order import Order
from models.product import Product
from services.audit import ORDER_PLACED, PAYMENT_FAILED, SECURITY_ALERT, SIMULATED_PAYMENT, MemoryAuditSink
from db import db


def _order_count(app):
    with app.app_context():
        return Order.query.count()


# ---------- create-intent ----------

def test_create_intent_requires_session(client, make_product):
    pid = make_product()
    resp = post(client, "/payment/create-intent", {"items": [{"id": pid}]})
    assert resp.status_code == 401


def test_create_intent_simulation_uses_catalog_price(buyer_client, make_product):
    a = make_product(name="A", price="19.99")
    b = make_product(name="B", price="5.01")
    resp = post(buyer_client, "/payment/create-intent", {
        "items": [{"id": a, "price": 0.01}, {"id": b, "price": 0.01}],
    })
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["amount"] == 25.0
    assert body["isSimulation"] is True
    assert body["clientSecret"].startswith("mock_")


def test_create_intent_out_of_stock_returns_no_total(buyer_client, make_product):
    a = make_product(name="A")
    gone = make_product(name="Gone", quantity=0, is_sold=True)
    resp = post(buyer_client, "/payment/create-intent", {"items": [{"id": a}, {"id": gone}]})
    body = resp.get_json()
    assert resp.status_code == 400
    assert "out of stock" in body["error"]
    assert "amount" not in body


def test_create_intent_empty_order(buyer_client):
    resp = post(buyer_client, "/payment/create-intent", {"items": [{"id": 12345}]})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "No valid items to purchase"


def test_create_intent_live_binds_buyer_and_sorted_ids(buyer_client, buyer_id, fake_stripe, make_product):
    a = make_product(name="A", price="10.00")
    b = make_product(name="B", price="2.50")
    resp = post(buyer_client, "/payment/create-intent", {"items": [{"id": b}, {"id": a}]})
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["clientSecret"] == "pi_test_1_secret_abc"
    assert body["isSimulation"] is False
    params = fake_stripe.created[0]
    assert params["amount"] == 1250
    assert params["currency"] == "usd"
    assert params["metadata"] == {"userId": str(buyer_id), "productIds": f"{min(a, b)},{max(a, b)}"}


def test_create_intent_provider_failure(buyer_client, fake_stripe, make_product):
    pid = make_product()
    fake_stripe.fail_with = stripe.APIConnectionError("timed out")
    resp = post(buyer_client, "/payment/create-intent", {"items": [{"id": pid}]})
    assert resp.status_code == 502


# ---------- confirm-order (simulation) ----------

def test_simulated_checkout_sells_last_unit(app, buyer_client, buyer_id, make_product, audit_sink):
    pid = make_product(price="40.00", quantity=1)
    secret = post(buyer_client, "/payment/create-intent", {"items": [{"id": pid}]}).get_json()["clientSecret"]

    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": secret, "items": [{"id": pid}]})
    order = resp.get_json()["data"]

    assert resp.status_code == 201
    assert order["status"] == "Completed"
    assert order["buyer"] == buyer_id
    assert order["totalAmount"] == 40.0
    assert order["items"] == [{"product": pid, "price": 40.0}]
    assert order["isSimulation"] is True

    product = fetch(app, Product, pid)
    assert product.quantity == 0
    assert product.is_sold is True
    assert _order_count(app) == 1
    assert SIMULATED_PAYMENT in audit_sink.actions()
    assert audit_sink.actions()[-1] == ORDER_PLACED


def test_simulated_intent_cannot_be_replayed(app, buyer_client, make_product):
    pid = make_product(quantity=3)
    secret = post(buyer_client, "/payment/create-intent", {"items": [{"id": pid}]}).get_json()["clientSecret"]
    payload = {"paymentIntentId": secret, "items": [{"id": pid}]}

    assert post(buyer_client, "/payment/confirm-order", payload).status_code == 201
    replay = post(buyer_client, "/payment/confirm-order", payload)

    assert replay.status_code == 409
    assert fetch(app, Product, pid).quantity == 2
    assert _order_count(app) == 1


def test_confirm_uses_reloaded_price_not_payload(app, buyer_client, make_product):
    pid = make_product(price="55.00", quantity=2)
    secret = post(buyer_client, "/payment/create-intent", {"items": [{"id": pid}]}).get_json()["clientSecret"]
    resp = post(buyer_client, "/payment/confirm-order", {
        "paymentIntentId": secret,
        "items": [{"id": pid, "price": 1}],
    })
    assert resp.status_code == 201
    assert resp.get_json()["data"]["totalAmount"] == 55.0


def test_confirm_requires_intent_id(buyer_client, make_product):
    pid = make_product()
    resp = post(buyer_client, "/payment/confirm-order", {"items": [{"id": pid}]})
    assert resp.status_code == 400


def test_unissued_simulated_id_is_rejected(app, buyer_client, make_product, audit_sink):
    pid = make_product(quantity=2)
    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": "mock_forged", "items": [{"id": pid}]})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Payment not successful"
    assert audit_sink.actions()[-1] == PAYMENT_FAILED
    assert fetch(app, Product, pid).quantity == 2
    assert _order_count(app) == 0


def test_simulated_intents_do_not_accumulate(app, buyer_client, make_product):
    pid = make_product(quantity=5)
    for _ in range(3):
        secret = post(buyer_client, "/payment/create-intent", {"items": [{"id": pid}]}).get_json()["clientSecret"]
        assert post(buyer_client, "/payment/confirm-order", {
            "paymentIntentId": secret, "items": [{"id": pid}],
        }).status_code == 201

    assert app.extensions["payment_backend"].pending_count() == 0
    assert fetch(app, Product, pid).quantity == 2


class _FailingOrderAuditSink(MemoryAuditSink):
    def emit(self, event):
        if event.action == ORDER_PLACED:
            raise RuntimeError("activity_logs unavailable")
        super().emit(event)


def test_audit_failure_after_commit_still_returns_order(app, buyer_client, make_product):
    pid = make_product(price="30.00", quantity=1)
    secret = post(buyer_client, "/payment/create-intent", {"items": [{"id": pid}]}).get_json()["clientSecret"]
    app.extensions["audit_sink"] = _FailingOrderAuditSink()

    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": secret, "items": [{"id": pid}]})

    assert resp.status_code == 201
    assert resp.get_json()["data"]["totalAmount"] == 30.0
    assert _order_count(app) == 1
    assert fetch(app, Product, pid).quantity == 0


# ---------- confirm-order (live) ----------

def _live_intent(client, fake_stripe, ids, pay=True):
    post(client, "/payment/create-intent", {"items": [{"id": i} for i in ids]})
    intent_id = list(fake_stripe.store)[-1]
    if pay:
        fake_stripe.pay(intent_id)
    return intent_id


def test_live_confirm_any_order_succeeds(app, buyer_client, fake_stripe, make_product):
    a = make_product(name="A", price="10.00", quantity=2)
    b = make_product(name="B", price="15.00", quantity=1)
    intent_id = _live_intent(buyer_client, fake_stripe, [a, b])

    resp = post(buyer_client, "/payment/confirm-order", {
        "paymentIntentId": intent_id, "items": [{"id": b}, {"id": a}],
    })

    assert resp.status_code == 201
    assert resp.get_json()["data"]["totalAmount"] == 25.0
    assert fetch(app, Product, a).quantity == 1
    assert fetch(app, Product, a).is_sold is False
    assert fetch(app, Product, b).quantity == 0
    assert fetch(app, Product, b).is_sold is True


def test_live_confirm_superset_fails_integrity(app, buyer_client, fake_stripe, make_product, audit_sink):
    a, b, c = (make_product(name=n) for n in "ABC")
    intent_id = _live_intent(buyer_client, fake_stripe, [a, b])

    resp = post(buyer_client, "/payment/confirm-order", {
        "paymentIntentId": intent_id, "items": [{"id": a}, {"id": b}, {"id": c}],
    })

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Order integrity check failed"
    assert audit_sink.actions()[-1] == SECURITY_ALERT
    assert all(fetch(app, Product, p).quantity == 1 for p in (a, b, c))
    assert _order_count(app) == 0


def test_live_confirm_subset_fails_integrity(app, buyer_client, fake_stripe, make_product):
    a, b = make_product(name="A"), make_product(name="B")
    intent_id = _live_intent(buyer_client, fake_stripe, [a, b])

    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": intent_id, "items": [{"id": a}]})

    assert resp.status_code == 400
    assert fetch(app, Product, a).quantity == 1
    assert _order_count(app) == 0


def test_live_confirm_substituted_item_fails_integrity(app, buyer_client, fake_stripe, make_product):
    a, b, c = (make_product(name=n) for n in "ABC")
    intent_id = _live_intent(buyer_client, fake_stripe, [a, b])

    resp = post(buyer_client, "/payment/confirm-order", {
        "paymentIntentId": intent_id, "items": [{"id": a}, {"id": c}],
    })

    assert resp.status_code == 400
    assert fetch(app, Product, c).quantity == 1


def test_live_confirm_by_other_buyer_is_rejected(app, client, buyer_client, fake_stripe, make_user, make_product, audit_sink):
    pid = make_product()
    intent_id = _live_intent(buyer_client, fake_stripe, [pid])

    from conftest import login
    make_user(email="mallory@example.com")
    assert login(client, email="mallory@example.com").status_code == 200

    resp = post(client, "/payment/confirm-order", {"paymentIntentId": intent_id, "items": [{"id": pid}]})

    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Payment authorization mismatch"
    assert audit_sink.actions()[-1] == SECURITY_ALERT
    assert fetch(app, Product, pid).quantity == 1
    assert _order_count(app) == 0


def test_live_confirm_unpaid_intent(app, buyer_client, fake_stripe, make_product, audit_sink):
    pid = make_product()
    intent_id = _live_intent(buyer_client, fake_stripe, [pid], pay=False)

    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": intent_id, "items": [{"id": pid}]})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Payment not successful"
    assert audit_sink.actions()[-1] == PAYMENT_FAILED
    assert fetch(app, Product, pid).quantity == 1


def test_live_mode_does_not_honour_mock_prefix(app, buyer_client, fake_stripe, make_product, audit_sink):
    pid = make_product()
    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": "mock_forged", "items": [{"id": pid}]})

    assert resp.status_code == 400
    assert audit_sink.actions()[-1] == PAYMENT_FAILED
    assert fetch(app, Product, pid).quantity == 1


def test_live_confirm_forged_intent_is_audited(app, buyer_client, fake_stripe, make_product, audit_sink):
    pid = make_product()
    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": "pi_forged", "items": [{"id": pid}]})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Payment not successful"
    assert audit_sink.actions()[-1] == PAYMENT_FAILED
    assert "pi_forged" in audit_sink.events[-1].details
    assert _order_count(app) == 0


def test_live_confirm_provider_timeout(app, buyer_client, fake_stripe, make_product):
    pid = make_product()
    intent_id = _live_intent(buyer_client, fake_stripe, [pid])
    fake_stripe.fail_with = stripe.APIConnectionError("Request timed out")

    resp = post(buyer_client, "/payment/confirm-order", {"paymentIntentId": intent_id, "items": [{"id": pid}]})

    assert resp.status_code == 502
    assert fetch(app, Product, pid).quantity == 1


def test_live_intent_settles_once(app, buyer_client, fake_stripe, make_product):
    pid = make_product(quantity=5)
    intent_id = _live_intent(buyer_client, fake_stripe, [pid])
    payload = {"paymentIntentId": intent_id, "items": [{"id": pid}]}

    assert post(buyer_client, "/payment/confirm-order", payload).status_code == 201
    assert post(buyer_client, "/payment/confirm-order", payload).status_code == 409
    assert fetch(app, Product, pid).quantity == 4
