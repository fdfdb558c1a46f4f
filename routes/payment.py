# routes/payment.py
from flask import Blueprint, request, jsonify, g

from errors import BadRequest
from routes.auth import require_role
from services.payments import create_payment_intent, payment_backend
from services.pricing import parse_item_ids, quote_items
from services.settlement import settle_order

payment_bp = Blueprint("payment", __name__, url_prefix="/payment")


@payment_bp.route("/create-intent", methods=["POST"])
@require_role()
def create_intent():
    """
    Start checkout. Expects JSON: { "items": [{ "id": 12 }, ...] }
    Prices are read from the catalog, never from the body.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON body required")
    quote = quote_items(parse_item_ids(data.get("items")))
    handle = create_payment_intent(quote, g.user)

    return jsonify(
        success=True,
        clientSecret=handle.client_secret,
        amount=handle.amount,
        isSimulation=handle.is_simulation,
    ), 200


@payment_bp.route("/confirm-order", methods=["POST"])
@require_role()
def confirm_order():
    """
    Settle a paid intent. Expects JSON: { "paymentIntentId": "...", "items": [{ "id": 12 }, ...] }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON body required")
    intent_id = data.get("paymentIntentId")
    if not isinstance(intent_id, str) or not intent_id.strip():
        raise BadRequest("paymentIntentId is required")

    order = settle_order(
        backend=payment_backend(),
        buyer=g.user,
        intent_id=intent_id.strip(),
        item_ids=parse_item_ids(data.get("items")),
    )
    return jsonify(success=True, data=order.to_dict()), 201
