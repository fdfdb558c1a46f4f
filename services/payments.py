# services/payments.py
"""
Payment intent broker and provider backends.

Backends:
  - StripeBackend     live provider, wraps an injected ``stripe.StripeClient``
  - SimulatedBackend  used when no provider credential is configured; mints
                      ``mock_<hex>`` intents locally. Simulated intents are NOT
                      verified by a provider: they must have been issued by
                      this process and are single-use, but get no
                      status/buyer/item verification.

The active backend lives in ``app.extensions["payment_backend"]``.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import stripe
from flask import current_app

from config import payment_simulation_enabled
from errors import IntentAlreadySettled, PaymentNotSucceeded, ProviderUnavailable
from models.user import User
from services.pricing import Quote

SIMULATION_PREFIX = "mock_"
STATUS_SUCCEEDED = "succeeded"
SIMULATED_INTENT_TTL_SECONDS = 24 * 3600


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    amount: int                     # minor units
    status: str
    metadata: Dict[str, str] = field(default_factory=dict)
    is_simulation: bool = False

    @property
    def buyer_id(self) -> Optional[str]:
        return self.metadata.get("userId")

    @property
    def product_ids(self) -> list[str]:
        raw = self.metadata.get("productIds") or ""
        return [p for p in raw.split(",") if p]


@dataclass(frozen=True)
class IntentHandle:
    """What the client gets back from checkout start."""
    client_secret: str
    amount: float
    is_simulation: bool


def binding_metadata(buyer_id: int, product_ids) -> Dict[str, str]:
    return {
        "userId": str(buyer_id),
        "productIds": ",".join(sorted(str(p) for p in product_ids)),
    }


class PaymentBackend:
    is_simulation = False

    def create_intent(self, *, amount_minor: int, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        raise NotImplementedError

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        raise NotImplementedError

    def is_simulated_id(self, intent_id: str) -> bool:
        return False

    def claim(self, intent_id: str) -> None:
        """Reserve an intent for settlement. Live intents rely on the orders table."""

    def release(self, intent_id: str) -> None:
        """Undo ``claim`` after a settlement that did not commit."""

    def complete(self, intent_id: str) -> None:
        """Forget a claim whose order has committed."""


# ---------- live (Stripe) ----------

def _plain_metadata(md: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    if not md:
        return {}
    return {str(k): str(md[k]) for k in md.keys()}


def _to_intent(obj: Any) -> PaymentIntent:
    return PaymentIntent(
        id=obj.id,
        client_secret=getattr(obj, "client_secret", None) or "",
        amount=int(getattr(obj, "amount", 0) or 0),
        status=getattr(obj, "status", None) or "",
        metadata=_plain_metadata(getattr(obj, "metadata", None)),
    )


class StripeBackend(PaymentBackend):
    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str, *, timeout: int) -> "StripeBackend":
        client = stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=0,  # retry policy belongs to the caller
        )
        return cls(client.v1)

    def create_intent(self, *, amount_minor: int, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        try:
            obj = self._client.payment_intents.create(params={
                "amount": amount_minor,
                "currency": currency,
                "metadata": metadata,
                "automatic_payment_methods": {"enabled": True},
            })
        except stripe.StripeError as e:
            current_app.logger.error("[payment] intent create failed: %s", e)
            raise ProviderUnavailable()
        return _to_intent(obj)

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        try:
            obj = self._client.payment_intents.retrieve(intent_id)
        except stripe.InvalidRequestError as e:
            current_app.logger.warning("[payment] unknown intent %s: %s", intent_id, e)
            raise PaymentNotSucceeded()
        except stripe.StripeError as e:
            current_app.logger.error("[payment] intent retrieve failed %s: %s", intent_id, e)
            raise ProviderUnavailable()
        return _to_intent(obj)


# ---------- simulation ----------

class SimulatedBackend(PaymentBackend):
    """
    Intents live in memory until claimed. A ``mock_`` id this process never
    issued is refused; once an order commits the id is forgotten and the
    unique ``orders.payment_intent_id`` takes over replay protection.
    Unclaimed intents are pruned after ``ttl_seconds``.
    """
    is_simulation = True

    def __init__(self, ttl_seconds: int = SIMULATED_INTENT_TTL_SECONDS):
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._issued: Dict[str, Tuple[float, PaymentIntent]] = {}
        self._claimed: Dict[str, Tuple[float, PaymentIntent]] = {}

    def _prune(self, now: float) -> None:
        stale = [k for k, (ts, _) in self._issued.items() if now - ts > self._ttl]
        for k in stale:
            del self._issued[k]

    def create_intent(self, *, amount_minor: int, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        intent_id = f"{SIMULATION_PREFIX}{uuid.uuid4().hex}"
        intent = PaymentIntent(
            id=intent_id,
            client_secret=intent_id,
            amount=amount_minor,
            status=STATUS_SUCCEEDED,
            metadata=dict(metadata),
            is_simulation=True,
        )
        now = time.monotonic()
        with self._lock:
            self._prune(now)
            self._issued[intent_id] = (now, intent)
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            entry = self._issued.get(intent_id) or self._claimed.get(intent_id)
        if entry is None:
            raise PaymentNotSucceeded()
        return entry[1]

    def is_simulated_id(self, intent_id: str) -> bool:
        return intent_id.startswith(SIMULATION_PREFIX)

    def claim(self, intent_id: str) -> None:
        with self._lock:
            if intent_id in self._claimed:
                raise IntentAlreadySettled()
            self._prune(time.monotonic())
            entry = self._issued.pop(intent_id, None)
            if entry is None:
                raise PaymentNotSucceeded()
            self._claimed[intent_id] = entry

    def release(self, intent_id: str) -> None:
        with self._lock:
            entry = self._claimed.pop(intent_id, None)
            if entry is not None:
                self._issued[intent_id] = entry

    def complete(self, intent_id: str) -> None:
        with self._lock:
            self._claimed.pop(intent_id, None)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._issued) + len(self._claimed)


def build_payment_backend(config: Mapping[str, Any]) -> PaymentBackend:
    key = config.get("STRIPE_SECRET_KEY")
    if payment_simulation_enabled(key):
        return SimulatedBackend()
    return StripeBackend.from_api_key(key, timeout=int(config["PAYMENT_PROVIDER_TIMEOUT"]))


def payment_backend() -> PaymentBackend:
    return current_app.extensions["payment_backend"]


# ---------- broker ----------

def create_payment_intent(quote: Quote, buyer: User) -> IntentHandle:
    """
    Provision a payment claim for an authoritative quote.
    The buyer id and product ids bound here are what settlement checks against.
    """
    backend = payment_backend()
    metadata = binding_metadata(buyer.id, quote.product_ids)
    intent = backend.create_intent(
        amount_minor=quote.amount_minor,
        currency=current_app.config["PAYMENT_CURRENCY"],
        metadata=metadata,
    )

    current_app.logger.info(
        "[payment] intent created uid=%s amount=%s products=%s simulation=%s",
        buyer.id, quote.amount_minor, metadata["productIds"], backend.is_simulation,
    )
    return IntentHandle(
        client_secret=intent.client_secret,
        amount=float(quote.total),
        is_simulation=backend.is_simulation,
    )
