"""
storefront.services.stripe_gateway

Thin adapter over the `stripe` library. The rest of the app never imports
stripe directly; it talks to StripeGateway, which:

- holds one stripe.StripeClient per (secret key, timeout); no stripe module globals are touched,
- bounds every call with the configured HTTP timeout,
- retries read-only lookups (session retrieve/list) on connection errors only,
- never retries writes (session create relies on the idempotency key instead),
- wraps every StripeError into storefront.errors.UpstreamFailure,
- verifies webhook signatures before anything parses the payload.

========= CHANGE LOG =========
2025-09-02 • ADD: create_session / retrieve_session / verify_webhook.
2025-09-14 • ADD: bounded read retries + list_sessions for the reconcile_sessions sweep.
2025-09-21 • CHANGE: StripeClient instead of module globals; list pages fetched one by one through _read().
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional

import stripe

from ..config import StorefrontConfig
from ..errors import SignatureInvalid, UpstreamFailure, ValidationFailed

log = logging.getLogger("storefront.stripe")

RETRY_BACKOFF_SECONDS = 0.5


@dataclass(frozen=True)
class CreatedSession:
    id: str
    url: str


@dataclass(frozen=True)
class SessionStatus:
    id: str
    payment_status: str
    payment_intent: Optional[str]
    status: Optional[str] = None
    client_reference_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    val = getattr(obj, name, None)
    if val is None and isinstance(obj, dict):
        val = obj.get(name)
    return default if val is None else val


def _intent_id(raw: Any) -> Optional[str]:
    # payment_intent is a string id unless the caller expanded it.
    if not raw:
        return None
    if isinstance(raw, str):
        return raw
    return _attr(raw, "id")


def _to_session_status(session: Any) -> SessionStatus:
    metadata = _attr(session, "metadata", {}) or {}
    try:
        metadata = {str(k): str(v) for k, v in dict(metadata).items()}
    except (AttributeError, TypeError, ValueError):
        metadata = {}
    return SessionStatus(
        id=str(_attr(session, "id", "")),
        payment_status=str(_attr(session, "payment_status", "")),
        payment_intent=_intent_id(_attr(session, "payment_intent")),
        status=_attr(session, "status"),
        client_reference_id=_attr(session, "client_reference_id"),
        metadata=metadata,
    )


@lru_cache(maxsize=8)
def _client_for(secret_key: str, timeout: float) -> stripe.StripeClient:
    # Library-level retries stay off; read retries are handled in StripeGateway._read().
    return stripe.StripeClient(
        secret_key,
        http_client=stripe.RequestsClient(timeout=timeout),
        max_network_retries=0,
    )


class StripeGateway:
    def __init__(self, config: StorefrontConfig):
        self.config = config

    @property
    def sessions(self):
        client = _client_for(self.config.stripe_secret_key, self.config.stripe_timeout)
        # newer stripe releases group the v1 services under client.v1
        return getattr(client, "v1", client).checkout.sessions

    def _read(self, op: str, fn):
        attempts = 1 + max(0, self.config.stripe_read_retries)
        last_exc: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except stripe.APIConnectionError as e:
                last_exc = e
                log.warning("Stripe %s connection error attempt=%s/%s: %s", op, attempt, attempts, e)
                if attempt < attempts:
                    time.sleep(RETRY_BACKOFF_SECONDS * attempt)
            except stripe.StripeError as e:
                log.error("Stripe %s failed: %s", op, e)
                raise UpstreamFailure(detail=getattr(e, "user_message", None) or str(e)) from e
        raise UpstreamFailure(detail=str(last_exc)) from last_exc

    # ---- checkout sessions ----
    def create_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        client_reference_id: str,
        idempotency_key: str,
        customer_email: Optional[str] = None,
    ) -> CreatedSession:
        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "client_reference_id": client_reference_id,
            "payment_intent_data": {"metadata": metadata},
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = self.sessions.create(params=params, options={"idempotency_key": idempotency_key})
        except stripe.StripeError as e:
            log.error("Stripe checkout session create failed: %s", e)
            raise UpstreamFailure(
                "Unable to create checkout session.",
                detail=getattr(e, "user_message", None) or str(e),
            ) from e

        sid = _attr(session, "id")
        url = _attr(session, "url")
        if not sid or not url:
            raise UpstreamFailure("Stripe did not return a session URL.")
        return CreatedSession(id=str(sid), url=str(url))

    def retrieve_session(self, session_id: str) -> SessionStatus:
        session = self._read(
            "session retrieve",
            lambda: self.sessions.retrieve(session_id),
        )
        return _to_session_status(session)

    def list_sessions(self, *, created_gte: Optional[int] = None, limit: int = 100) -> Iterator[SessionStatus]:
        params: Dict[str, Any] = {"limit": min(max(limit, 1), 100)}
        if created_gte:
            params["created"] = {"gte": int(created_gte)}
        while True:
            page_params = dict(params)
            page = self._read("session list", lambda: self.sessions.list(params=page_params))
            data = list(_attr(page, "data", []) or [])
            for session in data:
                yield _to_session_status(session)
            if not data or not _attr(page, "has_more", False):
                return
            params["starting_after"] = _attr(data[-1], "id")

    # ---- webhooks ----
    def verify_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header, then parse the payload into a plain dict.
        Nothing is parsed or looked up before verification succeeds.
        """
        if not sig_header:
            raise SignatureInvalid("Missing Stripe-Signature header.")
        try:
            text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload)
        except UnicodeDecodeError as e:
            raise SignatureInvalid("Payload is not UTF-8.") from e
        try:
            stripe.WebhookSignature.verify_header(
                text,
                sig_header,
                self.config.stripe_webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalid(detail=str(e)) from e
        try:
            event = json.loads(text)
        except ValueError as e:
            raise ValidationFailed("Invalid JSON payload.") from e
        if not isinstance(event, dict):
            raise ValidationFailed("Invalid JSON payload.")
        return event
