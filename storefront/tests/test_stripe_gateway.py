"""
CHANGE LOG
- 2025-09-14: StripeGateway adapter tests (stripe session service patched, no network).
  * read retries on connection errors only; writes never retried
  * every StripeError surfaces as UpstreamFailure
  * webhook signature verification before parsing
- 2025-09-21: one StripeClient per key/timeout, no stripe module globals; paged listing.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, PropertyMock, patch

import stripe
from django.test import SimpleTestCase

from storefront.config import StorefrontConfig
from storefront.errors import SignatureInvalid, UpstreamFailure, ValidationFailed
from storefront.services.stripe_gateway import StripeGateway, _client_for

from .factories import WEBHOOK_SECRET, sign_payload, stripe_event

CONFIG = StorefrontConfig(
    stripe_secret_key="sk_test_unit",
    stripe_webhook_secret=WEBHOOK_SECRET,
    success_url="https://shop.example.com/ok",
    cancel_url="https://shop.example.com/cancel",
    stripe_read_retries=2,
)

SESSION = {
    "id": "cs_test_gw",
    "object": "checkout.session",
    "payment_status": "paid",
    "payment_intent": "pi_test_gw",
    "status": "complete",
    "metadata": {"order_ref": "abc"},
}


class GatewayTestCase(SimpleTestCase):
    def setUp(self):
        self.sessions = MagicMock()
        patcher = patch.object(StripeGateway, "sessions", new_callable=PropertyMock, return_value=self.sessions)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.gateway = StripeGateway(CONFIG)


class StripeClientTests(SimpleTestCase):
    def test_one_client_per_key_and_timeout(self):
        client = _client_for("sk_test_unit", 10.0)
        self.assertIsInstance(client, stripe.StripeClient)
        self.assertIs(client, _client_for("sk_test_unit", 10.0))
        self.assertIsNot(client, _client_for("sk_test_other", 10.0))

    def test_gateway_leaves_stripe_module_settings_alone(self):
        http_client = stripe.default_http_client
        retries = stripe.max_network_retries
        api_key = stripe.api_key

        self.assertIsNotNone(StripeGateway(CONFIG).sessions)

        self.assertIs(stripe.default_http_client, http_client)
        self.assertEqual(stripe.max_network_retries, retries)
        self.assertEqual(stripe.api_key, api_key)


@patch("storefront.services.stripe_gateway.time.sleep", lambda s: None)
class RetrieveSessionTests(GatewayTestCase):
    def test_retries_connection_errors_then_succeeds(self):
        self.sessions.retrieve.side_effect = [stripe.APIConnectionError("reset"), SESSION]

        status = self.gateway.retrieve_session("cs_test_gw")

        self.assertEqual(self.sessions.retrieve.call_count, 2)
        self.sessions.retrieve.assert_called_with("cs_test_gw")
        self.assertTrue(status.is_paid)
        self.assertEqual(status.payment_intent, "pi_test_gw")
        self.assertEqual(status.metadata, {"order_ref": "abc"})

    def test_gives_up_after_bounded_retries(self):
        self.sessions.retrieve.side_effect = stripe.APIConnectionError("down")
        with self.assertRaises(UpstreamFailure):
            self.gateway.retrieve_session("cs_test_gw")
        self.assertEqual(self.sessions.retrieve.call_count, 3)

    def test_api_errors_are_not_retried(self):
        self.sessions.retrieve.side_effect = stripe.InvalidRequestError("No such checkout.session", "id")
        with self.assertRaises(UpstreamFailure):
            self.gateway.retrieve_session("cs_missing")
        self.assertEqual(self.sessions.retrieve.call_count, 1)


@patch("storefront.services.stripe_gateway.time.sleep", lambda s: None)
class ListSessionsTests(GatewayTestCase):
    def test_walks_every_page(self):
        self.sessions.list.side_effect = [
            {"data": [dict(SESSION, id="cs_test_a"), dict(SESSION, id="cs_test_b")], "has_more": True},
            {"data": [dict(SESSION, id="cs_test_c")], "has_more": False},
        ]

        ids = [s.id for s in self.gateway.list_sessions(created_gte=1700000000, limit=2)]

        self.assertEqual(ids, ["cs_test_a", "cs_test_b", "cs_test_c"])
        first, second = self.sessions.list.call_args_list
        self.assertEqual(first.kwargs["params"], {"limit": 2, "created": {"gte": 1700000000}})
        self.assertEqual(second.kwargs["params"]["starting_after"], "cs_test_b")

    def test_error_on_later_page_is_upstream_failure(self):
        self.sessions.list.side_effect = [
            {"data": [dict(SESSION, id="cs_test_a")], "has_more": True},
            stripe.InvalidRequestError("bad cursor", "starting_after"),
        ]
        sessions = self.gateway.list_sessions()
        self.assertEqual(next(sessions).id, "cs_test_a")
        with self.assertRaises(UpstreamFailure):
            next(sessions)

    def test_later_page_connection_errors_are_retried(self):
        self.sessions.list.side_effect = [
            {"data": [dict(SESSION, id="cs_test_a")], "has_more": True},
            stripe.APIConnectionError("reset"),
            {"data": [dict(SESSION, id="cs_test_b")], "has_more": False},
        ]
        ids = [s.id for s in self.gateway.list_sessions()]
        self.assertEqual(ids, ["cs_test_a", "cs_test_b"])
        self.assertEqual(self.sessions.list.call_count, 3)


class CreateSessionTests(GatewayTestCase):
    def _create(self):
        return self.gateway.create_session(
            line_items=[{"price_data": {"currency": "usd", "unit_amount": 500}, "quantity": 1}],
            success_url="https://shop.example.com/ok?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="https://shop.example.com/cancel",
            metadata={"order_ref": "abc"},
            client_reference_id="abc",
            idempotency_key="tplstore_checkout_unit",
        )

    def test_passes_idempotency_key_and_returns_url(self):
        self.sessions.create.return_value = {
            "id": "cs_test_new",
            "url": "https://checkout.stripe.com/c/pay/cs_test_new",
        }

        created = self._create()

        kwargs = self.sessions.create.call_args.kwargs
        self.assertEqual(kwargs["options"], {"idempotency_key": "tplstore_checkout_unit"})
        self.assertEqual(kwargs["params"]["mode"], "payment")
        self.assertEqual(kwargs["params"]["payment_intent_data"], {"metadata": {"order_ref": "abc"}})
        self.assertEqual(created.id, "cs_test_new")

    def test_connection_error_is_not_retried(self):
        self.sessions.create.side_effect = stripe.APIConnectionError("down")
        with self.assertRaises(UpstreamFailure):
            self._create()
        self.assertEqual(self.sessions.create.call_count, 1)

    def test_missing_url_is_upstream_failure(self):
        self.sessions.create.return_value = {"id": "cs_test_new"}
        with self.assertRaises(UpstreamFailure):
            self._create()


class VerifyWebhookTests(SimpleTestCase):
    def test_valid_signature_parses_event(self):
        payload = json.dumps(stripe_event("checkout.session.completed", SESSION))
        event = StripeGateway(CONFIG).verify_webhook(payload.encode("utf-8"), sign_payload(payload))
        self.assertEqual(event["type"], "checkout.session.completed")
        self.assertEqual(event["data"]["object"]["id"], "cs_test_gw")

    def test_bad_or_missing_signature(self):
        payload = json.dumps(stripe_event("checkout.session.completed", SESSION))
        gateway = StripeGateway(CONFIG)
        with self.assertRaises(SignatureInvalid):
            gateway.verify_webhook(payload.encode("utf-8"), "")
        with self.assertRaises(SignatureInvalid):
            gateway.verify_webhook(payload.encode("utf-8"), sign_payload(payload, secret="whsec_other"))
        with self.assertRaises(SignatureInvalid):
            gateway.verify_webhook(payload.encode("utf-8"), "t=1,v1=deadbeef")

    def test_non_object_json_after_valid_signature(self):
        payload = "[1, 2, 3]"
        with self.assertRaises(ValidationFailed):
            StripeGateway(CONFIG).verify_webhook(payload.encode("utf-8"), sign_payload(payload))
