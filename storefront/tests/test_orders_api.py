"""
CHANGE LOG
- 2025-09-14: Order history, staff update allow-list, revenue stats.
- 2025-09-21: staff status edits checked as a pair; payment edits go through the ledger.
- 2025-09-21: bundle lines come from the prefetch (flat query count).
"""

from __future__ import annotations

import json
from datetime import timedelta

from django.contrib.admin.sites import site
from django.core import mail
from django.db import connection
from django.test import RequestFactory, TestCase, override_settings
from django.test.utils import CaptureQueriesContext
from django.utils import timezone

from storefront.admin import OrderAdmin, OrderAdminForm
from storefront.models import Order
from storefront.services.entitlements import can_download

from .factories import WEBHOOK_SECRET, make_bundle, make_order, make_template, make_user, signed_event


def _paid(user, **kw):
    return make_order(user, status=Order.STATUS_COMPLETED, payment_status=Order.PAYMENT_PAID, **kw)


class OrderHistoryTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.other = make_user()
        self.staff = make_user(staff=True)
        self.template = make_template()
        self.mine = _paid(self.user, template=self.template)
        self.theirs = make_order(self.other, template=self.template)

    def test_buyer_sees_only_own_orders(self):
        self.client.force_login(self.user)
        r = self.client.get("/api/orders/")
        self.assertEqual(r.status_code, 200)
        ids = [row["id"] for row in r.json()["results"]]
        self.assertEqual(ids, [self.mine.pk])
        row = r.json()["results"][0]
        self.assertEqual(row["kind"], "template")
        self.assertEqual(row["amount"], 1999)
        self.assertNotIn("notes", row)

    def test_staff_sees_all_and_can_filter(self):
        self.client.force_login(self.staff)
        r = self.client.get("/api/orders/")
        self.assertEqual(r.json()["count"], 2)
        self.assertIn("notes", r.json()["results"][0])

        r = self.client.get("/api/orders/", {"user_id": self.other.pk})
        self.assertEqual([row["id"] for row in r.json()["results"]], [self.theirs.pk])

        r = self.client.get("/api/orders/", {"user_id": "abc"})
        self.assertEqual(r.status_code, 400)

    def test_anonymous_is_401(self):
        r = self.client.get("/api/orders/")
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json()["error"]["code"], "unauthenticated")

    def test_detail_owner_only(self):
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(f"/api/orders/{self.mine.pk}/").status_code, 200)
        r = self.client.get(f"/api/orders/{self.theirs.pk}/")
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["error"]["code"], "unauthorized")
        self.assertEqual(self.client.get("/api/orders/999999/").status_code, 404)

    def test_bundle_order_lists_frozen_templates(self):
        a = make_template("Baby First Year")
        b = make_template("Life Story Journal")
        order = _paid(self.user, bundle=make_bundle([a, b]))
        self.client.force_login(self.user)
        row = self.client.get(f"/api/orders/{order.pk}/").json()
        self.assertEqual(row["kind"], "bundle")
        self.assertEqual(row["purchased_template_ids"], sorted([a.pk, b.pk]))

    def test_bundle_lines_do_not_add_queries_per_order(self):
        bundle = make_bundle([make_template("Baby First Year"), make_template("Life Story Journal")])
        _paid(self.user, bundle=bundle)
        self.client.force_login(self.user)
        self.client.get("/api/orders/")

        with CaptureQueriesContext(connection) as few:
            self.client.get("/api/orders/")
        for _ in range(3):
            _paid(self.user, bundle=bundle)
        with CaptureQueriesContext(connection) as many:
            r = self.client.get("/api/orders/")

        self.assertEqual(r.json()["count"], 5)
        self.assertEqual(len(many), len(few))


class StaffOrderUpdateTests(TestCase):
    def setUp(self):
        self.staff = make_user(staff=True)
        self.user = make_user()
        self.order = make_order(self.user, template=make_template())

    def _patch(self, order, body):
        return self.client.patch(
            f"/api/orders/{order.pk}/",
            data=json.dumps(body),
            content_type="application/json",
        )

    def test_staff_can_update_notes_and_status(self):
        self.client.force_login(self.staff)
        r = self._patch(self.order, {"notes": "manual review", "status": "processing"})
        self.assertEqual(r.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.notes, "manual review")
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)

    def test_frozen_fields_rejected(self):
        self.client.force_login(self.staff)
        for body in ({"amount": 1}, {"purchaser": self.staff.pk}, {"stripe_session_id": "cs_x"}, {"notes": "x", "template": 5}):
            r = self._patch(self.order, body)
            self.assertEqual(r.status_code, 400, body)
            self.assertEqual(r.json()["error"]["code"], "validation_failed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.amount, 1999)
        self.assertEqual(self.order.notes, "")

    def test_illegal_transition_rejected(self):
        paid = make_order(
            self.user,
            template=make_template("Other"),
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        self.client.force_login(self.staff)
        r = self._patch(paid, {"status": "pending"})
        self.assertEqual(r.status_code, 400)
        r = self._patch(paid, {"payment_status": "failed"})
        self.assertEqual(r.status_code, 400)
        r = self._patch(paid, {"payment_status": "refunded"})
        self.assertEqual(r.status_code, 200)
        paid.refresh_from_db()
        self.assertEqual(paid.payment_status, Order.PAYMENT_REFUNDED)
        self.assertEqual(paid.status, Order.STATUS_COMPLETED)

    def test_completed_without_payment_rejected(self):
        self.client.force_login(self.staff)
        r = self._patch(self.order, {"status": "completed"})
        self.assertEqual(r.status_code, 400)
        self.assertIn("status", r.json()["error"]["fields"])
        self.order.refresh_from_db()
        self.assertEqual((self.order.status, self.order.payment_status), ("pending", "pending"))
        self.assertFalse(can_download(self.user, self.order.template))

    def test_mismatched_pair_rejected(self):
        self.client.force_login(self.staff)
        for body in (
            {"status": "processing", "payment_status": "paid"},
            {"status": "completed", "payment_status": "failed"},
            {"status": "cancelled", "payment_status": "refunded"},
        ):
            r = self._patch(self.order, body)
            self.assertEqual(r.status_code, 400, body)
        self.order.refresh_from_db()
        self.assertEqual((self.order.status, self.order.payment_status), ("pending", "pending"))

    @override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
    def test_staff_paid_goes_through_ledger_and_webhook_converges(self):
        self.client.force_login(self.staff)
        with self.captureOnCommitCallbacks(execute=True):
            r = self._patch(self.order, {"payment_status": "paid"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "completed")
        self.assertEqual(r.json()["payment_status"], "paid")
        self.assertEqual(len(mail.outbox), 1)

        payload, sig = signed_event(
            "checkout.session.completed",
            {"id": self.order.stripe_session_id, "payment_status": "paid", "payment_intent": "pi_test_staff"},
        )
        hook = self.client.post("/api/webhook/", data=payload, content_type="application/json", HTTP_STRIPE_SIGNATURE=sig)
        self.assertEqual(hook.status_code, 200)
        self.assertFalse(hook.json()["data"]["applied"])

        self.order.refresh_from_db()
        self.assertEqual((self.order.status, self.order.payment_status), ("completed", "paid"))
        self.assertTrue(can_download(self.user, self.order.template))

    def test_pending_order_can_be_cancelled_but_not_reopened(self):
        self.client.force_login(self.staff)
        self.assertEqual(self._patch(self.order, {"status": "cancelled"}).status_code, 200)
        self.assertEqual(self._patch(self.order, {"status": "processing"}).status_code, 400)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_CANCELLED)

    def test_buyer_cannot_patch(self):
        self.client.force_login(self.user)
        r = self._patch(self.order, {"notes": "let me in"})
        self.assertEqual(r.status_code, 403)
        self.order.refresh_from_db()
        self.assertEqual(self.order.notes, "")

    def test_put_not_allowed(self):
        self.client.force_login(self.staff)
        r = self.client.put(f"/api/orders/{self.order.pk}/", data="{}", content_type="application/json")
        self.assertEqual(r.status_code, 405)


class OrderStatsTests(TestCase):
    def setUp(self):
        self.staff = make_user(staff=True)
        self.user = make_user()
        self.a = make_template("Baby First Year", price="10.00")
        self.b = make_template("Life Story Journal", price="20.00")
        _paid(self.user, template=self.a)
        _paid(self.user, template=self.a)
        _paid(self.user, bundle=make_bundle([self.a, self.b], price="25.00"))
        make_order(self.user, template=self.b)  # pending, excluded

    def test_revenue_totals(self):
        self.client.force_login(self.staff)
        r = self.client.get("/api/orders/stats/")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertEqual(data["total_orders"], 3)
        self.assertEqual(data["total_revenue"], 1000 + 1000 + 2500)
        self.assertEqual(data["average_order_value"], 1500)
        top = data["top_selling_templates"]
        self.assertEqual(top[0], {"template_id": self.a.pk, "title": "Baby First Year", "sales": 3})
        self.assertEqual(top[1], {"template_id": self.b.pk, "title": "Life Story Journal", "sales": 1})

    def test_date_range(self):
        self.client.force_login(self.staff)
        tomorrow = (timezone.now() + timedelta(days=1)).date().isoformat()
        r = self.client.get("/api/orders/stats/", {"start": tomorrow})
        self.assertEqual(r.json()["total_orders"], 0)
        self.assertEqual(r.json()["average_order_value"], 0)

        r = self.client.get("/api/orders/stats/", {"start": "not-a-date"})
        self.assertEqual(r.status_code, 400)

    def test_staff_only(self):
        self.client.force_login(self.user)
        self.assertEqual(self.client.get("/api/orders/stats/").status_code, 403)


class OrderAdminEditTests(TestCase):
    def setUp(self):
        self.staff = make_user(staff=True)
        self.user = make_user()
        self.order = make_order(self.user, template=make_template())
        self.request = RequestFactory().post("/admin/")
        self.request.user = self.staff

    def _form(self, status, payment_status, notes=""):
        order = Order.objects.get(pk=self.order.pk)
        return OrderAdminForm(
            data={"status": status, "payment_status": payment_status, "notes": notes},
            instance=order,
        )

    def test_unpaid_completion_rejected(self):
        form = self._form("completed", "pending")
        self.assertFalse(form.is_valid())
        self.assertIn("status", form.errors)

    def test_paid_with_pending_status_rejected(self):
        form = self._form("pending", "paid")
        self.assertFalse(form.is_valid())
        self.assertIn("status", form.errors)

    def test_paid_edit_is_applied_through_ledger(self):
        form = self._form("completed", "paid", notes="paid by bank transfer")
        self.assertTrue(form.is_valid(), form.errors)
        obj = form.save(commit=False)
        with self.captureOnCommitCallbacks(execute=True):
            OrderAdmin(Order, site).save_model(self.request, obj, form, True)

        self.order.refresh_from_db()
        self.assertEqual((self.order.status, self.order.payment_status), ("completed", "paid"))
        self.assertEqual(self.order.notes, "paid by bank transfer")
        self.assertEqual(len(mail.outbox), 1)
