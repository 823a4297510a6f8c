"""
CHANGE LOG
- 2025-09-02: Entitlement + download endpoint tests.
- 2025-09-14: bundle download page, refund revoke flag.
"""

from __future__ import annotations

from django.test import TestCase, override_settings

from storefront.config import get_config
from storefront.models import Order, Template
from storefront.services.entitlements import can_download

from .factories import make_bundle, make_order, make_template, make_user


def _url(template_id):
    return f"/api/downloads/templates/{template_id}/"


class EntitlementTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.template = make_template("Memorial Tribute")

    def test_no_order_no_access(self):
        self.assertFalse(can_download(self.user, self.template))

    def test_pending_or_failed_order_no_access(self):
        make_order(self.user, template=self.template)
        make_order(
            self.user,
            template=self.template,
            status=Order.STATUS_FAILED,
            payment_status=Order.PAYMENT_FAILED,
        )
        self.assertFalse(can_download(self.user, self.template))

    def test_completed_order_grants_access(self):
        make_order(
            self.user,
            template=self.template,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        self.assertTrue(can_download(self.user, self.template))
        self.assertFalse(can_download(make_user(), self.template))

    def test_bundle_lines_grant_access(self):
        other = make_template("School Year Memory")
        bundle = make_bundle([self.template, other])
        make_order(
            self.user,
            bundle=bundle,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        # added after purchase: not covered
        late = make_template("Birthday Gift")
        bundle.templates.add(late)

        self.assertTrue(can_download(self.user, self.template))
        self.assertTrue(can_download(self.user, other))
        self.assertFalse(can_download(self.user, late))

    def test_staff_always_allowed(self):
        self.assertTrue(can_download(make_user(staff=True), self.template))

    def test_refund_keeps_access_unless_revoked(self):
        make_order(
            self.user,
            template=self.template,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_REFUNDED,
        )
        self.assertTrue(can_download(self.user, self.template, get_config()))
        with override_settings(STOREFRONT_REVOKE_ON_REFUND=True):
            self.assertFalse(can_download(self.user, self.template, get_config()))


class TemplateDownloadEndpointTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.template = make_template("Memorial Tribute")

    def test_owner_gets_link_and_counter_increments(self):
        make_order(
            self.user,
            template=self.template,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        self.client.force_login(self.user)
        r = self.client.get(_url(self.template.pk))

        self.assertEqual(r.status_code, 200)
        data = r.json()["data"]
        self.assertEqual(data["download_url"], self.template.pdf_url)
        self.assertEqual(data["file_name"], "Memorial Tribute.pdf")
        self.assertEqual(Template.objects.get(pk=self.template.pk).download_count, 1)

    def test_not_purchased_is_403(self):
        self.client.force_login(self.user)
        r = self.client.get(_url(self.template.pk))
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["error"]["code"], "purchase_required")
        self.assertEqual(Template.objects.get(pk=self.template.pk).download_count, 0)

    def test_anonymous_is_401(self):
        r = self.client.get(_url(self.template.pk))
        self.assertEqual(r.status_code, 401)

    def test_unknown_template_is_404(self):
        self.client.force_login(self.user)
        r = self.client.get(_url(987654))
        self.assertEqual(r.status_code, 404)

    def test_deactivated_template_still_downloadable_by_owner(self):
        make_order(
            self.user,
            template=self.template,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        Template.objects.filter(pk=self.template.pk).update(is_active=False)
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(_url(self.template.pk)).status_code, 200)


class BundleDownloadPageTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.a = make_template("Baby First Year")
        self.b = make_template("Life Story Journal")
        self.bundle = make_bundle([self.a, self.b], title="New Parents")

    def _url(self, order):
        return f"/api/downloads/bundles/{order.pk}/"

    def test_owner_sees_frozen_links(self):
        order = make_order(
            self.user,
            bundle=self.bundle,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        self.client.force_login(self.user)
        r = self.client.get(self._url(order))

        self.assertEqual(r.status_code, 200)
        self.assertContains(r, "New Parents")
        self.assertContains(r, self.a.pdf_url)
        self.assertContains(r, self.b.pdf_url)

    def test_pending_bundle_order_is_403(self):
        order = make_order(self.user, bundle=self.bundle)
        self.client.force_login(self.user)
        r = self.client.get(self._url(order))
        self.assertEqual(r.status_code, 403)

    def test_other_user_is_403(self):
        order = make_order(
            self.user,
            bundle=self.bundle,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        self.client.force_login(make_user())
        r = self.client.get(self._url(order))
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["error"]["code"], "unauthorized")

    def test_template_order_is_404(self):
        order = make_order(
            self.user,
            template=self.a,
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(self._url(order)).status_code, 404)
