"""
storefront.views.orders

Order history + staff tooling (DRF).

GET   /api/orders/           own orders; staff see all, optionally ?user_id=
GET   /api/orders/<id>/      owner or staff
PATCH /api/orders/<id>/      staff only; notes / status / payment_status, checked as a pair
GET   /api/orders/stats/     staff only; revenue over completed+paid orders, optional ?start=&end=

========= CHANGE LOG =========
2025-09-14 • ADD: order history, staff update, revenue stats.
"""

from __future__ import annotations

import logging
from collections import Counter

from django.db.models import Count, Sum
from django.utils.dateparse import parse_date
from rest_framework import generics, permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from ..errors import Unauthorized, ValidationFailed
from ..models import Order, PurchasedTemplate, Template
from ..serializers import OrderSerializer, OrderStaffUpdateSerializer

log = logging.getLogger("storefront.orders")

TOP_SELLING_LIMIT = 5


class IsStaffForWrites(permissions.BasePermission):
    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return bool(request.user and request.user.is_staff)


class OrderListView(generics.ListAPIView):
    serializer_class = OrderSerializer

    def get_queryset(self):
        qs = Order.objects.select_related("template", "bundle").prefetch_related("purchased_lines")
        user = self.request.user
        if not user.is_staff:
            return qs.filter(purchaser=user)
        user_id = self.request.query_params.get("user_id")
        if user_id:
            try:
                qs = qs.filter(purchaser_id=int(user_id))
            except ValueError:
                raise ValidationFailed("user_id must be an integer.")
        return qs


class OrderDetailView(generics.RetrieveUpdateAPIView):
    queryset = Order.objects.select_related("template", "bundle")
    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated, IsStaffForWrites]
    http_method_names = ["get", "patch", "head", "options"]

    def get_object(self):
        order = super().get_object()
        user = self.request.user
        if order.purchaser_id != user.pk and not user.is_staff:
            raise Unauthorized()
        return order

    def partial_update(self, request, *args, **kwargs):
        order = self.get_object()
        serializer = OrderStaffUpdateSerializer(
            order,
            data=request.data,
            partial=True,
            context={"source": f"staff:{request.user.pk}"},
        )
        serializer.is_valid(raise_exception=True)
        order = serializer.save()
        log.info(
            "Order staff update: order=%s by=%s fields=%s now=%s/%s",
            order.pk,
            request.user.pk,
            ",".join(sorted(serializer.validated_data)),
            order.status,
            order.payment_status,
        )
        return Response(OrderSerializer(order, context=self.get_serializer_context()).data)


def _date_param(request, name):
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        raise ValidationFailed(f"{name} must be a date (YYYY-MM-DD).")
    return value


class OrderStatsView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        start = _date_param(request, "start")
        end = _date_param(request, "end")

        orders = Order.objects.filter(
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
        )
        if start:
            orders = orders.filter(created_at__date__gte=start)
        if end:
            orders = orders.filter(created_at__date__lte=end)

        totals = orders.aggregate(total_revenue=Sum("amount"), total_orders=Count("id"))
        total_revenue = totals["total_revenue"] or 0
        total_orders = totals["total_orders"] or 0
        average = round(total_revenue / total_orders) if total_orders else 0

        # direct purchases + frozen bundle lines
        sold = Counter()
        for row in orders.filter(template__isnull=False).values("template_id").annotate(n=Count("id")):
            sold[row["template_id"]] += row["n"]
        lines = PurchasedTemplate.objects.filter(order__in=orders)
        for row in lines.values("template_id").annotate(n=Count("id")):
            sold[row["template_id"]] += row["n"]

        top = sold.most_common(TOP_SELLING_LIMIT)
        titles = dict(Template.objects.filter(pk__in=[tid for tid, _ in top]).values_list("pk", "title"))

        return Response(
            {
                "total_revenue": total_revenue,
                "total_orders": total_orders,
                "average_order_value": average,
                "top_selling_templates": [
                    {"template_id": tid, "title": titles.get(tid, ""), "sales": n} for tid, n in top
                ],
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
            }
        )
