"""
storefront.views.downloads

GET /api/downloads/templates/<template_id>/   -> { download_url, file_name }
GET /api/downloads/bundles/<order_id>/        -> HTML page of the bundle's PDFs

Access goes through services.entitlements; each authorized template download
bumps Template.download_count.

========= CHANGE LOG =========
2025-09-02 • ADD: template download authorization endpoint.
2025-09-14 • ADD: bundle download page (frozen bundle lines).
"""

from __future__ import annotations

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import render
from django.views.decorators.http import require_GET

from ..config import get_config
from ..errors import StorefrontError
from ..services.entitlements import authorize_bundle_download, authorize_download
from ._core import error_response, json_ok


@require_GET
def template_download(request: HttpRequest, template_id: int) -> JsonResponse:
    try:
        template = authorize_download(request.user, template_id, get_config())
    except StorefrontError as e:
        return error_response(e)
    return json_ok({"download_url": template.pdf_url, "file_name": template.file_name})


@require_GET
def bundle_download(request: HttpRequest, order_id: int) -> HttpResponse:
    try:
        order, templates = authorize_bundle_download(request.user, order_id, get_config())
    except StorefrontError as e:
        return error_response(e)
    return render(
        request,
        "storefront/bundle_downloads.html",
        {"order": order, "bundle_title": order.bundle.title, "templates": templates},
    )
