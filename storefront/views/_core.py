"""
storefront.views._core

Shared helpers for the storefront endpoints.

- One JSON envelope for every function view: {ok, data, error, ver}.
- error_response() turns a StorefrontError into that envelope with its HTTP status.
- drf_exception_handler() gives the DRF views the same error shape.

========= CHANGE LOG =========
2025-09-02 • ADD: envelope helpers + StorefrontError -> JSON conversion.
2025-09-14 • ADD: DRF exception handler so list/detail endpoints share error codes.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from django.core.exceptions import PermissionDenied
from django.http import Http404, HttpRequest, JsonResponse
from rest_framework import exceptions as drf_exceptions
from rest_framework.views import exception_handler

from ..errors import StorefrontError, ValidationFailed

VER = "storefront.v1-2025-09-14"


def json_ok(data: Optional[Dict[str, Any]] = None, *, status: int = 200) -> JsonResponse:
    return JsonResponse(
        {"ok": True, "data": data or {}, "error": {}, "ver": VER},
        status=status,
        json_dumps_params={"ensure_ascii": False},
    )


def error_response(err: StorefrontError) -> JsonResponse:
    return JsonResponse(
        {"ok": False, "data": {}, "error": err.as_dict(), "ver": VER},
        status=err.http_status,
        json_dumps_params={"ensure_ascii": False},
    )


def parse_json_body(request: HttpRequest) -> Dict[str, Any]:
    """Parse a JSON object body. Empty body -> {}. Anything else -> ValidationFailed."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationFailed("Invalid JSON body.") from e
    if not isinstance(data, dict):
        raise ValidationFailed("JSON body must be an object.")
    return data


# DRF exception class -> storefront error code
_DRF_CODES = {
    drf_exceptions.NotAuthenticated: "unauthenticated",
    drf_exceptions.AuthenticationFailed: "unauthenticated",
    drf_exceptions.PermissionDenied: "unauthorized",
    drf_exceptions.NotFound: "not_found",
    drf_exceptions.ValidationError: "validation_failed",
    drf_exceptions.ParseError: "validation_failed",
    drf_exceptions.MethodNotAllowed: "method_not_allowed",
    Http404: "not_found",
    PermissionDenied: "unauthorized",
}


def drf_exception_handler(exc, context):
    if isinstance(exc, StorefrontError):
        return error_response(exc)

    response = exception_handler(exc, context)
    if response is None:
        return None

    code = "error"
    for exc_cls, mapped in _DRF_CODES.items():
        if isinstance(exc, exc_cls):
            code = mapped
            break

    if isinstance(exc, drf_exceptions.ValidationError):
        message = "Invalid request."
        fields = response.data
    else:
        message = str(getattr(exc, "detail", "") or "Error.")
        fields = None

    error: Dict[str, Any] = {"code": code, "message": message}
    if fields:
        error["fields"] = fields
    # SessionAuthentication sends no WWW-Authenticate, so DRF reports 403 here.
    if code == "unauthenticated":
        response.status_code = 401
    response.data = {"ok": False, "data": {}, "error": error, "ver": VER}
    return response
