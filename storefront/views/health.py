from __future__ import annotations

import logging

from django.db import DatabaseError, connection
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from ..config import get_config
from ._core import VER, json_ok

log = logging.getLogger("storefront.views")
__all__ = ["health"]


@require_GET
def health(request: HttpRequest) -> JsonResponse:
    db_ok = True
    try:
        connection.ensure_connection()
    except DatabaseError:
        log.exception("Health: database unreachable")
        db_ok = False

    payload = {
        "database": db_ok,
        "stripe_configured": not get_config().missing(),
        "ver": VER,
    }
    return json_ok(payload, status=200 if db_ok else 503)
