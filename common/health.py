"""
common.health
~~~~~~~~~~~~~
GET /health/ – lightweight liveness + readiness probe.

Returns:
    200  {"status": "ok",       "values_root": "ok"}
    503  {"status": "degraded", "values_root": "error: <msg>"}
"""
from pathlib import Path

import structlog
from django.conf import settings
from django.http import JsonResponse

from apps.values_store.loader import base_document_path

logger = structlog.get_logger(__name__)


def health_check(request):
    """Return service health including whether the values tree is readable."""
    root = Path(settings.VALUES_ROOT)
    root_status: str
    http_status: int

    if not root.is_dir():
        root_status = f"error: {root} is not a directory"
        http_status = 503
    elif not base_document_path(root).is_file():
        root_status = f"error: {base_document_path(root)} is missing"
        http_status = 503
    else:
        root_status = "ok"
        http_status = 200

    if http_status != 200:
        logger.error("health_check_values_root_failure", error=root_status)

    payload = {
        "status": "ok" if http_status == 200 else "degraded",
        "values_root": root_status,
    }
    return JsonResponse(payload, status=http_status)
