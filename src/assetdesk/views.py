"""Project-level views for AssetDesk."""

import logging
import mimetypes

from django.contrib.auth.decorators import login_required
from django.core.files.storage import default_storage
from django.db import DatabaseError
from django.http import FileResponse, Http404, JsonResponse

logger = logging.getLogger(__name__)


@login_required
def media_proxy(request, path):
    """Proxy ticket attachments from S3 storage through Django."""
    try:
        f = default_storage.open(path)
    except (FileNotFoundError, OSError):
        raise Http404

    content_type, _ = mimetypes.guess_type(path)
    return FileResponse(
        f, content_type=content_type or "application/octet-stream"
    )


def ratelimited_view(request, exception=None):
    """Return 429 with Retry-After header on rate limit."""
    response = JsonResponse(
        {"error": "Rate limit exceeded. Please try again later."},
        status=429,
    )
    response["Retry-After"] = "60"
    return response


def health_check(request):
    """Health check endpoint for monitoring and load balancers."""
    from django.db import connection

    db_ok = True
    try:
        connection.ensure_connection()
    except DatabaseError:
        logger.warning("Health check: database unreachable", exc_info=True)
        db_ok = False

    cache_ok = True
    try:
        from django.core.cache import cache

        cache.set("_health_check", "1", timeout=10)
        cache_ok = cache.get("_health_check") == "1"
    except Exception:
        logger.warning("Health check: cache unreachable", exc_info=True)
        cache_ok = False

    status = "ok" if db_ok and cache_ok else "degraded"
    status_code = 200 if db_ok else 503

    return JsonResponse(
        {"status": status, "db": db_ok, "cache": cache_ok},
        status=status_code,
    )
