import logging
import time
from typing import Any, Dict

import jwt
from django.conf import settings
from django.utils.deprecation import MiddlewareMixin

from core.jwt_auth import decode_token

logger = logging.getLogger("app.web")


def _client_ip(request) -> str | None:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def _get_user_id_from_jwt(request) -> str | None:
    """Extract the user id from the bearer token or the access_token cookie."""
    auth_header = request.META.get("HTTP_AUTHORIZATION")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
    else:
        token = request.COOKIES.get("access_token")

    if not token:
        return None

    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        return None
    return payload.get("user_id") or payload.get("sub")


def _request_message(request) -> str:
    if request.path.startswith("/api/billing/webhooks/"):
        return f"Payment webhook {request.path.rsplit('/', 1)[-1] or request.path}"
    return f"Client request {request.path}"


class RequestLoggingMiddleware(MiddlewareMixin):
    """Capture incoming/outgoing HTTP requests for audit logging."""

    def process_request(self, request):
        request._log_start_ts = time.time()
        request._log_context: Dict[str, Any] = {
            "path": request.path,
            "method": request.method,
            "ip": _client_ip(request),
            "query_string": request.META.get("QUERY_STRING", ""),
            "user_id": _get_user_id_from_jwt(request),
        }

        logger.info(
            _request_message(request),
            extra={
                "context": request._log_context,
                "channel": "web",
                "environment": getattr(settings, "APP_ENV", "local"),
            },
        )

    def process_response(self, request, response):
        if hasattr(request, "_log_context"):
            duration_ms = None
            if hasattr(request, "_log_start_ts"):
                duration_ms = round((time.time() - request._log_start_ts) * 1000, 2)
            context = request._log_context.copy()
            context.update(
                {
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "content_type": response.get("Content-Type"),
                }
            )

            logger.info(
                _request_message(request),
                extra={
                    "context": context,
                    "channel": "web",
                    "environment": getattr(settings, "APP_ENV", "local"),
                },
            )
        return response

    def process_exception(self, request, exception):
        context = getattr(request, "_log_context", {}).copy()
        context.update({"exception": repr(exception)})
        logger.error(
            "request_exception",
            extra={
                "context": context,
                "channel": "web",
                "environment": getattr(settings, "APP_ENV", "local"),
            },
        )
