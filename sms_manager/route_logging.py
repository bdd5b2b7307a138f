from __future__ import annotations

import logging
import time

from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException
from starlette.requests import Request

from sms_manager.config import settings
from sms_manager.db import current_endpoint


request_logger = logging.getLogger('sms_manager.request')


class EndpointNameRoute(APIRoute):
    """Labels each request with its route template for slow-query logs and times the handler.

    The label uses the template (`POST /api/sms/providers/{handle}/test-connection`),
    not the concrete path, so log lines group per endpoint.
    """

    def get_route_handler(self):
        original_handler = super().get_route_handler()
        label = f"{','.join(sorted(self.methods or []))} {self.path}"

        async def timed_handler(request: Request):
            token = current_endpoint.set(label)
            started = time.perf_counter()
            status_code = 500
            try:
                response = await original_handler(request)
                status_code = response.status_code
                return response
            except HTTPException as exc:
                status_code = exc.status_code
                raise
            finally:
                current_endpoint.reset(token)
                duration_ms = (time.perf_counter() - started) * 1000.0
                if duration_ms >= settings.metrics_slow_ms:
                    request_logger.info(
                        'request_slow endpoint=%s path=%s status_code=%s duration_ms=%.2f',
                        label,
                        request.url.path,
                        status_code,
                        duration_ms,
                    )

        return timed_handler
