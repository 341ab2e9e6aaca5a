import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


logger = logging.getLogger("carrental.request")

HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id (client supplied or fresh) and logs one JSON line for it."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(HEADER) or uuid.uuid4().hex
        request.state.request_id = rid
        started = time.monotonic()
        response = await call_next(request)
        response.headers[HEADER] = rid
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, json.dumps({
            "rid": rid,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "ms": round((time.monotonic() - started) * 1000, 1),
            "client": request.client.host if request.client else None,
        }))
        return response
