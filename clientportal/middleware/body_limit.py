from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from clientportal.config import settings


def _too_large(max_bytes: int) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "error_code": "PAYLOAD_TOO_LARGE",
            "message": "Payload too large",
            "details": {"max_bytes": max_bytes},
        },
    )


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_bytes: int = None):
        super().__init__(app)
        self.max_bytes = max_bytes or settings.MAX_BODY_SIZE

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > self.max_bytes:
                    return _too_large(self.max_bytes)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"error_code": "VALIDATION_ERROR", "message": "Invalid Content-Length", "details": {}},
                )
        elif request.method in ("POST", "PUT", "PATCH"):
            # Chunked upload: read it here so the limit still applies
            total = 0
            body = bytearray()
            async for chunk in request.stream():
                total += len(chunk)
                if total > self.max_bytes:
                    return _too_large(self.max_bytes)
                body.extend(chunk)
            request._body = bytes(body)
        return await call_next(request)
