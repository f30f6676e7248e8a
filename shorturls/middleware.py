from datetime import datetime, timezone

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from .services.access_log import AccessLogBuffer


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # First hop is the original client
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class AccessLogMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, buffer: AccessLogBuffer):
        super().__init__(app)
        self.buffer = buffer

    async def dispatch(self, request: Request, call_next):
        timestamp = datetime.now(timezone.utc).isoformat()
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        self.buffer.append(f"[{timestamp}] {request.method} {path} from {client_ip(request)}")
        return await call_next(request)
