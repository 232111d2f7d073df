"""Security headers middleware.

Learn: Adds standard protective headers to every response. The HTML pages
render user-written markdown, so they also get a Content-Security-Policy
that forbids inline and third-party scripts; API responses are JSON or
plain text and don't need one. API responses are never cached, since they
may carry tokens or page content behind a bearer token.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

HTML_CSP = "default-src 'self'; script-src 'self'; object-src 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers.update(_BASE_HEADERS)

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("text/html"):
            response.headers["Content-Security-Policy"] = HTML_CSP
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"

        # Only add HSTS on HTTPS connections
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response
