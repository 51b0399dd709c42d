"""Tenant subdomain resolution from the Host header."""
import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

logger = logging.getLogger(__name__)

SUBDOMAIN_HEADER = "x-subdomain"


def _hostname(host: str) -> str:
    return (host or "").split(":")[0].lower()


def extract_subdomain(host: str, root_domains: list[str], tenant_param: Optional[str] = None) -> Optional[str]:
    """
    Work out which tenant a request is for.

    Order: ?tenant= override, x.localhost in development, then x.<root domain>.
    The root domain itself and www have no tenant.
    """
    if tenant_param:
        return tenant_param.strip().lower() or None
    hostname = _hostname(host)
    if "localhost" in hostname or hostname.startswith("127.0.0.1"):
        if hostname.endswith(".localhost"):
            return hostname.split(".")[0]
        return None
    for domain in root_domains:
        domain = _hostname(domain)
        if domain and hostname.endswith("." + domain):
            sub = hostname[: -(len(domain) + 1)]
            if sub and sub != "www":
                return sub
    return None


def www_redirect_target(host: str, root_domains: list[str]) -> Optional[str]:
    hostname = _hostname(host)
    for domain in root_domains:
        if hostname == "www." + _hostname(domain):
            return _hostname(domain)
    return None


class SubdomainMiddleware(BaseHTTPMiddleware):
    """Stores the resolved tenant on request.state.subdomain and redirects www to the root."""

    def __init__(self, app, root_domains: list[str]):
        super().__init__(app)
        self.root_domains = root_domains

    async def dispatch(self, request: Request, call_next) -> Response:
        host = request.headers.get("host", "")
        root = www_redirect_target(host, self.root_domains)
        if root:
            proto = request.headers.get("x-forwarded-proto", "https")
            url = f"{proto}://{root}{request.url.path}"
            if request.url.query:
                url += "?" + request.url.query
            return RedirectResponse(url, status_code=301)

        request.state.subdomain = extract_subdomain(
            host, self.root_domains, request.query_params.get("tenant")
        )
        response = await call_next(request)
        if request.state.subdomain:
            response.headers[SUBDOMAIN_HEADER] = request.state.subdomain
        return response
