"""FastAPI application entry point."""
import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sellerdash.alerts.email import EmailDeliveryError
from sellerdash.api.routes import router
from sellerdash.api.team import router as team_router
from sellerdash.config import settings
from sellerdash.connectors.errors import SheetsError, TenantNotFoundError, ViolationNotFoundError
from sellerdash.middleware.rate_limit import RateLimitMiddleware
from sellerdash.middleware.subdomain import SubdomainMiddleware

logging.config.dictConfig({
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"],
    },
})

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Seller Dashboard starting up (environment=%s, root_domain=%s)", settings.environment, settings.root_domain
    )
    if not settings.master_spreadsheet_id:
        logger.warning("MASTER_SPREADSHEET_ID is not set; tenant lookups will fail")
    if not settings.team_email_list:
        logger.warning("TEAM_EMAILS is not set; team routes will reject everyone")
    yield
    logger.info("Seller Dashboard shutting down")


app = FastAPI(
    title="Seller Dashboard",
    description="Multi-tenant marketplace violation tracking backed by spreadsheets.",
    version="0.3.0",
    lifespan=lifespan,
)

# Added last runs first: subdomain resolution wraps rate limiting.
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute_ip=settings.rate_limit_requests_per_minute_ip,
    requests_per_minute_user=settings.rate_limit_requests_per_minute_user,
    exempt_paths=["/health"],
)
app.add_middleware(SubdomainMiddleware, root_domains=[settings.root_domain])

app.include_router(router, prefix="/api", tags=["api"])
app.include_router(team_router, prefix="/api/team", tags=["team"])


@app.exception_handler(SheetsError)
def sheets_error_handler(request: Request, exc: SheetsError):
    logger.error("Spreadsheet error on %s: %s (%s)", request.url.path, exc.message, exc.code.value)
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.message, "code": exc.code.value})


@app.exception_handler(TenantNotFoundError)
@app.exception_handler(ViolationNotFoundError)
def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(EmailDeliveryError)
def email_error_handler(request: Request, exc: EmailDeliveryError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.get("/health")
def health():
    return {"status": "ok"}
