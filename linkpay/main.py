from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configure root logger so all linkpay.* module loggers emit to console
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

from linkpay.config import database_dsn_safe, running_in_hosted_env, settings
from linkpay.jobs.scheduler import get_scheduler
from linkpay.routes import admin, analytics, conversions, health, links, payouts, redirect, webhooks
from linkpay.services.errors import LedgerError

logger = logging.getLogger(__name__)

# Paths served to arbitrary merchant origins; they set their own CORS headers.
OPEN_CORS_PREFIXES = ("/api/track/",)


class TrackingAwareCORSMiddleware(CORSMiddleware):
    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(OPEN_CORS_PREFIXES):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Database DSN: %s", database_dsn_safe())
    if running_in_hosted_env() and settings.database_url.startswith("sqlite"):
        logger.warning(
            "DATABASE_PRIVATE_URL/DATABASE_URL not set to Postgres in hosted env. "
            "Falling back to SQLite; data will NOT persist across deploys."
        )
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not configured; Stripe webhooks will be rejected")

    scheduler = get_scheduler()
    await scheduler.start()

    yield

    await scheduler.stop()


app = FastAPI(
    title="Linkpay API",
    description="Affiliate attribution, commission ledger and payouts",
    version=settings.api_version,
    lifespan=lifespan,
)

app.add_middleware(
    TrackingAwareCORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Unhandled ledger error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(health.router, tags=["Health"])
app.include_router(redirect.router)
app.include_router(conversions.router)
app.include_router(webhooks.router)
app.include_router(payouts.router)
app.include_router(links.router)
app.include_router(analytics.router)
app.include_router(admin.router)


@app.get("/")
async def root() -> dict:
    return {"message": "Linkpay API", "docs": "/docs"}
