import logging
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ai import router as ai_router
from analytics import router as analytics_router
from analytics import service as analytics_service
from auth import router as auth_router
from automation import router as automation_router
from campaigns import router as campaigns_router
from campaigns import service as campaigns_service
from contacts import router as contacts_router
from core import db
from core.config import env_list
from core.crypto import SecretsError
from core.email import EmailDeliveryError
from core.llm import LLMError
from core.logging import configure_logging
from core.scheduler import build_scheduler, scheduler_enabled, scheduler_interval_s
from email_templates import router as email_templates_router
from integrations import router as integrations_router
from integrations.webhooks import webhook_queue
from notifications import router as notifications_router
from security import router as security_router
from two_factor import router as two_factor_router

configure_logging()
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    await db.init_pool()
    await webhook_queue.start()
    scheduler = None
    if scheduler_enabled():
        interval = scheduler_interval_s()
        scheduler = build_scheduler(
            {
                "scheduled_campaigns": campaigns_service.dispatch_due_campaigns,
                "scheduled_reports": analytics_service.run_due_reports,
            },
            interval,
        )
        scheduler.start()
        logger.info("scheduler_started interval_s=%s jobs=%s", interval, len(scheduler.get_jobs()))
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await webhook_queue.stop()
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

# Allow the frontend dev server (or the configured origins) to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LLMError)
async def llm_error_handler(_: Request, exc: LLMError) -> JSONResponse:
    logger.warning("llm_error error=%s", exc)
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": "AI provider request failed."})


@app.exception_handler(EmailDeliveryError)
async def email_error_handler(_: Request, exc: EmailDeliveryError) -> JSONResponse:
    logger.warning("email_delivery_error error=%s", exc)
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


@app.exception_handler(SecretsError)
async def secrets_error_handler(_: Request, exc: SecretsError) -> JSONResponse:
    logger.error("secrets_error error=%s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Stored credentials could not be read."},
    )


@app.exception_handler(asyncpg.UniqueViolationError)
async def unique_violation_handler(_: Request, exc: asyncpg.UniqueViolationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "Resource already exists."})


app.include_router(auth_router.router, tags=["auth"])
app.include_router(two_factor_router.router, tags=["two-factor"])
app.include_router(security_router.router, tags=["security"])
app.include_router(contacts_router.router, tags=["contacts"])
app.include_router(email_templates_router.router, tags=["email-templates"])
app.include_router(campaigns_router.router, tags=["campaigns"])
app.include_router(analytics_router.router, tags=["analytics"])
app.include_router(ai_router.router, tags=["ai"])
app.include_router(notifications_router.router, tags=["notifications"])
app.include_router(notifications_router.ws_router, tags=["notifications"])
app.include_router(integrations_router.router, tags=["integrations"])
app.include_router(automation_router.router, tags=["automation"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"message": "music-promo-crm api"}
