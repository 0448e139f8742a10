"""ClientDesk FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clientdesk.api.errors import register_error_handlers
from clientdesk.config import settings

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.clientdesk_debug else logging.INFO,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)
logging.getLogger("LiteLLM").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    from clientdesk.config import validate_production_settings
    from clientdesk.db.session import init_db
    from clientdesk.tasks.workers import start_scheduler

    validate_production_settings()
    await init_db()
    start_scheduler()

    yield

    from clientdesk.db.session import close_db
    from clientdesk.tasks.workers import stop_scheduler

    stop_scheduler()
    await close_db()


app = FastAPI(
    title="ClientDesk",
    description="Agency CRM and client portal",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.absolute_base_url] if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Register API routes
from clientdesk.api.routes import admin, auth, chat, client, hours  # noqa: E402
from clientdesk.api.routes import leads, maintenance_plans, nonprofit, webhooks  # noqa: E402

app.include_router(auth.router, prefix="/api", tags=["Auth"])
app.include_router(hours.router, prefix="/api", tags=["Hours"])
app.include_router(maintenance_plans.router, prefix="/api", tags=["Maintenance Plans"])
app.include_router(client.router, prefix="/api", tags=["Client"])
app.include_router(leads.router, prefix="/api", tags=["Leads"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])
app.include_router(nonprofit.router, prefix="/api", tags=["Nonprofit"])
app.include_router(chat.router, prefix="/api", tags=["Chat"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])


@app.get("/health")
async def health_check():
    from clientdesk.db.session import check_database_health

    database = await check_database_health()
    return {
        "status": "healthy" if database["healthy"] else "degraded",
        "version": "0.1.0",
        "env": settings.clientdesk_env,
        "database": database,
    }
