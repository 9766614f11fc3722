import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orthoplan.config import settings
from orthoplan.middleware.exceptions import register_exception_handlers
from orthoplan.middleware.security import HTTPSRedirectMiddleware, SecurityHeadersMiddleware
from orthoplan.routers import (
    ai_keys,
    auth,
    clinics,
    contracts,
    health,
    patients,
    plannings,
    roles,
    treatments,
    users,
)
from orthoplan.utils.cache import close_redis


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_redis()


configure_logging()

app = FastAPI(
    title="OrthoPlan",
    description="Multi-tenant orthodontic planning platform",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

# HTTPS redirect (production only)
app.add_middleware(HTTPSRedirectMiddleware, force_https=False)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
# Public
app.include_router(health.router)
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])

# Planner (app gate + permission + clinic scope)
app.include_router(patients.router, prefix="/api/patients", tags=["patients"])
app.include_router(plannings.router, prefix="/api", tags=["plannings"])
app.include_router(contracts.router, prefix="/api", tags=["contracts"])
app.include_router(treatments.router, prefix="/api/treatments", tags=["treatments"])

# Portal
app.include_router(roles.router, prefix="/api", tags=["roles"])
app.include_router(clinics.router, prefix="/api/clinics", tags=["clinics"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(ai_keys.router, prefix="/api/admin/ai-keys", tags=["ai-keys"])
