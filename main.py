from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import Base, engine
from shared.errors import DomainError, domain_error_handler
from shared.observability import setup_observability
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.auth_service import models as auth_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401

from services.auth_service.router import router as auth_router
from services.order_service.router import router as orders_router
from services.order_service.addin_router import router as addin_router
from services.order_service.admin_router import router as admin_router
from services.payment_service.router import router as webhook_router

app = FastAPI(title="LOD 400 Delivery Platform", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, "lod400_api")

# --- RATE LIMITING & ERRORS ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(DomainError, domain_error_handler)

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(addin_router)
app.include_router(admin_router)
app.include_router(webhook_router)


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "lod400", "status": "running"}
