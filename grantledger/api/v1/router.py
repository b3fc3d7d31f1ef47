from fastapi import APIRouter

from grantledger.api.v1.health import router as health_router
from grantledger.api.v1.workspaces import router as workspaces_router
from grantledger.api.v1.grants import router as grants_router
from grantledger.api.v1.applications import router as applications_router
from grantledger.api.v1.reviews import router as reviews_router
from grantledger.api.v1.migrations import router as migrations_router
from grantledger.api.v1.controls import router as controls_router
from grantledger.api.v1.events import router as events_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(controls_router)
v1_router.include_router(events_router)

# ------------------------------------------------------------------
# LEDGERS
# ------------------------------------------------------------------
v1_router.include_router(workspaces_router)
v1_router.include_router(grants_router)
v1_router.include_router(applications_router)
v1_router.include_router(reviews_router)

# ------------------------------------------------------------------
# IDENTITY
# ------------------------------------------------------------------
v1_router.include_router(migrations_router)
