from fastapi import APIRouter

from permits.api.v1.health import router as health_router
from permits.api.v1.applications import router as applications_router
from permits.api.v1.assessment import router as assessment_router
from permits.api.v1.lifecycle import router as lifecycle_router
from permits.api.v1.payments import router as payments_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# APPLICATION LIFECYCLE
# ------------------------------------------------------------------
v1_router.include_router(applications_router)
v1_router.include_router(assessment_router)
v1_router.include_router(lifecycle_router)
v1_router.include_router(payments_router)
