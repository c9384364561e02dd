from fastapi import APIRouter

from kafka_governance.api.routers import auth_profile_router, health_router, requests_router

# API Router
router = APIRouter()
router.include_router(auth_profile_router)
router.include_router(requests_router)
router.include_router(health_router)
