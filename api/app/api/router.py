from fastapi import APIRouter

from app.api.routes import health, verifications

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(verifications.router, prefix="/verifications", tags=["verifications"])
