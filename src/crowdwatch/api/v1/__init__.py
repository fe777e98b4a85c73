"""API v1 module."""

from fastapi import APIRouter

from crowdwatch.api.v1.endpoints import health, sale

api_router = APIRouter()

# Include routers
api_router.include_router(sale.router)
api_router.include_router(health.router)
