"""
API router aggregator.
Includes all route modules.
"""
from fastapi import APIRouter
from picstash.api import auth, health, images

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(images.router, tags=["images"])
