"""
V1 API Router - aggregates all v1 endpoints.
"""
from fastapi import APIRouter
from app.api.v1.endpoints import ask, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(ask.router, prefix="/ask", tags=["ask"])
