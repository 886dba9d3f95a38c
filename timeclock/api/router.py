"""
Main API router
"""
from fastapi import APIRouter

from timeclock.api.v1 import exceptions, health, punches

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(punches.router, prefix="/punches", tags=["punches"])
api_router.include_router(exceptions.router, prefix="/exceptions", tags=["attendance-exceptions"])
