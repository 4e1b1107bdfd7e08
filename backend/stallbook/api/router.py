"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from stallbook.api.routes import stalls

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(stalls.router)
