"""
Central API router that aggregates all route modules.
Everything except login requires an administrator token.
"""

from fastapi import APIRouter, Depends

from meshwar.api.routes import (
    activities, auth, bookings, categories, dashboard, imports, locations, reports, users,
)
from meshwar.core.security import require_admin

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)

admin_only = [Depends(require_admin)]
for module in (users, categories, locations, activities, bookings, dashboard, reports, imports):
    api_router.include_router(module.router, dependencies=admin_only)
