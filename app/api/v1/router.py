"""API V1 Router"""

from fastapi import APIRouter

# Import endpoint routers
from app.api.v1.endpoints import (
    organizations, vendors, bills, occurrences,
    approvals, reports, notifications, admin
)

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers with prefixes and tags
api_router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
api_router.include_router(vendors.vendors_router, prefix="/vendors", tags=["Vendors"])
api_router.include_router(vendors.projects_router, prefix="/projects", tags=["Projects"])
api_router.include_router(bills.router, prefix="/bills", tags=["Bills"])
api_router.include_router(occurrences.router, prefix="/occurrences", tags=["Bill Occurrences"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["Approvals"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
