from fastapi import APIRouter

from medistock.api.v1.endpoints import (
    # Access Control
    auth,
    audit_logs,
    # Notifications
    notifications,
    # Receiving workflow
    invoice_receiving,
    quality_control,
    warehouse_approval,
    # Inventory
    inventory,
)


api_router = APIRouter()

# Access Control
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["Audit Logs"])

# Notifications
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

# Receiving workflow
api_router.include_router(invoice_receiving.router, prefix="/invoice-receiving", tags=["Invoice Receiving"])
api_router.include_router(quality_control.router, prefix="/quality-control", tags=["Quality Control"])
api_router.include_router(warehouse_approval.router, prefix="/warehouse-approval", tags=["Warehouse Approval"])

# Inventory
api_router.include_router(inventory.router, prefix="/inventory", tags=["Inventory"])
