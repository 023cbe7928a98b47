"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""
from medistock.models.role import Role, RoleLevel
from medistock.models.permission import Permission, RolePermission
from medistock.models.user import User, UserRole
from medistock.models.warehouse import Warehouse
from medistock.models.product import Product
from medistock.models.invoice_receiving import (
    InvoiceReceiving,
    InvoiceReceivingLine,
    ReceivingStatus,
    ReceivingWorkflowStatus,
    ReceivingQCStatus,
)
from medistock.models.inspection import InspectionPriority, QCResult, WarehouseResult
from medistock.models.quality_control import QualityControl, QualityControlLine
from medistock.models.warehouse_approval import WarehouseApproval, WarehouseApprovalLine
from medistock.models.inventory import (
    AdjustmentType,
    InventoryRecord,
    InventoryStatus,
    StockMovement,
    StockMovementType,
)
from medistock.models.audit_log import AuditLog
from medistock.models.notifications import Notification, NotificationType, NotificationPriority

__all__ = [
    "Role",
    "RoleLevel",
    "Permission",
    "RolePermission",
    "User",
    "UserRole",
    "Warehouse",
    "Product",
    "InvoiceReceiving",
    "InvoiceReceivingLine",
    "ReceivingStatus",
    "ReceivingWorkflowStatus",
    "ReceivingQCStatus",
    "InspectionPriority",
    "QCResult",
    "WarehouseResult",
    "QualityControl",
    "QualityControlLine",
    "WarehouseApproval",
    "WarehouseApprovalLine",
    "AdjustmentType",
    "InventoryRecord",
    "InventoryStatus",
    "StockMovement",
    "StockMovementType",
    "AuditLog",
    "Notification",
    "NotificationType",
    "NotificationPriority",
]
