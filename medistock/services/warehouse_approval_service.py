"""
Warehouse Approval Service

Warehouse approvals are raised against an approved QC record and cover the
goods that passed inspection. Approving one posts the approved quantities
to the inventory ledger in the same transaction.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from medistock.core.exceptions import (
    InvalidTransition, InventoryPostingError, MedistockError, NotFound, ValidationError,
)
from medistock.core.permissions import PermissionChecker
from medistock.models.inspection import QCResult, WarehouseResult
from medistock.models.invoice_receiving import InvoiceReceiving, ReceivingStatus, ReceivingWorkflowStatus
from medistock.models.quality_control import QualityControl
from medistock.models.warehouse_approval import WarehouseApproval, WarehouseApprovalLine
from medistock.services.inspection_state_machine import InspectionStatus
from medistock.services.inspection_workflow import InspectionWorkflowService
from medistock.services.inventory_service import InventoryService, PostingReference


logger = logging.getLogger(__name__)


class WarehouseApprovalService(InspectionWorkflowService):
    """Service for warehouse acceptance of QC-passed goods."""

    record_model = WarehouseApproval
    line_model = WarehouseApprovalLine
    line_record_fk = "warehouse_approval_id"
    resource = "warehouse_approval"
    label = "Warehouse approval"
    number_prefix = "WA"
    notification_prefix = "warehouse"
    audit_prefix = "warehouse_approval"

    ACCEPTED_RESULT = WarehouseResult.APPROVED.value
    DECLINED_RESULT = WarehouseResult.REJECTED.value

    quantity_field = "qc_passed_qty"
    accepted_field = "approved_qty"
    declined_field = "rejected_qty"

    def __init__(self, db):
        super().__init__(db)
        self.inventory = InventoryService(db)

    async def _load_source(self, data) -> QualityControl:
        result = await self.db.execute(
            select(QualityControl)
            .where(QualityControl.id == data.quality_control_id)
            .execution_options(populate_existing=True)
        )
        qc = result.scalar_one_or_none()
        if qc is None:
            raise NotFound("Quality control record not found")
        if qc.status != InspectionStatus.APPROVED.value:
            raise InvalidTransition(
                f"{qc.record_number} must be approved before warehouse approval (status '{qc.status}')",
                current_status=qc.status,
            )
        return qc

    def _source_filter(self, source: QualityControl):
        return WarehouseApproval.quality_control_id == source.id

    def _source_columns(self, source: QualityControl) -> Dict[str, Any]:
        return {
            "quality_control_id": source.id,
            "invoice_receiving_id": source.invoice_receiving_id,
            "warehouse_id": source.warehouse_id,
        }

    def _source_lines(self, source: QualityControl) -> List[Dict[str, Any]]:
        lines = [
            {
                "product_id": line.product_id,
                "product_code": line.product_code,
                "product_name": line.product_name,
                "quality_control_line_id": line.id,
                "batch_number": line.batch_number,
                "expiry_date": line.expiry_date,
                "unit": line.unit,
                "qc_passed_qty": line.passed_qty,
            }
            for line in source.lines
            if line.result == QCResult.PASSED.value and line.passed_qty > 0
        ]
        if not lines:
            raise ValidationError(f"{source.record_number} has no passed lines to approve")
        return lines

    def _apply_line_fields(self, line: WarehouseApprovalLine, fields: Dict[str, Any]) -> None:
        if "storage_location" in fields:
            line.storage_location = fields["storage_location"]

    async def _on_created(self, record: WarehouseApproval, source: QualityControl) -> None:
        invoice = await self.db.get(InvoiceReceiving, source.invoice_receiving_id)
        invoice.workflow_status = ReceivingWorkflowStatus.WAREHOUSE_PENDING.value

    async def _on_approved(self, record: WarehouseApproval, checker: PermissionChecker) -> Dict[str, Any]:
        """Post every approved, not yet integrated line to stock."""
        posted = []
        now = datetime.now(timezone.utc)

        for line in record.lines:
            if line.result == WarehouseResult.REJECTED.value:
                continue
            if line.inventory_integrated or line.approved_qty <= 0:
                continue

            try:
                inventory_record = await self.inventory.post(
                    product_id=line.product_id,
                    warehouse_id=record.warehouse_id,
                    batch_number=line.batch_number,
                    quantity=line.approved_qty,
                    expiry_date=line.expiry_date,
                    storage_location=line.storage_location,
                    performed_by=checker.user_id,
                    reference=PostingReference("warehouse_approval", record.id, line.id),
                    remarks=f"Warehouse approval {record.record_number}",
                )
            except (MedistockError, SQLAlchemyError) as exc:
                reason = exc.message if isinstance(exc, MedistockError) else str(exc)
                logger.error(
                    "Inventory posting failed for %s line %s: %s",
                    record.record_number, line.line_no, reason,
                )
                raise InventoryPostingError(
                    f"Inventory posting failed for product {line.product_code or line.product_id}: {reason}"
                )

            line.inventory_integrated = True
            line.inventory_integrated_at = now
            line.inventory_record_id = inventory_record.id
            posted.append({
                "product_id": str(line.product_id),
                "batch_number": line.batch_number,
                "quantity": line.approved_qty,
                "inventory_record_id": str(inventory_record.id),
            })

        invoice = await self.db.get(InvoiceReceiving, record.invoice_receiving_id)
        invoice.workflow_status = ReceivingWorkflowStatus.INVENTORY_UPDATED.value
        invoice.status = ReceivingStatus.COMPLETED.value

        logger.info(
            "%s approved: %d line(s) posted to inventory for invoice %s",
            record.record_number, len(posted), invoice.invoice_number,
        )
        return {"posted_lines": posted}

    async def _on_rejected(self, record: WarehouseApproval) -> None:
        invoice = await self.db.get(InvoiceReceiving, record.invoice_receiving_id)
        invoice.workflow_status = ReceivingWorkflowStatus.REJECTED.value
