"""
Quality Control Service

QC records are raised against a received invoice. Creating one moves the
invoice into QC; the approve or reject decision closes the invoice's QC
phase either way.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from medistock.core.exceptions import NotFound, ValidationError
from medistock.core.permissions import PermissionChecker
from medistock.models.inspection import QCResult
from medistock.models.invoice_receiving import (
    InvoiceReceiving, InvoiceReceivingLine,
    ReceivingQCStatus, ReceivingWorkflowStatus,
)
from medistock.models.quality_control import QualityControl, QualityControlLine
from medistock.services.inspection_workflow import InspectionWorkflowService


logger = logging.getLogger(__name__)


class QualityControlService(InspectionWorkflowService):
    """Service for quality control inspections of received invoices."""

    record_model = QualityControl
    line_model = QualityControlLine
    line_record_fk = "quality_control_id"
    resource = "quality_control"
    label = "Quality control"
    number_prefix = "QC"
    notification_prefix = "qc"
    audit_prefix = "qc"

    ACCEPTED_RESULT = QCResult.PASSED.value
    DECLINED_RESULT = QCResult.FAILED.value

    quantity_field = "received_qty"
    accepted_field = "passed_qty"
    declined_field = "failed_qty"

    async def _load_source(self, data) -> InvoiceReceiving:
        result = await self.db.execute(
            select(InvoiceReceiving)
            .options(
                selectinload(InvoiceReceiving.lines).selectinload(InvoiceReceivingLine.product)
            )
            .where(InvoiceReceiving.id == data.invoice_receiving_id)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFound("Invoice receiving not found")
        return invoice

    def _source_filter(self, source: InvoiceReceiving):
        return QualityControl.invoice_receiving_id == source.id

    def _source_columns(self, source: InvoiceReceiving) -> Dict[str, Any]:
        return {"invoice_receiving_id": source.id, "warehouse_id": source.warehouse_id}

    def _source_lines(self, source: InvoiceReceiving) -> List[Dict[str, Any]]:
        if not source.lines:
            raise ValidationError(f"Invoice {source.invoice_number} has no lines to inspect")
        return [
            {
                "product_id": line.product_id,
                "product_code": line.product_code,
                "product_name": line.product_name,
                "batch_number": line.batch_number,
                "expiry_date": line.expiry_date,
                "unit": line.unit,
                "received_qty": line.received_qty,
            }
            for line in source.lines
        ]

    async def _on_created(self, record: QualityControl, source: InvoiceReceiving) -> None:
        source.qc_status = ReceivingQCStatus.IN_PROGRESS.value
        source.workflow_status = ReceivingWorkflowStatus.QC_IN_PROGRESS.value

    async def _on_approved(self, record: QualityControl, checker: PermissionChecker) -> Dict[str, Any]:
        invoice = await self.db.get(InvoiceReceiving, record.invoice_receiving_id)
        invoice.qc_status = ReceivingQCStatus.COMPLETED.value
        invoice.workflow_status = ReceivingWorkflowStatus.QC_COMPLETED.value

        passed = sum(line.passed_qty for line in record.lines)
        failed = sum(line.failed_qty for line in record.lines)
        logger.info(
            "%s approved: invoice %s qc completed (%d passed, %d failed)",
            record.record_number, invoice.invoice_number, passed, failed,
        )
        return {"passed_qty": passed, "failed_qty": failed}

    async def _on_rejected(self, record: QualityControl) -> None:
        invoice = await self.db.get(InvoiceReceiving, record.invoice_receiving_id)
        invoice.qc_status = ReceivingQCStatus.REJECTED.value
        invoice.workflow_status = ReceivingWorkflowStatus.REJECTED.value
