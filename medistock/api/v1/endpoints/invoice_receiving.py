"""API endpoints for received supplier invoices."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from medistock.api.deps import DB, Permissions, require_permissions
from medistock.config import settings
from medistock.models.invoice_receiving import ReceivingWorkflowStatus
from medistock.schemas.base import PageResponse
from medistock.schemas.invoice_receiving import InvoiceReceivingCreate, InvoiceReceivingResponse
from medistock.services.invoice_receiving_service import InvoiceReceivingService

router = APIRouter()


@router.get(
    "/",
    response_model=PageResponse[InvoiceReceivingResponse],
    dependencies=[Depends(require_permissions("invoice_receiving:view"))],
    summary="List Received Invoices"
)
async def list_invoices(
    db: DB,
    warehouse_id: Optional[UUID] = None,
    workflow_status: Optional[ReceivingWorkflowStatus] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    items, total = await InvoiceReceivingService(db).list_invoices(
        warehouse_id=warehouse_id,
        workflow_status=workflow_status.value if workflow_status else None,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    return PageResponse[InvoiceReceivingResponse](
        items=[InvoiceReceivingResponse.model_validate(item) for item in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post(
    "/",
    response_model=InvoiceReceivingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("invoice_receiving:create"))],
    summary="Receive Invoice"
)
async def create_invoice(data: InvoiceReceivingCreate, db: DB, checker: Permissions):
    """Record a supplier invoice received at a warehouse."""
    return await InvoiceReceivingService(db).create(data, checker)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceReceivingResponse,
    dependencies=[Depends(require_permissions("invoice_receiving:view"))],
    summary="Get Received Invoice"
)
async def get_invoice(invoice_id: UUID, db: DB):
    return await InvoiceReceivingService(db).get(invoice_id)
