"""Goods-in documents that quality control records are raised against."""
import logging
import uuid
from datetime import date
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from medistock.core.exceptions import DuplicateRecord, NotFound, ValidationError
from medistock.core.permissions import PermissionChecker
from medistock.models.invoice_receiving import InvoiceReceiving, InvoiceReceivingLine
from medistock.models.product import Product
from medistock.models.warehouse import Warehouse
from medistock.schemas.invoice_receiving import InvoiceReceivingCreate
from medistock.services.audit_service import AuditService


logger = logging.getLogger(__name__)


class InvoiceReceivingService:
    """Service for recording received supplier invoices."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: InvoiceReceivingCreate, checker: PermissionChecker) -> InvoiceReceiving:
        """Record a received invoice with its product lines."""
        existing = await self.db.scalar(
            select(InvoiceReceiving.id).where(InvoiceReceiving.invoice_number == data.invoice_number)
        )
        if existing is not None:
            raise DuplicateRecord(f"Invoice {data.invoice_number} has already been received")

        warehouse = await self.db.get(Warehouse, data.warehouse_id)
        if warehouse is None or not warehouse.is_active:
            raise ValidationError("Warehouse not found or inactive")

        product_ids = [line.product_id for line in data.lines]
        if len(set(product_ids)) != len(product_ids):
            raise ValidationError("Each product may appear only once per invoice")

        result = await self.db.execute(select(Product.id).where(Product.id.in_(product_ids)))
        known = set(result.scalars().all())
        missing = [str(product_id) for product_id in product_ids if product_id not in known]
        if missing:
            raise ValidationError(f"Unknown products: {', '.join(missing)}")

        invoice = InvoiceReceiving(
            invoice_number=data.invoice_number,
            invoice_date=data.invoice_date,
            purchase_order_number=data.purchase_order_number,
            supplier_name=data.supplier_name,
            warehouse_id=data.warehouse_id,
            received_by=checker.user_id,
            remarks=data.remarks,
        )
        invoice.lines = [
            InvoiceReceivingLine(
                line_no=line_no,
                product_id=line.product_id,
                batch_number=line.batch_number,
                expiry_date=line.expiry_date,
                unit=line.unit,
                received_qty=line.received_qty,
            )
            for line_no, line in enumerate(data.lines, start=1)
        ]
        self.db.add(invoice)

        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateRecord(f"Invoice {data.invoice_number} has already been received")

        await AuditService(self.db).log(
            action="invoice_receiving_create",
            entity_type="invoice_receiving",
            entity_id=invoice.id,
            entity_number=invoice.invoice_number,
            user_id=checker.user_id,
            new_values={"lines": len(invoice.lines), "supplier_name": invoice.supplier_name},
            description=f"Received invoice {invoice.invoice_number} from {invoice.supplier_name}",
        )
        await self.db.commit()
        logger.info("Invoice %s received by %s", data.invoice_number, checker.user_id)

        return await self.get(invoice.id)

    async def get(self, invoice_id: uuid.UUID) -> InvoiceReceiving:
        result = await self.db.execute(
            select(InvoiceReceiving)
            .options(selectinload(InvoiceReceiving.lines).selectinload(InvoiceReceivingLine.product))
            .where(InvoiceReceiving.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFound("Invoice receiving not found")
        return invoice

    async def list_invoices(
        self,
        warehouse_id: Optional[uuid.UUID] = None,
        workflow_status: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[InvoiceReceiving], int]:
        conditions = []
        if warehouse_id:
            conditions.append(InvoiceReceiving.warehouse_id == warehouse_id)
        if workflow_status:
            conditions.append(InvoiceReceiving.workflow_status == workflow_status)
        if search:
            term = f"%{search.strip()}%"
            conditions.append(
                InvoiceReceiving.invoice_number.ilike(term) | InvoiceReceiving.supplier_name.ilike(term)
            )
        if date_from:
            conditions.append(InvoiceReceiving.invoice_date >= date_from)
        if date_to:
            conditions.append(InvoiceReceiving.invoice_date <= date_to)

        count_query = select(func.count(InvoiceReceiving.id))
        query = select(InvoiceReceiving).options(
            selectinload(InvoiceReceiving.lines).selectinload(InvoiceReceivingLine.product)
        )
        if conditions:
            count_query = count_query.where(*conditions)
            query = query.where(*conditions)

        total = (await self.db.execute(count_query)).scalar() or 0
        query = query.order_by(InvoiceReceiving.received_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total
