import uuid

import pytest
from sqlalchemy import select, func

from conftest import line_for
from medistock.core.exceptions import (
    DuplicateRecord, Forbidden, InvalidTransition, InventoryPostingError, NotFound, ValidationError,
)
from medistock.models import InventoryRecord, Notification, StockMovement, WarehouseApproval
from medistock.schemas.quality_control import QCLineUpdate
from medistock.schemas.warehouse_approval import WALineCreate, WALineUpdate, WarehouseApprovalCreate
from medistock.services.inventory_service import InventoryService
from medistock.services.invoice_receiving_service import InvoiceReceivingService
from medistock.services.quality_control_service import QualityControlService
from medistock.services.warehouse_approval_service import WarehouseApprovalService


@pytest.fixture
def approved_qc(db, make_qc, checker_for):
    """QC record taken through submit and approve. ``failed`` lists product ids marked failed."""
    async def _approved_qc(lines=None, batch_number=None, failed=()):
        qc = await make_qc(lines, batch_number=batch_number)
        service = QualityControlService(db)
        if failed:
            await service.update_line_results(
                qc.id,
                [QCLineUpdate(product_id=product_id, result="failed") for product_id in failed],
                await checker_for("qc_inspector"),
            )
        await service.submit(qc.id, None, await checker_for("qc_inspector"))
        return await service.approve(qc.id, None, await checker_for("qc_manager"))
    return _approved_qc


@pytest.fixture
def make_wa(db, seeded, checker_for):
    async def _make_wa(qc_id):
        return await WarehouseApprovalService(db).create(
            WarehouseApprovalCreate(quality_control_id=qc_id, assigned_to=seeded.users["wh_inspector"]),
            await checker_for("wh_manager"),
        )
    return _make_wa


async def approve_wa(db, wa_id, checker_for, lines=None):
    service = WarehouseApprovalService(db)
    if lines:
        await service.update_line_results(wa_id, lines, await checker_for("wh_inspector"))
    await service.submit(wa_id, None, await checker_for("wh_inspector"))
    return await service.approve(wa_id, None, await checker_for("wh_manager"))


async def stock_of(db, product_id, batch_number):
    return await db.scalar(
        select(InventoryRecord)
        .where(InventoryRecord.product_id == product_id)
        .where(InventoryRecord.batch_number == batch_number)
        .execution_options(populate_existing=True)
    )


# ============================================================================
# CREATE
# ============================================================================

async def test_create_takes_passed_lines_from_qc(db, seeded, approved_qc, make_wa):
    syringe = seeded.products["SYR-5ML"]
    qc = await approved_qc({"PARA-500": 8, "SYR-5ML": 4}, failed=[syringe])

    wa = await make_wa(qc.id)

    assert wa.status == "pending"
    assert wa.record_number.startswith("WA-")
    assert wa.invoice_receiving_id == qc.invoice_receiving_id
    assert wa.warehouse_id == seeded.warehouse_id
    assert len(wa.lines) == 1

    line = wa.lines[0]
    assert line.product_id == seeded.products["PARA-500"]
    assert line.qc_passed_qty == 8
    assert line.quality_control_line_id == line_for(qc, seeded.products["PARA-500"]).id
    assert line.result == "pending"
    assert not line.inventory_integrated
    assert len(line.item_details) == 8

    invoice = await InvoiceReceivingService(db).get(qc.invoice_receiving_id)
    assert invoice.workflow_status == "warehouse_pending"

    notified = await db.scalar(
        select(func.count(Notification.id))
        .where(Notification.user_id == seeded.users["wh_inspector"])
        .where(Notification.notification_type == "warehouse_assignment")
    )
    assert notified == 1


async def test_create_requires_approved_qc(db, make_qc, make_wa):
    qc = await make_qc()

    with pytest.raises(InvalidTransition) as exc_info:
        await make_wa(qc.id)
    assert exc_info.value.current_status == "pending"


async def test_create_for_unknown_qc_is_not_found(db, make_wa):
    with pytest.raises(NotFound):
        await make_wa(uuid.uuid4())


async def test_create_without_passed_lines_fails(db, seeded, approved_qc, make_wa):
    qc = await approved_qc({"PARA-500": 3}, failed=[seeded.products["PARA-500"]])

    with pytest.raises(ValidationError):
        await make_wa(qc.id)


async def test_second_approval_for_same_qc_is_duplicate(db, approved_qc, make_wa):
    qc = await approved_qc()
    await make_wa(qc.id)

    with pytest.raises(DuplicateRecord):
        await make_wa(qc.id)


@pytest.mark.parametrize("override", [
    {"qc_passed_qty": 500},
    {"batch_number": "OTHER"},
])
async def test_override_cannot_exceed_qc_passed_line(db, seeded, approved_qc, checker_for, override):
    qc = await approved_qc({"PARA-500": 8})

    with pytest.raises(ValidationError):
        await WarehouseApprovalService(db).create(
            WarehouseApprovalCreate(
                quality_control_id=qc.id,
                products=[WALineCreate(product_id=seeded.products["PARA-500"], **override)],
            ),
            await checker_for("wh_manager"),
        )
    assert await db.scalar(select(func.count(WarehouseApproval.id))) == 0


async def test_override_may_take_fewer_units(db, seeded, approved_qc, checker_for):
    qc = await approved_qc({"PARA-500": 8})

    wa = await WarehouseApprovalService(db).create(
        WarehouseApprovalCreate(
            quality_control_id=qc.id,
            products=[WALineCreate(product_id=seeded.products["PARA-500"], qc_passed_qty=5, storage_location="R2-S1")],
        ),
        await checker_for("wh_manager"),
    )

    assert wa.lines[0].qc_passed_qty == 5
    assert wa.lines[0].storage_location == "R2-S1"
    assert len(wa.lines[0].item_details) == 5


# ============================================================================
# APPROVAL AND STOCK POSTING
# ============================================================================

async def test_approve_posts_stock_and_completes_invoice(db, seeded, approved_qc, make_wa, checker_for):
    para = seeded.products["PARA-500"]
    qc = await approved_qc({"PARA-500": 100}, batch_number="BATCH-E2E")
    wa = await make_wa(qc.id)

    approved = await approve_wa(db, wa.id, checker_for, [
        WALineUpdate(product_id=para, result="approved", storage_location="A-01-03"),
    ])

    assert approved.status == "approved"
    line = approved.lines[0]
    assert line.approved_qty == 100
    assert line.inventory_integrated
    assert line.inventory_integrated_at is not None
    assert line.storage_location == "A-01-03"

    record = await stock_of(db, para, "BATCH-E2E")
    assert record.id == line.inventory_record_id
    assert record.current_stock == 100
    assert record.available_stock == 100
    assert record.status == "available"
    assert record.storage_location == "A-01-03"

    invoice = await InvoiceReceivingService(db).get(qc.invoice_receiving_id)
    assert invoice.workflow_status == "inventory_updated"
    assert invoice.status == "completed"


async def test_partial_rejection_posts_only_approved_units(db, seeded, approved_qc, make_wa, checker_for):
    para = seeded.products["PARA-500"]
    qc = await approved_qc({"PARA-500": 5}, batch_number="BATCH-PART")
    wa = await make_wa(qc.id)

    approved = await approve_wa(db, wa.id, checker_for, [
        WALineUpdate(product_id=para, item_details=[
            {"item_id": "1", "status": "rejected", "reason": "Crushed carton"},
            {"item_id": "2", "status": "rejected", "reason": "Crushed carton"},
        ]),
    ])

    line = approved.lines[0]
    assert (line.approved_qty, line.rejected_qty) == (3, 2)
    assert (await stock_of(db, para, "BATCH-PART")).current_stock == 3


async def test_rejected_line_is_not_posted(db, seeded, approved_qc, make_wa, checker_for):
    qc = await approved_qc({"PARA-500": 4, "SYR-5ML": 2}, batch_number="BATCH-MIX")
    wa = await make_wa(qc.id)
    syringe = seeded.products["SYR-5ML"]

    approved = await approve_wa(db, wa.id, checker_for, [WALineUpdate(product_id=syringe, result="rejected")])

    assert not line_for(approved, syringe).inventory_integrated
    assert line_for(approved, seeded.products["PARA-500"]).inventory_integrated
    assert await stock_of(db, syringe, "BATCH-MIX") is None
    assert (await stock_of(db, seeded.products["PARA-500"], "BATCH-MIX")).current_stock == 4


async def test_two_approvals_accumulate_into_one_batch(db, seeded, approved_qc, make_wa, checker_for):
    amox = seeded.products["AMOX-250"]
    for quantity in (50, 25):
        qc = await approved_qc({"AMOX-250": quantity}, batch_number="BATCH001")
        wa = await make_wa(qc.id)
        await approve_wa(db, wa.id, checker_for)

    rows = await db.scalar(
        select(func.count())
        .select_from(InventoryRecord)
        .filter_by(product_id=amox, warehouse_id=seeded.warehouse_id, batch_number="BATCH001")
    )
    assert rows == 1
    record = await stock_of(db, amox, "BATCH001")
    assert (record.current_stock, record.available_stock) == (75, 75)


async def test_reject_posts_nothing(db, seeded, approved_qc, make_wa, checker_for):
    qc = await approved_qc({"PARA-500": 6}, batch_number="BATCH-REJ")
    wa = await make_wa(qc.id)
    service = WarehouseApprovalService(db)
    await service.submit(wa.id, None, await checker_for("wh_inspector"))

    rejected = await service.reject(wa.id, "Wrong warehouse", await checker_for("wh_manager"))

    assert rejected.status == "rejected"
    assert await stock_of(db, seeded.products["PARA-500"], "BATCH-REJ") is None
    invoice = await InvoiceReceivingService(db).get(qc.invoice_receiving_id)
    assert invoice.workflow_status == "rejected"


async def test_posting_failure_rolls_back_approval(db, seeded, approved_qc, make_wa, checker_for, monkeypatch):
    qc = await approved_qc({"PARA-500": 10, "SYR-5ML": 5}, batch_number="BATCH-FAIL")
    wa = await make_wa(qc.id)
    service = WarehouseApprovalService(db)
    await service.submit(wa.id, None, await checker_for("wh_inspector"))

    original_post = InventoryService.post
    calls = {"n": 0}

    async def failing_second_post(self, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise ValidationError("ledger unavailable")
        return await original_post(self, **kwargs)

    monkeypatch.setattr(InventoryService, "post", failing_second_post)

    with pytest.raises(InventoryPostingError):
        await service.approve(wa.id, None, await checker_for("wh_manager"))

    stored = await service.get(wa.id)
    assert stored.status == "submitted"
    assert not any(line.inventory_integrated for line in stored.lines)
    assert await db.scalar(select(func.count(StockMovement.id))) == 0
    assert await stock_of(db, seeded.products["PARA-500"], "BATCH-FAIL") is None

    monkeypatch.setattr(InventoryService, "post", original_post)
    approved = await service.approve(wa.id, None, await checker_for("wh_manager"))
    assert approved.status == "approved"
    assert (await stock_of(db, seeded.products["PARA-500"], "BATCH-FAIL")).current_stock == 10


async def test_qc_manager_cannot_approve_warehouse_stage(db, approved_qc, make_wa, checker_for):
    qc = await approved_qc()
    wa = await make_wa(qc.id)
    service = WarehouseApprovalService(db)
    await service.submit(wa.id, None, await checker_for("wh_inspector"))

    with pytest.raises(Forbidden):
        await service.approve(wa.id, None, await checker_for("qc_manager"))

    stored = await db.scalar(select(WarehouseApproval.status).where(WarehouseApproval.id == wa.id))
    assert stored == "submitted"
