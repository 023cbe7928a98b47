import uuid
from datetime import date

import pytest
from sqlalchemy import select, func, update

from medistock.core.exceptions import DuplicateRecord, NotFound, ValidationError
from medistock.models import AuditLog, InventoryRecord, InventoryStatus, StockMovement
from medistock.services.inventory_service import InventoryService, PostingReference


async def count_records(db, **key):
    return await db.scalar(select(func.count()).select_from(InventoryRecord).filter_by(**key))


async def test_first_post_creates_available_record(db, seeded):
    service = InventoryService(db)
    record = await service.post(
        product_id=seeded.products["PARA-500"],
        warehouse_id=seeded.warehouse_id,
        batch_number="BATCH001",
        quantity=40,
        expiry_date=date(2028, 1, 31),
        storage_location="R1-S2",
    )
    await db.commit()

    assert record.current_stock == 40
    assert record.available_stock == 40
    assert record.reserved_stock == 0
    assert record.status == InventoryStatus.AVAILABLE.value
    assert record.storage_location == "R1-S2"

    movements = await service.list_movements(record.id)
    assert [m.quantity for m in movements] == [40]
    assert movements[0].movement_type == "inward"


async def test_repeated_posts_accumulate_on_one_row(db, seeded):
    service = InventoryService(db)
    key = dict(product_id=seeded.products["AMOX-250"], warehouse_id=seeded.warehouse_id, batch_number="BATCH001")

    await service.post(quantity=50, **key)
    record = await service.post(quantity=25, **key)
    await db.commit()

    assert record.current_stock == 75
    assert record.available_stock == 75
    assert await count_records(db, **key) == 1
    assert len(await service.list_movements(record.id)) == 2


async def test_post_leaves_reserved_stock_alone(db, seeded):
    service = InventoryService(db)
    key = dict(product_id=seeded.products["SYR-5ML"], warehouse_id=seeded.warehouse_id, batch_number="SY-01")
    record = await service.post(quantity=10, **key)
    await db.execute(
        update(InventoryRecord)
        .where(InventoryRecord.id == record.id)
        .values(reserved_stock=4, available_stock=6)
    )

    record = await service.post(quantity=5, **key)

    assert record.current_stock == 15
    assert record.reserved_stock == 4
    assert record.available_stock == 11


async def test_post_reopens_out_of_stock_record(db, seeded):
    service = InventoryService(db)
    key = dict(product_id=seeded.products["SYR-5ML"], warehouse_id=seeded.warehouse_id, batch_number="SY-02")
    record = await service.post(quantity=3, **key)
    await db.execute(
        update(InventoryRecord)
        .where(InventoryRecord.id == record.id)
        .values(current_stock=0, available_stock=0, status=InventoryStatus.OUT_OF_STOCK.value)
    )

    record = await service.post(quantity=7, **key)
    assert record.current_stock == 7
    assert record.status == InventoryStatus.AVAILABLE.value


async def test_posting_with_same_reference_is_applied_once(db, seeded):
    service = InventoryService(db)
    reference = PostingReference("warehouse_approval", uuid.uuid4(), uuid.uuid4())
    key = dict(product_id=seeded.products["PARA-500"], warehouse_id=seeded.warehouse_id, batch_number="REF-1")

    first = await service.post(quantity=12, reference=reference, **key)
    second = await service.post(quantity=12, reference=reference, **key)
    await db.commit()

    assert first.id == second.id
    assert second.current_stock == 12
    movements = await db.scalar(
        select(func.count(StockMovement.id)).where(StockMovement.reference_id == reference.reference_id)
    )
    assert movements == 1


async def test_different_lines_of_one_reference_both_post(db, seeded):
    service = InventoryService(db)
    approval_id = uuid.uuid4()
    key = dict(product_id=seeded.products["PARA-500"], warehouse_id=seeded.warehouse_id, batch_number="REF-2")

    await service.post(quantity=5, reference=PostingReference("warehouse_approval", approval_id, uuid.uuid4()), **key)
    record = await service.post(quantity=6, reference=PostingReference("warehouse_approval", approval_id, uuid.uuid4()), **key)

    assert record.current_stock == 11


@pytest.mark.parametrize("quantity", [0, -3])
async def test_non_positive_quantity_is_rejected(db, seeded, quantity):
    with pytest.raises(ValidationError):
        await InventoryService(db).post(
            product_id=seeded.products["PARA-500"],
            warehouse_id=seeded.warehouse_id,
            batch_number="BAD",
            quantity=quantity,
        )
    assert await count_records(db, batch_number="BAD") == 0


async def test_manual_record_and_duplicate_key(db, seeded, checker_for):
    service = InventoryService(db)
    checker = await checker_for("wh_manager")
    data = {
        "product_id": seeded.products["GLV-NTR-M"],
        "warehouse_id": seeded.warehouse_id,
        "batch_number": "GL-100",
        "quantity": 30,
    }

    record = await service.create_record(data, checker)
    await db.commit()
    assert record.current_stock == 30
    movements = await service.list_movements(record.id)
    assert movements[0].reference_type == "manual"

    with pytest.raises(DuplicateRecord):
        await service.create_record(data, checker)


async def test_manual_record_requires_known_product(db, seeded, checker_for):
    with pytest.raises(ValidationError):
        await InventoryService(db).create_record(
            {"product_id": uuid.uuid4(), "warehouse_id": seeded.warehouse_id, "batch_number": "X", "quantity": 1},
            await checker_for("wh_manager"),
        )


async def test_summary_and_filters(db, seeded):
    service = InventoryService(db)
    await service.post(product_id=seeded.products["PARA-500"], warehouse_id=seeded.warehouse_id,
                       batch_number="S-1", quantity=10)
    await service.post(product_id=seeded.products["AMOX-250"], warehouse_id=seeded.warehouse_id,
                       batch_number="S-2", quantity=15)
    await db.commit()

    summary = await service.summary(seeded.warehouse_id)
    assert summary["total_records"] == 2
    assert summary["total_current_stock"] == 25
    assert summary["status_counts"]["available"] == 2

    items, total = await service.list_records(product_id=seeded.products["AMOX-250"])
    assert total == 1
    assert items[0].batch_number == "S-2"


async def test_unknown_record_is_not_found(db, seeded):
    with pytest.raises(NotFound):
        await InventoryService(db).get_record(uuid.uuid4())


# ============================================================================
# RESERVATIONS AND ADJUSTMENTS
# ============================================================================

async def stocked_record(db, seeded, quantity=20, batch_number="RS-1"):
    record = await InventoryService(db).post(
        product_id=seeded.products["PARA-500"],
        warehouse_id=seeded.warehouse_id,
        batch_number=batch_number,
        quantity=quantity,
    )
    await db.commit()
    return record


def assert_balanced(record):
    assert record.available_stock == record.current_stock - record.reserved_stock
    assert min(record.current_stock, record.reserved_stock, record.available_stock) >= 0


async def test_reserve_and_release_keep_stock_balanced(db, seeded, checker_for):
    service = InventoryService(db)
    checker = await checker_for("wh_manager")
    record = await stocked_record(db, seeded)

    record = await service.reserve(record.id, 8, checker, reserved_for="Ward 4 indent")
    assert (record.current_stock, record.reserved_stock, record.available_stock) == (20, 8, 12)
    assert record.status == InventoryStatus.AVAILABLE.value
    assert_balanced(record)

    record = await service.reserve(record.id, 12, checker)
    assert record.available_stock == 0
    assert record.status == InventoryStatus.RESERVED.value
    assert_balanced(record)

    record = await service.release(record.id, 5, checker)
    assert (record.reserved_stock, record.available_stock) == (15, 5)
    assert record.status == InventoryStatus.AVAILABLE.value
    assert_balanced(record)
    await db.commit()

    movements = await service.list_movements(record.id)
    assert [m.movement_type for m in movements] == ["inward", "reserve", "reserve", "release"]
    assert movements[1].remarks == "Ward 4 indent"
    assert movements[1].performed_by == checker.user_id


async def test_reserve_more_than_available_fails_and_changes_nothing(db, seeded, checker_for):
    service = InventoryService(db)
    checker = await checker_for("wh_manager")
    record = await stocked_record(db, seeded, quantity=10)
    await service.reserve(record.id, 7, checker)

    with pytest.raises(ValidationError) as exc_info:
        await service.reserve(record.id, 4, checker)
    assert exc_info.value.details["available_stock"] == 3

    record = await service.get_record(record.id)
    assert (record.reserved_stock, record.available_stock) == (7, 3)
    assert len(await service.list_movements(record.id)) == 2


async def test_release_more_than_reserved_fails(db, seeded, checker_for):
    service = InventoryService(db)
    checker = await checker_for("wh_manager")
    record = await stocked_record(db, seeded)
    await service.reserve(record.id, 2, checker)

    with pytest.raises(ValidationError):
        await service.release(record.id, 3, checker)
    assert (await service.get_record(record.id)).reserved_stock == 2


async def test_adjust_add_and_remove(db, seeded, checker_for):
    service = InventoryService(db)
    checker = await checker_for("wh_manager")
    record = await stocked_record(db, seeded, quantity=10)
    await service.reserve(record.id, 4, checker)

    record = await service.adjust(record.id, "add", 5, checker, reason="Count surplus")
    assert (record.current_stock, record.available_stock) == (15, 11)
    assert_balanced(record)

    record = await service.adjust(record.id, "remove", 11, checker, reason="Damaged in storage")
    assert (record.current_stock, record.reserved_stock, record.available_stock) == (4, 4, 0)
    assert record.status == InventoryStatus.RESERVED.value
    assert_balanced(record)

    movements = await service.list_movements(record.id)
    assert [m.movement_type for m in movements][-2:] == ["inward", "outward"]
    assert movements[-1].reference_type == "adjustment"
    assert movements[-1].remarks == "Damaged in storage"


async def test_remove_cannot_take_reserved_units(db, seeded, checker_for):
    service = InventoryService(db)
    checker = await checker_for("wh_manager")
    record = await stocked_record(db, seeded, quantity=10)
    await service.reserve(record.id, 6, checker)

    with pytest.raises(ValidationError):
        await service.adjust(record.id, "remove", 5, checker)

    record = await service.get_record(record.id)
    assert (record.current_stock, record.available_stock) == (10, 4)


async def test_remove_everything_marks_out_of_stock(db, seeded, checker_for):
    service = InventoryService(db)
    record = await stocked_record(db, seeded, quantity=3)

    record = await service.adjust(record.id, "remove", 3, await checker_for("wh_manager"))

    assert record.current_stock == 0
    assert record.status == InventoryStatus.OUT_OF_STOCK.value


async def test_quarantined_stock_keeps_status_on_adjustment(db, seeded, checker_for):
    service = InventoryService(db)
    record = await stocked_record(db, seeded, quantity=3)
    await db.execute(
        update(InventoryRecord)
        .where(InventoryRecord.id == record.id)
        .values(status=InventoryStatus.QUARANTINED.value)
    )

    record = await service.adjust(record.id, "add", 2, await checker_for("wh_manager"))

    assert record.current_stock == 5
    assert record.status == InventoryStatus.QUARANTINED.value


@pytest.mark.parametrize("adjustment_type, quantity", [("count", 1), ("add", 0), ("remove", -2)])
async def test_invalid_adjustment_is_rejected(db, seeded, checker_for, adjustment_type, quantity):
    service = InventoryService(db)
    record = await stocked_record(db, seeded)

    with pytest.raises(ValidationError):
        await service.adjust(record.id, adjustment_type, quantity, await checker_for("wh_manager"))
    assert (await service.get_record(record.id)).current_stock == 20


async def test_stock_change_on_unknown_record_is_not_found(db, seeded, checker_for):
    with pytest.raises(NotFound):
        await InventoryService(db).reserve(uuid.uuid4(), 1, await checker_for("wh_manager"))


async def test_stock_changes_are_audited(db, seeded, checker_for):
    service = InventoryService(db)
    record = await stocked_record(db, seeded)
    await service.reserve(record.id, 5, await checker_for("wh_manager"))
    await db.commit()

    entry = await db.scalar(
        select(AuditLog).where(AuditLog.action == "inventory_reserve").where(AuditLog.entity_id == record.id)
    )
    assert entry.old_values["available_stock"] == 20
    assert entry.new_values["available_stock"] == 15


async def test_movement_numbers_are_unique_within_a_day(db, seeded):
    service = InventoryService(db)
    key = dict(product_id=seeded.products["PARA-500"], warehouse_id=seeded.warehouse_id, batch_number="MV-1")
    for _ in range(5):
        record = await service.post(quantity=1, **key)
    await db.commit()

    numbers = [m.movement_number for m in await service.list_movements(record.id)]
    assert len(set(numbers)) == 5
    assert all(number.startswith("MOV-") for number in numbers)
