"""
Inspection Workflow Engine

Business logic shared by the quality control and warehouse approval stages:
- record creation from a source document
- line result entry and counter recomputation
- start / submit / approve / reject / assign transitions
- dashboards, workload and statistics

Subclasses plug in the models, the source document and the stage-specific
effects of creation, approval and rejection. Every status write is a
compare-and-set on the current status, so two concurrent transitions on
the same record cannot both succeed.

Notifications and audit entries are written after the primary change has
committed, each in its own transaction; a failure there is logged and
never undoes the transition or the other write.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple, Callable, Awaitable

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from medistock.config import settings
from medistock.core.exceptions import (
    MedistockError, ValidationError, DuplicateRecord, InvalidTransition, NotFound,
)
from medistock.core.permissions import PermissionChecker
from medistock.models.inspection import InspectionPriority
from medistock.models.notifications import NotificationType, NotificationPriority
from medistock.models.user import User
from medistock.services.audit_service import AuditService
from medistock.services.inspection_state_machine import (
    InspectionStatus, WorkflowAction, ACTIVE_STATUSES, authorize,
)
from medistock.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _value(value):
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class RecordRef:
    """Plain snapshot of a record for work done after its transaction ends."""
    id: uuid.UUID
    record_number: str
    priority: str
    assigned_to: uuid.UUID
    created_by: uuid.UUID

    @classmethod
    def of(cls, record) -> "RecordRef":
        return cls(record.id, record.record_number, record.priority, record.assigned_to, record.created_by)


def build_item_details(quantity: int) -> List[Dict[str, Any]]:
    """One pending entry per physical unit, numbered from "1"."""
    return [
        {
            "item_id": str(index),
            "status": "pending",
            "reason": None,
            "inspection_notes": None,
            "inspected_at": None,
            "inspected_by": None,
        }
        for index in range(1, quantity + 1)
    ]


class InspectionWorkflowService:
    """Base service for a two-party inspection stage."""

    # Stage configuration, set by subclasses
    record_model: Any = None
    line_model: Any = None
    line_record_fk: str = ""        # line column pointing at the record
    resource: str = ""              # permission resource, also the audit entity type
    label: str = ""                 # human-readable stage name
    number_prefix: str = ""         # QC / WA
    notification_prefix: str = ""   # qc / warehouse
    audit_prefix: str = ""          # qc / warehouse_approval

    # Line result vocabulary
    PENDING_RESULT: str = "pending"
    ACCEPTED_RESULT: str = ""
    DECLINED_RESULT: str = ""

    # Line counter columns
    quantity_field: str = ""
    accepted_field: str = ""
    declined_field: str = ""

    # Record numbers are max + 1; a concurrent create can take the same one
    NUMBER_ATTEMPTS: int = 3

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.notifications = NotificationService(db)

    # ========================================================================
    # STAGE HOOKS
    # ========================================================================

    async def _load_source(self, data) -> Any:
        raise NotImplementedError

    def _source_filter(self, source) -> Any:
        """Clause selecting records raised against ``source``."""
        raise NotImplementedError

    def _source_columns(self, source) -> Dict[str, Any]:
        raise NotImplementedError

    def _source_lines(self, source) -> List[Dict[str, Any]]:
        """Line field dicts derived from the source, keyed by column name."""
        raise NotImplementedError

    async def _on_created(self, record, source) -> None:
        pass

    async def _on_approved(self, record, checker: PermissionChecker) -> Dict[str, Any]:
        """Stage effects inside the approval transaction. Returns extra audit data."""
        return {}

    async def _on_rejected(self, record) -> None:
        pass

    def _apply_line_fields(self, line, fields: Dict[str, Any]) -> None:
        """Stage-specific line fields accepted by update_line_results."""

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def get(self, record_id: uuid.UUID):
        """Load a record with its lines, refreshing anything already in the session."""
        result = await self.db.execute(
            select(self.record_model)
            .options(selectinload(self.record_model.lines))
            .where(self.record_model.id == record_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFound(f"{self.label} record not found")
        return record

    async def list_records(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        assigned_to: Optional[uuid.UUID] = None,
        warehouse_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Any], int]:
        """List records, newest first."""
        model = self.record_model
        conditions = []
        if status:
            conditions.append(model.status == status)
        if priority:
            conditions.append(model.priority == priority)
        if assigned_to:
            conditions.append(model.assigned_to == assigned_to)
        if warehouse_id:
            conditions.append(model.warehouse_id == warehouse_id)
        if search:
            conditions.append(model.record_number.ilike(f"%{search.strip()}%"))
        if date_from:
            conditions.append(model.created_at >= date_from)
        if date_to:
            conditions.append(model.created_at <= date_to)

        count_query = select(func.count(model.id))
        query = (
            select(model)
            .options(selectinload(model.lines))
            .execution_options(populate_existing=True)
        )
        if conditions:
            count_query = count_query.where(*conditions)
            query = query.where(*conditions)

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(model.created_at.desc(), model.record_number.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ========================================================================
    # CREATE
    # ========================================================================

    async def create(self, data, checker: PermissionChecker):
        """Raise a new record against a source document."""
        source = await self._load_source(data)

        existing = await self._active_record_number(source)
        if existing is not None:
            raise DuplicateRecord(f"{self.label} record {existing} already exists for this source")

        assignee_id = data.assigned_to or checker.user_id
        await self._ensure_active_user(assignee_id)

        line_fields = self._select_line_fields(source, data.products)
        source_columns = self._source_columns(source)

        for attempt in range(1, self.NUMBER_ATTEMPTS + 1):
            lines = self._build_lines(line_fields)
            record = self.record_model(
                record_number=await self._generate_record_number(),
                assigned_to=assignee_id,
                created_by=checker.user_id,
                status=InspectionStatus.PENDING.value,
                priority=_value(data.priority) or InspectionPriority.MEDIUM.value,
                general_remarks=data.general_remarks,
                **source_columns,
            )
            record.lines = lines
            try:
                async with self.db.begin_nested():
                    self.db.add(record)
                    await self.db.flush()
                break
            except IntegrityError:
                existing = await self._active_record_number(source)
                if existing is not None:
                    raise DuplicateRecord(f"{self.label} record {existing} already exists for this source")
                if attempt == self.NUMBER_ATTEMPTS:
                    raise
                logger.warning("%s record number %s taken, retrying", self.label, record.record_number)

        await self._on_created(record, source)
        await self.db.commit()
        ref = RecordRef.of(record)
        logger.info("%s created by %s", ref.record_number, checker.user_id)

        await self._after_commit(
            ref, "create", checker.user_id,
            notify=lambda: self._notify_assignment(ref, assignee_id),
            description=f"Created {ref.record_number}",
            new_values={
                "assigned_to": str(assignee_id),
                "priority": ref.priority,
                "lines": len(lines),
            },
        )
        return await self.get(ref.id)

    async def _active_record_number(self, source) -> Optional[str]:
        """Number of a live (not rejected) record already raised against ``source``."""
        return await self.db.scalar(
            select(self.record_model.record_number)
            .where(self._source_filter(source))
            .where(self.record_model.status != InspectionStatus.REJECTED.value)
            .limit(1)
        )

    def _select_line_fields(self, source, overrides: Optional[List[Any]]) -> List[Dict[str, Any]]:
        """Source lines, narrowed and adjusted by the caller's overrides."""
        source_lines = self._source_lines(source)
        by_product = {line["product_id"]: line for line in source_lines}

        if overrides:
            seen = set()
            selected = []
            for override in overrides:
                if override.product_id not in by_product:
                    raise ValidationError(f"Product {override.product_id} is not part of the source document")
                if override.product_id in seen:
                    raise ValidationError(f"Product {override.product_id} is listed more than once")
                seen.add(override.product_id)

                source_fields = by_product[override.product_id]
                fields = dict(source_fields)
                for key, value in override.model_dump(exclude_unset=True, exclude={"product_id"}).items():
                    if value is not None:
                        fields[key] = value

                # Overrides may narrow a line, never change what was received
                if fields["batch_number"] != source_fields["batch_number"]:
                    raise ValidationError(
                        f"Batch number of product {override.product_id} cannot be changed "
                        f"(source batch {source_fields['batch_number']})"
                    )
                if fields[self.quantity_field] > source_fields[self.quantity_field]:
                    raise ValidationError(
                        f"Quantity for product {override.product_id} cannot exceed "
                        f"{source_fields[self.quantity_field]} from the source document"
                    )
                selected.append(fields)
        else:
            selected = source_lines

        for fields in selected:
            quantity = fields[self.quantity_field]
            if not quantity or quantity <= 0:
                raise ValidationError(f"Quantity for product {fields['product_id']} must be greater than zero")
        return selected

    def _build_lines(self, selected: List[Dict[str, Any]]) -> List[Any]:
        lines = []
        for line_no, fields in enumerate(selected, start=1):
            quantity = fields[self.quantity_field]
            line = self.line_model(
                line_no=line_no,
                result=self.PENDING_RESULT,
                item_details=build_item_details(quantity),
                **fields,
            )
            setattr(line, self.accepted_field, 0)
            setattr(line, self.declined_field, 0)
            lines.append(line)
        return lines

    async def _generate_record_number(self) -> str:
        """Generate record number: PREFIX-YYYYMM-NNNN."""
        prefix = f"{self.number_prefix}-{_utcnow().strftime('%Y%m')}-"
        last = await self.db.scalar(
            select(func.max(self.record_model.record_number))
            .where(self.record_model.record_number.like(f"{prefix}%"))
        )
        sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    async def _ensure_active_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise ValidationError("Assignee must be an active user")
        return user

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    async def start(self, record_id: uuid.UUID, checker: PermissionChecker):
        """pending -> in_progress, by the assignee."""
        record = await self.get(record_id)
        target = authorize(checker, record, self.resource, WorkflowAction.START)
        old_status = record.status

        await self._compare_and_set(record, old_status, target)
        await self.db.commit()
        ref = RecordRef.of(record)
        logger.info("%s started by %s", ref.record_number, checker.user_id)

        await self._after_commit(
            ref, "start", checker.user_id,
            description=f"Started {ref.record_number}",
            old_values={"status": old_status},
            new_values={"status": target.value},
        )
        return await self.get(record_id)

    async def update_line_results(self, record_id: uuid.UUID, products: List[Any], checker: PermissionChecker):
        """
        Merge partial line results into the record.

        Products are matched by product_id and units by item_id. Every id is
        checked before anything is written, so an unknown id leaves the
        record untouched.
        """
        record = await self.get(record_id)
        authorize(checker, record, self.resource, WorkflowAction.UPDATE)

        lines_by_product = {line.product_id: line for line in record.lines}
        for product in products:
            line = lines_by_product.get(product.product_id)
            if line is None:
                raise ValidationError(f"Product {product.product_id} is not on {record.record_number}")
            known_items = {entry["item_id"] for entry in line.item_details}
            for item in product.item_details or []:
                if item.item_id not in known_items:
                    raise ValidationError(
                        f"Item {item.item_id} does not exist for product {product.product_id}"
                    )

        inspected_at = _utcnow().isoformat()
        inspected_by = str(checker.user_id)
        touched = []
        for product in products:
            line = lines_by_product[product.product_id]
            fields = product.model_dump(exclude_unset=True, exclude={"product_id", "item_details"})

            if fields.get("result") is not None:
                line.result = _value(fields["result"])
            if "remarks" in fields:
                line.remarks = fields["remarks"]
            self._apply_line_fields(line, fields)

            if product.item_details:
                details = [dict(entry) for entry in line.item_details]
                index = {entry["item_id"]: entry for entry in details}
                for item in product.item_details:
                    entry = index[item.item_id]
                    for key, value in item.model_dump(exclude_unset=True, exclude={"item_id"}).items():
                        if key == "status" and value is None:
                            continue
                        entry[key] = _value(value)
                    entry["inspected_at"] = inspected_at
                    entry["inspected_by"] = inspected_by
                # JSON columns only notice reassignment
                line.item_details = details

            self._recompute_counters(line)
            touched.append(str(product.product_id))

        await self._compare_and_set(record, record.status, InspectionStatus(record.status))
        await self.db.flush()
        await self.db.commit()
        ref = RecordRef.of(record)
        logger.info("%s line results updated by %s", ref.record_number, checker.user_id)

        await self._after_commit(
            ref, "update", checker.user_id,
            description=f"Updated line results on {ref.record_number}",
            new_values={"products": touched},
        )
        return await self.get(record_id)

    async def submit(self, record_id: uuid.UUID, general_remarks: Optional[str], checker: PermissionChecker):
        """pending|in_progress -> submitted."""
        record = await self.get(record_id)
        target = authorize(checker, record, self.resource, WorkflowAction.SUBMIT)

        if settings.REQUIRE_LINE_RESULTS_ON_SUBMIT:
            pending = [line.product_code or str(line.product_id)
                       for line in record.lines if line.result == self.PENDING_RESULT]
            if pending:
                raise ValidationError(f"Line results still pending for: {', '.join(pending)}")

        values: Dict[str, Any] = {"submitted_at": _utcnow(), "submitted_by": checker.user_id}
        if general_remarks is not None:
            values["general_remarks"] = general_remarks

        old_status = record.status
        await self._compare_and_set(record, old_status, target, values)
        await self.db.commit()
        ref = RecordRef.of(record)
        logger.info("%s submitted by %s", ref.record_number, checker.user_id)

        await self._after_commit(
            ref, "submit", checker.user_id,
            notify=lambda: self._notify_approval_required(ref, checker.user_id),
            description=f"Submitted {ref.record_number} for approval",
            old_values={"status": old_status},
            new_values={"status": target.value},
        )
        return await self.get(record_id)

    async def approve(self, record_id: uuid.UUID, approval_remarks: Optional[str], checker: PermissionChecker):
        """
        submitted -> approved.

        Pending lines are accepted in full. Stage effects (inventory posting
        for warehouse approval) run in the same transaction; if they fail the
        whole approval is rolled back and the record stays submitted.
        """
        record = await self.get(record_id)
        target = authorize(checker, record, self.resource, WorkflowAction.APPROVE)
        ref = RecordRef.of(record)

        try:
            await self._compare_and_set(record, InspectionStatus.SUBMITTED.value, target, {
                "approved_at": _utcnow(),
                "approved_by": checker.user_id,
                "approval_remarks": approval_remarks,
            })
            for line in record.lines:
                if line.result == self.PENDING_RESULT:
                    line.result = self.ACCEPTED_RESULT
                    self._recompute_counters(line)

            extra = await self._on_approved(record, checker)
            await self.db.flush()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("%s approved by %s", ref.record_number, checker.user_id)

        await self._after_commit(
            ref, "approve", checker.user_id,
            notify=lambda: self._notify_decision(ref, approved=True),
            description=f"Approved {ref.record_number}",
            old_values={"status": InspectionStatus.SUBMITTED.value},
            new_values={"status": target.value, "approval_remarks": approval_remarks, **extra},
        )
        return await self.get(record_id)

    async def reject(self, record_id: uuid.UUID, rejection_reason: Optional[str], checker: PermissionChecker):
        """submitted -> rejected. A reason is mandatory."""
        record = await self.get(record_id)
        target = authorize(checker, record, self.resource, WorkflowAction.REJECT)
        ref = RecordRef.of(record)

        if not rejection_reason or not rejection_reason.strip():
            raise ValidationError("Rejection reason is required")
        reason = rejection_reason.strip()

        try:
            await self._compare_and_set(record, InspectionStatus.SUBMITTED.value, target, {
                "rejected_at": _utcnow(),
                "rejected_by": checker.user_id,
                "rejection_reason": reason,
            })
            await self._on_rejected(record)
            await self.db.flush()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("%s rejected by %s", ref.record_number, checker.user_id)

        await self._after_commit(
            ref, "reject", checker.user_id,
            notify=lambda: self._notify_decision(ref, approved=False, reason=reason),
            description=f"Rejected {ref.record_number}: {reason}",
            old_values={"status": InspectionStatus.SUBMITTED.value},
            new_values={"status": target.value, "rejection_reason": reason},
        )
        return await self.get(record_id)

    async def assign(
        self,
        record_id: uuid.UUID,
        assigned_to: uuid.UUID,
        priority: Optional[str],
        checker: PermissionChecker,
    ):
        """Hand an open record to another user, optionally re-prioritising it."""
        record = await self.get(record_id)
        previous = await self._assign_one(record, assigned_to, priority, checker)
        await self.db.commit()

        await self._after_assign(RecordRef.of(record), previous, assigned_to, priority, checker)
        return await self.get(record_id)

    async def bulk_assign(
        self,
        record_ids: List[uuid.UUID],
        assigned_to: uuid.UUID,
        priority: Optional[str],
        checker: PermissionChecker,
    ) -> Dict[str, Any]:
        """
        Assign many records at once.

        Each id is handled in its own savepoint, so one failure does not
        affect the others. Repeated ids are processed once.
        """
        if not record_ids:
            raise ValidationError("At least one record id is required")
        await self._ensure_active_user(assigned_to)

        unique_ids = list(dict.fromkeys(record_ids))
        results = []
        assigned: List[Tuple[RecordRef, uuid.UUID]] = []
        for record_id in unique_ids:
            try:
                async with self.db.begin_nested():
                    record = await self.get(record_id)
                    previous = await self._assign_one(record, assigned_to, priority, checker)
                    ref = RecordRef.of(record)
            except MedistockError as exc:
                results.append({"id": record_id, "success": False, "message": exc.message})
                continue
            results.append({"id": record_id, "success": True, "message": f"{ref.record_number} assigned"})
            assigned.append((ref, previous))

        await self.db.commit()
        logger.info(
            "Bulk assignment by %s: %d of %d %s records assigned to %s",
            checker.user_id, len(assigned), len(unique_ids), self.resource, assigned_to,
        )

        for ref, previous in assigned:
            await self._after_assign(ref, previous, assigned_to, priority, checker)

        return {
            "requested": len(unique_ids),
            "assigned": len(assigned),
            "failed": len(unique_ids) - len(assigned),
            "results": results,
        }

    async def _assign_one(self, record, assigned_to: uuid.UUID, priority: Optional[str], checker: PermissionChecker):
        target = authorize(checker, record, self.resource, WorkflowAction.ASSIGN)
        await self._ensure_active_user(assigned_to)

        previous = record.assigned_to
        values: Dict[str, Any] = {"assigned_to": assigned_to}
        if priority:
            values["priority"] = _value(priority)
        await self._compare_and_set(record, record.status, target, values)
        return previous

    async def _after_assign(self, ref: RecordRef, previous, assigned_to, priority, checker: PermissionChecker):
        logger.info("%s assigned to %s by %s", ref.record_number, assigned_to, checker.user_id)
        new_priority = _value(priority) if priority else None
        new_values = {"assigned_to": str(assigned_to)}
        if new_priority:
            new_values["priority"] = new_priority
        await self._after_commit(
            ref, "assign", checker.user_id,
            notify=lambda: self._notify_assignment(ref, assigned_to, priority=new_priority),
            description=f"Assigned {ref.record_number}",
            old_values={"assigned_to": str(previous) if previous else None},
            new_values=new_values,
        )

    async def _compare_and_set(
        self,
        record,
        expected_status: str,
        target: InspectionStatus,
        values: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Write ``target`` only if the stored status is still ``expected_status``."""
        expected = _value(expected_status)
        result = await self.db.execute(
            update(self.record_model)
            .where(self.record_model.id == record.id)
            .where(self.record_model.status == expected)
            .values(status=target.value, updated_at=_utcnow(), **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self.db.scalar(
                select(self.record_model.status).where(self.record_model.id == record.id)
            )
            raise InvalidTransition(
                f"{record.record_number} is no longer '{expected}' (now '{current}')",
                current_status=current,
            )

    def _recompute_counters(self, line) -> None:
        """accepted/declined from the line result and the per-unit statuses."""
        quantity = getattr(line, self.quantity_field) or 0
        statuses = [entry.get("status") for entry in line.item_details]
        declined = sum(1 for status in statuses if status == self.DECLINED_RESULT)

        if line.result == self.ACCEPTED_RESULT:
            accepted = max(quantity - declined, 0)
        elif line.result == self.DECLINED_RESULT:
            accepted = 0
        else:
            accepted = sum(1 for status in statuses if status == self.ACCEPTED_RESULT)

        setattr(line, self.accepted_field, accepted)
        setattr(line, self.declined_field, declined)

    # ========================================================================
    # SIDE EFFECTS
    # ========================================================================

    async def _after_commit(
        self,
        ref: RecordRef,
        action: str,
        actor_id: uuid.UUID,
        notify: Optional[Callable[[], Awaitable[Any]]] = None,
        description: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Write notifications and the audit entry after the primary commit.

        Each gets its own transaction, so a failed notification still leaves
        the audit trail intact and the other way round.
        """
        if notify is not None:
            try:
                await notify()
                await self.db.commit()
            except Exception:
                logger.exception("Notifications for %s on %s failed", action, ref.record_number)
                await self.db.rollback()

        try:
            await self.audit.log(
                action=f"{self.audit_prefix}_{action}",
                entity_type=self.resource,
                entity_id=ref.id,
                entity_number=ref.record_number,
                user_id=actor_id,
                old_values=old_values,
                new_values=new_values,
                description=description,
            )
            await self.db.commit()
        except Exception:
            logger.exception("Audit entry for %s on %s failed", action, ref.record_number)
            await self.db.rollback()

    async def _notify_assignment(self, ref: RecordRef, assignee_id: uuid.UUID, priority: Optional[str] = None):
        await self.notifications.notify(
            [assignee_id],
            notification_type=f"{self.notification_prefix}_assignment",
            title=f"New {self.label.lower()} assignment",
            message=f"{ref.record_number} has been assigned to you",
            entity_type=self.resource,
            entity_id=ref.id,
            reference_number=ref.record_number,
            priority=_notification_priority(priority or ref.priority),
        )

    async def _notify_approval_required(self, ref: RecordRef, submitter_id: uuid.UUID):
        approvers = await self.notifications.users_with_permission(f"{self.resource}:approve")
        await self.notifications.notify(
            [user_id for user_id in approvers if user_id != submitter_id],
            notification_type=NotificationType.APPROVAL_REQUIRED.value,
            title=f"{self.label} awaiting approval",
            message=f"{ref.record_number} has been submitted and needs approval",
            entity_type=self.resource,
            entity_id=ref.id,
            reference_number=ref.record_number,
            priority=_notification_priority(ref.priority),
        )

    async def _notify_decision(self, ref: RecordRef, approved: bool, reason: Optional[str] = None):
        outcome = "approved" if approved else "rejected"
        message = f"{ref.record_number} has been {outcome}"
        if reason:
            message = f"{message}: {reason}"
        await self.notifications.notify(
            [ref.assigned_to, ref.created_by],
            notification_type=f"{self.notification_prefix}_{outcome}",
            title=f"{self.label} {outcome}",
            message=message,
            entity_type=self.resource,
            entity_id=ref.id,
            reference_number=ref.record_number,
            priority=NotificationPriority.MEDIUM.value if approved else NotificationPriority.HIGH.value,
        )

    # ========================================================================
    # REPORTING
    # ========================================================================

    async def dashboard(self, timeframe_days: Optional[int] = None, warehouse_id: Optional[uuid.UUID] = None) -> Dict[str, Any]:
        """Status and line-result counts over the timeframe, plus recent activity."""
        days = timeframe_days or settings.DASHBOARD_DEFAULT_TIMEFRAME_DAYS
        model = self.record_model
        conditions = [model.created_at >= _utcnow() - timedelta(days=days)]
        if warehouse_id:
            conditions.append(model.warehouse_id == warehouse_id)

        status_counts = {status.value: 0 for status in InspectionStatus}
        rows = await self.db.execute(
            select(model.status, func.count(model.id)).where(*conditions).group_by(model.status)
        )
        for status, count in rows.all():
            status_counts[status] = count

        line_counts = {
            "total": 0,
            self.PENDING_RESULT: 0,
            self.ACCEPTED_RESULT: 0,
            self.DECLINED_RESULT: 0,
        }
        line_owner = getattr(self.line_model, self.line_record_fk)
        rows = await self.db.execute(
            select(self.line_model.result, func.count(self.line_model.id))
            .join(model, model.id == line_owner)
            .where(*conditions)
            .group_by(self.line_model.result)
        )
        for result, count in rows.all():
            line_counts[result] = count
            line_counts["total"] += count

        rows = await self.db.execute(
            select(model.id, model.record_number, model.status, model.priority, model.assigned_to, model.updated_at)
            .where(*conditions)
            .order_by(model.updated_at.desc())
            .limit(settings.DASHBOARD_RECENT_LIMIT)
        )
        recent = [dict(row._mapping) for row in rows.all()]

        return {
            "timeframe_days": days,
            "warehouse_id": warehouse_id,
            "total_records": sum(status_counts.values()),
            "status_counts": status_counts,
            "line_counts": line_counts,
            "recent": recent,
        }

    async def workload(self, scope: str = "active") -> Dict[str, Any]:
        """Per-assignee counts. ``active`` limits to pending, in_progress and submitted."""
        if scope not in ("active", "all"):
            raise ValidationError("scope must be 'active' or 'all'")

        model = self.record_model
        query = select(model.assigned_to, model.status, model.priority, func.count(model.id)).group_by(
            model.assigned_to, model.status, model.priority
        )
        if scope == "active":
            query = query.where(model.status.in_([status.value for status in ACTIVE_STATUSES]))

        entries: Dict[uuid.UUID, Dict[str, Any]] = {}
        for assignee, status, priority, count in (await self.db.execute(query)).all():
            entry = entries.setdefault(assignee, {
                "user_id": assignee, "user_name": None, "total": 0, "pending": 0,
                "in_progress": 0, "submitted": 0, "high": 0, "urgent": 0,
            })
            entry["total"] += count
            if status in ("pending", "in_progress", "submitted"):
                entry[status] += count
            if priority in ("high", "urgent"):
                entry[priority] += count

        if entries:
            users = await self.db.execute(
                select(User.id, User.first_name, User.last_name).where(User.id.in_(list(entries)))
            )
            for user_id, first_name, last_name in users.all():
                entries[user_id]["user_name"] = f"{first_name} {last_name}" if last_name else first_name

        assignees = sorted(entries.values(), key=lambda entry: entry["total"], reverse=True)
        return {"scope": scope, "assignees": assignees}

    async def statistics(self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> Dict[str, Any]:
        """Status and priority breakdowns plus processing time of approved records."""
        model = self.record_model
        conditions = []
        if date_from:
            conditions.append(model.created_at >= date_from)
        if date_to:
            conditions.append(model.created_at <= date_to)

        status_breakdown = {status.value: 0 for status in InspectionStatus}
        query = select(model.status, func.count(model.id)).group_by(model.status)
        if conditions:
            query = query.where(*conditions)
        for status, count in (await self.db.execute(query)).all():
            status_breakdown[status] = count

        priority_breakdown = {priority.value: 0 for priority in InspectionPriority}
        query = select(model.priority, func.count(model.id)).group_by(model.priority)
        if conditions:
            query = query.where(*conditions)
        for priority, count in (await self.db.execute(query)).all():
            priority_breakdown[priority] = count

        # Hours from creation to submission, over approved records
        query = (
            select(model.created_at, model.submitted_at)
            .where(model.status == InspectionStatus.APPROVED.value)
            .where(model.submitted_at.is_not(None))
        )
        if conditions:
            query = query.where(*conditions)
        hours = [
            (submitted_at - created_at).total_seconds() / 3600
            for created_at, submitted_at in (await self.db.execute(query)).all()
        ]

        processing_time: Dict[str, Any] = {"sample_size": len(hours)}
        if hours:
            processing_time.update(
                avg_hours=round(sum(hours) / len(hours), 2),
                min_hours=round(min(hours), 2),
                max_hours=round(max(hours), 2),
            )

        return {
            "date_from": date_from,
            "date_to": date_to,
            "total_records": sum(status_breakdown.values()),
            "status_breakdown": status_breakdown,
            "priority_breakdown": priority_breakdown,
            "processing_time": processing_time,
        }


def _notification_priority(priority: Optional[str]) -> str:
    valid = {p.value for p in NotificationPriority}
    return priority if priority in valid else NotificationPriority.MEDIUM.value
