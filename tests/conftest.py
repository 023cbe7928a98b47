import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from datetime import date, timedelta
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload
from sqlalchemy.pool import StaticPool

from medistock import models  # noqa: F401
from medistock.api.deps import get_user_permissions
from medistock.core.permissions import PermissionChecker
from medistock.core.security import create_access_token
from medistock.database import Base, enable_sqlite_savepoints, get_db
from medistock.main import app
from medistock.models import User, UserRole
from medistock.schemas.invoice_receiving import InvoiceReceivingCreate
from medistock.schemas.quality_control import QualityControlCreate
from medistock.seed import create_user, seed_permissions, seed_reference_data, seed_roles
from medistock.services.invoice_receiving_service import InvoiceReceivingService


PASSWORD = "Passw0rd!"

# fixture key -> (email, first name, role codes)
USERS = {
    "admin": ("admin@medistock.in", "Asha", ["SUPER_ADMIN"]),
    "qc_inspector": ("qc.inspector@medistock.in", "Ravi", ["QC_INSPECTOR"]),
    "qc_inspector_2": ("qc.inspector2@medistock.in", "Meena", ["QC_INSPECTOR"]),
    "qc_manager": ("qc.manager@medistock.in", "Farah", ["QC_MANAGER"]),
    "wh_inspector": ("wh.inspector@medistock.in", "Karan", ["WAREHOUSE_INSPECTOR"]),
    "wh_manager": ("wh.manager@medistock.in", "Leela", ["WAREHOUSE_MANAGER"]),
    "viewer": ("viewer@medistock.in", "Vikram", ["VIEWER"]),
}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def seeded(session_factory):
    """Roles, users, a warehouse and products. Holds ids only."""
    async with session_factory() as session:
        permissions = await seed_permissions(session)
        roles = await seed_roles(session, permissions)
        reference = await seed_reference_data(session)

        users = {}
        for key, (email, first_name, role_codes) in USERS.items():
            user = await create_user(
                session, email, PASSWORD, first_name, [roles[code] for code in role_codes],
                last_name="Tester",
            )
            users[key] = user.id
        await session.commit()

        return SimpleNamespace(
            users=users,
            warehouse_id=reference["warehouse"].id,
            products={code: product.id for code, product in reference["products"].items()},
        )


@pytest.fixture
async def db(session_factory, seeded):
    async with session_factory() as session:
        yield session


async def build_checker(session: AsyncSession, user_id) -> PermissionChecker:
    result = await session.execute(
        select(User)
        .options(selectinload(User.user_roles).selectinload(UserRole.role))
        .where(User.id == user_id)
    )
    user = result.scalar_one()
    return PermissionChecker(user, await get_user_permissions(user, session))


@pytest.fixture
def checker_for(db, seeded):
    """Build the authorization context of a seeded user on the test session."""
    async def _checker_for(key: str) -> PermissionChecker:
        return await build_checker(db, seeded.users[key])
    return _checker_for


@pytest.fixture
def make_invoice(db, seeded, checker_for):
    """Receive an invoice through the service. ``lines`` maps product code to quantity."""
    counter = {"n": 0}

    async def _make_invoice(lines: Optional[Dict[str, int]] = None, batch_number: Optional[str] = None):
        counter["n"] += 1
        lines = lines or {"PARA-500": 10, "SYR-5ML": 5}
        data = InvoiceReceivingCreate(
            invoice_number=f"INV-TEST-{counter['n']:04d}",
            invoice_date=date.today(),
            supplier_name="Sun Pharma Distributors",
            warehouse_id=seeded.warehouse_id,
            lines=[
                {
                    "product_id": seeded.products[code],
                    "batch_number": batch_number or f"B-{code}-{counter['n']:04d}",
                    "expiry_date": date.today() + timedelta(days=365),
                    "received_qty": quantity,
                }
                for code, quantity in lines.items()
            ],
        )
        invoice = await InvoiceReceivingService(db).create(data, await checker_for("admin"))
        return invoice.id

    return _make_invoice


@pytest.fixture
def make_qc(db, seeded, checker_for, make_invoice):
    """Raise a QC record for a fresh invoice, assigned to the first QC inspector."""
    from medistock.services.quality_control_service import QualityControlService

    async def _make_qc(
        lines: Optional[Dict[str, int]] = None,
        assignee: str = "qc_inspector",
        priority: str = "medium",
        batch_number: Optional[str] = None,
    ):
        invoice_id = await make_invoice(lines, batch_number)
        data = QualityControlCreate(
            invoice_receiving_id=invoice_id,
            assigned_to=seeded.users[assignee],
            priority=priority,
        )
        return await QualityControlService(db).create(data, await checker_for("qc_manager"))

    return _make_qc


def line_for(record, product_id):
    return next(line for line in record.lines if line.product_id == product_id)


@pytest.fixture
async def client(session_factory, seeded):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seeded):
    def _auth_headers(key: str) -> Dict[str, str]:
        token = create_access_token(subject=seeded.users[key])
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


def item_updates(statuses: List[str], start: int = 1) -> List[dict]:
    """Item detail payload marking consecutive units with the given statuses."""
    return [{"item_id": str(start + offset), "status": status} for offset, status in enumerate(statuses)]
