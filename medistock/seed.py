"""
Reference data for a fresh database: permissions, roles, users, a warehouse
and a few products.

Used by ``scripts/init_db.py`` and by the test fixtures, so both start from
the same role and permission layout.
"""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medistock.core.security import get_password_hash
from medistock.models import (
    Permission, Product, Role, RoleLevel, RolePermission, User, UserRole, Warehouse,
)


logger = logging.getLogger(__name__)


WORKFLOW_ACTIONS = ["view", "create", "update", "submit", "approve", "manage"]

PERMISSION_ACTIONS: Dict[str, List[str]] = {
    "quality_control": WORKFLOW_ACTIONS,
    "warehouse_approval": WORKFLOW_ACTIONS,
    "invoice_receiving": ["view", "create"],
    "inventory": ["view", "create", "update"],
    "audit_logs": ["view"],
}


def _codes(resource: str, actions: Iterable[str]) -> List[str]:
    return [f"{resource}:{action}" for action in actions]


# code -> (name, level, permission codes)
ROLE_DEFINITIONS = {
    "SUPER_ADMIN": ("Super Admin", RoleLevel.SUPER_ADMIN, []),
    "QC_INSPECTOR": (
        "QC Inspector",
        RoleLevel.EXECUTIVE,
        _codes("quality_control", ["view", "create", "update", "submit"])
        + _codes("invoice_receiving", ["view", "create"])
        + ["inventory:view"],
    ),
    "QC_MANAGER": (
        "QC Manager",
        RoleLevel.MANAGER,
        _codes("quality_control", WORKFLOW_ACTIONS)
        + ["invoice_receiving:view", "audit_logs:view"],
    ),
    "WAREHOUSE_INSPECTOR": (
        "Warehouse Inspector",
        RoleLevel.EXECUTIVE,
        _codes("warehouse_approval", ["view", "create", "update", "submit"])
        + ["quality_control:view", "invoice_receiving:view", "inventory:view"],
    ),
    "WAREHOUSE_MANAGER": (
        "Warehouse Manager",
        RoleLevel.MANAGER,
        _codes("warehouse_approval", WORKFLOW_ACTIONS)
        + ["quality_control:view", "invoice_receiving:view", "audit_logs:view"]
        + _codes("inventory", ["view", "create", "update"]),
    ),
    "VIEWER": (
        "Viewer",
        RoleLevel.EXECUTIVE,
        ["quality_control:view", "warehouse_approval:view", "invoice_receiving:view", "inventory:view"],
    ),
}


async def seed_permissions(db: AsyncSession) -> Dict[str, Permission]:
    """Create missing permissions. Returns every permission keyed by code."""
    existing = {p.code: p for p in (await db.execute(select(Permission))).scalars().all()}
    for resource, actions in PERMISSION_ACTIONS.items():
        for action in actions:
            code = f"{resource}:{action}"
            if code in existing:
                continue
            permission = Permission(
                name=f"{action.title()} {resource.replace('_', ' ')}",
                code=code,
                resource=resource,
                action=action,
            )
            db.add(permission)
            existing[code] = permission
    await db.flush()
    return existing


async def seed_roles(db: AsyncSession, permissions: Dict[str, Permission]) -> Dict[str, Role]:
    """Create missing roles with their permission sets. Returns roles keyed by code."""
    roles = {r.code: r for r in (await db.execute(select(Role))).scalars().all()}
    for code, (name, level, permission_codes) in ROLE_DEFINITIONS.items():
        if code in roles:
            continue
        role = Role(name=name, code=code, level=level.name, is_system=True)
        db.add(role)
        await db.flush()
        for permission_code in permission_codes:
            db.add(RolePermission(role_id=role.id, permission_id=permissions[permission_code].id))
        roles[code] = role
    await db.flush()
    return roles


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    roles: Iterable[Role],
    last_name: Optional[str] = None,
    department: Optional[str] = None,
    is_active: bool = True,
) -> User:
    user = User(
        email=email.lower(),
        password_hash=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        department=department,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    for role in roles:
        db.add(UserRole(user_id=user.id, role_id=role.id))
    await db.flush()
    return user


async def seed_reference_data(db: AsyncSession) -> Dict[str, object]:
    """Default warehouse plus a handful of products."""
    warehouse = await db.scalar(select(Warehouse).where(Warehouse.code == "WH-MAIN"))
    if warehouse is None:
        warehouse = Warehouse(code="WH-MAIN", name="Main Warehouse", is_default=True)
        db.add(warehouse)

    products = {}
    for code, name, unit in [
        ("PARA-500", "Paracetamol 500mg Tablets", "strip"),
        ("AMOX-250", "Amoxicillin 250mg Capsules", "strip"),
        ("SYR-5ML", "Disposable Syringe 5ml", "pcs"),
        ("GLV-NTR-M", "Nitrile Gloves Medium", "box"),
    ]:
        product = await db.scalar(select(Product).where(Product.code == code))
        if product is None:
            product = Product(code=code, name=name, unit=unit)
            db.add(product)
        products[code] = product

    await db.flush()
    return {"warehouse": warehouse, "products": products}


async def seed_all(db: AsyncSession, admin_email: str, admin_password: str) -> None:
    permissions = await seed_permissions(db)
    roles = await seed_roles(db, permissions)
    await seed_reference_data(db)

    admin = await db.scalar(select(User).where(User.email == admin_email.lower()))
    if admin is None:
        await create_user(db, admin_email, admin_password, "System", [roles["SUPER_ADMIN"]], last_name="Admin")
        logger.info("Created admin user %s", admin_email)
    logger.info("Seeded %d permissions and %d roles", len(permissions), len(roles))
