"""Initialize database tables and seed roles, permissions and an admin user.

Usage:
    python -m scripts.init_db --admin-email admin@medistock.in --admin-password changeme
"""
import argparse
import asyncio
import logging

from medistock.database import get_db_session, init_db
from medistock.seed import seed_all



async def init(admin_email: str, admin_password: str):
    """Create all tables, then seed reference data."""
    print("Creating database tables...")
    await init_db()

    print("Seeding roles, permissions and reference data...")
    async with get_db_session() as db:
        await seed_all(db, admin_email, admin_password)
    print("Database initialized successfully!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Create tables and seed reference data")
    parser.add_argument("--admin-email", default="admin@medistock.in")
    parser.add_argument("--admin-password", default="Admin@123")
    args = parser.parse_args()
    asyncio.run(init(args.admin_email, args.admin_password))
