# portal/seed.py
# Creates the initial ADMIN account so the portal can be signed into
# Run with: python -m portal.seed
# RELEVANT FILES: auth.py, database.py, models.py

import asyncio
import logging
import os

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import hash_phone
from .database import close_connections, create_tables, get_session_factory
from .models import User
from .schemas import Role
from .utils.phone import is_valid_phone, normalize_phone

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def seed_admin(session: AsyncSession, name: str, email: str, phone: str) -> bool:
    """
    Insert an ADMIN user unless the email is already registered.
    Returns True when a user was created.
    """
    email = email.strip().lower()
    existing = await session.execute(select(User.id).where(func.lower(User.email) == email))
    if existing.first() is not None:
        logger.info(f"Admin {email} already exists, nothing to do")
        return False

    session.add(
        User(
            name=name,
            email=email,
            phone=normalize_phone(phone),
            phone_hash=hash_phone(phone),
            role=Role.ADMIN.value,
            active=True,
        )
    )
    await session.commit()
    logger.info(f"Seeded admin {email}")
    return True


async def main():
    email = os.environ.get("SEED_ADMIN_EMAIL")
    phone = os.environ.get("SEED_ADMIN_PHONE")
    name = os.environ.get("SEED_ADMIN_NAME", "System Admin")

    if not email or not is_valid_phone(phone):
        raise SystemExit("SEED_ADMIN_EMAIL and a 10-digit SEED_ADMIN_PHONE are required")

    try:
        await create_tables()
        async with get_session_factory()() as session:
            await seed_admin(session, name, email, phone)
    finally:
        await close_connections()


if __name__ == "__main__":
    asyncio.run(main())
