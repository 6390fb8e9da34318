"""
Seed School and Administrators

Creates a school, the platform super admin and the school's admin so the
rest of the staff can be invited through the API. Run once per environment.

Credentials come from the environment:
    SEED_SCHOOL_NAME, SEED_SUPER_ADMIN_EMAIL, SEED_SUPER_ADMIN_PASSWORD,
    SEED_SCHOOL_ADMIN_EMAIL, SEED_SCHOOL_ADMIN_PASSWORD

Usage:
    python scripts/seed_school.py
"""

import asyncio
import os

import permission_slips.models  # noqa: F401 - needed for relationship resolution
from permission_slips.core.database import async_session_maker, engine
from permission_slips.core.security import hash_password
from permission_slips.modules.schools.repository import SchoolRepository
from permission_slips.modules.users.models import UserRole
from permission_slips.modules.users.repository import UserRepository


async def _ensure_user(db, *, email, password, first_name, last_name, role, school_id):
    existing = await UserRepository.get_by_email(db, email)
    if existing:
        print(f"{role.value} already exists: {email} (ID: {existing.id})")
        return existing

    user = await UserRepository.create(
        db,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        school_id=school_id,
    )
    print(f"{role.value} created: {email} (ID: {user.id})")
    return user


async def seed() -> None:
    """Create the school and its administrators if they don't exist."""
    school_name = os.environ.get("SEED_SCHOOL_NAME", "Demo Elementary")
    super_email = os.environ["SEED_SUPER_ADMIN_EMAIL"]
    super_password = os.environ["SEED_SUPER_ADMIN_PASSWORD"]
    admin_email = os.environ["SEED_SCHOOL_ADMIN_EMAIL"]
    admin_password = os.environ["SEED_SCHOOL_ADMIN_PASSWORD"]

    async with async_session_maker() as db:
        try:
            school, created = await SchoolRepository.get_or_create(db, school_name)
            print(f"School {'created' if created else 'already exists'}: {school.name} (ID: {school.id})")

            await _ensure_user(
                db,
                email=super_email,
                password=super_password,
                first_name="Platform",
                last_name="Admin",
                role=UserRole.SUPER_ADMIN,
                school_id=None,
            )
            await _ensure_user(
                db,
                email=admin_email,
                password=admin_password,
                first_name="School",
                last_name="Admin",
                role=UserRole.ADMIN,
                school_id=school.id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
