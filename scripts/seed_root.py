"""
Seed script creating the first Root account.

Every other account is created by approving registration applications, which
requires a user holding UA_A; this script provides the first one.

Usage:
    ROOT_EMAIL=root@example.com ROOT_PASSWORD=... python -m scripts.seed_root
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db, init_db
from app.features.auth.passwords import hash_password
from app.features.permissions.roles import roles
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def seed_root(db: AsyncSession, email: str, username: str, password: str) -> User:
    """Create the Root user, or return it untouched if the email exists."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is not None:
        log.info(f"User '{email}' already exists with role {roles.get(user.role_id).name}, skipping")
        return user

    root_role = roles.by_name("Root")
    user = User(
        username=username,
        email=email,
        hashed_password=hash_password(password),
        role_id=root_role.id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    log.info(f"Created root user '{email}' with id {user.id}")
    return user


async def main():
    """Main function to seed the root account."""
    if not config.ROOT_EMAIL or not config.ROOT_PASSWORD:
        raise SystemExit("ROOT_EMAIL and ROOT_PASSWORD must be set")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            await seed_root(db, config.ROOT_EMAIL, config.ROOT_USERNAME, config.ROOT_PASSWORD)
        except Exception as e:
            log.error(f"Error seeding root user: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
