"""
Create all tables and seed the permission catalog.

Run once per deployment (safe to re-run):
  python -m app.db.init_db
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

# Import all models so Base.metadata knows every table
from app.auth.models import RefreshToken, User  # noqa: F401
import app.core.models  # noqa: F401
from app.db.seed_permissions import seed_permission_catalog
from app.db.session import AsyncSessionLocal, Base, engine

logger = logging.getLogger(__name__)


async def create_tables(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(create: bool = True) -> None:
    if create:
        await create_tables()
    async with AsyncSessionLocal() as db:
        inserted = await seed_permission_catalog(db)
        await db.commit()
    logger.info("Database initialised (%d new permission keys)", inserted)


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    await init_db()


if __name__ == "__main__":
    asyncio.run(main())
