import asyncio
from loguru import logger
import idp.database.orms  # noqa
from idp.database import Base, engine, get_session
from idp.database.seed import seed_demo_data


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session() as session:
        await seed_demo_data(session)
        await session.commit()
    logger.success("Seeded demo clients and users")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
