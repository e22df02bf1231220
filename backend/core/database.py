
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from core.config import settings
from core.logger import logger

# Registers the tables on SQLModel.metadata.
import backend.models  # noqa: F401


def create_engine(url: str = settings.DATABASE_URL, **kwargs) -> AsyncEngine:
    engine = create_async_engine(url, echo=False, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = create_engine()
async_session = create_session_factory(engine)


async def init_db(db_engine: AsyncEngine = engine):
    async with db_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info(f"Database initialised at {db_engine.url.render_as_string(hide_password=True)}")
