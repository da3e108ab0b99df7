from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine,async_sessionmaker,AsyncSession
from storefront.db.utils import normalize_database_url


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    return create_async_engine(normalize_database_url(database_url), echo=False, **kwargs)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine,class_=AsyncSession,expire_on_commit=False)
