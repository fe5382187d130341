from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine as sa_create_async_engine


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine.  The caller owns it and must dispose it."""
    return sa_create_async_engine(database_url, echo=echo)
