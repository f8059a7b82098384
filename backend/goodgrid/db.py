from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime, timezone as dt_tz
from typing import AsyncGenerator, AsyncIterator
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from goodgrid.config import settings
from goodgrid.errors import TransactionFailed

class Base(DeclarativeBase):
    pass

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONDoc = JSON().with_variant(JSONB(), "postgresql")
NullableJSONDoc = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

engine = create_async_engine(settings.database_url, future=True, echo=False)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

def utcnow() -> datetime:
    return datetime.now(dt_tz.utc)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session

@asynccontextmanager
async def transaction(session_factory: async_sessionmaker[AsyncSession] = SessionLocal) -> AsyncIterator[AsyncSession]:
    """
    One unit of work: commits on clean exit, rolls back on any exception.
    Storage errors surface as TransactionFailed; domain errors pass through untouched.
    """
    async with session_factory() as session:
        try:
            async with session.begin():
                yield session
        except SQLAlchemyError as e:
            raise TransactionFailed(str(e)) from e
