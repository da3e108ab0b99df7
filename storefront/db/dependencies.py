from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession


async def get_session(request: Request) -> AsyncGenerator[AsyncSession,None]:
    session_maker = request.app.state.session_maker
    async with session_maker() as session:
        yield session


def get_redis(request: Request):
    return request.app.state.redis


def get_ledger(request: Request):
    return request.app.state.ledger


def get_gateway(request: Request):
    return request.app.state.gateway


def get_dispatcher(request: Request):
    return request.app.state.notifications
