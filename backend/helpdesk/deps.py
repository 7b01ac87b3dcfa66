"""Shared FastAPI dependencies."""
from typing import AsyncGenerator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.identity import Identity
from helpdesk.auth.jwt_handler import decode_token
from helpdesk.errors import AuthorizationFailure
from helpdesk.storage.db import Database
from helpdesk.storage.models import UserModel
from helpdesk.storage.repositories import user_get


def get_database(request: Request) -> Database:
    return request.app.state.db


async def get_db(database: Database = Depends(get_database)) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


async def get_current_user(
    authorization: str | None = Header(None, alias="Authorization"),
    session: AsyncSession = Depends(get_db),
) -> UserModel:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthorizationFailure("Missing or invalid Authorization")
    token = authorization[7:].strip()
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise AuthorizationFailure("Invalid token")
    user = await user_get(session, payload["sub"])
    if not user:
        raise AuthorizationFailure("User not found")
    return user


async def get_identity(user: UserModel = Depends(get_current_user)) -> Identity:
    """Email and role of the caller; role comes from the stored user, not the token."""
    return Identity(email=user.email, role=user.role)
