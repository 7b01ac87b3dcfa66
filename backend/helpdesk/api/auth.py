"""Auth API: signup, login -> JWT, current user."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.identity import ROLE_ADMIN
from helpdesk.auth.jwt_handler import create_token
from helpdesk.auth.passwords import hash_password, verify_password
from helpdesk.config import get_settings
from helpdesk.deps import get_current_user, get_db
from helpdesk.errors import AuthorizationFailure, Conflict, PermissionDenied
from helpdesk.schemas.auth import LoginIn, LoginOut, MeOut, SignupIn, SignupOut, UserOut
from helpdesk.storage.models import UserModel
from helpdesk.storage.repositories import user_create, user_get_by_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _user_out(u: UserModel) -> UserOut:
    return UserOut(id=u.id, name=u.name, email=u.email, role=u.role)


@router.post("/signup", response_model=SignupOut, status_code=201)
async def signup(body: SignupIn, session: AsyncSession = Depends(get_db)):
    if body.role == ROLE_ADMIN and not get_settings().admin_signup_enabled:
        raise PermissionDenied("Admin signup is disabled")
    email = body.email.strip()
    if await user_get_by_email(session, email):
        raise Conflict("User already exists")
    try:
        user = await user_create(
            session,
            name=body.name.strip(),
            email=email,
            password_hash=hash_password(body.password),
            role=body.role,
        )
        await session.commit()
    except IntegrityError as e:
        # another signup for the same email won the race past the lookup above
        raise Conflict("User already exists") from e
    logger.info("Registered %s user %s", user.role, user.email)
    return SignupOut(user=_user_out(user))


@router.post("/login", response_model=LoginOut)
async def login(body: LoginIn, session: AsyncSession = Depends(get_db)):
    user = await user_get_by_email(session, body.email.strip())
    if not user or not verify_password(body.password, user.password_hash):
        raise AuthorizationFailure("Invalid email or password")
    return LoginOut(token=create_token(user.id, user.role), user=_user_out(user))


@router.get("/me", response_model=MeOut)
async def me(user: UserModel = Depends(get_current_user)):
    return MeOut(user=_user_out(user))
