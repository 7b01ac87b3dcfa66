"""Request/response schemas for signup and login."""
from typing import Literal

from pydantic import BaseModel, Field

from helpdesk.auth.identity import ROLE_USER


class SignupIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$", max_length=255)
    password: str = Field(..., min_length=6, max_length=256)
    role: Literal["user", "admin"] = ROLE_USER


class LoginIn(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    role: str


class SignupOut(BaseModel):
    success: bool = True
    user: UserOut


class LoginOut(BaseModel):
    success: bool = True
    token: str
    user: UserOut


class MeOut(BaseModel):
    success: bool = True
    user: UserOut
