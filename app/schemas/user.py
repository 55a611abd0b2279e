# app/schemas/user.py
import uuid
from datetime import datetime
from typing import Literal

from sqlmodel import SQLModel

# App-level roles. Anonymous shoppers have no token, so no role.
Role = Literal["user", "admin"]


class UserRead(SQLModel):
    """Response schema returned to clients."""

    id: uuid.UUID
    email: str
    name: str
    role: Role
    created_at: datetime


class TokenCheck(SQLModel):
    valid: bool
    role: Role | None = None
