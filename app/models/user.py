# app/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Customer or admin account mirrored from the access token.

    Identity:
      - id: the JWT "sub" claim (UUID)

    Role:
      - "user" | "admin"
      - anonymous shoppers have no row and no token.

    Passwords are not stored here; the login service issues the JWT and
    this table only keeps identity, display name and application role.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="JWT subject",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email claim from the access token",
    )

    name: str = Field(
        max_length=50,
        description="Display name; first part of email by default",
    )

    role: str = Field(
        default="user",
        index=True,
        description="Application role: user | admin",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
