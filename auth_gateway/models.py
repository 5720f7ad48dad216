# auth_gateway/models.py
from typing import Optional, List
from sqlmodel import SQLModel, Field, Column, JSON
from datetime import datetime, timezone
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(SQLModel, table=True):
    __tablename__ = "roles"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=50, unique=True, index=True)
    description: Optional[str] = Field(max_length=255, default=None)
    permissions: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow)


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"
    # Autoincrement id keeps assignment order
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    role_id: int = Field(foreign_key="roles.id")
    assigned_at: datetime = Field(default_factory=_utcnow)


class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    password: str = Field(max_length=255)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    middle_name: Optional[str] = Field(max_length=100, default=None)
    contact_number: Optional[str] = Field(max_length=20, default=None, index=True)
    address: Optional[str] = Field(max_length=255, default=None)
    status: str = Field(max_length=20, default="PENDING")
    otp_enabled: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
