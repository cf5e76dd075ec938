from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    # Users without an address are skipped by the email channel
    email: Optional[str] = Field(
        default=None,
        sa_column=Column(String(320), nullable=True, unique=True, index=True),
    )
    job_title: Optional[str] = Field(default=None)
    department_id: Optional[int] = Field(default=None, foreign_key="departments.id", nullable=True, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Permission(SQLModel, table=True):
    __tablename__ = "permissions"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(64), nullable=False, unique=True))
    description: Optional[str] = Field(default=None)


class UserPermission(SQLModel, table=True):
    __tablename__ = "user_permissions"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    permission_id: int = Field(foreign_key="permissions.id", primary_key=True)
