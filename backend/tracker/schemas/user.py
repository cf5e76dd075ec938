from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SubjectRead(BaseModel):
    id: int
    department_id: Optional[int] = None
    permissions: List[str]


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    job_title: Optional[str] = None
    department_id: Optional[int] = Field(default=None, gt=0)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    job_title: Optional[str] = None
    department_id: Optional[int] = Field(default=None, gt=0)


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str] = None
    job_title: Optional[str] = None
    department_id: Optional[int] = None
    created_at: datetime


class PermissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None


class PermissionAssignment(BaseModel):
    permission_ids: List[int]


class PermissionAssignmentRead(BaseModel):
    permission_ids: List[int]
    permissions: List[str]
