from __future__ import annotations

import logging
from typing import List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core.exceptions import InvalidInputError
from tracker.models.department import Department

logger = logging.getLogger(__name__)


async def list_departments(session: AsyncSession) -> List[Department]:
    result = await session.exec(select(Department).order_by(Department.name.asc()))
    return list(result.all())


async def create_department(
    session: AsyncSession,
    *,
    name: str,
    description: Optional[str] = None,
) -> Department:
    normalized = (name or "").strip()
    if not normalized:
        raise InvalidInputError("Department name is required")
    existing = await session.exec(select(Department.id).where(Department.name == normalized))
    if existing.first() is not None:
        raise InvalidInputError("A department with this name already exists")

    department = Department(name=normalized, description=description)
    session.add(department)
    await session.commit()
    await session.refresh(department)
    logger.info("Department %s created: %s", department.id, department.name)
    return department
