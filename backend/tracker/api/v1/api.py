from fastapi import APIRouter

from tracker.api.v1.endpoints import departments, notifications, tasks, timesheets, users

api_router = APIRouter()
api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(departments.router, prefix="/departments", tags=["departments"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(timesheets.router, prefix="/timesheets", tags=["timesheets"])
