"""Main API router that aggregates all route modules."""

from fastapi import APIRouter

from studyportal.api import auth, health, schedules, tasks

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# Portal data
api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
api_router.include_router(tasks.submissions_router, prefix="/submissions", tags=["tasks"])
api_router.include_router(schedules.router, prefix="/schedules", tags=["schedules"])
api_router.include_router(
    schedules.consultation_router, prefix="/consultation", tags=["schedules"]
)
