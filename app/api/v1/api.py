from fastapi import APIRouter
from app.api.v1.endpoints import survey_results, email_logs, course_stats

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(survey_results.router)
api_router.include_router(email_logs.router)
api_router.include_router(course_stats.router)
