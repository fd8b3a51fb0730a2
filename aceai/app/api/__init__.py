"""API endpoints package for the study proxy."""

from aceai.app.api.course_guide import router as course_guide_router
from aceai.app.api.mock_interview import router as mock_interview_router

__all__ = [
    "course_guide_router",
    "mock_interview_router",
]
