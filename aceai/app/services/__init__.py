"""Services package for the study companion.

This package provides:
- The incremental SSE parser for the course-guide stream
- The persisted rate-limit store and its badge
- The study backend client
- Course, quiz and mock-interview session state
"""

from aceai.app.services.models import (
    CourseGuide,
    ErrorEvent,
    IdealAnswer,
    InterviewSessionData,
    Module,
    ProgressEvent,
    QuizQuestion,
    ResultEvent,
    ReviewResult,
    StreamEvent,
)
from aceai.app.services.sse_parser import SSEStreamParser, iter_events
from aceai.app.services.rate_limit_store import (
    RateLimitSnapshot,
    RateLimitStore,
    RateLimitWindow,
    get_rate_limit_store,
    reset_rate_limit_store,
)
from aceai.app.services.rate_limit_badge import RateLimitBadge
from aceai.app.services.study_client import StudyApiClient
from aceai.app.services.course_session import CourseSessionController, SessionRepository
from aceai.app.services.quiz_state import QuizRunState, QuizSession
from aceai.app.services.interview_session import InterviewSession, KeyedSlots

__all__ = [
    "CourseGuide",
    "ErrorEvent",
    "IdealAnswer",
    "InterviewSessionData",
    "Module",
    "ProgressEvent",
    "QuizQuestion",
    "ResultEvent",
    "ReviewResult",
    "StreamEvent",
    "SSEStreamParser",
    "iter_events",
    "RateLimitSnapshot",
    "RateLimitStore",
    "RateLimitWindow",
    "get_rate_limit_store",
    "reset_rate_limit_store",
    "RateLimitBadge",
    "StudyApiClient",
    "CourseSessionController",
    "SessionRepository",
    "QuizRunState",
    "QuizSession",
    "InterviewSession",
    "KeyedSlots",
]
