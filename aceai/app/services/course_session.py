"""Course generation flow and persistence of the generated course.

The controller drives one streamed generation request: progress messages go
to an ordered log, the ``result`` event becomes the stored course and moves
the view to the quiz, and an ``error`` event ends the stream with a message.
Every failure ends up in :attr:`CourseSessionController.error`; none escapes.
"""

import asyncio
import json
from contextlib import aclosing
from typing import Literal, Optional

from pydantic import ValidationError

from aceai.app.core.config import settings
from aceai.app.core.logging import get_logger
from aceai.app.core.storage import StorageBackend, get_storage
from aceai.app.exceptions import AceAIException, InputValidationError
from aceai.app.services.models import (
    CourseGuide,
    ErrorEvent,
    InterviewSessionData,
    ProgressEvent,
    ResultEvent,
)
from aceai.app.services.study_client import StudyApiClient

logger = get_logger(__name__)

View = Literal["prompt", "quiz"]

STREAM_ENDED_MESSAGE = "Stream ended before a course guide was received"
UNKNOWN_ERROR_MESSAGE = "Unknown error"


class SessionRepository:
    """Reads and writes the course blob and the interview session blob.

    Persistence is best-effort: storage errors are logged, and unreadable
    blobs are treated as missing.
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        course_key: Optional[str] = None,
        session_key: Optional[str] = None,
    ) -> None:
        self._storage = storage
        self.course_key = course_key or settings.course_storage_key
        self.session_key = session_key or settings.session_storage_key

    def _get_storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    def _write(self, key: str, value: str) -> bool:
        try:
            self._get_storage().set_item(key, value)
        except OSError as e:
            logger.warning(f"Failed to persist {key}: {e}")
            return False
        return True

    def _read(self, key: str) -> Optional[str]:
        try:
            return self._get_storage().get_item(key)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read {key}: {e}")
            return None

    def save_course(self, course: CourseGuide) -> bool:
        return self._write(self.course_key, course.to_json())

    def load_course(self) -> Optional[CourseGuide]:
        raw = self._read(self.course_key)
        if not raw:
            return None
        try:
            return CourseGuide.model_validate_json(raw)
        except ValidationError:
            logger.debug("Stored course is unreadable, ignoring it")
            return None

    def save_interview(self, session: InterviewSessionData) -> bool:
        return self._write(self.session_key, session.to_json())

    def load_interview(self) -> Optional[InterviewSessionData]:
        """Load the interview questions.

        Prefers the dedicated session blob; otherwise derives the questions
        from the stored course's mock-interview questions.
        """
        raw = self._read(self.session_key) or self._read(self.course_key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None

        questions = data.get("questions")
        if questions is None:
            questions = data.get("mockInterviewQuestions") or []
        try:
            return InterviewSessionData(
                job_title=data.get("jobTitle") or "", questions=questions
            )
        except ValidationError:
            return None


class CourseSessionController:
    """Owns the state of the course generation view.

    Attributes:
        loading: True while a generation stream is being read
        error: Message for the last failure, or None
        progress: Every progress message received, in order
        course: The generated course once the result arrives
        view: ``"prompt"`` until a course is generated, then ``"quiz"``
    """

    def __init__(
        self,
        client: StudyApiClient,
        repository: Optional[SessionRepository] = None,
        display_limit: Optional[int] = None,
        min_prompt_length: Optional[int] = None,
    ) -> None:
        self.client = client
        self.repository = repository or SessionRepository()
        self.display_limit = display_limit or settings.progress_display_limit
        self.min_prompt_length = min_prompt_length or settings.min_prompt_length

        self.loading = False
        self.error: Optional[str] = None
        self.progress: list[str] = []
        self.course: Optional[CourseGuide] = None
        self.view: View = "prompt"
        self._abort: Optional[asyncio.Event] = None

    @property
    def visible_progress(self) -> list[str]:
        """The most recent progress messages, oldest first."""
        return self.progress[-self.display_limit:]

    def can_submit(self, prompt: str) -> bool:
        return len(prompt.strip()) >= self.min_prompt_length and not self.loading

    def validate_prompt(self, prompt: str) -> str:
        """Return the trimmed prompt.

        Raises:
            InputValidationError: If the prompt is too short.
        """
        prompt = prompt.strip()
        if not prompt:
            raise InputValidationError("prompt")
        if len(prompt) < self.min_prompt_length:
            raise InputValidationError(
                "prompt",
                f"prompt must be at least {self.min_prompt_length} characters",
            )
        return prompt

    async def generate(self, prompt: str) -> Optional[CourseGuide]:
        """Stream a course guide for ``prompt``.

        Returns:
            The course on success, None otherwise (see :attr:`error`).
        """
        if self.loading:
            logger.debug("Generation already in progress, ignoring request")
            return None

        try:
            prompt = self.validate_prompt(prompt)
        except InputValidationError as e:
            self.error = e.message
            return None

        self.loading = True
        self.error = None
        self.progress = []
        self._abort = abort = asyncio.Event()

        try:
            async with aclosing(
                self.client.stream_course_guide(prompt, abort=abort)
            ) as events:
                async for event in events:
                    if isinstance(event, ProgressEvent):
                        self.progress.append(event.text)
                    elif isinstance(event, ResultEvent):
                        return self._finish(event.payload)
                    elif isinstance(event, ErrorEvent):
                        logger.warning(f"Generation failed upstream: {event.message}")
                        self.error = event.message
                        return None

            if abort.is_set():
                logger.info("Generation aborted")
            else:
                self.error = STREAM_ENDED_MESSAGE
            return None
        except AceAIException as e:
            self.error = e.message
            return None
        except Exception as e:
            logger.exception(f"Generation failed: {e}")
            self.error = str(e) or UNKNOWN_ERROR_MESSAGE
            return None
        finally:
            self.loading = False
            self._abort = None

    def _finish(self, course: CourseGuide) -> CourseGuide:
        self.course = course
        self.repository.save_course(course)
        self.view = "quiz"
        logger.info(
            f"Course generated: {course.job_title} "
            f"({len(course.modules)} modules, {len(self.progress)} progress messages)"
        )
        return course

    def abort(self) -> None:
        """Abandon the in-flight generation stream, if any."""
        if self._abort is not None:
            self._abort.set()

    def reset(self) -> None:
        self.error = None
        self.progress = []
