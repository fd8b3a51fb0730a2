"""Mock-interview flow: question navigation plus keyed review requests.

Review and ideal-answer requests are keyed by question (``short-<index>``).
Each key has its own loading, error and result slot, so requests for
different questions can be in flight together and finish in any order.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from aceai.app.core.logging import bind_log_context, get_logger
from aceai.app.exceptions import AceAIException, InputValidationError
from aceai.app.services.course_session import SessionRepository
from aceai.app.services.models import IdealAnswer, InterviewSessionData, ReviewResult
from aceai.app.services.study_client import StudyApiClient

logger = get_logger(__name__)

T = TypeVar("T")

UNKNOWN_ERROR_MESSAGE = "Unknown error"


def answer_key(index: int) -> str:
    return f"short-{index}"


@dataclass
class KeyedSlots(Generic[T]):
    """Loading, error and result slots per question key.

    A failure only sets the error slot; an earlier result for the same key
    stays until a new success replaces it.
    """

    loading: dict[str, bool] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    results: dict[str, T] = field(default_factory=dict)

    def begin(self, key: str) -> None:
        self.loading[key] = True
        self.errors.pop(key, None)

    def succeed(self, key: str, value: T) -> None:
        self.results[key] = value

    def fail(self, key: str, message: str) -> None:
        self.errors[key] = message

    def end(self, key: str) -> None:
        self.loading[key] = False

    def is_loading(self, key: str) -> bool:
        return self.loading.get(key, False)

    def error(self, key: str) -> Optional[str]:
        return self.errors.get(key)

    def result(self, key: str) -> Optional[T]:
        return self.results.get(key)


class InterviewSession:
    """State of one mock-interview session."""

    def __init__(self, data: InterviewSessionData, client: StudyApiClient) -> None:
        self.data = data
        self.client = client
        self.current_index = 0
        self.completed = 0
        self.answers: dict[str, str] = {}
        self.reviews: KeyedSlots[ReviewResult] = KeyedSlots()
        self.ideals: KeyedSlots[IdealAnswer] = KeyedSlots()

    @classmethod
    def from_repository(
        cls, repository: SessionRepository, client: StudyApiClient
    ) -> Optional["InterviewSession"]:
        """Restore the session saved by the generation flow, if any."""
        data = repository.load_interview()
        if data is None:
            return None
        return cls(data, client)

    @property
    def job_title(self) -> str:
        return self.data.job_title

    @property
    def questions(self) -> list[str]:
        return self.data.questions

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def is_finished(self) -> bool:
        return self.current_index >= self.total

    @property
    def current_question(self) -> Optional[str]:
        if self.is_finished:
            return None
        return self.questions[self.current_index]

    @property
    def current_key(self) -> str:
        return answer_key(self.current_index)

    @property
    def progress_percent(self) -> int:
        if not self.total:
            return 0
        return min(round(self.current_index / self.total * 100), 100)

    def next_question(self) -> None:
        self.current_index = min(self.current_index + 1, self.total)
        self.completed = min(self.completed + 1, self.total)

    def prev_question(self) -> None:
        self.current_index = max(self.current_index - 1, 0)

    def restart(self) -> None:
        self.current_index = 0
        self.completed = 0

    def set_answer(self, key: str, text: str) -> None:
        self.answers[key] = text

    async def submit_review(self, key: str, question: str) -> Optional[ReviewResult]:
        """Send the stored answer for ``key`` to be graded.

        Returns:
            The review on success, None otherwise (see ``reviews.error(key)``).
        """
        answer = self.answers.get(key, "")
        if not answer.strip():
            self.reviews.fail(key, InputValidationError("answer").message)
            return None

        return await self._run_keyed(
            self.reviews,
            key,
            lambda: self.client.review_answer(question, answer, self.job_title),
        )

    async def request_ideal_answer(self, key: str, question: str) -> Optional[IdealAnswer]:
        """Fetch a model answer for ``question``."""
        return await self._run_keyed(
            self.ideals,
            key,
            lambda: self.client.ideal_answer(question, self.job_title),
        )

    async def _run_keyed(
        self,
        slots: KeyedSlots[T],
        key: str,
        call: Callable[[], Awaitable[T]],
    ) -> Optional[T]:
        slots.begin(key)
        with bind_log_context(question_key=key):
            try:
                result = await call()
            except AceAIException as e:
                logger.warning(f"Request failed: {e.message}")
                slots.fail(key, e.message)
                return None
            except Exception as e:
                logger.exception(f"Unexpected request failure: {e}")
                slots.fail(key, str(e) or UNKNOWN_ERROR_MESSAGE)
                return None
            finally:
                slots.end(key)

        slots.succeed(key, result)
        return result
