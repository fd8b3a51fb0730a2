"""Per-module multiple-choice quiz state.

A run moves: not started -> started (question 0) -> [select, reveal, next]
repeated -> finished (``current_index == total``). The score increases at
most once per question, on the first reveal made with a correct selection.
"""

from dataclasses import dataclass, field
from typing import Optional

from aceai.app.services.models import CourseGuide, QuizQuestion


@dataclass
class QuizRunState:
    """Quiz progress for one module.

    Attributes:
        questions: Questions of the module, in order
        started: Whether :meth:`start` has been called
        current_index: Index of the question shown; equals total once finished
        selected_option_index: Pending selection for the current question
        revealed: Whether the current answer has been revealed
        score: Number of questions answered correctly
    """

    questions: list[QuizQuestion] = field(default_factory=list)
    started: bool = False
    current_index: int = 0
    selected_option_index: Optional[int] = None
    revealed: bool = False
    score: int = 0
    _scored_current: bool = field(default=False, repr=False, init=False)

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def is_finished(self) -> bool:
        return self.started and self.current_index >= self.total

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if not self.started or self.is_finished:
            return None
        return self.questions[self.current_index]

    @property
    def progress_percent(self) -> int:
        if not self.total:
            return 0
        return min(round(self.current_index / self.total * 100), 100)

    def start(self) -> None:
        self.started = True
        self.current_index = 0
        self._reset_question()

    def restart(self) -> None:
        """Start over with a zero score."""
        self.score = 0
        self.start()

    def select_option(self, option_index: int) -> None:
        """Record the pending selection; ignored once the answer is revealed."""
        if self.current_question is None or self.revealed:
            return
        self.selected_option_index = option_index

    def reveal_answer(self) -> bool:
        """Reveal the answer for the current question.

        Needs a selection; callers should not offer reveal without one.

        Returns:
            True if the selection is correct.
        """
        question = self.current_question
        if question is None or self.selected_option_index is None:
            return False

        self.revealed = True
        correct = question.is_correct(self.selected_option_index)
        if correct and not self._scored_current:
            self.score += 1
            self._scored_current = True
        return correct

    def next_question(self) -> None:
        """Advance; after the last question the run is finished, not wrapped."""
        if not self.started or self.is_finished:
            return
        self.current_index = min(self.current_index + 1, self.total)
        self._reset_question()

    def _reset_question(self) -> None:
        self.selected_option_index = None
        self.revealed = False
        self._scored_current = False


class QuizSession:
    """Quiz runs for every module of a course, keyed by module index."""

    def __init__(self, course: CourseGuide) -> None:
        self.course = course
        self._runs: dict[int, QuizRunState] = {}

    def run(self, module_index: int) -> QuizRunState:
        """Return the run for a module, creating it on first access.

        Raises:
            IndexError: If the course has no such module.
        """
        if not 0 <= module_index < len(self.course.modules):
            raise IndexError(f"module index {module_index} out of range")
        if module_index not in self._runs:
            module = self.course.modules[module_index]
            self._runs[module_index] = QuizRunState(questions=list(module.quiz_questions))
        return self._runs[module_index]

    def start(self, module_index: int) -> QuizRunState:
        run = self.run(module_index)
        run.start()
        return run

    @property
    def total_score(self) -> int:
        return sum(run.score for run in self._runs.values())
