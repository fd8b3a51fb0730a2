"""Tests for per-module quiz state."""

import pytest

from aceai.app.services.models import CourseGuide, Module, QuizQuestion
from aceai.app.services.quiz_state import QuizRunState, QuizSession


def make_question(correct: int = 1, text: str = "Q") -> QuizQuestion:
    return QuizQuestion(
        question=text,
        options=["a", "b", "c", "d"],
        correct_index=correct,
        explanation="because",
    )


@pytest.fixture
def run():
    state = QuizRunState(questions=[make_question(1, "Q1"), make_question(2, "Q2")])
    state.start()
    return state


class TestQuizRunState:
    def test_not_started(self):
        state = QuizRunState(questions=[make_question()])
        assert state.started is False
        assert state.current_question is None
        assert state.is_finished is False

    def test_start(self, run):
        assert run.started is True
        assert run.current_index == 0
        assert run.current_question.question == "Q1"
        assert run.score == 0

    def test_reselect_before_reveal_updates_selection(self, run):
        run.select_option(0)
        run.select_option(3)
        assert run.selected_option_index == 3
        assert run.revealed is False

    def test_double_select_does_not_double_score(self, run):
        run.select_option(1)
        run.select_option(1)
        assert run.score == 0
        assert run.reveal_answer() is True
        assert run.score == 1

    def test_second_selection_correct_scores_once(self, run):
        run.select_option(0)
        run.select_option(1)
        run.reveal_answer()
        run.reveal_answer()
        assert run.score == 1

    def test_wrong_answer_does_not_score(self, run):
        run.select_option(0)
        assert run.reveal_answer() is False
        assert run.revealed is True
        assert run.score == 0

    def test_selection_locked_after_reveal(self, run):
        run.select_option(0)
        run.reveal_answer()
        run.select_option(1)
        assert run.selected_option_index == 0
        run.reveal_answer()
        assert run.score == 0

    def test_reveal_without_selection_is_noop(self, run):
        assert run.reveal_answer() is False
        assert run.revealed is False

    def test_next_resets_question_state(self, run):
        run.select_option(1)
        run.reveal_answer()
        run.next_question()
        assert run.current_index == 1
        assert run.selected_option_index is None
        assert run.revealed is False
        run.select_option(2)
        run.reveal_answer()
        assert run.score == 2

    def test_next_on_last_question_finishes(self, run):
        run.next_question()
        assert run.current_index == run.total - 1
        run.next_question()
        assert run.current_index == run.total
        assert run.is_finished is True
        assert run.current_question is None
        run.next_question()
        assert run.current_index == run.total

    def test_progress_percent(self, run):
        assert run.progress_percent == 0
        run.next_question()
        assert run.progress_percent == 50
        run.next_question()
        assert run.progress_percent == 100

    def test_restart(self, run):
        run.select_option(1)
        run.reveal_answer()
        run.next_question()
        run.next_question()
        run.restart()
        assert run.current_index == 0
        assert run.score == 0
        assert run.is_finished is False

    def test_out_of_range_correct_index(self):
        state = QuizRunState(questions=[make_question(correct=9)])
        state.start()
        state.select_option(0)
        assert state.reveal_answer() is False
        assert state.score == 0

    def test_empty_module_finishes_immediately(self):
        state = QuizRunState()
        state.start()
        assert state.is_finished is True
        assert state.progress_percent == 0


class TestQuizSession:
    @pytest.fixture
    def course(self):
        return CourseGuide(
            job_title="Backend",
            modules=[
                Module(title="APIs", quiz_questions=[make_question(0)]),
                Module(title="Databases", quiz_questions=[make_question(1), make_question(2)]),
            ],
        )

    def test_runs_are_independent(self, course):
        session = QuizSession(course)
        first = session.start(0)
        second = session.start(1)

        first.select_option(0)
        first.reveal_answer()

        assert first.score == 1
        assert second.score == 0
        assert session.run(0) is first
        assert session.total_score == 1

    def test_unknown_module(self, course):
        with pytest.raises(IndexError):
            QuizSession(course).run(5)
