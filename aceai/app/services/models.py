"""Data models shared by the stream parser, the study client and the sessions.

Backend payloads are pydantic models with the backend's camelCase field names
as aliases; stream events are small frozen dataclasses.
"""

from dataclasses import dataclass
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class QuizQuestion(_CamelModel):
    """Multiple-choice question.

    ``correct_index`` is not checked against ``options``; use
    :meth:`is_correct` which treats an out-of-range index as "nothing is
    correct".
    """

    question: str
    options: list[str] = Field(default_factory=list)
    correct_index: int = 0
    explanation: str = ""

    def is_correct(self, option_index: int | None) -> bool:
        if option_index is None:
            return False
        if not 0 <= self.correct_index < len(self.options):
            return False
        return option_index == self.correct_index


class Module(_CamelModel):
    title: str
    description: str = ""
    resources: list[str] = Field(default_factory=list)
    quiz_questions: list[QuizQuestion] = Field(default_factory=list)


class CourseGuide(_CamelModel):
    """Generated course guide, built once from a ``result`` event."""

    job_title: str
    overview: str = ""
    modules: list[Module] = Field(default_factory=list)
    mock_interview_questions: list[str] = Field(default_factory=list)


class ReviewResult(_CamelModel):
    summary: str = ""
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    score: str = ""


class IdealAnswer(_CamelModel):
    answer: str = ""


class InterviewSessionData(_CamelModel):
    """Question list the mock-interview view is bootstrapped from."""

    job_title: str = ""
    questions: list[str] = Field(default_factory=list)

    @classmethod
    def from_course(cls, course: CourseGuide) -> "InterviewSessionData":
        return cls(
            job_title=course.job_title,
            questions=list(course.mock_interview_questions),
        )


@dataclass(frozen=True)
class ProgressEvent:
    text: str
    kind: Literal["progress"] = "progress"


@dataclass(frozen=True)
class ResultEvent:
    payload: CourseGuide
    kind: Literal["result"] = "result"


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    kind: Literal["error"] = "error"


StreamEvent = Union[ProgressEvent, ResultEvent, ErrorEvent]
