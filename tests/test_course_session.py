"""Tests for course generation and session persistence."""

import asyncio
import json

import httpx
import pytest
import respx

from aceai.app.core.storage import InMemoryStorage
from aceai.app.exceptions import UpstreamRequestError
from aceai.app.services.course_session import (
    STREAM_ENDED_MESSAGE,
    CourseSessionController,
    SessionRepository,
)
from aceai.app.services.models import (
    CourseGuide,
    ErrorEvent,
    InterviewSessionData,
    ProgressEvent,
    ResultEvent,
)
from aceai.app.services.study_client import StudyApiClient

BASE = "http://study.test"


class FakeStudyClient:
    """Replays a fixed list of events, or raises ``error`` after them."""

    def __init__(self, events=(), error=None):
        self.events = list(events)
        self.error = error
        self.prompts = []
        self.closed = False

    async def stream_course_guide(self, prompt, abort=None):
        self.prompts.append(prompt)
        try:
            for event in self.events:
                if abort is not None and abort.is_set():
                    return
                yield event
                await asyncio.sleep(0)
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def repository():
    return SessionRepository(storage=InMemoryStorage())


def make_controller(client, repository, **kwargs):
    return CourseSessionController(client, repository, **kwargs)


def course(job_title="Backend", questions=("Q1", "Q2")):
    return CourseGuide(job_title=job_title, mock_interview_questions=list(questions))


class TestGenerate:
    @pytest.mark.asyncio
    async def test_streamed_generation_end_to_end(self, repository):
        stream = (
            b"event: progress\ndata: step1\n\n"
            b"event: progress\ndata: step2\n\n"
            b'event: result\ndata: {"jobTitle":"Backend","overview":"...",'
            b'"modules":[],"mockInterviewQuestions":["Q1"]}\n\n'
        )
        client = StudyApiClient(base_url=BASE)
        controller = make_controller(client, repository)

        with respx.mock(base_url=BASE) as router:
            router.post("/api/course-guide/stream").mock(
                return_value=httpx.Response(200, content=stream)
            )
            result = await controller.generate("Backend engineer")

        assert controller.progress == ["step1", "step2"]
        assert result.job_title == "Backend"
        assert controller.course == result
        assert controller.view == "quiz"
        assert controller.loading is False
        assert controller.error is None
        assert repository.load_course() == result

    @pytest.mark.asyncio
    async def test_error_event_sets_error(self, repository):
        client = FakeStudyClient([ProgressEvent("a"), ErrorEvent("boom"), ProgressEvent("b")])
        controller = make_controller(client, repository)

        assert await controller.generate("Backend engineer") is None
        assert controller.error == "boom"
        assert controller.progress == ["a"]
        assert controller.view == "prompt"
        assert controller.loading is False
        assert client.closed is True
        assert repository.load_course() is None

    @pytest.mark.asyncio
    async def test_stream_without_result(self, repository):
        controller = make_controller(FakeStudyClient([ProgressEvent("a")]), repository)
        assert await controller.generate("Backend engineer") is None
        assert controller.error == STREAM_ENDED_MESSAGE

    @pytest.mark.asyncio
    async def test_upstream_failure_message(self, repository):
        client = FakeStudyClient(error=UpstreamRequestError(500, "oops"))
        controller = make_controller(client, repository)
        await controller.generate("Backend engineer")
        assert controller.error == "Request failed (500). oops"
        assert controller.loading is False

    @pytest.mark.asyncio
    async def test_unexpected_failure_message(self, repository):
        controller = make_controller(FakeStudyClient(error=RuntimeError()), repository)
        await controller.generate("Backend engineer")
        assert controller.error == "Unknown error"

    @pytest.mark.asyncio
    async def test_result_stops_reading(self, repository):
        client = FakeStudyClient([ResultEvent(course()), ProgressEvent("late")])
        controller = make_controller(client, repository)
        await controller.generate("Backend engineer")
        assert controller.progress == []
        assert client.closed is True

    @pytest.mark.asyncio
    async def test_new_request_clears_previous_state(self, repository):
        controller = make_controller(FakeStudyClient([ErrorEvent("first")]), repository)
        await controller.generate("Backend engineer")
        controller.client = FakeStudyClient([ProgressEvent("x"), ResultEvent(course())])
        await controller.generate("Backend engineer")
        assert controller.error is None
        assert controller.progress == ["x"]

    @pytest.mark.asyncio
    async def test_abort(self, repository):
        events = [ProgressEvent(str(i)) for i in range(10)] + [ResultEvent(course())]
        controller = make_controller(FakeStudyClient(events), repository)

        task = asyncio.create_task(controller.generate("Backend engineer"))
        while not controller.progress:
            await asyncio.sleep(0)
        controller.abort()
        assert await task is None

        assert controller.error is None
        assert controller.course is None
        assert controller.loading is False
        assert len(controller.progress) < 10

    @pytest.mark.asyncio
    async def test_concurrent_generate_is_ignored(self, repository):
        client = FakeStudyClient([ProgressEvent("a"), ResultEvent(course())])
        controller = make_controller(client, repository)
        first = asyncio.create_task(controller.generate("Backend engineer"))
        await asyncio.sleep(0)
        assert await controller.generate("Backend engineer") is None
        assert (await first).job_title == "Backend"
        assert client.prompts == ["Backend engineer"]


class TestPromptValidation:
    @pytest.mark.asyncio
    async def test_empty_prompt_not_sent(self, repository):
        client = FakeStudyClient()
        controller = make_controller(client, repository)
        await controller.generate("   ")
        assert controller.error == "prompt is required"
        assert client.prompts == []

    @pytest.mark.asyncio
    async def test_short_prompt_not_sent(self, repository):
        client = FakeStudyClient()
        controller = make_controller(client, repository)
        await controller.generate(" abc ")
        assert controller.error == "prompt must be at least 4 characters"
        assert client.prompts == []

    @pytest.mark.asyncio
    async def test_prompt_is_trimmed(self, repository):
        client = FakeStudyClient([ResultEvent(course())])
        await make_controller(client, repository).generate("  Backend engineer \n")
        assert client.prompts == ["Backend engineer"]

    def test_can_submit(self, repository):
        controller = make_controller(FakeStudyClient(), repository)
        assert controller.can_submit("abcd") is True
        assert controller.can_submit(" abc ") is False
        controller.loading = True
        assert controller.can_submit("Backend engineer") is False


class TestProgressDisplay:
    @pytest.mark.asyncio
    async def test_display_capped_but_log_kept(self, repository):
        events = [ProgressEvent(f"step{i}") for i in range(8)] + [ResultEvent(course())]
        controller = make_controller(FakeStudyClient(events), repository, display_limit=5)
        await controller.generate("Backend engineer")
        assert len(controller.progress) == 8
        assert controller.visible_progress == [f"step{i}" for i in range(3, 8)]

    def test_reset(self, repository):
        controller = make_controller(FakeStudyClient(), repository)
        controller.error = "x"
        controller.progress = ["a"]
        controller.reset()
        assert controller.error is None
        assert controller.progress == []


class TestSessionRepository:
    def test_course_round_trip_uses_wire_names(self):
        storage = InMemoryStorage()
        repository = SessionRepository(storage=storage, course_key="c", session_key="s")
        repository.save_course(course())
        assert json.loads(storage.get_item("c"))["jobTitle"] == "Backend"
        assert repository.load_course() == course()

    def test_interview_from_course_questions(self, repository):
        repository.save_course(course(questions=["Why?", "How?"]))
        data = repository.load_interview()
        assert data == InterviewSessionData(job_title="Backend", questions=["Why?", "How?"])

    def test_interview_blob_preferred(self, repository):
        repository.save_course(course(questions=["from course"]))
        repository.save_interview(InterviewSessionData(job_title="SRE", questions=["from session"]))
        data = repository.load_interview()
        assert data.job_title == "SRE"
        assert data.questions == ["from session"]

    def test_nothing_stored(self, repository):
        assert repository.load_course() is None
        assert repository.load_interview() is None

    def test_corrupt_blobs_are_missing(self):
        storage = InMemoryStorage()
        repository = SessionRepository(storage=storage, course_key="c", session_key="s")
        storage.set_item("c", "{not json")
        assert repository.load_course() is None
        assert repository.load_interview() is None

    def test_storage_errors_are_not_raised(self):
        class BrokenStorage(InMemoryStorage):
            def get_item(self, key):
                raise OSError("unreadable")

            def set_item(self, key, value):
                raise OSError("read-only")

        repository = SessionRepository(storage=BrokenStorage())
        assert repository.save_course(course()) is False
        assert repository.load_course() is None
        assert repository.load_interview() is None

    def test_undecodable_file_is_missing(self, tmp_path):
        from aceai.app.core.storage import FileStorage

        storage = FileStorage(tmp_path)
        repository = SessionRepository(storage=storage, course_key="c", session_key="s")
        repository.save_course(course())
        (tmp_path / "c.json").write_bytes(b"\xff\xfe")

        assert repository.load_course() is None
        assert repository.load_interview() is None
