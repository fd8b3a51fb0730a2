"""Tests for the study backend client."""

import json

import httpx
import pytest
import respx

from aceai.app.core.storage import InMemoryStorage
from aceai.app.exceptions import MalformedResponseError, StreamDecodeError, UpstreamRequestError
from aceai.app.services.models import ProgressEvent, ResultEvent
from aceai.app.services.rate_limit_store import RateLimitStore
from aceai.app.services.study_client import StudyApiClient, normalize_base_url

BASE = "http://study.test"

RATE_LIMIT_HEADERS = {
    "x-ratelimit-limit": "10",
    "x-ratelimit-remaining": "9",
    "x-ratelimit-reset": "60",
    "x-ratelimit-day-limit": "100",
    "x-ratelimit-day-remaining": "42",
    "x-ratelimit-day-reset": "3600",
}

STREAM = (
    b"event: progress\ndata: step1\n\n"
    b'event: result\ndata: {"jobTitle":"Backend","modules":[],"mockInterviewQuestions":["Q1"]}\n\n'
)


@pytest.fixture
def store():
    return RateLimitStore(storage=InMemoryStorage())


@pytest.fixture
def client(store):
    return StudyApiClient(base_url=f"{BASE}/", rate_limits=store)


def test_normalize_base_url():
    assert normalize_base_url("http://x/") == "http://x"
    assert normalize_base_url("http://x") == "http://x"
    assert normalize_base_url(" http://x// ") == "http://x/"


class TestStreamCourseGuide:
    @pytest.mark.asyncio
    async def test_yields_events_and_records_rate_limit(self, client, store):
        with respx.mock(base_url=BASE) as router:
            route = router.post("/api/course-guide/stream").mock(
                return_value=httpx.Response(200, headers=RATE_LIMIT_HEADERS, content=STREAM)
            )
            events = [e async for e in client.stream_course_guide("  Backend engineer  ")]

        assert json.loads(route.calls.last.request.content) == {"prompt": "Backend engineer"}
        assert events[0] == ProgressEvent("step1")
        assert isinstance(events[1], ResultEvent)
        assert events[1].payload.job_title == "Backend"
        assert store.read().remaining == "42"

    @pytest.mark.asyncio
    async def test_error_status_raises_with_body(self, client, store):
        with respx.mock(base_url=BASE) as router:
            router.post("/api/course-guide/stream").mock(
                return_value=httpx.Response(503, text='{"error":"busy"}')
            )
            with pytest.raises(UpstreamRequestError) as exc_info:
                async for _ in client.stream_course_guide("Backend engineer"):
                    pass

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == 'Request failed (503). {"error":"busy"}'
        assert store.read() is None

    @pytest.mark.asyncio
    async def test_malformed_result(self, client):
        with respx.mock(base_url=BASE) as router:
            router.post("/api/course-guide/stream").mock(
                return_value=httpx.Response(200, content=b"event: result\ndata: {oops\n\n")
            )
            with pytest.raises(StreamDecodeError):
                async for _ in client.stream_course_guide("Backend engineer"):
                    pass

    @pytest.mark.asyncio
    async def test_shared_client_is_not_closed(self, store):
        with respx.mock(base_url=BASE) as router:
            router.post("/api/course-guide/stream").mock(
                return_value=httpx.Response(200, content=STREAM)
            )
            async with httpx.AsyncClient() as http_client:
                client = StudyApiClient(base_url=BASE, http_client=http_client)
                events = [e async for e in client.stream_course_guide("Backend engineer")]
                assert not http_client.is_closed
        assert len(events) == 2


class TestJsonCalls:
    @pytest.mark.asyncio
    async def test_review_answer(self, client, store):
        review = {
            "summary": "Solid",
            "strengths": ["clear"],
            "improvements": ["depth"],
            "score": "7/10",
        }
        with respx.mock(base_url=BASE) as router:
            route = router.post("/api/mock-interview/review").mock(
                return_value=httpx.Response(200, json=review, headers=RATE_LIMIT_HEADERS)
            )
            result = await client.review_answer("Why REST?", " Because. ", "Backend")

        assert json.loads(route.calls.last.request.content) == {
            "question": "Why REST?",
            "answer": "Because.",
            "jobTitle": "Backend",
        }
        assert result.summary == "Solid"
        assert result.score == "7/10"
        assert store.read().limit == "100"

    @pytest.mark.asyncio
    async def test_ideal_answer(self, client):
        with respx.mock(base_url=BASE) as router:
            router.post("/api/mock-interview/ideal").mock(
                return_value=httpx.Response(200, json={"answer": "Use caching."})
            )
            result = await client.ideal_answer("How to scale?", "Backend")
        assert result.answer == "Use caching."

    @pytest.mark.asyncio
    async def test_error_status_records_rate_limit_then_raises(self, client, store):
        with respx.mock(base_url=BASE) as router:
            router.post("/api/mock-interview/ideal").mock(
                return_value=httpx.Response(429, text="slow down", headers=RATE_LIMIT_HEADERS)
            )
            with pytest.raises(UpstreamRequestError) as exc_info:
                await client.ideal_answer("How to scale?")

        assert exc_info.value.message == "Request failed (429). slow down"
        assert store.read().remaining == "42"

    @pytest.mark.asyncio
    async def test_malformed_success_body(self, client):
        with respx.mock(base_url=BASE) as router:
            router.post("/api/mock-interview/review").mock(
                return_value=httpx.Response(200, text="<html>")
            )
            with pytest.raises(MalformedResponseError):
                await client.review_answer("Q", "A")

    @pytest.mark.asyncio
    async def test_course_guide_returns_json_verbatim(self, client):
        payload = {"jobTitle": "Backend", "extra": {"anything": [1, 2]}}
        with respx.mock(base_url=BASE) as router:
            router.post("/api/course-guide").mock(return_value=httpx.Response(200, json=payload))
            assert await client.course_guide("Backend engineer") == payload


@pytest.mark.asyncio
async def test_closing_stream_closes_event_iterator_first(client, monkeypatch):
    from contextlib import aclosing

    from aceai.app.services import study_client as study_client_module

    order = []
    real_iter_events = study_client_module.iter_events

    async def tracked_iter_events(source, abort=None):
        try:
            async for event in real_iter_events(source, abort=abort):
                yield event
        finally:
            order.append("events closed")

    monkeypatch.setattr(study_client_module, "iter_events", tracked_iter_events)

    with respx.mock(base_url=BASE) as router:
        router.post("/api/course-guide/stream").mock(
            return_value=httpx.Response(200, content=STREAM)
        )
        async with aclosing(client.stream_course_guide("Backend engineer")) as events:
            async for event in events:
                assert event == ProgressEvent("step1")
                break
        order.append("stream closed")

    assert order == ["events closed", "stream closed"]
