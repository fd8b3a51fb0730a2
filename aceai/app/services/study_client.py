"""HTTP client for the study backend.

Wraps the four backend calls (streamed course guide, plain course guide,
answer review and ideal answer). Every response's rate-limit headers are
mirrored into the attached :class:`RateLimitStore`.
"""

import asyncio
from contextlib import aclosing, asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Mapping, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from aceai.app.core.config import settings
from aceai.app.core.http_client import create_http_client
from aceai.app.core.logging import get_logger
from aceai.app.exceptions import MalformedResponseError, UpstreamRequestError
from aceai.app.services.models import IdealAnswer, ReviewResult, StreamEvent
from aceai.app.services.rate_limit_store import RateLimitStore
from aceai.app.services.sse_parser import iter_events

logger = get_logger(__name__)

COURSE_GUIDE_PATH = "/api/course-guide"
COURSE_GUIDE_STREAM_PATH = "/api/course-guide/stream"
REVIEW_PATH = "/api/mock-interview/review"
IDEAL_ANSWER_PATH = "/api/mock-interview/ideal"

ModelT = TypeVar("ModelT", bound=BaseModel)


def normalize_base_url(base_url: str) -> str:
    """Strip one trailing slash so paths can be appended directly."""
    base_url = base_url.strip()
    return base_url[:-1] if base_url.endswith("/") else base_url


class StudyApiClient:
    """Client for the study backend.

    Accepts an external httpx.AsyncClient for connection pooling, or creates
    one per call if none is provided.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limits: Optional[RateLimitStore] = None,
        timeout: float = 120.0,
    ):
        """Initialize the client.

        Args:
            base_url: Backend base URL. Defaults to ``settings.study_api_url``.
            http_client: Optional shared HTTP client
            rate_limits: Store receiving rate-limit headers, if any
            timeout: Timeout for per-call clients
        """
        self.base_url = normalize_base_url(base_url or settings.study_api_url)
        self._http_client = http_client
        self.rate_limits = rate_limits
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return create_http_client(timeout=self.timeout)

    @asynccontextmanager
    async def _client_context(self):
        """Yield the shared client, or a per-call client closed afterwards."""
        client = self._get_client()
        is_shared = self._http_client is not None
        try:
            yield client
        finally:
            if not is_shared:
                await client.aclose()

    def _get_endpoint_url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _record_rate_limit(self, headers: Mapping[str, str]) -> None:
        if self.rate_limits is not None:
            self.rate_limits.write_from_headers(headers)

    async def stream_course_guide(
        self,
        prompt: str,
        abort: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Request a course guide and yield stream events as they arrive.

        Args:
            prompt: Job description; sent trimmed
            abort: Optional event that abandons the stream when set

        Yields:
            Progress, result and error events in stream order

        Raises:
            UpstreamRequestError: If the backend answers with a non-2xx status
            StreamDecodeError: If the result event is malformed
        """
        url = self._get_endpoint_url(COURSE_GUIDE_STREAM_PATH)

        async with self._client_context() as client:
            async with client.stream(
                "POST",
                url,
                json={"prompt": prompt.strip()},
                headers={"Accept": "text/event-stream"},
            ) as resp:
                self._record_rate_limit(resp.headers)
                if not resp.is_success:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    logger.warning(
                        f"Course guide stream rejected: {resp.status_code}",
                        extra={"status_code": resp.status_code},
                    )
                    raise UpstreamRequestError(resp.status_code, body)

                async with aclosing(
                    iter_events(resp.aiter_bytes(), abort=abort)
                ) as events:
                    async for event in events:
                        yield event

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        url = self._get_endpoint_url(path)
        async with self._client_context() as client:
            resp = await client.post(url, json=payload)
        self._record_rate_limit(resp.headers)
        if not resp.is_success:
            logger.warning(
                f"Request to {path} failed: {resp.status_code}",
                extra={"status_code": resp.status_code},
            )
            raise UpstreamRequestError(resp.status_code, resp.text)
        return resp

    @staticmethod
    def _parse(model: Type[ModelT], resp: httpx.Response) -> ModelT:
        try:
            return model.model_validate_json(resp.text)
        except ValidationError as e:
            raise MalformedResponseError(str(e.errors()[0]["msg"]), raw=resp.text) from e

    async def course_guide(self, prompt: str) -> Dict[str, Any]:
        """Non-streaming course guide; the backend's JSON is returned as-is."""
        resp = await self._post_json(COURSE_GUIDE_PATH, {"prompt": prompt.strip()})
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError("body is not JSON", raw=resp.text) from e

    async def review_answer(
        self,
        question: str,
        answer: str,
        job_title: str = "",
    ) -> ReviewResult:
        """Ask the backend to grade an interview answer."""
        resp = await self._post_json(
            REVIEW_PATH,
            {"question": question, "answer": answer.strip(), "jobTitle": job_title},
        )
        return self._parse(ReviewResult, resp)

    async def ideal_answer(self, question: str, job_title: str = "") -> IdealAnswer:
        """Ask the backend for a model answer to an interview question."""
        resp = await self._post_json(
            IDEAL_ANSWER_PATH, {"question": question, "jobTitle": job_title}
        )
        return self._parse(IdealAnswer, resp)
