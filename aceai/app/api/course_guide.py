"""Course guide proxy endpoints (plain and streamed)."""

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from aceai.app.api.proxy import (
    forward_json,
    get_http_client_dependency,
    rate_limit_headers,
    read_json_body,
    require_text,
    upstream_url,
)
from aceai.app.core.logging import get_logger
from aceai.app.services.study_client import COURSE_GUIDE_PATH, COURSE_GUIDE_STREAM_PATH

router = APIRouter()
logger = get_logger(__name__)


@router.post(COURSE_GUIDE_PATH, response_model=None)
async def course_guide(
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client_dependency),
) -> Response:
    """Generate a course guide in one response.

    Body: ``{"prompt": str}``; the upstream JSON is returned verbatim.
    """
    body = await read_json_body(request)
    prompt = require_text(body, "prompt")
    return await forward_json(client, COURSE_GUIDE_PATH, {"prompt": prompt})


@router.post(COURSE_GUIDE_STREAM_PATH, response_model=None)
async def course_guide_stream(
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client_dependency),
) -> Response:
    """Relay the upstream ``text/event-stream`` body chunk by chunk.

    Upstream errors are returned with their status and body before any
    streaming starts.
    """
    body = await read_json_body(request)
    prompt = require_text(body, "prompt")

    upstream_request = client.build_request(
        "POST",
        upstream_url(COURSE_GUIDE_STREAM_PATH),
        json={"prompt": prompt},
        headers={"Accept": "text/event-stream"},
    )
    upstream = await client.send(upstream_request, stream=True)
    headers = rate_limit_headers(upstream)

    if not upstream.is_success:
        content = await upstream.aread()
        await upstream.aclose()
        logger.warning(
            f"Upstream stream returned {upstream.status_code}",
            extra={"status_code": upstream.status_code},
        )
        return Response(
            content=content,
            status_code=upstream.status_code,
            media_type="application/json",
            headers=headers,
        )

    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        media_type="text/event-stream",
        headers={**headers, "Cache-Control": "no-cache"},
        background=BackgroundTask(upstream.aclose),
    )
