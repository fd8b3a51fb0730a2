"""Mock interview proxy endpoints: answer review and ideal answer."""

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from aceai.app.api.proxy import (
    forward_json,
    get_http_client_dependency,
    read_json_body,
    require_text,
)
from aceai.app.services.study_client import IDEAL_ANSWER_PATH, REVIEW_PATH

router = APIRouter()


def _job_title(body: dict) -> str:
    value = body.get("jobTitle")
    return value if isinstance(value, str) else ""


@router.post(REVIEW_PATH, response_model=None)
async def review_answer(
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client_dependency),
) -> Response:
    """Grade an interview answer.

    Body: ``{"question": str, "answer": str, "jobTitle": str?}``.
    """
    body = await read_json_body(request)
    question = require_text(body, "question")
    answer = require_text(body, "answer")
    payload = {"question": question, "answer": answer, "jobTitle": _job_title(body)}
    return await forward_json(client, REVIEW_PATH, payload)


@router.post(IDEAL_ANSWER_PATH, response_model=None)
async def ideal_answer(
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client_dependency),
) -> Response:
    """Body: ``{"question": str, "jobTitle": str?}``."""
    body = await read_json_body(request)
    question = require_text(body, "question")
    payload = {"question": question, "jobTitle": _job_title(body)}
    return await forward_json(client, IDEAL_ANSWER_PATH, payload)
