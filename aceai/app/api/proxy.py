"""Shared helpers for the routes that proxy to the study backend.

Routes validate the local request, forward it, and hand the upstream body
and status back unchanged. Only malformed local input is answered here.
"""

import json
from typing import Any, Dict

import httpx
from fastapi import Request
from fastapi.responses import Response

from aceai.app.core.config import settings
from aceai.app.core.http_client import create_http_client, get_http_client
from aceai.app.core.logging import get_logger
from aceai.app.exceptions import InputValidationError
from aceai.app.services.rate_limit_store import HEADER_PREFIX
from aceai.app.services.study_client import normalize_base_url

logger = get_logger(__name__)

INVALID_JSON_MESSAGE = "Invalid JSON body"


async def get_http_client_dependency():
    """Yield the shared HTTP client, or a temporary one outside the lifespan."""
    try:
        shared = get_http_client()
    except RuntimeError:
        shared = None

    if shared is not None:
        yield shared
        return
    async with create_http_client() as client:
        yield client


def upstream_url(path: str) -> str:
    return f"{normalize_base_url(settings.study_api_url)}{path}"


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Parse the request body as a JSON object.

    A body that is valid JSON but not an object is treated as an empty object,
    so its fields are reported as missing.

    Raises:
        InputValidationError: If the body is not valid JSON.
    """
    raw = await request.body()
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InputValidationError(message=INVALID_JSON_MESSAGE)
    return body if isinstance(body, dict) else {}


def require_text(body: Dict[str, Any], field: str) -> str:
    """Return ``body[field]`` trimmed.

    Raises:
        InputValidationError: If the field is missing, not a string or blank.
    """
    value = body.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(field)
    return value.strip()


def rate_limit_headers(upstream: httpx.Response) -> Dict[str, str]:
    """The ``x-ratelimit-*`` headers of an upstream response."""
    return {
        key: value
        for key, value in upstream.headers.items()
        if key.lower().startswith(HEADER_PREFIX)
    }


async def forward_json(
    client: httpx.AsyncClient,
    path: str,
    payload: Dict[str, Any],
) -> Response:
    """POST ``payload`` upstream and relay the raw body and status."""
    url = upstream_url(path)
    upstream = await client.post(url, json=payload)

    if not upstream.is_success:
        logger.warning(
            f"Upstream {path} returned {upstream.status_code}",
            extra={"status_code": upstream.status_code},
        )

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type="application/json",
        headers=rate_limit_headers(upstream),
    )
