"""Companion summarizer service: Lambda-style handler around the history prompt.

Accepts ``{"tickets": [{subject, created_at, status, description?}, ...]}``
and answers ``{"summary": ...}`` or ``{"error", "message", "details"}``.
"""
import asyncio
import json
import logging
import time
from collections.abc import Sequence
from typing import Any

import anthropic

from .client import APIClient
from .collaborators import LanguageModel
from .exceptions import InvalidRequestError
from .prompts import (
    HISTORY_PROMPT_FOOTER,
    HISTORY_PROMPT_HEADER,
    HISTORY_TICKET,
    HISTORY_TICKET_DESCRIPTION,
    NO_HISTORY_PROMPT,
)

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 2000

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,X-Api-Key",
    "Access-Control-Allow-Methods": "POST,OPTIONS",
}

DEFAULT_ERROR_MESSAGE = "要約の生成中にエラーが発生しました"
INTERNAL_ERROR = "Internal server error"

# (exception types, status code, user-facing message); first match wins.
UPSTREAM_ERRORS: list[tuple[tuple[type[BaseException], ...], int, str]] = [
    ((anthropic.RateLimitError,), 429, "APIリクエスト制限に達しました。しばらく待ってから再試行してください。"),
    ((anthropic.BadRequestError, anthropic.UnprocessableEntityError), 400, "リクエストが不正です。"),
    ((anthropic.PermissionDeniedError, anthropic.AuthenticationError), 403, "モデルAPIへのアクセスが拒否されました。"),
    ((anthropic.APITimeoutError, asyncio.TimeoutError, TimeoutError), 504, "モデルAPIがタイムアウトしました。"),
    ((anthropic.InternalServerError, anthropic.APIConnectionError), 503, "モデルAPIが一時的に利用できません。"),
]


def build_history_prompt(tickets: Sequence[dict[str, Any]] | None) -> str:
    """Prompt asking for a history digest; a fixed sentence when there is no history."""
    if not tickets:
        return NO_HISTORY_PROMPT

    parts = [HISTORY_PROMPT_HEADER]
    for index, ticket in enumerate(tickets, 1):
        ticket = ticket if isinstance(ticket, dict) else {}
        parts.append(HISTORY_TICKET.format(
            index=index,
            subject=ticket.get("subject", ""),
            created_at=ticket.get("created_at", ""),
            status=ticket.get("status", ""),
        ))
        if ticket.get("description"):
            parts.append(HISTORY_TICKET_DESCRIPTION.format(description=ticket["description"]))
        parts.append("\n")
    parts.append(HISTORY_PROMPT_FOOTER)
    return "".join(parts)


def map_upstream_error(error: BaseException) -> tuple[int, str]:
    for types, status, message in UPSTREAM_ERRORS:
        if isinstance(error, types):
            return status, message
    return 500, DEFAULT_ERROR_MESSAGE


def parse_request(event: dict[str, Any]) -> list[dict[str, Any]]:
    raw = event.get("body")
    try:
        body = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError
        raise InvalidRequestError("Invalid request body", "リクエストボディの形式が不正です") from e
    if not isinstance(body, dict):
        raise InvalidRequestError("Invalid request body", "リクエストボディの形式が不正です")
    tickets = body.get("tickets")
    if not isinstance(tickets, list):
        raise InvalidRequestError("Invalid tickets data", "チケット情報が不正です")
    return tickets


def _response(status: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status,
        "headers": dict(CORS_HEADERS),
        "body": json.dumps(payload, ensure_ascii=False),
    }


def _log_access(endpoint: str, status: int, started: float, **metadata) -> None:
    entry = {
        "endpoint": endpoint,
        "status": status,
        "duration_ms": round((time.monotonic() - started) * 1000),
        **metadata,
    }
    logger.info("ACCESS_LOG: %s", json.dumps(entry, ensure_ascii=False))


async def summarize_event(event: dict[str, Any], model: LanguageModel | None = None) -> dict[str, Any]:
    """Handle one API Gateway event and always return a response dict."""
    started = time.monotonic()
    endpoint = event.get("path") or "/summarize"
    method = event.get("httpMethod") or ((event.get("requestContext") or {}).get("http") or {}).get("method") or "POST"

    try:
        tickets = parse_request(event)
    except InvalidRequestError as e:
        logger.warning("Rejected request: %s", e.error)
        _log_access(endpoint, 400, started, httpMethod=method, error=e.error)
        return _response(400, {"error": e.error, "message": e.message})
    except Exception as e:
        logger.exception("Unexpected failure while reading the request")
        _log_access(endpoint, 500, started, httpMethod=method, error=INTERNAL_ERROR)
        return _response(500, {"error": INTERNAL_ERROR, "message": DEFAULT_ERROR_MESSAGE, "details": str(e)})

    try:
        prompt = build_history_prompt(tickets)
        logger.info("Built prompt for %d tickets", len(tickets))
        model = model or APIClient()
        summary = await model.complete(prompt, max_tokens=MAX_OUTPUT_TOKENS)
    except Exception as e:
        status, message = map_upstream_error(e)
        error = type(e).__name__
        logger.error("Summary generation failed: %s", error, exc_info=True)
        _log_access(endpoint, status, started, httpMethod=method, error=error, ticketCount=len(tickets))
        return _response(status, {"error": error, "message": message, "details": str(e)})

    _log_access(endpoint, 200, started, httpMethod=method, ticketCount=len(tickets))
    return _response(200, {"summary": summary})


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """AWS Lambda entry point."""
    return asyncio.run(summarize_event(event or {}))
