"""Zendesk REST adapter implementing the TicketHost protocol.

This is the only place that knows Zendesk's field names; everything it
returns is already in the canonical Ticket / Comment / AuditEvent shape.
"""
import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from .config import Settings
from .models import AuditEvent, Comment, Ticket

logger = logging.getLogger(__name__)

TICKET_STATUSES = {"new", "open", "pending", "hold", "solved", "closed"}
COMMENT_EVENT_TYPES = {"Comment", "VoiceComment"}
DEFAULT_RETRY_AFTER = 2.0


def retry_after_seconds(value: str | None, default: float = DEFAULT_RETRY_AFTER) -> float:
    """Seconds to wait for a Retry-After header given as delta-seconds or an HTTP-date."""
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Unparseable Retry-After %r, waiting %.1fs", value, default)
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())

def _channel(payload: dict[str, Any]) -> str:
    return ((payload.get("via") or {}).get("channel") or "unknown")


def comment_from_api(data: dict[str, Any]) -> Comment:
    """Prefer the HTML-bearing body field, whatever the payload calls it."""
    return Comment(
        id=data["id"],
        author_id=data.get("author_id"),
        body=data.get("html_body") or data.get("body") or data.get("plain_body") or data.get("value") or "",
        public=data.get("public"),
        channel=_channel(data),
        created_at=data.get("created_at"),
    )


def ticket_from_api(data: dict[str, Any]) -> Ticket:
    status = data.get("status")
    return Ticket(
        id=data["id"],
        subject=data.get("subject") or data.get("raw_subject") or "",
        description=data.get("description") or "",
        status=status if status in TICKET_STATUSES else "open",
        created_at=data.get("created_at"),
        channel=_channel(data),
        requester_id=data.get("requester_id"),
    )


def audit_events_from_api(audit: dict[str, Any]) -> list[AuditEvent]:
    """Text-bearing events of one audit; the audit supplies author, time and channel."""
    events = []
    for event in audit.get("events") or []:
        if event.get("type", "Comment") not in COMMENT_EVENT_TYPES:
            continue
        body = event.get("body") or event.get("plain_body") or event.get("value")
        html_body = event.get("html_body")
        if not (body or html_body) or not isinstance(body or html_body, str):
            continue
        events.append(AuditEvent(
            id=event["id"],
            author_id=event.get("author_id") or audit.get("author_id"),
            body=body or "",
            html_body=html_body or "",
            public=event.get("public"),
            channel=_channel(audit),
            created_at=audit.get("created_at"),
        ))
    return events


class ZendeskHost:
    """Async Zendesk client bound to the ticket currently open in the agent's view."""

    def __init__(
        self,
        subdomain: str,
        email: str,
        api_token: str,
        current_ticket_id: str | int | None = None,
        max_attempts: int = 4,
        timeout: float = 45.0,
    ):
        if not subdomain or not email or not api_token:
            raise ValueError("Zendesk subdomain, email and API token are required")
        self.base = f"https://{subdomain}.zendesk.com/api/v2"
        self.current_ticket_id = str(current_ticket_id) if current_ticket_id is not None else None
        self.max_attempts = max_attempts
        self.client = httpx.AsyncClient(
            base_url=self.base,
            auth=(f"{email}/token", api_token),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        self._current: Ticket | None = None

    @classmethod
    def from_settings(cls, settings: Settings, current_ticket_id: str | int | None = None) -> "ZendeskHost":
        return cls(
            settings.zendesk_subdomain,
            settings.zendesk_email,
            settings.zendesk_api_token,
            current_ticket_id=current_ticket_id,
        )

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        for attempt in range(self.max_attempts):
            response = await self.client.get(url, params=params)
            if response.status_code == 429:
                wait = retry_after_seconds(response.headers.get("retry-after"))
                logger.debug("Zendesk 429; sleeping %.1fs (attempt %d)", wait, attempt + 1)
                await asyncio.sleep(wait)
                continue
            response.raise_for_status()
            return response.json()
        raise RuntimeError("Too many retries talking to Zendesk")

    async def _get_pages(self, url: str, key: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while url:
            data = await self._get(url, params=params)
            items.extend(data.get(key) or [])
            url = data.get("next_page")
            params = None  # next_page already carries the query string
        return items

    async def current_ticket(self) -> Ticket | None:
        if self.current_ticket_id is None:
            return None
        if self._current is None:
            data = await self._get(f"/tickets/{self.current_ticket_id}.json")
            self._current = ticket_from_api(data["ticket"])
        return self._current.model_copy(deep=True)

    async def requester_email(self) -> str | None:
        ticket = await self.current_ticket()
        if ticket is None or ticket.requester_id is None:
            return None
        data = await self._get(f"/users/{ticket.requester_id}.json")
        return (data.get("user") or {}).get("email")

    async def fetch_tickets_by_requester(self, email: str) -> list[Ticket]:
        results = await self._get_pages(
            "/search.json", "results", params={"query": f"type:ticket requester:{email}"}
        )
        tickets = [ticket_from_api(item) for item in results]
        return [t for t in tickets if t.id != self.current_ticket_id]

    async def fetch_comments(self, ticket_id: str) -> list[Comment]:
        comments = await self._get_pages(f"/tickets/{ticket_id}/comments.json", "comments")
        return [comment_from_api(item) for item in comments]

    async def fetch_audit_events(self, ticket_id: str) -> list[AuditEvent]:
        audits = await self._get_pages(f"/tickets/{ticket_id}/audits.json", "audits")
        return [event for audit in audits for event in audit_events_from_api(audit)]
