import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ticket_radar.config import Settings
from ticket_radar.models import AuditEvent, Comment, Ticket
from ticket_radar.rules import default_rules

BASE_TIME = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def make_settings(**overrides) -> Settings:
    """Settings that ignore the developer's .env and API key."""
    overrides.setdefault("anthropic_api_key", None)
    return Settings(_env_file=None, **overrides)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def make_comment(id, body, author_id="100", public=True, channel="web", minutes=0) -> Comment:
    return Comment(id=id, author_id=author_id, body=body, public=public, channel=channel, created_at=at(minutes))


def make_ticket(id, subject="", description="", requester_id="100", comments=(), created_at=None, **kwargs) -> Ticket:
    return Ticket(
        id=id,
        subject=subject,
        description=description,
        requester_id=requester_id,
        comments=list(comments),
        created_at=created_at or BASE_TIME,
        **kwargs,
    )


class FakeModel:
    """LanguageModel double: replays canned answers, records prompts."""

    def __init__(self, *responses, on_call=None):
        self.responses = list(responses)
        self.prompts = []
        self.on_call = on_call

    async def complete(self, prompt, max_tokens=1024):
        self.prompts.append(prompt)
        if self.on_call:
            self.on_call()
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, asyncio.Event):
            await response.wait()
            return "[]"
        return response


class FakeHost:
    def __init__(self, current=None, email="customer@example.com", history=(), comments=None, audits=None):
        self.current = current
        self.email = email
        self.history = list(history)
        self.comments = comments or {}
        self.audits = audits or {}
        self.history_calls = 0

    async def current_ticket(self):
        return self.current.model_copy(deep=True) if self.current else None

    async def requester_email(self):
        return self.email

    async def fetch_tickets_by_requester(self, email):
        self.history_calls += 1
        return [t.model_copy(deep=True) for t in self.history]

    async def fetch_comments(self, ticket_id):
        value = self.comments.get(ticket_id, [])
        if isinstance(value, BaseException):
            raise value
        return list(value)

    async def fetch_audit_events(self, ticket_id):
        value = self.audits.get(ticket_id, [])
        if isinstance(value, BaseException):
            raise value
        return list(value)


class RecordingRenderer:
    def __init__(self):
        self.calls = []

    def names(self):
        return [name for name, _ in self.calls]

    def last(self, name):
        return next(args for n, args in reversed(self.calls) if n == name)

    def render_customer_risk(self, aggregate):
        self.calls.append(("customer_risk", aggregate))

    def render_ticket_list(self, tickets, selected_id=None):
        self.calls.append(("ticket_list", (list(tickets), selected_id)))

    def render_summary(self, summary, ticket_id):
        self.calls.append(("summary", (summary, ticket_id)))

    def render_error(self, message):
        self.calls.append(("error", message))

    def show_loading(self):
        self.calls.append(("loading", True))

    def hide_loading(self):
        self.calls.append(("loading", False))


@pytest.fixture
def rules():
    return default_rules()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def renderer():
    return RecordingRenderer()


__all__ = [
    "AuditEvent", "FakeHost", "FakeModel", "RecordingRenderer", "at", "make_comment", "make_settings", "make_ticket",
]
