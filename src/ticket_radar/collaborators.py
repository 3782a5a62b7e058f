"""Interfaces of the outside world the pipeline talks to."""
from typing import Protocol, Sequence

from .models import AuditEvent, Comment, CustomerRiskAggregate, Summary, Ticket


class LanguageModel(Protocol):
    """Anything that turns a prompt into text. May raise or time out."""

    async def complete(self, prompt: str, max_tokens: int = 1024) -> str: ...


class TicketHost(Protocol):
    """The support desk: identity of the open ticket plus ticket data access."""

    async def current_ticket(self) -> Ticket | None: ...

    async def requester_email(self) -> str | None: ...

    async def fetch_tickets_by_requester(self, email: str) -> list[Ticket]: ...

    async def fetch_comments(self, ticket_id: str) -> list[Comment]: ...

    async def fetch_audit_events(self, ticket_id: str) -> list[AuditEvent]: ...


class Renderer(Protocol):
    """View sinks. Implementations only read the data they are given."""

    def render_customer_risk(self, aggregate: CustomerRiskAggregate) -> None: ...

    def render_ticket_list(self, tickets: Sequence[Ticket], selected_id: str | None = None) -> None: ...

    def render_summary(self, summary: Summary, ticket_id: str) -> None: ...

    def render_error(self, message: str) -> None: ...

    def show_loading(self) -> None: ...

    def hide_loading(self) -> None: ...
