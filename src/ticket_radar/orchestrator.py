"""Session facade: fetch, classify, score, assemble, render."""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import TypeVar

from .cache import SessionCache
from .classifier import classify
from .collaborators import LanguageModel, Renderer, TicketHost
from .config import Settings, get_settings
from .exceptions import MissingHostDataError, TicketRadarError
from .models import AuditEvent, Comment, CustomerRiskAggregate, Summary, Ticket
from .rules import RuleSet, load_rules
from .scoring import KeywordRiskScorer, ModelRiskScorer, aggregate_customer_risk
from .summary import HeuristicAssembler, ModelAssembler, merge_summaries

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def merge_timeline(comments: Sequence[Comment], audits: Sequence[AuditEvent] = ()) -> list[Comment]:
    """Comments plus audit events, deduplicated by id, oldest first."""
    merged: dict[str, Comment] = {}
    for comment in list(comments) + [audit.to_comment() for audit in audits]:
        merged.setdefault(comment.id, comment)
    return sorted(merged.values(), key=lambda c: _sort_key(c.created_at))


class SupportSession:
    """Everything the widget keeps for one agent session.

    State (history cache, selection, background upgrades) is created by
    :meth:`init` and dropped by :meth:`teardown`; nothing is persisted.
    """

    def __init__(
        self,
        host: TicketHost,
        renderer: Renderer,
        model: LanguageModel | None = None,
        settings: Settings | None = None,
        rules: RuleSet | None = None,
    ):
        self.host = host
        self.renderer = renderer
        self.settings = settings or get_settings()
        self.rules = rules or load_rules(self.settings.rules_path)
        self.keyword_scorer = KeywordRiskScorer(self.rules)
        self.heuristic = HeuristicAssembler(self.rules)
        self.model_scorer = ModelRiskScorer(model, self.rules) if model else None
        self.model_assembler = ModelAssembler(model, self.rules) if model else None

        self.cache: SessionCache[list[Ticket]] | None = None
        self.current_tickets: list[Ticket] = []
        self.selected_ticket_id: str | None = None
        self.customer_risk: CustomerRiskAggregate | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self.cache is not None

    def init(self) -> "SupportSession":
        self.cache = SessionCache()
        self.current_tickets = []
        self.selected_ticket_id = None
        self.customer_risk = None
        logger.debug("Session initialized (model=%s)", self.model_scorer is not None)
        return self

    async def teardown(self) -> None:
        """Cancel background work and forget every customer record."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
        if self.cache is not None:
            self.cache.clear()
        self.cache = None
        self.current_tickets = []
        self.selected_ticket_id = None
        self.customer_risk = None
        logger.debug("Session torn down")

    async def __aenter__(self):
        return self.init()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.teardown()

    async def _guarded(self, work: Callable[[], Awaitable[T]], failure_message: str) -> T | None:
        """Run an entry point; report failures to the UI instead of raising."""
        self.renderer.show_loading()
        try:
            if not self.active:
                raise TicketRadarError("セッションが初期化されていません")
            return await work()
        except TicketRadarError as e:
            logger.warning("%s", e)
            self.renderer.render_error(str(e))
        except Exception:
            logger.exception(failure_message)
            self.renderer.render_error(failure_message)
        finally:
            self.renderer.hide_loading()
        return None

    # Entry points

    async def summarize_current_ticket(self) -> Summary | None:
        self.selected_ticket_id = None

        async def work() -> Summary:
            ticket = await self.host.current_ticket()
            if ticket is None or not ticket.id:
                raise MissingHostDataError("チケットIDが取得できませんでした")
            ticket.risk_analysis = self.keyword_scorer.score(ticket)
            summary = await self._summarize(ticket)
            self.renderer.render_summary(summary, ticket.id)
            return summary

        return await self._guarded(work, "要約の生成に失敗しました")

    async def summarize_selected_ticket(self, ticket_id: str | None = None) -> Summary | None:
        async def work() -> Summary:
            target = str(ticket_id) if ticket_id is not None else self.selected_ticket_id
            if not target:
                raise TicketRadarError("チケットを選択してください")
            ticket = next((t for t in self.current_tickets if t.id == target), None)
            if ticket is None:
                raise TicketRadarError("選択されたチケットが見つかりません")
            if ticket.risk_analysis is None:
                ticket.risk_analysis = self.keyword_scorer.score(ticket)
            summary = await self._summarize(ticket)
            self.renderer.render_summary(summary, ticket.id)
            return summary

        return await self._guarded(work, "要約の生成に失敗しました")

    async def load_customer_history(self, email: str | None = None) -> CustomerRiskAggregate | None:
        async def work() -> CustomerRiskAggregate:
            address = email or await self.host.requester_email()
            if not address:
                raise MissingHostDataError("依頼者のメールアドレスが見つかりません")

            tickets = self.cache.get(address)
            fresh = tickets is None
            if fresh:
                tickets = await self._fetch_history(address)
                self.cache.save(address, tickets)
            else:
                logger.debug("History for %s served from session cache", address)

            self.current_tickets = tickets
            self._render_risk()
            # Heuristic results are on screen before the model is even asked.
            if fresh and self.model_scorer is not None and tickets:
                self._schedule(self._upgrade_risk(tickets))
            return self.customer_risk

        return await self._guarded(work, "チケット履歴の取得に失敗しました")

    def select_ticket(self, ticket_id: str | None) -> str | None:
        """Toggle selection of a history ticket, like clicking its card."""
        ticket_id = str(ticket_id) if ticket_id is not None else None
        self.selected_ticket_id = None if ticket_id == self.selected_ticket_id else ticket_id
        self.renderer.render_ticket_list(self.current_tickets, self.selected_ticket_id)
        return self.selected_ticket_id

    async def wait_for_background(self) -> None:
        """Wait until every pending background upgrade has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Pipeline steps

    async def _fetch_history(self, email: str) -> list[Ticket]:
        current = await self.host.current_ticket()
        current_id = current.id if current else None
        fetched = await self.host.fetch_tickets_by_requester(email)
        tickets = [t for t in fetched if t.id != current_id]
        tickets.sort(key=lambda t: _sort_key(t.created_at), reverse=True)
        self.keyword_scorer.score_all(tickets)
        logger.info("Loaded %d past tickets for requester", len(tickets))
        return tickets

    async def _load_timeline(self, ticket: Ticket) -> list[Comment]:
        try:
            comments = await self.host.fetch_comments(ticket.id)
        except Exception as e:
            logger.warning("Comment fetch for ticket %s failed, using inline comments: %s", ticket.id, e)
            comments = list(ticket.comments)
        try:
            audits = await self.host.fetch_audit_events(ticket.id)
        except Exception as e:
            logger.warning("Audit fetch for ticket %s failed: %s", ticket.id, e)
            audits = []
        return merge_timeline(comments, audits)

    async def _summarize(self, ticket: Ticket) -> Summary:
        ticket.comments = await self._load_timeline(ticket)
        classified = classify(
            ticket.comments, ticket.requester_id, self.rules, self.settings.min_comment_length
        )
        heuristic = self.heuristic.assemble(ticket, classified)
        if self.model_assembler is None:
            return heuristic
        return merge_summaries(await self.model_assembler.assemble(ticket), heuristic)

    def _render_risk(self) -> None:
        self.customer_risk = aggregate_customer_risk(self.current_tickets, rules=self.rules)
        self.renderer.render_customer_risk(self.customer_risk)
        self.renderer.render_ticket_list(self.current_tickets, self.selected_ticket_id)

    async def _upgrade_risk(self, tickets: list[Ticket]) -> None:
        if not await self.model_scorer.score_batch(tickets):
            return
        if tickets is self.current_tickets:
            self._render_risk()

    def _schedule(self, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background risk upgrade failed", exc_info=task.exception())
