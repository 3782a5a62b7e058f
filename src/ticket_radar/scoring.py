"""Complaint risk scoring: keyword heuristics, batched model scoring, customer aggregate."""
import logging
import math
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from pydantic import TypeAdapter, ValidationError

from .client import extract_json_array
from .collaborators import LanguageModel
from .exceptions import ModelResponseError
from .models import CustomerRiskAggregate, ModelRiskItem, RiskAnalysis, RiskLevel, Ticket
from .normalizer import normalize, strip_markup
from .prompts import RISK_PROMPT, RISK_TICKET_LINE
from .rules import RuleSet, default_rules

logger = logging.getLogger(__name__)

DANGER_THRESHOLD = 50
WARN_THRESHOLD = 25

# Used when the model names a level but gives no score.
LEVEL_SCORES: dict[RiskLevel, int] = {"safe": 10, "warn": 35, "danger": 75}

RECENT_WINDOW_DAYS = 90
# (threshold, bonus); only the highest reached tier applies.
RECENT_COMPLAINT_BONUSES = ((3, 30), (2, 20))
COMPLAINT_COUNT_BONUSES = ((5, 25), (3, 15))
CUSTOMER_DANGER_COUNT, CUSTOMER_DANGER_SCORE = 3, 70
CUSTOMER_CAUTION_COUNT, CUSTOMER_CAUTION_SCORE = 1, 50

_ITEMS = TypeAdapter(list[ModelRiskItem])


def clamp_score(score: float) -> int:
    return max(0, min(100, int(score)))


def level_for_score(score: int) -> RiskLevel:
    if score >= DANGER_THRESHOLD:
        return "danger"
    if score >= WARN_THRESHOLD:
        return "warn"
    return "safe"


def risk_from_score(score: float, reason: str, rules: RuleSet | None = None) -> RiskAnalysis:
    """Build a RiskAnalysis whose level is always derived from the score."""
    rules = rules or default_rules()
    score = clamp_score(score)
    level = level_for_score(score)
    label = rules.risk_labels[level]
    return RiskAnalysis(
        complaint_score=score,
        level=level,
        level_text=label.text,
        icon=label.icon,
        matched_reason=reason,
    )


class KeywordRiskScorer:
    """Local, synchronous scoring from weighted keyword tiers."""

    def __init__(self, rules: RuleSet | None = None):
        self.rules = rules or default_rules()

    def score(self, ticket: Ticket) -> RiskAnalysis:
        text = f"{ticket.subject or ''} {strip_markup(ticket.description)}".lower()
        total = 0
        reason = None
        for tier in self.rules.keyword_tiers:
            for keyword in tier.keywords:
                if keyword.lower() in text:
                    total += tier.weight
                    # One explainable reason: the first hit in tier priority order.
                    if reason is None:
                        reason = keyword
        return risk_from_score(total, reason or self.rules.sentinels.normal_reason, self.rules)

    def score_all(self, tickets: Sequence[Ticket]) -> None:
        for ticket in tickets:
            ticket.risk_analysis = self.score(ticket)


class ModelRiskScorer:
    """Best-effort batched scoring of a customer's tickets with one model call."""

    def __init__(
        self,
        model: LanguageModel,
        rules: RuleSet | None = None,
        fragment_length: int = 200,
        max_tokens: int = 2048,
    ):
        self.model = model
        self.rules = rules or default_rules()
        self.fragment_length = fragment_length
        self.max_tokens = max_tokens

    def build_prompt(self, tickets: Sequence[Ticket]) -> str:
        lines = []
        for ticket in tickets:
            text = normalize(
                f"{ticket.subject} {ticket.description}",
                max_length=self.fragment_length,
                phrases=self.rules.boilerplate_phrases,
            )
            lines.append(RISK_TICKET_LINE.format(id=ticket.id, text=text))
        return RISK_PROMPT.format(tickets="\n".join(lines))

    def parse(self, content: str) -> list[ModelRiskItem]:
        """Validate the whole array or nothing."""
        data = extract_json_array(content)
        if not data:
            raise ModelResponseError("Model returned an empty risk array")
        try:
            items = _ITEMS.validate_python(data)
        except ValidationError as e:
            raise ModelResponseError(f"Malformed risk array: {e.error_count()} errors") from e
        for item in items:
            if item.score is None and item.level is None:
                raise ModelResponseError(f"Risk item {item.id} has neither level nor score")
        return items

    def to_analysis(self, item: ModelRiskItem) -> RiskAnalysis:
        score = item.score if item.score is not None else LEVEL_SCORES[item.level]
        return risk_from_score(score, item.summary or self.rules.sentinels.model_reason, self.rules)

    async def score_batch(self, tickets: Sequence[Ticket]) -> bool:
        """Replace the analysis of every ticket the model answered for.

        Returns False, touching nothing, when the call or the parse fails.
        """
        if not tickets:
            return False
        try:
            content = await self.model.complete(self.build_prompt(tickets), max_tokens=self.max_tokens)
            items = self.parse(content)
        except Exception as e:
            logger.warning("Model risk scoring abandoned for %d tickets: %s", len(tickets), e)
            return False

        by_id = {ticket.id: ticket for ticket in tickets}
        applied = 0
        for item in items:
            ticket = by_id.get(item.id)
            if ticket is None:
                logger.debug("Model returned unknown ticket id %s", item.id)
                continue
            ticket.risk_analysis = self.to_analysis(item)
            if item.summary:
                ticket.ai_summary = item.summary
            applied += 1
        logger.info("Model risk scoring updated %d of %d tickets", applied, len(tickets))
        return applied > 0


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _bonus(value: int, tiers: tuple[tuple[int, int], ...]) -> int:
    for threshold, bonus in tiers:
        if value >= threshold:
            return bonus
    return 0


def aggregate_customer_risk(
    tickets: Sequence[Ticket],
    now: datetime | None = None,
    rules: RuleSet | None = None,
) -> CustomerRiskAggregate:
    """Customer-level risk from the current per-ticket analyses."""
    rules = rules or default_rules()
    if not tickets:
        return CustomerRiskAggregate(
            score=0,
            level="normal",
            level_text=rules.aggregate_labels["normal"],
            details=rules.sentinels.no_history,
        )

    now = _as_utc(now or datetime.now(timezone.utc))
    window_start = now - timedelta(days=RECENT_WINDOW_DAYS)
    total = 0
    complaint_count = 0
    recent_complaints = 0
    for ticket in tickets:
        score = ticket.complaint_score
        total += score
        if score >= DANGER_THRESHOLD:
            complaint_count += 1
            if ticket.created_at is not None and _as_utc(ticket.created_at) >= window_start:
                recent_complaints += 1

    average = _round_half_up(total / len(tickets))
    final_score = clamp_score(
        average
        + _bonus(recent_complaints, RECENT_COMPLAINT_BONUSES)
        + _bonus(complaint_count, COMPLAINT_COUNT_BONUSES)
    )

    if complaint_count >= CUSTOMER_DANGER_COUNT or final_score >= CUSTOMER_DANGER_SCORE:
        level = "danger"
    elif complaint_count >= CUSTOMER_CAUTION_COUNT or final_score >= CUSTOMER_CAUTION_SCORE:
        level = "caution"
    else:
        level = "normal"

    return CustomerRiskAggregate(
        score=final_score,
        level=level,
        level_text=rules.aggregate_labels[level],
        details=rules.sentinels.aggregate_details.format(
            total=len(tickets),
            window_days=RECENT_WINDOW_DAYS,
            recent=recent_complaints,
            average=average,
        ),
        complaint_count=complaint_count,
        recent_complaints=recent_complaints,
    )
