"""Per-ticket digests: heuristic extraction, model-assisted summary, and the merge policy."""
import logging
from collections.abc import Sequence

from .classifier import ROLES, classify, partition
from .client import extract_json_object
from .collaborators import LanguageModel
from .models import ClassifiedComment, ModelSummaryFields, Role, Summary, SummaryMessage, Ticket
from .normalizer import normalize, truncate
from .prompts import EMPTY_BUCKET, SUMMARY_PROMPT
from .rules import RuleSet, default_rules
from .scoring import level_for_score

logger = logging.getLogger(__name__)

BRIEF_LENGTH = 30
TREND_LENGTH = 30
MEMO_LENGTH = 60
MESSAGE_LENGTH = 30
MODEL_FIELD_LENGTH = 80
MODEL_ENTRY_LENGTH = 150


def recommended_action(score: int, rules: RuleSet | None = None) -> str:
    rules = rules or default_rules()
    return rules.actions[level_for_score(score)]


class HeuristicAssembler:
    """Deterministic digest built from the classified comments alone."""

    def __init__(self, rules: RuleSet | None = None):
        self.rules = rules or default_rules()

    def assemble(self, ticket: Ticket | None, classified: Sequence[ClassifiedComment] | None) -> Summary:
        classified = list(classified or [])
        phrases = self.rules.boilerplate_phrases
        sentinels = self.rules.sentinels
        buckets = partition(classified)

        if buckets["customer"]:
            brief = truncate(buckets["customer"][0].text, BRIEF_LENGTH)
        else:
            brief = normalize(ticket.description if ticket else "", BRIEF_LENGTH, phrases)

        trend = truncate(buckets["operator"][-1].text, TREND_LENGTH) if buckets["operator"] else ""
        memo = truncate(buckets["memo"][-1].text, MEMO_LENGTH) if buckets["memo"] else ""

        messages = []
        for item in classified:
            limit = MEMO_LENGTH if item.role == "memo" else MESSAGE_LENGTH
            text = truncate(item.text, limit)
            if text:
                messages.append(SummaryMessage(role=item.role, text=text))

        return Summary(
            brief=brief or sentinels.no_inquiry,
            trend=trend or sentinels.no_reply,
            private_memo=memo,
            action=recommended_action(ticket.complaint_score if ticket else 0, self.rules),
            messages=messages,
            source="heuristic",
        )


class ModelAssembler:
    """One model call per ticket; returns None whenever anything goes wrong."""

    def __init__(self, model: LanguageModel, rules: RuleSet | None = None, max_tokens: int = 512):
        self.model = model
        self.rules = rules or default_rules()
        self.max_tokens = max_tokens

    def bucket_text(self, classified: Sequence[ClassifiedComment]) -> dict[Role, str]:
        buckets = partition(classified)
        return {
            role: "\n".join(f"- {truncate(item.text, MODEL_ENTRY_LENGTH)}" for item in items) or EMPTY_BUCKET
            for role, items in buckets.items()
        }

    def build_prompt(self, ticket: Ticket, classified: Sequence[ClassifiedComment]) -> str:
        return SUMMARY_PROMPT.format(subject=ticket.subject, **self.bucket_text(classified))

    async def assemble(self, ticket: Ticket | None) -> Summary | None:
        if ticket is None:
            return None
        # Same precedence as the heuristic path, but nothing is dropped for being short.
        classified = classify(ticket.comments, ticket.requester_id, self.rules, min_length=1)
        try:
            content = await self.model.complete(self.build_prompt(ticket, classified), max_tokens=self.max_tokens)
            fields = ModelSummaryFields.model_validate(extract_json_object(content))
        except Exception as e:
            logger.warning("Model summary for ticket %s discarded: %s", ticket.id, e)
            return None
        return self.build_summary(ticket, classified, fields)

    def build_summary(
        self,
        ticket: Ticket,
        classified: Sequence[ClassifiedComment],
        fields: ModelSummaryFields,
    ) -> Summary:
        texts: dict[Role, str] = {
            role: normalize(getattr(fields, role), MODEL_FIELD_LENGTH, strip_boilerplate=False)
            for role in ROLES
        }

        messages: list[SummaryMessage] = []
        seen: set[Role] = set()
        for item in classified:
            role = item.role
            first = role not in seen
            seen.add(role)
            # System notices repeat once per event; the other roles appear once.
            if (role == "system" or first) and texts[role]:
                messages.append(SummaryMessage(role=role, text=texts[role]))
        for role in ROLES:
            if role not in seen and texts[role]:
                messages.append(SummaryMessage(role=role, text=texts[role]))

        sentinels = self.rules.sentinels
        return Summary(
            brief=texts["customer"] or sentinels.no_inquiry,
            trend=texts["operator"] or sentinels.no_reply,
            private_memo=texts["memo"],
            action=recommended_action(ticket.complaint_score, self.rules),
            messages=messages,
            source="model",
        )


def merge_summaries(model_summary: Summary | None, heuristic_summary: Summary) -> Summary:
    """All-or-nothing fallback, except that a heuristic private memo is never lost."""
    if model_summary is None:
        return heuristic_summary
    if not model_summary.private_memo and heuristic_summary.private_memo:
        return model_summary.model_copy(update={"private_memo": heuristic_summary.private_memo})
    return model_summary
