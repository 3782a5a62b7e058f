"""Split a ticket's timeline into customer, operator, system and memo turns."""
import logging
from collections.abc import Iterable, Sequence

from .models import ClassifiedComment, Comment, Role
from .normalizer import normalize
from .rules import RuleSet, default_rules

logger = logging.getLogger(__name__)

ROLES: tuple[Role, ...] = ("customer", "operator", "system", "memo")

DEFAULT_MIN_LENGTH = 20


def is_system_event(comment: Comment, rules: RuleSet) -> bool:
    """System notices are recognised by channel or by phrase, whoever wrote them."""
    if comment.channel in rules.system_channels:
        return True
    body = comment.body or ""
    return any(phrase in body for phrase in rules.system_phrases)


def assign_role(comment: Comment, requester_id: str | None, rules: RuleSet | None = None) -> Role:
    """Role of a single comment. First match wins: system, memo, customer, operator."""
    rules = rules or default_rules()
    if is_system_event(comment, rules):
        return "system"
    if comment.is_private:
        return "memo"
    if requester_id is not None and comment.author_id == requester_id:
        return "customer"
    return "operator"


def classify(
    comments: Sequence[Comment] | None,
    requester_id: str | None,
    rules: RuleSet | None = None,
    min_length: int = DEFAULT_MIN_LENGTH,
) -> list[ClassifiedComment]:
    """Tag each comment with one role, dropping content-free ones.

    ``comments`` must be in chronological order; the output keeps that order.
    With no known requester the earliest public comment is taken as the
    customer's inquiry and every later public comment as an operator reply.
    """
    if not comments:
        return []
    rules = rules or default_rules()
    requester_id = str(requester_id) if requester_id not in (None, "") else None

    result: list[ClassifiedComment] = []
    customer_seen = False
    for comment in comments:
        if comment is None:
            continue
        role = assign_role(comment, requester_id, rules)
        if role == "system":
            text = normalize(comment.body, strip_boilerplate=False)
        else:
            text = normalize(comment.body, phrases=rules.boilerplate_phrases)
        if len(text) < min_length:
            continue
        if requester_id is None and role == "operator":
            # Position fallback: without an identity only order tells them apart.
            role = "operator" if customer_seen else "customer"
            customer_seen = True
        result.append(ClassifiedComment(comment=comment, role=role, text=text))

    logger.debug(
        "Classified %d of %d comments (requester=%s)", len(result), len(comments), requester_id
    )
    return result


def partition(classified: Iterable[ClassifiedComment]) -> dict[Role, list[ClassifiedComment]]:
    """Group classified comments by role, keeping order inside each bucket."""
    buckets: dict[Role, list[ClassifiedComment]] = {role: [] for role in ROLES}
    for item in classified:
        buckets[item.role].append(item)
    return buckets
