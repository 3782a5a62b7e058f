"""Lookup tables that drive scoring, normalization and classification.

Keyword dictionaries, courtesy phrases and system-notice signals are domain
data: they live in a JSON file so the policy can be tuned without touching
the code. ``load_rules()`` reads the bundled defaults unless a path is given.
"""
from functools import lru_cache
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, Field


class KeywordTier(BaseModel):
    name: str
    weight: int = Field(ge=0)
    keywords: list[str]


class RiskLabel(BaseModel):
    text: str
    icon: str


class Sentinels(BaseModel):
    normal_reason: str
    no_inquiry: str
    no_reply: str
    no_history: str
    model_reason: str
    aggregate_details: str


class RuleSet(BaseModel):
    """Complete rule table. Tier order is the explain-reason priority."""
    keyword_tiers: list[KeywordTier]
    boilerplate_phrases: list[str] = Field(default_factory=list)
    system_phrases: list[str] = Field(default_factory=list)
    system_channels: list[str] = Field(default_factory=list)
    risk_labels: dict[str, RiskLabel]
    aggregate_labels: dict[str, str]
    actions: dict[str, str]
    sentinels: Sentinels


def load_rules(path: str | Path | None = None) -> RuleSet:
    """Load a rule table from ``path`` or the packaged defaults."""
    if not path:
        return default_rules()
    return RuleSet.model_validate_json(Path(path).read_text(encoding="utf-8"))


@lru_cache()
def default_rules() -> RuleSet:
    text = resources.files("ticket_radar").joinpath("data/default_rules.json").read_text(encoding="utf-8")
    return RuleSet.model_validate_json(text)
