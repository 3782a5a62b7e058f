"""Complaint-risk scoring and ticket digests for support agents."""
from .classifier import classify
from .normalizer import normalize
from .orchestrator import SupportSession
from .scoring import KeywordRiskScorer, ModelRiskScorer, aggregate_customer_risk
from .summary import HeuristicAssembler, ModelAssembler, merge_summaries

__all__ = [
    "classify",
    "normalize",
    "SupportSession",
    "KeywordRiskScorer",
    "ModelRiskScorer",
    "aggregate_customer_risk",
    "HeuristicAssembler",
    "ModelAssembler",
    "merge_summaries",
]
