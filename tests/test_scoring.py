from datetime import timedelta

import pytest
from conftest import BASE_TIME, FakeModel, make_ticket

from ticket_radar.rules import KeywordTier
from ticket_radar.scoring import (
    LEVEL_SCORES,
    KeywordRiskScorer,
    ModelRiskScorer,
    aggregate_customer_risk,
    risk_from_score,
)


def single_keyword_rules(rules, weight):
    tier = KeywordTier(name="only", weight=weight, keywords=["alpha"])
    return rules.model_copy(update={"keyword_tiers": [tier]})


@pytest.mark.parametrize("score, level", [(0, "safe"), (24, "safe"), (25, "warn"), (49, "warn"), (50, "danger"), (100, "danger")])
def test_level_boundaries(rules, score, level):
    scorer = KeywordRiskScorer(single_keyword_rules(rules, score))
    analysis = scorer.score(make_ticket("1", subject="alpha"))
    assert analysis.complaint_score == score
    assert analysis.level == level


def test_single_refund_keyword_is_warn(rules):
    analysis = KeywordRiskScorer(rules).score(make_ticket("1", description="返金してほしいです"))
    assert analysis.complaint_score == 30
    assert analysis.level == "warn"
    assert analysis.level_text == "注意"
    assert analysis.matched_reason == "返金"


def test_reason_follows_tier_priority_not_text_order(rules):
    analysis = KeywordRiskScorer(rules).score(make_ticket("1", subject="不満があるので返金を求めます"))
    assert analysis.complaint_score == 45
    assert analysis.matched_reason == "返金"


def test_score_is_clamped(rules):
    text = "返金 詐欺 訴える 弁護士 最悪 激怒"
    analysis = KeywordRiskScorer(rules).score(make_ticket("1", description=text))
    assert analysis.complaint_score == 100
    assert analysis.level == "danger"
    assert analysis.icon == "🔥"


def test_no_keywords_is_safe_with_normal_reason(rules):
    analysis = KeywordRiskScorer(rules).score(make_ticket("1", subject="Hello"))
    assert analysis.complaint_score == 0
    assert analysis.level == "safe"
    assert analysis.matched_reason == rules.sentinels.normal_reason


def test_matching_is_case_insensitive(rules):
    tier = KeywordTier(name="en", weight=30, keywords=["Refund"])
    scorer = KeywordRiskScorer(rules.model_copy(update={"keyword_tiers": [tier]}))
    assert scorer.score(make_ticket("1", subject="I WANT A REFUND")).complaint_score == 30


def test_markup_does_not_hide_keywords(rules):
    analysis = KeywordRiskScorer(rules).score(make_ticket("1", description="<p>返<b>金</b></p>"))
    assert analysis.matched_reason == "返金"


def keyword_scored(rules, *tickets):
    KeywordRiskScorer(rules).score_all(tickets)
    return list(tickets)


@pytest.mark.asyncio
async def test_model_scoring_replaces_matching_tickets_only(rules):
    tickets = keyword_scored(rules, make_ticket("1", subject="返金"), make_ticket("2", subject="質問"))
    before = tickets[1].risk_analysis
    model = FakeModel('結果です:\n[{"id": 1, "level": "danger", "score": 82, "summary": "強い怒り"}]\n以上')

    assert await ModelRiskScorer(model, rules).score_batch(tickets) is True
    assert tickets[0].risk_analysis.complaint_score == 82
    assert tickets[0].risk_analysis.level == "danger"
    assert tickets[0].risk_analysis.matched_reason == "強い怒り"
    assert tickets[0].ai_summary == "強い怒り"
    assert tickets[1].risk_analysis == before


@pytest.mark.asyncio
async def test_model_level_without_score_uses_representative_score(rules):
    tickets = keyword_scored(rules, make_ticket("1"))
    model = FakeModel('[{"id": "1", "level": "warn"}]')
    await ModelRiskScorer(model, rules).score_batch(tickets)
    assert tickets[0].risk_analysis.complaint_score == LEVEL_SCORES["warn"]
    assert tickets[0].risk_analysis.level == "warn"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    "申し訳ありません、判定できません。",
    "[]",
    '[{"id": "1", "level": "furious", "score": 90}]',
    '[{"id": "1", "score": 90}, {"id": "2"}]',
    '[{"id": "1", "level": "danger", "score": 90}, "oops"]',
    RuntimeError("upstream down"),
])
async def test_model_scoring_is_all_or_nothing(rules, response):
    tickets = keyword_scored(rules, make_ticket("1", subject="返金"), make_ticket("2"))
    before = [t.risk_analysis for t in tickets]
    assert await ModelRiskScorer(FakeModel(response), rules).score_batch(tickets) is False
    assert [t.risk_analysis for t in tickets] == before


def test_model_prompt_labels_each_ticket(rules):
    tickets = [make_ticket("11", subject="配送", description="<p>届きません</p>"), make_ticket("12", subject="請求")]
    prompt = ModelRiskScorer(FakeModel("[]"), rules).build_prompt(tickets)
    assert "[チケット 11] 配送 届きません" in prompt
    assert "[チケット 12] 請求" in prompt
    assert "トーン" in prompt


def scored(score, days_ago=1):
    ticket = make_ticket(f"t{score}-{days_ago}", created_at=BASE_TIME - timedelta(days=days_ago))
    ticket.risk_analysis = risk_from_score(score, "test")
    return ticket


def test_aggregate_without_history(rules):
    aggregate = aggregate_customer_risk([], rules=rules)
    assert aggregate.score == 0
    assert aggregate.level == "normal"
    assert aggregate.details == rules.sentinels.no_history


def test_aggregate_rounds_average_half_up(rules):
    aggregate = aggregate_customer_risk([scored(30), scored(35)], now=BASE_TIME, rules=rules)
    assert aggregate.score == 33
    assert aggregate.level == "normal"
    assert "平均リスク33点" in aggregate.details


def test_single_complaint_means_caution(rules):
    aggregate = aggregate_customer_risk([scored(50), scored(0), scored(0), scored(0)], now=BASE_TIME, rules=rules)
    assert aggregate.complaint_count == 1
    assert aggregate.score == 13
    assert aggregate.level == "caution"


def test_recent_complaint_bonus(rules):
    aggregate = aggregate_customer_risk([scored(60), scored(60), scored(0)], now=BASE_TIME, rules=rules)
    assert aggregate.recent_complaints == 2
    assert aggregate.score == 40 + 20
    assert aggregate.level == "caution"


def test_old_complaints_are_not_recent(rules):
    tickets = [scored(60, days_ago=200), scored(60, days_ago=300), scored(60, days_ago=400)]
    aggregate = aggregate_customer_risk(tickets, now=BASE_TIME, rules=rules)
    assert aggregate.recent_complaints == 0
    assert aggregate.complaint_count == 3
    assert aggregate.score == 60 + 15
    assert aggregate.level == "danger"


def test_aggregate_is_clamped(rules):
    tickets = [scored(90, days_ago=d) for d in range(1, 6)]
    aggregate = aggregate_customer_risk(tickets, now=BASE_TIME, rules=rules)
    assert aggregate.score == 100
    assert aggregate.level == "danger"
