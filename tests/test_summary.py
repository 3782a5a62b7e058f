import json

import pytest
from conftest import FakeModel, make_comment, make_ticket

from ticket_radar.classifier import classify
from ticket_radar.normalizer import ELLIPSIS
from ticket_radar.scoring import risk_from_score
from ticket_radar.summary import (
    MODEL_ENTRY_LENGTH,
    HeuristicAssembler,
    ModelAssembler,
    merge_summaries,
    recommended_action,
)

REQUESTER = "100"
AGENT = "200"

INQUIRY = "いつもお世話になっております。注文した商品がまだ届いていません。配送状況を確認してください。"
REPLY_1 = "お問い合わせいただきありがとうございます。確認いたしますので今しばらくお待ちください。"
REPLY_2 = "配送業者に確認したところ、明日の午前中に到着予定とのことです。"
MEMO_1 = "配送業者へ問い合わせ済み。回答待ちの状態です。"
MEMO_2 = "配送業者の遅延が続いているため、次回は送料の補償を検討すること。担当者へ共有済み。"
SOLVED = "お世話になっております。このチケットは解決済みに変更されました。"


def conversation():
    return [
        make_comment("1", INQUIRY, author_id=REQUESTER, minutes=1),
        make_comment("2", REPLY_1, author_id=AGENT, minutes=2),
        make_comment("3", MEMO_1, author_id=AGENT, public=False, minutes=3),
        make_comment("4", REPLY_2, author_id=AGENT, minutes=4),
        make_comment("5", MEMO_2, author_id=AGENT, public=False, minutes=5),
        make_comment("6", SOLVED, author_id="-1", channel="rule", minutes=6),
    ]


def ticket_with(comments, score=0, **kwargs):
    ticket = make_ticket("42", subject="配送について", requester_id=REQUESTER, comments=comments, **kwargs)
    ticket.risk_analysis = risk_from_score(score, "test")
    return ticket


def heuristic_summary(rules, ticket):
    return HeuristicAssembler(rules).assemble(ticket, classify(ticket.comments, ticket.requester_id, rules))


def test_heuristic_fields(rules):
    summary = heuristic_summary(rules, ticket_with(conversation()))
    assert summary.brief == "注文した商品がまだ届いていません。配送状況を確認してくださ" + ELLIPSIS
    assert len(summary.brief) == 30
    assert summary.trend.startswith("配送業者に確認したところ")
    assert len(summary.trend) <= 30
    assert summary.private_memo.startswith("配送業者の遅延が続いている")
    assert len(summary.private_memo) <= 60
    assert summary.action == rules.actions["safe"]
    assert summary.source == "heuristic"


def test_heuristic_messages_follow_comment_order(rules):
    summary = heuristic_summary(rules, ticket_with(conversation()))
    assert [m.role for m in summary.messages] == ["customer", "operator", "memo", "operator", "memo", "system"]
    assert summary.messages[1].text == "確認いたしますので今しばらくお待ちください。"
    assert all(len(m.text) <= (60 if m.role == "memo" else 30) for m in summary.messages)


def test_system_notice_is_shown_verbatim(rules):
    summary = heuristic_summary(rules, ticket_with(conversation()))
    assert summary.messages[-1].text.startswith("お世話になっております。")


def test_heuristic_sentinels_without_comments(rules):
    summary = heuristic_summary(rules, ticket_with([], description=""))
    assert summary.brief == rules.sentinels.no_inquiry
    assert summary.trend == rules.sentinels.no_reply
    assert summary.private_memo == ""
    assert summary.messages == []


def test_heuristic_brief_falls_back_to_description(rules):
    summary = heuristic_summary(rules, ticket_with([], description="<p>ログインできません</p>"))
    assert summary.brief == "ログインできません"


def test_heuristic_handles_missing_ticket(rules):
    summary = HeuristicAssembler(rules).assemble(None, None)
    assert summary.brief == rules.sentinels.no_inquiry
    assert summary.action == rules.actions["safe"]


@pytest.mark.parametrize("score, level", [(10, "safe"), (25, "warn"), (49, "warn"), (50, "danger")])
def test_action_follows_score_tier(rules, score, level):
    assert recommended_action(score, rules) == rules.actions[level]
    summary = heuristic_summary(rules, ticket_with(conversation(), score=score))
    assert summary.action == rules.actions[level]


def model_answer(**fields):
    return "要約です。\n```json\n" + json.dumps(fields, ensure_ascii=False) + "\n```"


@pytest.mark.asyncio
async def test_model_summary_walks_the_timeline_once(rules):
    comments = conversation() + [make_comment("7", "チケット #43 にマージされました", author_id="-1", channel="web", minutes=7)]
    model = FakeModel(model_answer(customer="商品未着の問い合わせ", operator="明日到着と回答", system="解決・統合", memo="補償検討"))
    summary = await ModelAssembler(model, rules).assemble(ticket_with(comments))

    assert summary.source == "model"
    assert [(m.role, m.text) for m in summary.messages] == [
        ("customer", "商品未着の問い合わせ"),
        ("operator", "明日到着と回答"),
        ("memo", "補償検討"),
        ("system", "解決・統合"),
        ("system", "解決・統合"),
    ]
    assert summary.brief == "商品未着の問い合わせ"
    assert summary.trend == "明日到着と回答"
    assert summary.private_memo == "補償検討"


@pytest.mark.asyncio
async def test_model_roles_missing_from_timeline_are_appended(rules):
    comments = [make_comment("1", INQUIRY, author_id=REQUESTER, minutes=1)]
    model = FakeModel(model_answer(customer="商品未着", operator="", system="", memo="要フォロー"))
    summary = await ModelAssembler(model, rules).assemble(ticket_with(comments))
    assert [(m.role, m.text) for m in summary.messages] == [("customer", "商品未着"), ("memo", "要フォロー")]
    assert summary.trend == rules.sentinels.no_reply


@pytest.mark.asyncio
async def test_model_fields_are_bounded(rules):
    model = FakeModel(model_answer(customer="長" * 200))
    summary = await ModelAssembler(model, rules).assemble(ticket_with(conversation()))
    assert len(summary.brief) == 80


@pytest.mark.asyncio
async def test_model_prompt_buckets_and_truncates_entries(rules):
    long_reply = "詳細な説明です。" * 40
    comments = conversation() + [make_comment("8", long_reply, author_id=AGENT, minutes=8)]
    model = FakeModel(model_answer())
    await ModelAssembler(model, rules).assemble(ticket_with(comments))
    prompt = model.prompts[0]
    assert "- 注文した商品がまだ届いていません。" in prompt
    assert "- " + long_reply[:MODEL_ENTRY_LENGTH - 1] + ELLIPSIS in prompt
    assert long_reply not in prompt


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    RuntimeError("timeout"),
    "JSONは返せません",
    '{"customer": "途中で切れた応答',
])
async def test_model_failure_returns_none(rules, response):
    assert await ModelAssembler(FakeModel(response), rules).assemble(ticket_with(conversation())) is None


@pytest.mark.asyncio
async def test_failed_model_falls_back_to_heuristic_verbatim(rules):
    ticket = ticket_with(conversation())
    heuristic = heuristic_summary(rules, ticket)
    model_summary = await ModelAssembler(FakeModel(RuntimeError("boom")), rules).assemble(ticket)
    merged = merge_summaries(model_summary, heuristic)
    assert merged == heuristic
    assert merged.private_memo == heuristic.private_memo != ""


@pytest.mark.asyncio
async def test_heuristic_memo_is_copied_when_model_memo_is_empty(rules):
    ticket = ticket_with(conversation())
    heuristic = heuristic_summary(rules, ticket)
    model = FakeModel(model_answer(customer="商品未着", operator="明日到着", system="", memo=""))
    merged = merge_summaries(await ModelAssembler(model, rules).assemble(ticket), heuristic)
    assert merged.source == "model"
    assert merged.brief == "商品未着"
    assert merged.private_memo == heuristic.private_memo


def test_model_memo_wins_when_present(rules):
    heuristic = HeuristicAssembler(rules).assemble(None, None).model_copy(update={"private_memo": "旧メモ"})
    model_summary = heuristic.model_copy(update={"private_memo": "新メモ", "source": "model"})
    assert merge_summaries(model_summary, heuristic).private_memo == "新メモ"
