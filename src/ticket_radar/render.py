"""Terminal and markdown views of the risk panel, ticket list and summary."""
from collections.abc import Sequence
from datetime import datetime

from .models import CustomerRiskAggregate, Summary, Ticket
from .normalizer import truncate

STATUS_LABELS = {
    "new": "新規",
    "open": "対応中",
    "pending": "保留",
    "hold": "保留中",
    "solved": "解決済",
    "closed": "クローズ",
}

ROLE_LABELS = {
    "customer": "顧客",
    "operator": "オペレーター",
    "system": "システム",
    "memo": "社内メモ",
}


def format_datetime(value: datetime | None) -> str:
    return value.strftime("%Y/%m/%d %H:%M") if value else "-"


def summary_to_markdown(summary: Summary, ticket_id: str) -> str:
    """Convert a summary to markdown format."""
    lines = [
        f"## 📋 AI要約 #{ticket_id}",
        f"- **問い合わせ:** {summary.brief}",
        f"- **オペレーター返信:** {summary.trend}",
    ]
    if summary.private_memo:
        lines.append(f"- **社内メモ:** {summary.private_memo}")
    lines.extend([f"- **推奨対応:** {summary.action}", ""])

    if summary.messages:
        lines.append("### やり取り")
        lines.extend(f"> **{ROLE_LABELS[m.role]}:** {m.text}" for m in summary.messages)
        lines.append("")

    return "\n".join(lines)


class ConsoleRenderer:
    """Renderer that prints each panel to stdout."""

    def __init__(self, width: int = 60):
        self.width = width

    def render_customer_risk(self, aggregate: CustomerRiskAggregate) -> None:
        print("=" * self.width)
        print(f"顧客リスク: {aggregate.level_text} ({aggregate.score}/100)")
        print(f"  {aggregate.details}")
        print("=" * self.width)

    def render_ticket_list(self, tickets: Sequence[Ticket], selected_id: str | None = None) -> None:
        if not tickets:
            print("過去のチケットはありません")
            return
        for ticket in tickets:
            risk = ticket.risk_analysis
            badge = f"{risk.icon} {risk.level_text}" if risk else "-"
            marker = "▶" if ticket.id == selected_id else " "
            status = STATUS_LABELS.get(ticket.status, ticket.status)
            print(f"{marker} #{ticket.id}  {format_datetime(ticket.created_at)}  [{badge}]  {status}")
            print(f"    「{truncate(ticket.subject or '問い合わせ', 40)}」")
            if ticket.ai_summary:
                print(f"    AI: {ticket.ai_summary}")

    def render_summary(self, summary: Summary, ticket_id: str) -> None:
        print(summary_to_markdown(summary, ticket_id))

    def render_error(self, message: str) -> None:
        print(f"エラー: {message}")

    def show_loading(self) -> None:
        print("生成中...", end="\r")

    def hide_loading(self) -> None:
        print(" " * 12, end="\r")
