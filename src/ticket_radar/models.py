"""Data models for tickets, risk analyses and summaries."""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

TicketStatus = Literal["new", "open", "pending", "hold", "solved", "closed"]
Channel = Literal["voice", "email", "web", "chat", "api", "social", "unknown"]
RiskLevel = Literal["safe", "warn", "danger"]
CustomerLevel = Literal["normal", "caution", "danger"]
Role = Literal["customer", "operator", "system", "memo"]

CHANNELS = ("voice", "email", "web", "chat", "api", "social")


class Comment(BaseModel):
    """One entry of a ticket timeline, already normalized by the adapter."""
    id: str
    author_id: str | None = None
    body: str = ""
    public: bool | None = None
    channel: str = "unknown"
    created_at: datetime | None = None

    model_config = {"frozen": True}

    @field_validator("id", "author_id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return None if value is None else str(value)

    @property
    def is_private(self) -> bool:
        """Only an explicit False marks a comment as internal."""
        return self.public is False


class AuditEvent(BaseModel):
    """Timeline event from the audit log."""
    id: str
    author_id: str | None = None
    body: str = ""
    html_body: str = ""
    public: bool | None = None
    channel: str = "unknown"
    created_at: datetime | None = None

    @field_validator("id", "author_id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return None if value is None else str(value)

    def to_comment(self) -> Comment:
        return Comment(
            id=self.id,
            author_id=self.author_id,
            body=self.html_body or self.body,
            public=self.public,
            channel=self.channel,
            created_at=self.created_at,
        )


class RiskAnalysis(BaseModel):
    """Complaint risk of a single ticket."""
    complaint_score: int = Field(0, ge=0, le=100)
    level: RiskLevel = "safe"
    level_text: str = ""
    icon: str = ""
    matched_reason: str = ""

    @field_validator("complaint_score", mode="before")
    @classmethod
    def _clamp(cls, value):
        return max(0, min(100, int(value)))


class Ticket(BaseModel):
    """A support case. Built fresh per fetch, never persisted."""
    id: str
    subject: str = ""
    description: str = ""
    status: TicketStatus = "new"
    created_at: datetime | None = None
    channel: Channel = "unknown"
    requester_id: str | None = None
    comments: list[Comment] = Field(default_factory=list)
    risk_analysis: RiskAnalysis | None = None
    ai_summary: str | None = None

    @field_validator("id", "requester_id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return None if value is None else str(value)

    @field_validator("subject", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""

    @field_validator("channel", mode="before")
    @classmethod
    def _coerce_channel(cls, value):
        return value if value in CHANNELS else "unknown"

    @property
    def complaint_score(self) -> int:
        return self.risk_analysis.complaint_score if self.risk_analysis else 0


class CustomerRiskAggregate(BaseModel):
    """Risk of a customer across all of their past tickets."""
    score: int = Field(0, ge=0, le=100)
    level: CustomerLevel = "normal"
    level_text: str = ""
    details: str = ""
    complaint_count: int = 0
    recent_complaints: int = 0


class ClassifiedComment(BaseModel):
    """A comment tagged with exactly one conversational role."""
    comment: Comment
    role: Role
    text: str = ""


class SummaryMessage(BaseModel):
    role: Role
    text: str


class Summary(BaseModel):
    """Chat-style digest of one ticket."""
    brief: str
    trend: str
    private_memo: str = ""
    action: str = ""
    messages: list[SummaryMessage] = Field(default_factory=list)
    source: Literal["heuristic", "model"] = "heuristic"


class ModelRiskItem(BaseModel):
    """One element of the batched risk response."""
    id: str
    level: RiskLevel | None = None
    score: int | None = None
    summary: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)

    @field_validator("level", mode="before")
    @classmethod
    def _lower_level(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("score", mode="before")
    @classmethod
    def _round_score(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return round(value)
        return value

    @field_validator("summary", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""


class ModelSummaryFields(BaseModel):
    """Structured per-ticket summary returned by the model."""
    customer: str = ""
    operator: str = ""
    system: str = ""
    memo: str = ""

    @field_validator("customer", "operator", "system", "memo", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else str(value)
