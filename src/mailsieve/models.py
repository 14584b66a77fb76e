"""Data models for the classification and scoring engine.

Rule-side models (conditions, actions, rules, factors, feedback) are pydantic
models so that rule files are validated when they are loaded. The email
snapshot and emitted effects are plain dataclasses passed through the engine.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from email.utils import parseaddr
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_FOLDER = "Inbox"
ARCHIVE_FOLDER = "Archive"


def _normalize_choice(value: Any, enum_cls: type[Enum]) -> Any:
    """Map loosely written enum values (snake_case, any case) onto members."""
    if isinstance(value, enum_cls) or not isinstance(value, str):
        return value
    key = value.strip().replace("_", "").replace("-", "").replace(" ", "").lower()
    for member in enum_cls:
        if member.value.replace("-", "").lower() == key:
            return member
    return value


class ConditionField(str, Enum):
    """Email attribute a condition inspects."""

    SENDER = "sender"
    DOMAIN = "domain"
    SUBJECT = "subject"
    BODY = "body"
    HAS_ATTACHMENT = "hasAttachment"
    SIZE = "size"
    TO = "to"


class ConditionOperator(str, Enum):
    """Comparison applied by a condition."""

    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    EQUALS = "equals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    REGEX = "regex"


NUMERIC_FIELDS = frozenset({ConditionField.SIZE})
NUMERIC_OPERATORS = frozenset({ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN})


class ConditionMatch(str, Enum):
    """How a rule combines its conditions."""

    ALL = "all"
    ANY = "any"


class ActionType(str, Enum):
    """Type of action a rule performs."""

    MOVE_TO = "moveTo"
    ADD_LABEL = "addLabel"
    MARK_AS = "markAs"
    FORWARD = "forward"
    ARCHIVE = "archive"
    DELETE = "delete"
    STAR = "star"


TARGETED_ACTIONS = frozenset(
    {ActionType.MOVE_TO, ActionType.ADD_LABEL, ActionType.MARK_AS, ActionType.FORWARD}
)


class RuleSource(str, Enum):
    """Where a rule came from."""

    MANUAL = "manual"
    AI_SUGGESTED = "ai-suggested"


class EffectType(str, Enum):
    """Side effect the caller must carry out against the mail system."""

    FORWARD = "forward"
    DELETE = "delete"


def _new_rule_id() -> str:
    return uuid.uuid4().hex[:12]


class Condition(BaseModel):
    """A single predicate over one email field."""

    model_config = ConfigDict(frozen=True)

    field: ConditionField
    operator: ConditionOperator
    value: str = Field(min_length=1)

    @field_validator("field", mode="before")
    @classmethod
    def _coerce_field(cls, v: Any) -> Any:
        return _normalize_choice(v, ConditionField)

    @field_validator("operator", mode="before")
    @classmethod
    def _coerce_operator(cls, v: Any) -> Any:
        return _normalize_choice(v, ConditionOperator)

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> Any:
        # YAML turns `value: true` and `value: 1000` into non-strings
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v

    def describe(self) -> str:
        return f"{self.field.value} {self.operator.value} {self.value!r}"


class Action(BaseModel):
    """A single mutation or emitted side effect."""

    model_config = ConfigDict(frozen=True)

    type: ActionType
    target: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Any:
        return _normalize_choice(v, ActionType)

    @model_validator(mode="after")
    def _check_target(self) -> Action:
        if self.type in TARGETED_ACTIONS and not (self.target and self.target.strip()):
            raise ValueError(f"Action '{self.type.value}' requires a non-empty target")
        return self


class Rule(BaseModel):
    """An ordered pair of condition set and action list."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_rule_id)
    name: str = ""
    enabled: bool = True
    condition_operator: ConditionMatch = Field(
        default=ConditionMatch.ALL, alias="conditionOperator"
    )
    conditions: list[Condition] = Field(min_length=1)
    actions: list[Action] = Field(min_length=1)
    order: int | None = None
    source: RuleSource = RuleSource.MANUAL
    match_count: int = Field(default=0, ge=0, alias="matchCount")

    @field_validator("condition_operator", mode="before")
    @classmethod
    def _coerce_condition_operator(cls, v: Any) -> Any:
        return _normalize_choice(v, ConditionMatch)

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, v: Any) -> Any:
        return _normalize_choice(v, RuleSource)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @property
    def is_terminal(self) -> bool:
        """Whether matching this rule ends the pass for the email."""
        return any(a.type == ActionType.DELETE for a in self.actions)

    def to_dict(self) -> dict:
        """Convert to a dictionary using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)


class CandidateRule(Rule):
    """A disabled rule proposed by the suggestion learner."""

    enabled: bool = False
    source: RuleSource = RuleSource.AI_SUGGESTED
    confidence: float = Field(ge=0.0, le=1.0)
    support_count: int = Field(ge=0, alias="supportCount")

    @model_validator(mode="after")
    def _force_suggested(self) -> CandidateRule:
        # candidates are never active until promoted
        self.enabled = False
        self.source = RuleSource.AI_SUGGESTED
        return self

    def to_rule(self, enabled: bool = True) -> Rule:
        """Build the normal rule this candidate turns into when accepted."""
        return Rule(
            id=self.id,
            name=self.name,
            enabled=enabled,
            condition_operator=self.condition_operator,
            conditions=list(self.conditions),
            actions=list(self.actions),
            source=RuleSource.AI_SUGGESTED,
        )


class PriorityFactor(BaseModel):
    """A signed contribution to an email's priority score."""

    model_config = ConfigDict(frozen=True)

    name: str
    impact: int = Field(ge=-10, le=10)
    description: str = ""


class FeedbackEvent(BaseModel):
    """User confirmation or override of an automatic label."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    email_id: str = Field(alias="emailId")
    proposed_label: str = Field(min_length=1, alias="proposedLabel")
    accepted: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context captured from the email, used for pattern mining
    sender_domain: str | None = Field(default=None, alias="senderDomain")
    subject: str = ""
    body: str = ""

    @field_validator("email_id", mode="before")
    @classmethod
    def _coerce_email_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("timestamp", mode="after")
    @classmethod
    def _aware_timestamp(cls, v: datetime) -> datetime:
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)

    @classmethod
    def from_email(
        cls,
        email: Email,
        proposed_label: str,
        accepted: bool,
        timestamp: datetime | None = None,
    ) -> FeedbackEvent:
        """Create an event carrying the email context needed for mining."""
        data: dict[str, Any] = {
            "email_id": email.id,
            "proposed_label": proposed_label,
            "accepted": accepted,
            "sender_domain": email.sender_domain or None,
            "subject": email.subject,
            "body": email.body,
        }
        if timestamp is not None:
            data["timestamp"] = timestamp
        return cls(**data)


@dataclass(frozen=True)
class Effect:
    """Instruction for an external system that the engine does not execute."""

    type: EffectType
    email_id: str
    target: str | None = None
    rule_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "email_id": self.email_id,
            "target": self.target,
            "rule_id": self.rule_id,
        }


_EMAIL_KEY_ALIASES = {
    "from": "sender",
    "to": "recipients",
    "receivedAt": "received_at",
    "hasAttachment": "has_attachment",
    "attachmentSize": "attachment_size",
    "priorityScore": "priority_score",
}


@dataclass
class Email:
    """Snapshot of a message owned by the external mail store."""

    id: str
    sender: str = ""
    subject: str = ""
    body: str = ""
    received_at: datetime | None = None
    recipients: list[str] = field(default_factory=list)

    # Mutable state, changed only through the action executor
    folder: str = DEFAULT_FOLDER
    labels: set[str] = field(default_factory=set)
    unread: bool = True
    starred: bool = False
    important: bool = False
    spam: bool = False
    deleted: bool = False
    priority_score: int | None = None

    # Attachments (metadata only)
    has_attachment: bool = False
    attachment_size: int = 0

    @property
    def sender_address(self) -> str:
        """Bare From address, without display name."""
        _, addr = parseaddr(self.sender)
        return (addr or self.sender).strip().lower()

    @property
    def sender_domain(self) -> str:
        addr = self.sender_address
        return addr.rsplit("@", 1)[-1] if "@" in addr else ""

    @property
    def size(self) -> int:
        """Byte length of body plus attachments."""
        return len(self.body.encode("utf-8")) + self.attachment_size

    def copy(self) -> Email:
        """Return an independent working copy."""
        return replace(self, labels=set(self.labels), recipients=list(self.recipients))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "sender": self.sender,
            "recipients": list(self.recipients),
            "subject": self.subject,
            "body": self.body,
            "received_at": self.received_at.isoformat() if self.received_at else None,
            "folder": self.folder,
            "labels": sorted(self.labels),
            "unread": self.unread,
            "starred": self.starred,
            "important": self.important,
            "spam": self.spam,
            "deleted": self.deleted,
            "has_attachment": self.has_attachment,
            "attachment_size": self.attachment_size,
            "priority_score": self.priority_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Email:
        """Build a snapshot from a JSON-style mapping."""
        values = {_EMAIL_KEY_ALIASES.get(k, k): v for k, v in data.items()}
        if "id" not in values:
            raise ValueError("Email is missing an 'id'")

        received = values.get("received_at")
        if isinstance(received, str):
            values["received_at"] = datetime.fromisoformat(received.replace("Z", "+00:00"))

        recipients = values.get("recipients")
        if isinstance(recipients, str):
            values["recipients"] = [r.strip() for r in recipients.split(",") if r.strip()]

        values["id"] = str(values["id"])
        values["labels"] = set(values.get("labels") or ())

        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in values.items() if k in known})
