"""Structured diagnostics returned alongside engine results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DiagnosticKind(str, Enum):
    """Kind of non-fatal problem reported by the engine."""

    CONFIGURATION_ERROR = "configuration_error"
    CONFLICT_WARNING = "conflict_warning"
    LEARNER_LOW_CONFIDENCE = "learner_low_confidence"


@dataclass(frozen=True)
class Diagnostic:
    """A problem the engine resolved or skipped instead of raising."""

    kind: DiagnosticKind
    message: str
    rule_id: str | None = None
    email_id: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "rule_id": self.rule_id,
            "email_id": self.email_id,
            "detail": dict(self.detail),
        }


class RuleSetError(ValueError):
    """Raised when a rule set is structurally invalid and cannot be loaded."""


class ActionError(Exception):
    """Raised by the action executor when an action cannot be applied.

    The rules engine converts it into a diagnostic and skips the rule.
    """

    def __init__(self, message: str, action_type: str | None = None):
        super().__init__(message)
        self.action_type = action_type
