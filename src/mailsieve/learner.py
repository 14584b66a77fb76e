"""Suggestion learner: propose labeling rules from user feedback."""

from __future__ import annotations

import hashlib
import logging
import re
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Sequence

from mailsieve.config import LearnerConfig
from mailsieve.diagnostics import Diagnostic, DiagnosticKind
from mailsieve.models import (
    Action,
    ActionType,
    CandidateRule,
    Condition,
    ConditionField,
    ConditionMatch,
    ConditionOperator,
    FeedbackEvent,
    Rule,
)

logger = logging.getLogger(__name__)

_WORD_PATTERN = re.compile(r"\w+", re.UNICODE)

# Frequent words that never make a useful pattern on their own
STOP_WORDS = frozenset(
    {
        "about", "after", "again", "dear", "from", "have", "hello", "here", "into",
        "just", "more", "please", "regards", "thanks", "that", "their", "there",
        "this", "what", "when", "will", "with", "your",
        "biti", "kako", "koja", "koje", "koji", "nije", "samo", "vaša", "vaše", "vašu",
    }
)


@dataclass
class _PatternStats:
    accepted: int = 0
    rejected: int = 0

    @property
    def confidence(self) -> float:
        total = self.accepted + self.rejected
        return self.accepted / total if total else 0.0


class SuggestionLearner:
    """Mines accepted/rejected label feedback for recurring patterns.

    Candidates are always disabled and never touch the active rule set;
    promotion is left to an explicit caller decision.
    """

    def __init__(self, config: LearnerConfig | None = None):
        self.config = config or LearnerConfig()
        self._events: list[FeedbackEvent] = []
        self._lock = threading.Lock()

    @property
    def events(self) -> list[FeedbackEvent]:
        """Current rolling window, oldest first."""
        with self._lock:
            return list(self._events)

    def observe(self, event: FeedbackEvent) -> None:
        """Add a feedback event to the rolling window."""
        with self._lock:
            key = _event_key(event)
            self._events = [e for e in self._events if _event_key(e) != key]
            self._events.append(event)
            self._events = self._prune(self._events)
        logger.debug(
            f"Feedback on email {event.email_id}: label '{event.proposed_label}' "
            f"{'accepted' if event.accepted else 'rejected'}"
        )

    def mine(
        self,
        window: Iterable[FeedbackEvent] | None = None,
        existing_rules: Sequence[Rule] = (),
        diagnostics: list[Diagnostic] | None = None,
    ) -> list[CandidateRule]:
        """
        Propose candidate rules from a feedback window.

        Defaults to the observed rolling window. Patterns are grouped by
        (sender domain, label) and by (subject/body token, label).
        """
        events = self.events if window is None else self._prune(_dedupe(window))

        # labels group case-insensitively under their first-seen spelling
        spellings: dict[str, str] = {}
        domain_stats: dict[tuple[str, str], _PatternStats] = {}
        token_stats: dict[tuple[ConditionField, str, str], _PatternStats] = {}

        for event in events:
            label = spellings.setdefault(event.proposed_label.casefold(), event.proposed_label)
            if event.sender_domain:
                self._count(domain_stats, (event.sender_domain.lower(), label), event.accepted)
            for field, text in ((ConditionField.SUBJECT, event.subject), (ConditionField.BODY, event.body)):
                for token in self._tokens(text):
                    self._count(token_stats, (field, token, label), event.accepted)

        candidates: list[CandidateRule] = []

        for (domain, label), stats in domain_stats.items():
            condition = Condition(field=ConditionField.DOMAIN, operator=ConditionOperator.EQUALS, value=domain)
            candidate = self._candidate(
                f"Label '{label}' from {domain}", condition, label, stats, diagnostics
            )
            if candidate:
                candidates.append(candidate)

        covered_tokens = set()
        for field in (ConditionField.SUBJECT, ConditionField.BODY):
            for (stat_field, token, label), stats in token_stats.items():
                if stat_field != field or (token, label) in covered_tokens:
                    continue
                condition = Condition(field=field, operator=ConditionOperator.CONTAINS, value=token)
                candidate = self._candidate(
                    f"Label '{label}' when {field.value} mentions '{token}'",
                    condition,
                    label,
                    stats,
                    diagnostics,
                )
                if candidate:
                    candidates.append(candidate)
                    covered_tokens.add((token, label))

        candidates = [c for c in candidates if not _is_covered(c, existing_rules)]
        candidates.sort(key=lambda c: (-c.confidence, -c.support_count, c.name))

        logger.info(f"Mined {len(candidates)} candidate rules from {len(events)} feedback events")
        return candidates

    def _candidate(
        self,
        name: str,
        condition: Condition,
        label: str,
        stats: _PatternStats,
        diagnostics: list[Diagnostic] | None,
    ) -> CandidateRule | None:
        if stats.accepted < self.config.min_support:
            return None

        confidence = stats.confidence
        if confidence < self.config.min_confidence:
            logger.debug(
                f"Pattern '{condition.describe()}' -> '{label}' omitted: "
                f"confidence {confidence:.2f} below {self.config.min_confidence:.2f}"
            )
            if diagnostics is not None:
                diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.LEARNER_LOW_CONFIDENCE,
                        message=f"Pattern '{condition.describe()}' -> '{label}' below confidence threshold",
                        detail={
                            "accepted": stats.accepted,
                            "rejected": stats.rejected,
                            "confidence": round(confidence, 4),
                        },
                    )
                )
            return None

        digest = hashlib.sha1(
            f"{condition.field.value}|{condition.value}|{label}".encode("utf-8")
        ).hexdigest()[:10]

        return CandidateRule(
            id=f"suggested-{digest}",
            name=name,
            condition_operator=ConditionMatch.ALL,
            conditions=[condition],
            actions=[Action(type=ActionType.ADD_LABEL, target=label)],
            confidence=confidence,
            support_count=stats.accepted,
        )

    def _tokens(self, text: str) -> set[str]:
        tokens = set()
        for word in _WORD_PATTERN.findall((text or "").lower()):
            if len(word) < self.config.min_token_length or word.isdigit() or word in STOP_WORDS:
                continue
            tokens.add(word)
        return tokens

    def _prune(self, events: list[FeedbackEvent]) -> list[FeedbackEvent]:
        events = sorted(events, key=lambda e: e.timestamp)
        if events and self.config.window_days:
            cutoff = events[-1].timestamp - timedelta(days=self.config.window_days)
            events = [e for e in events if e.timestamp >= cutoff]
        return events[-self.config.max_events:]

    @staticmethod
    def _count(stats: dict, key: tuple, accepted: bool) -> None:
        entry = stats.setdefault(key, _PatternStats())
        if accepted:
            entry.accepted += 1
        else:
            entry.rejected += 1


def _event_key(event: FeedbackEvent) -> tuple[str, str]:
    return event.email_id, event.proposed_label.casefold()


def _dedupe(events: Iterable[FeedbackEvent]) -> list[FeedbackEvent]:
    """Keep the latest event per (email, label)."""
    latest: dict[tuple[str, str], FeedbackEvent] = {}
    for event in sorted(events, key=lambda e: e.timestamp):
        latest.pop(_event_key(event), None)
        latest[_event_key(event)] = event
    return list(latest.values())


def _is_covered(candidate: CandidateRule, rules: Sequence[Rule]) -> bool:
    """Whether an existing rule already applies this label on this condition."""
    condition = candidate.conditions[0]
    label = candidate.actions[0].target.casefold()
    for rule in rules:
        if len(rule.conditions) != 1:
            continue
        existing = rule.conditions[0]
        if (
            existing.field == condition.field
            and existing.operator == condition.operator
            and existing.value.lower() == condition.value.lower()
            and any(
                a.type == ActionType.ADD_LABEL and (a.target or "").casefold() == label
                for a in rule.actions
            )
        ):
            return True
    return False
