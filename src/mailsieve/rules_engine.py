"""Rules engine: ordered rule set and per-email processing."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from pydantic import ValidationError

from mailsieve.actions import ActionExecutor
from mailsieve.diagnostics import ActionError, Diagnostic, DiagnosticKind, RuleSetError
from mailsieve.matcher import RuleMatcher
from mailsieve.models import CandidateRule, Effect, Email, Rule

logger = logging.getLogger(__name__)


class ProcessingState(str, Enum):
    """Lifecycle of one email through a processing pass."""

    PENDING = "pending"
    EVALUATING = "evaluating"
    MATCHED = "matched"
    APPLIED = "applied"
    DONE = "done"


@dataclass
class ProcessResult:
    """Outcome of running the rule set over one email."""

    original: Email
    email: Email
    applied_rule_ids: list[str] = field(default_factory=list)
    effects: list[Effect] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    state: ProcessingState = ProcessingState.PENDING

    @property
    def patch(self) -> dict[str, Any]:
        """Fields of the email that changed, with their new values."""
        before = self.original.to_dict()
        after = self.email.to_dict()
        return {k: v for k, v in after.items() if before.get(k) != v}

    def to_dict(self) -> dict:
        """Convert to dictionary for storage/reporting."""
        return {
            "email_id": self.email.id,
            "applied_rule_ids": list(self.applied_rule_ids),
            "patch": self.patch,
            "effects": [e.to_dict() for e in self.effects],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def build_rules(data: Iterable[Rule | Mapping[str, Any]]) -> list[Rule]:
    """Validate raw rule mappings, wrapping validation errors in RuleSetError."""
    rules: list[Rule] = []
    for index, item in enumerate(data):
        if isinstance(item, Rule):
            rules.append(item)
            continue
        if not isinstance(item, Mapping):
            raise RuleSetError(f"Rule #{index + 1} is not a mapping")
        try:
            rules.append(Rule.model_validate(item))
        except ValidationError as e:
            name = item.get("name") or item.get("id") or f"#{index + 1}"
            raise RuleSetError(f"Invalid rule {name}: {e}") from e
    return rules


def sort_rules(rules: Sequence[Rule]) -> list[Rule]:
    """Sort by order ascending; ties and missing orders keep insertion order."""
    indexed = list(enumerate(rules))
    indexed.sort(
        key=lambda pair: (pair[1].order is None, pair[1].order or 0, pair[0])
    )
    return [rule for _, rule in indexed]


class RuleSet:
    """Ordered, thread-safe collection of rules.

    Mutations and snapshots are serialized by a lock. Batch runs take a
    snapshot so that edits never affect an in-flight batch.
    """

    def __init__(self, rules: Iterable[Rule | Mapping[str, Any]] = ()):
        self._lock = threading.RLock()
        self._rules: list[Rule] = []

        loaded = build_rules(rules)
        seen: set[str] = set()
        for rule in loaded:
            if rule.id in seen:
                raise RuleSetError(f"Duplicate rule id: {rule.id}")
            seen.add(rule.id)

        self._rules = sort_rules(loaded)
        self._renormalize()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def __iter__(self):
        return iter(self.ordered())

    def __contains__(self, rule_id: object) -> bool:
        with self._lock:
            return any(r.id == rule_id for r in self._rules)

    def get(self, rule_id: str) -> Rule:
        with self._lock:
            return self._rules[self._index(rule_id)]

    def ordered(self) -> list[Rule]:
        """Rules in evaluation order."""
        with self._lock:
            return list(self._rules)

    def snapshot(self) -> tuple[Rule, ...]:
        """Immutable copy of the rule set for a processing run."""
        with self._lock:
            return tuple(rule.model_copy(deep=True) for rule in self._rules)

    def add_rule(self, rule: Rule) -> Rule:
        """Add a rule at its 1-based order, or last when it has none."""
        with self._lock:
            if rule.id in self:
                raise RuleSetError(f"Duplicate rule id: {rule.id}")
            if rule.order is None:
                self._rules.append(rule)
            else:
                position = min(max(rule.order, 1), len(self._rules) + 1)
                self._rules.insert(position - 1, rule)
            self._renormalize()
            logger.info(f"Rule added: '{rule.name}' ({rule.id}) at position {rule.order}")
            return rule

    def remove_rule(self, rule_id: str) -> Rule:
        with self._lock:
            rule = self._rules.pop(self._index(rule_id))
            self._renormalize()
            logger.info(f"Rule removed: '{rule.name}' ({rule.id})")
            return rule

    def toggle_rule(self, rule_id: str, enabled: bool | None = None) -> Rule:
        """Flip a rule's enabled flag, or set it explicitly."""
        with self._lock:
            rule = self.get(rule_id)
            rule.enabled = (not rule.enabled) if enabled is None else enabled
            logger.info(f"Rule '{rule.name}' ({rule.id}) {'enabled' if rule.enabled else 'disabled'}")
            return rule

    def reorder(self, rule_id: str, new_order: int) -> None:
        """
        Move a rule to a 1-based position.
        All orders are renumbered 1..n; untouched rules keep their relative order.
        """
        with self._lock:
            rule = self._rules.pop(self._index(rule_id))
            position = min(max(new_order, 1), len(self._rules) + 1)
            self._rules.insert(position - 1, rule)
            self._renormalize()
            logger.debug(f"Rule '{rule.name}' ({rule.id}) moved to position {rule.order}")

    def duplicate_rule(self, rule_id: str) -> Rule:
        """Copy a rule, disabled, and insert the copy right after the original."""
        with self._lock:
            index = self._index(rule_id)
            original = self._rules[index]
            data = original.model_dump(exclude={"id", "match_count", "order"})
            data["name"] = f"{original.name} (copy)"
            data["enabled"] = False
            copy = Rule.model_validate(data)
            self._rules.insert(index + 1, copy)
            self._renormalize()
            return copy

    def promote(self, candidate: CandidateRule, enabled: bool = True) -> Rule:
        """Accept a suggested rule into the active set."""
        rule = candidate.to_rule(enabled=enabled)
        self.add_rule(rule)
        logger.info(
            f"Candidate '{candidate.name}' promoted as rule {rule.id} "
            f"(confidence={candidate.confidence:.2f}, support={candidate.support_count})"
        )
        return rule

    def record_matches(self, counts: Mapping[str, int]) -> None:
        """Add match counts gathered from a snapshot run."""
        with self._lock:
            for rule in self._rules:
                if counts.get(rule.id):
                    rule.match_count += counts[rule.id]

    def to_list(self) -> list[dict]:
        return [rule.to_dict() for rule in self.ordered()]

    def _index(self, rule_id: str) -> int:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        raise KeyError(f"Unknown rule id: {rule_id}")

    def _renormalize(self) -> None:
        for position, rule in enumerate(self._rules, start=1):
            rule.order = position


class RulesEngine:
    """Runs matching rules in order against incoming emails."""

    def __init__(
        self,
        matcher: RuleMatcher | None = None,
        executor: ActionExecutor | None = None,
    ):
        self.matcher = matcher or RuleMatcher()
        self.executor = executor or ActionExecutor()

    def process(self, email: Email, rules: RuleSet | Sequence[Rule]) -> ProcessResult:
        """
        Run every matching rule against an email.

        All matching rules apply, in order, against the accumulating state.
        A rule containing a delete action ends the pass. Errors in a rule
        skip that rule only and are returned as diagnostics.
        """
        ordered = rules.snapshot() if isinstance(rules, RuleSet) else sort_rules(rules)
        result = self._run(email, ordered)

        if isinstance(rules, RuleSet):
            rules.record_matches(Counter(result.applied_rule_ids))
        else:
            applied = set(result.applied_rule_ids)
            for rule in rules:
                if rule.id in applied:
                    rule.match_count += 1

        return result

    def process_batch(
        self,
        emails: Sequence[Email],
        rule_set: RuleSet,
        max_workers: int | None = None,
    ) -> list[ProcessResult]:
        """
        Process many emails against one snapshot of the rule set.
        Results are returned in input order.
        """
        snapshot = sort_rules(rule_set.snapshot())
        logger.info(f"Processing {len(emails)} emails against {len(snapshot)} rules")

        if max_workers and max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(pool.map(lambda e: self._run(e, snapshot), emails))
        else:
            results = [self._run(email, snapshot) for email in emails]

        counts: Counter[str] = Counter()
        for result in results:
            counts.update(result.applied_rule_ids)
        rule_set.record_matches(counts)

        return results

    def preview(self, rule: Rule, emails: Iterable[Email]) -> list[str]:
        """Ids of emails a rule would match, ignoring its enabled flag."""
        probe = rule.model_copy(update={"enabled": True})
        return [email.id for email in emails if self.matcher.matches(probe, email)]

    def _run(self, email: Email, ordered: Sequence[Rule]) -> ProcessResult:
        result = ProcessResult(original=email.copy(), email=email.copy())
        result.state = ProcessingState.EVALUATING
        folder_owner: str | None = None

        for rule in ordered:
            if not rule.enabled:
                continue

            if not self.matcher.matches(rule, result.email, result.diagnostics):
                continue

            result.state = ProcessingState.MATCHED
            logger.debug(f"Rule '{rule.name}' ({rule.id}) matched email {email.id}")

            try:
                outcome = self.executor.apply(rule.actions, result.email, rule.id)
            except ActionError as e:
                logger.warning(f"Rule '{rule.name}' ({rule.id}) skipped for email {email.id}: {e}")
                result.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.CONFIGURATION_ERROR,
                        message=str(e),
                        rule_id=rule.id,
                        email_id=email.id,
                        detail={"action": e.action_type},
                    )
                )
                continue

            if outcome.email.folder != result.email.folder:
                if folder_owner is not None:
                    logger.warning(
                        f"Rule '{rule.name}' ({rule.id}) overrides folder set by rule {folder_owner} "
                        f"for email {email.id}"
                    )
                    result.diagnostics.append(
                        Diagnostic(
                            kind=DiagnosticKind.CONFLICT_WARNING,
                            message=(
                                f"Rule {rule.id} moves email to {outcome.email.folder!r}, "
                                f"overriding {result.email.folder!r} from rule {folder_owner}"
                            ),
                            rule_id=rule.id,
                            email_id=email.id,
                            detail={"overridden_rule_id": folder_owner},
                        )
                    )
                folder_owner = rule.id

            result.email = outcome.email
            result.diagnostics.extend(outcome.diagnostics)
            for effect in outcome.effects:
                self._add_effect(result, effect)
            result.applied_rule_ids.append(rule.id)
            result.state = ProcessingState.APPLIED

            if rule.is_terminal:
                logger.debug(f"Rule '{rule.name}' ({rule.id}) deletes email {email.id}, stopping")
                break

        result.state = ProcessingState.DONE
        return result

    def _add_effect(self, result: ProcessResult, effect: Effect) -> None:
        for existing in result.effects:
            if existing.type == effect.type and existing.target == effect.target:
                logger.debug(f"Duplicate {effect.type.value} effect from rule {effect.rule_id} dropped")
                return
        result.effects.append(effect)
