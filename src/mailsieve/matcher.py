"""Rule matching: combine condition results into a rule verdict."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mailsieve.conditions import ConditionEvaluator, report_configuration_error
from mailsieve.diagnostics import Diagnostic
from mailsieve.models import ConditionMatch, Email, Rule

logger = logging.getLogger(__name__)


@dataclass
class RuleMatch:
    """Explanation of how a rule evaluated against an email."""

    rule_id: str
    rule_name: str
    matched: bool
    matched_conditions: list[str]
    failed_conditions: list[str]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "matched": self.matched,
            "matched_conditions": self.matched_conditions,
            "failed_conditions": self.failed_conditions,
        }


class RuleMatcher:
    """Determines whether a rule fires for a given email."""

    def __init__(self, evaluator: ConditionEvaluator | None = None):
        self.evaluator = evaluator or ConditionEvaluator()

    def matches(
        self,
        rule: Rule,
        email: Email,
        diagnostics: list[Diagnostic] | None = None,
    ) -> bool:
        """
        Evaluate a rule against an email.

        A disabled rule never matches. A rule with any misconfigured
        condition never matches either, whatever its other conditions say.
        """
        if not rule.enabled:
            return False

        if not self._conditions_valid(rule, email, diagnostics):
            return False

        if rule.condition_operator == ConditionMatch.ALL:
            # AND logic: stop at the first failing condition
            for condition in rule.conditions:
                if not self.evaluator.evaluate(condition, email, diagnostics, rule.id):
                    return False
            return True

        # OR logic: stop at the first matching condition
        for condition in rule.conditions:
            if self.evaluator.evaluate(condition, email, diagnostics, rule.id):
                return True
        return False

    def explain(self, rule: Rule, email: Email) -> RuleMatch:
        """
        Evaluate every condition of a rule without early exit.
        Useful for debugging and understanding why a rule fired.
        """
        matched_conditions: list[str] = []
        failed_conditions: list[str] = []

        for condition in rule.conditions:
            if self.evaluator.evaluate(condition, email, None, rule.id):
                matched_conditions.append(condition.describe())
            else:
                failed_conditions.append(condition.describe())

        return RuleMatch(
            rule_id=rule.id,
            rule_name=rule.name,
            matched=self.matches(rule, email),
            matched_conditions=matched_conditions,
            failed_conditions=failed_conditions,
        )

    def _conditions_valid(
        self, rule: Rule, email: Email, diagnostics: list[Diagnostic] | None
    ) -> bool:
        valid = True
        for condition in rule.conditions:
            problem = self.evaluator.check(condition)
            if problem:
                report_configuration_error(problem, condition, email, diagnostics, rule.id)
                valid = False
        if not valid:
            logger.debug(f"Rule '{rule.name}' ({rule.id}) skipped: misconfigured condition")
        return valid
