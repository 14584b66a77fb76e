"""Condition evaluation for rule matching."""

from __future__ import annotations

import logging
import re

from mailsieve.diagnostics import Diagnostic, DiagnosticKind
from mailsieve.models import (
    NUMERIC_FIELDS,
    NUMERIC_OPERATORS,
    Condition,
    ConditionField,
    ConditionOperator,
    Email,
)

logger = logging.getLogger(__name__)

ALTERNATION_SEPARATOR = "|"

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}


def parse_size(value: str) -> int | None:
    """Parse a byte count such as ``2048``, ``10KB`` or ``1 MB``."""
    match = _SIZE_PATTERN.match(value)
    if not match:
        return None
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[(unit or "b").lower()]


def split_alternatives(value: str) -> list[str]:
    """Split a ``|``-delimited value into its non-blank literals."""
    return [part.strip() for part in value.split(ALTERNATION_SEPARATOR) if part.strip()]


class ConditionEvaluator:
    """Decides whether a single condition matches an email.

    Evaluation has no side effects apart from the regex cache. Conditions
    that are misconfigured evaluate to False and are reported as
    diagnostics instead of raising.
    """

    def __init__(self) -> None:
        self._compiled_patterns: dict[str, re.Pattern] = {}

    def check(self, condition: Condition) -> str | None:
        """Return a description of a configuration problem, or None."""
        if condition.operator in NUMERIC_OPERATORS and condition.field not in NUMERIC_FIELDS:
            return (
                f"Operator '{condition.operator.value}' needs a numeric field, "
                f"'{condition.field.value}' is not numeric"
            )

        if condition.field in NUMERIC_FIELDS and (
            condition.operator in NUMERIC_OPERATORS
            or condition.operator == ConditionOperator.EQUALS
        ):
            if parse_size(condition.value) is None:
                return f"Value {condition.value!r} is not a valid size"

        if condition.operator == ConditionOperator.REGEX:
            try:
                self._compile(condition.value)
            except re.error as e:
                return f"Invalid regex {condition.value!r}: {e}"

        return None

    def evaluate(
        self,
        condition: Condition,
        email: Email,
        diagnostics: list[Diagnostic] | None = None,
        rule_id: str | None = None,
    ) -> bool:
        """Evaluate a condition against an email."""
        problem = self.check(condition)
        if problem:
            report_configuration_error(problem, condition, email, diagnostics, rule_id)
            return False

        values = self._get_field_values(condition.field, email)

        if condition.operator == ConditionOperator.NOT_CONTAINS:
            return not any(self._contains(str(v), self._text_value(condition)) for v in values)

        return any(self._match_value(condition, v) for v in values)

    def _get_field_values(self, field: ConditionField, email: Email) -> list[str | int]:
        """Get the value(s) of a field from the email."""
        if field == ConditionField.SENDER:
            return [email.sender_address]
        elif field == ConditionField.DOMAIN:
            return [email.sender_domain]
        elif field == ConditionField.SUBJECT:
            return [email.subject or ""]
        elif field == ConditionField.BODY:
            return [email.body or ""]
        elif field == ConditionField.HAS_ATTACHMENT:
            return ["true" if email.has_attachment else "false"]
        elif field == ConditionField.SIZE:
            return [email.size]
        elif field == ConditionField.TO:
            return list(email.recipients)
        return []

    def _match_value(self, condition: Condition, value: str | int) -> bool:
        """Match one extracted value against a condition."""
        operator = condition.operator

        if isinstance(value, int):
            limit = parse_size(condition.value)
            if operator == ConditionOperator.GREATER_THAN:
                return value > limit
            if operator == ConditionOperator.LESS_THAN:
                return value < limit
            if operator == ConditionOperator.EQUALS:
                return value == limit
            value = str(value)

        if operator == ConditionOperator.CONTAINS:
            return self._contains(value, self._text_value(condition))
        elif operator == ConditionOperator.EQUALS:
            return value.lower() == self._text_value(condition).lower()
        elif operator == ConditionOperator.STARTS_WITH:
            return value.lower().startswith(self._text_value(condition).lower())
        elif operator == ConditionOperator.ENDS_WITH:
            return value.lower().endswith(self._text_value(condition).lower())
        elif operator == ConditionOperator.REGEX:
            return bool(self._compile(condition.value).search(value))
        return False

    def _text_value(self, condition: Condition) -> str:
        """Condition value as compared against text; domains drop a leading '@'."""
        if condition.field != ConditionField.DOMAIN:
            return condition.value
        return ALTERNATION_SEPARATOR.join(
            alt.lstrip("@") for alt in split_alternatives(condition.value)
        )

    def _contains(self, value: str, pattern: str) -> bool:
        haystack = value.lower()
        return any(alt.lower() in haystack for alt in split_alternatives(pattern))

    def _compile(self, pattern: str) -> re.Pattern:
        compiled = self._compiled_patterns.get(pattern)
        if compiled is None:
            compiled = re.compile(pattern, re.IGNORECASE)
            self._compiled_patterns[pattern] = compiled
        return compiled


def report_configuration_error(
    problem: str,
    condition: Condition,
    email: Email,
    diagnostics: list[Diagnostic] | None,
    rule_id: str | None,
) -> None:
    """Log a misconfigured condition and record it as a diagnostic."""
    logger.warning(f"Condition '{condition.describe()}' in rule {rule_id}: {problem}")
    if diagnostics is not None:
        diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.CONFIGURATION_ERROR,
                message=problem,
                rule_id=rule_id,
                email_id=email.id,
                detail={"condition": condition.model_dump(mode="json")},
            )
        )
