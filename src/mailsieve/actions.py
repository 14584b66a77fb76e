"""Action execution: apply a rule's actions to an email snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from mailsieve.diagnostics import ActionError, Diagnostic, DiagnosticKind
from mailsieve.models import ARCHIVE_FOLDER, Action, ActionType, Effect, EffectType, Email

logger = logging.getLogger(__name__)

MARK_TARGETS = ("read", "unread", "important", "spam")


@dataclass
class ActionOutcome:
    """Result of applying an action list."""

    email: Email
    effects: list[Effect] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


class ActionExecutor:
    """Applies ordered actions against a working copy of an email.

    Conflicting writes within one action list resolve last-write-wins and
    are reported as conflict warnings.
    """

    def apply(
        self,
        actions: Sequence[Action],
        email: Email,
        rule_id: str | None = None,
    ) -> ActionOutcome:
        """
        Apply actions in list order.
        Raises ActionError if an action cannot be applied; the input email
        is never modified.
        """
        outcome = ActionOutcome(email=email.copy())
        writes: dict[str, tuple[Any, Action]] = {}

        for action in actions:
            self._apply_action(action, outcome, rule_id)

            slot = self._slot_write(action)
            if slot is None:
                continue
            name, value = slot
            previous = writes.get(name)
            if previous is not None and previous[0] != value:
                message = (
                    f"'{action.type.value}' overrides earlier '{previous[1].type.value}' "
                    f"on {name}: {previous[0]!r} -> {value!r}"
                )
                logger.warning(f"Rule {rule_id}: {message}")
                outcome.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.CONFLICT_WARNING,
                        message=message,
                        rule_id=rule_id,
                        email_id=email.id,
                        detail={"slot": name, "previous": previous[0], "value": value},
                    )
                )
            writes[name] = (value, action)

        return outcome

    def _apply_action(self, action: Action, outcome: ActionOutcome, rule_id: str | None) -> None:
        working = outcome.email

        if action.type == ActionType.MOVE_TO:
            working.folder = action.target
        elif action.type == ActionType.ARCHIVE:
            working.folder = ARCHIVE_FOLDER
        elif action.type == ActionType.ADD_LABEL:
            working.labels.add(action.target)
        elif action.type == ActionType.MARK_AS:
            self._mark_as(working, action.target)
        elif action.type == ActionType.STAR:
            working.starred = True
        elif action.type == ActionType.FORWARD:
            outcome.effects.append(
                Effect(EffectType.FORWARD, email_id=working.id, target=action.target, rule_id=rule_id)
            )
        elif action.type == ActionType.DELETE:
            working.deleted = True
            outcome.effects.append(Effect(EffectType.DELETE, email_id=working.id, rule_id=rule_id))
        else:
            raise ActionError(f"Unsupported action type: {action.type}", action.type)

    def _mark_as(self, working: Email, target: str) -> None:
        mark = target.strip().lower()
        if mark == "read":
            working.unread = False
        elif mark == "unread":
            working.unread = True
        elif mark == "important":
            working.important = True
        elif mark == "spam":
            working.spam = True
        else:
            raise ActionError(
                f"Unknown markAs target {target!r} (expected one of {', '.join(MARK_TARGETS)})",
                ActionType.MARK_AS.value,
            )

    def _slot_write(self, action: Action) -> tuple[str, Any] | None:
        """The state slot an action overwrites, with the value it writes."""
        if action.type == ActionType.MOVE_TO:
            return "folder", action.target
        if action.type == ActionType.ARCHIVE:
            return "folder", ARCHIVE_FOLDER
        if action.type == ActionType.MARK_AS:
            mark = action.target.strip().lower()
            if mark in ("read", "unread"):
                return "unread", mark == "unread"
        return None
