"""Structured audit trail for mailsieve."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from mailsieve.diagnostics import Diagnostic
from mailsieve.models import CandidateRule
from mailsieve.rules_engine import ProcessResult

logger = logging.getLogger(__name__)


class AuditLog:
    """Appends JSON lines describing engine runs."""

    def __init__(self, log_file: str | None = None):
        """Initialize audit log.

        Args:
            log_file: Path to JSON lines file; None disables writing
        """
        self.log_file = Path(log_file) if log_file else None

    def log_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Log a structured event.

        Args:
            event_type: Type of event (e.g., 'email_processed', 'diagnostic')
            data: Event data
        """
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            **data,
        }

        if self.log_file:
            try:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event, default=str) + "\n")
            except OSError as e:
                logger.error(f"Failed to write to audit log: {e}")

    def log_email_processed(self, result: ProcessResult) -> None:
        """Log the outcome of one processing pass.

        Args:
            result: Result returned by RulesEngine.process
        """
        self.log_event(
            "email_processed",
            {
                "email_id": self._sanitize(result.email.id),
                "applied_rule_ids": result.applied_rule_ids,
                "patch": result.patch,
                "effects": [e.to_dict() for e in result.effects],
                "diagnostic_count": len(result.diagnostics),
            },
        )
        for diagnostic in result.diagnostics:
            self.log_diagnostic(diagnostic)

    def log_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.log_event("diagnostic", diagnostic.to_dict())

    def log_candidates(self, candidates: Sequence[CandidateRule], event_count: int) -> None:
        """Log a mining run.

        Args:
            candidates: Candidate rules produced
            event_count: Number of feedback events mined
        """
        self.log_event(
            "candidates_mined",
            {
                "event_count": event_count,
                "candidates": [
                    {
                        "id": c.id,
                        "name": c.name,
                        "confidence": c.confidence,
                        "support_count": c.support_count,
                    }
                    for c in candidates
                ],
            },
        )

    def log_startup(self, config: dict[str, Any]) -> None:
        """Log a CLI run starting.

        Args:
            config: Sanitized run parameters
        """
        self.log_event("startup", config)

    def _sanitize(self, value: str) -> str:
        """Strip control characters and cap length for logging."""
        sanitized = "".join(c for c in value if c.isprintable() or c in [" ", "\t"])
        if len(sanitized) > 500:
            sanitized = sanitized[:497] + "..."
        return sanitized
