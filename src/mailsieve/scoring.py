"""Priority scoring from externally produced signal factors."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mailsieve.models import Email, PriorityFactor

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100


class PriorityTier(str, Enum):
    """Named bucket of the priority score."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MINIMAL = "minimal"


class TierThresholds(BaseModel):
    """Lower bounds (inclusive) of each tier."""

    model_config = ConfigDict(frozen=True)

    critical: int = Field(default=80, ge=MIN_SCORE, le=MAX_SCORE)
    high: int = Field(default=60, ge=MIN_SCORE, le=MAX_SCORE)
    medium: int = Field(default=40, ge=MIN_SCORE, le=MAX_SCORE)
    low: int = Field(default=20, ge=MIN_SCORE, le=MAX_SCORE)

    @model_validator(mode="after")
    def _check_descending(self) -> TierThresholds:
        if not (self.critical > self.high > self.medium > self.low):
            raise ValueError("Tier thresholds must be strictly descending: critical > high > medium > low")
        return self

    def classify(self, score: int) -> PriorityTier:
        if score >= self.critical:
            return PriorityTier.CRITICAL
        if score >= self.high:
            return PriorityTier.HIGH
        if score >= self.medium:
            return PriorityTier.MEDIUM
        if score >= self.low:
            return PriorityTier.LOW
        return PriorityTier.MINIMAL


DEFAULT_THRESHOLDS = TierThresholds()


@dataclass(frozen=True)
class PriorityScore:
    """Scoring breakdown for one email."""

    score: int
    tier: PriorityTier
    raw_score: int
    factors: tuple[PriorityFactor, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "score": self.score,
            "tier": self.tier.value,
            "raw_score": self.raw_score,
            "factors": [f.model_dump() for f in self.factors],
        }


class PriorityScorer:
    """Sums factor impacts into a clamped 0-100 score and a tier.

    The scorer is stateless: the same email and factors always give the
    same result. Tier thresholds are fixed unless passed explicitly.
    """

    def score(
        self,
        email: Email,
        factors: Iterable[PriorityFactor],
        thresholds: TierThresholds | None = None,
    ) -> PriorityScore:
        factors = tuple(factors)
        raw = sum(f.impact for f in factors)
        clamped = max(MIN_SCORE, min(MAX_SCORE, raw))
        tier = (thresholds or DEFAULT_THRESHOLDS).classify(clamped)

        logger.debug(
            f"Priority for email {email.id}: raw={raw} -> {clamped} ({tier.value}) "
            f"from {len(factors)} factors"
        )

        return PriorityScore(score=clamped, tier=tier, raw_score=raw, factors=factors)

    def rank(
        self,
        items: Iterable[tuple[Email, Sequence[PriorityFactor]]],
        thresholds: TierThresholds | None = None,
    ) -> list[tuple[Email, PriorityScore]]:
        """
        Score emails and order them for a priority inbox.
        Highest score first, then newest, then by id.
        """
        scored = [(email, self.score(email, factors, thresholds)) for email, factors in items]
        oldest = datetime.min.replace(tzinfo=timezone.utc)

        def _received(email: Email) -> datetime:
            received = email.received_at
            if received is None:
                return oldest
            return received if received.tzinfo else received.replace(tzinfo=timezone.utc)

        scored.sort(key=lambda pair: pair[0].id)
        scored.sort(key=lambda pair: (pair[1].score, _received(pair[0])), reverse=True)
        return scored

    @staticmethod
    def with_score(email: Email, result: PriorityScore) -> Email:
        """Copy of the email carrying the computed score."""
        return replace(email.copy(), priority_score=result.score)
