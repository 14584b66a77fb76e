"""Built-in priority signal producers.

These run at the boundary, before scoring, and turn configuration plus
simple header/keyword checks into PriorityFactors. Sentiment and deadline
detection stay external; their factors are passed through unchanged.
"""

from __future__ import annotations

import logging
from email.utils import parseaddr
from typing import Iterable

from mailsieve.config import PriorityLevel, PriorityRuleType, PrioritySignalsConfig
from mailsieve.models import Email, PriorityFactor

logger = logging.getLogger(__name__)

VIP_IMPACT = 10
URGENT_KEYWORD_IMPACT = 8
CUSTOM_RULE_IMPACT = 6
MENTION_IMPACT = 5
DIRECT_MESSAGE_IMPACT = 3
ATTACHMENT_IMPACT = 1
NEWSLETTER_IMPACT = -5
PROMOTION_IMPACT = -4
AUTOMATED_IMPACT = -3
UNSUBSCRIBE_LINK_IMPACT = -2

_NEWSLETTER_HINTS = ("newsletter", "digest", "mailing", "pretplata")
_PROMOTION_HINTS = ("promo", "discount", "popust", "akcija", "sniženje", "special offer", "% off")
_AUTOMATED_HINTS = ("noreply", "no-reply", "donotreply", "do-not-reply", "notifications", "mailer-daemon")
_UNSUBSCRIBE_HINTS = ("unsubscribe", "odjava", "odjavi se")


class SignalCollector:
    """Derives priority factors for an email from configuration."""

    def __init__(self, config: PrioritySignalsConfig | None = None):
        self.config = config or PrioritySignalsConfig()

    def collect(
        self, email: Email, extra: Iterable[PriorityFactor] = ()
    ) -> list[PriorityFactor]:
        """Built-in factors followed by caller-supplied ones."""
        factors: list[PriorityFactor] = []

        vip = self._vip_factor(email)
        if vip:
            factors.append(vip)

        if self.config.mentions_high and self._mentions_owner(email):
            factors.append(
                PriorityFactor(name="Mentions me", impact=MENTION_IMPACT, description="Owner mentioned with @")
            )

        if self.config.direct_messages_high and self._is_direct(email):
            factors.append(
                PriorityFactor(
                    name="Direct message",
                    impact=DIRECT_MESSAGE_IMPACT,
                    description=f"Sent only to {email.recipients[0]}",
                )
            )

        if self.config.detect_urgent_keywords:
            urgent = self._urgent_factor(email)
            if urgent:
                factors.append(urgent)

        factors.extend(self._custom_rule_factors(email))

        if self.config.newsletters_low and self._is_newsletter(email):
            factors.append(
                PriorityFactor(
                    name="Newsletter",
                    impact=NEWSLETTER_IMPACT,
                    description="Bulk or subscription mail",
                )
            )
        elif self.config.promotions_low and self._is_promotion(email):
            factors.append(
                PriorityFactor(
                    name="Promotion",
                    impact=PROMOTION_IMPACT,
                    description="Offer or discount",
                )
            )
        elif self.config.automated_low and self._is_automated(email):
            factors.append(
                PriorityFactor(
                    name="Automated sender",
                    impact=AUTOMATED_IMPACT,
                    description=f"Sent from {email.sender_address}",
                )
            )

        if self.config.unsubscribe_link_low and self._has_unsubscribe_link(email):
            factors.append(
                PriorityFactor(
                    name="Unsubscribe link",
                    impact=UNSUBSCRIBE_LINK_IMPACT,
                    description="Body offers an unsubscribe link",
                )
            )

        if email.has_attachment:
            factors.append(
                PriorityFactor(name="Attachment", impact=ATTACHMENT_IMPACT, description="Has attachment")
            )

        factors.extend(extra)
        logger.debug(f"Email {email.id}: {len(factors)} priority factors collected")
        return factors

    def _vip_factor(self, email: Email) -> PriorityFactor | None:
        address = email.sender_address
        domain = email.sender_domain
        for entry in self.config.vip_senders:
            entry = entry.strip().lower()
            if not entry:
                continue
            if entry.startswith("@"):
                hit = domain == entry[1:]
            else:
                hit = address == entry
            if hit:
                return PriorityFactor(name="VIP sender", impact=VIP_IMPACT, description=f"Matched {entry}")
        return None

    def _mentions_owner(self, email: Email) -> bool:
        handles = [name.strip().lower() for name in self.config.owner_names if name.strip()]
        handles += [a.strip().lower().split("@", 1)[0] for a in self.config.owner_addresses if a.strip()]
        if not handles:
            return False
        text = f"{email.subject}\n{email.body}".lower()
        return any(f"@{handle}" in text for handle in handles)

    def _is_direct(self, email: Email) -> bool:
        if len(email.recipients) != 1:
            return False
        owners = {a.strip().lower() for a in self.config.owner_addresses if a.strip()}
        if not owners:
            return True
        _, addr = parseaddr(email.recipients[0])
        return (addr or email.recipients[0]).strip().lower() in owners

    def _urgent_factor(self, email: Email) -> PriorityFactor | None:
        text = f"{email.subject}\n{email.body}".lower()
        for keyword in self.config.urgent_keywords:
            if keyword and keyword.lower() in text:
                return PriorityFactor(
                    name=f"Keyword '{keyword}'",
                    impact=URGENT_KEYWORD_IMPACT,
                    description="Marked as urgent",
                )
        return None

    def _custom_rule_factors(self, email: Email) -> list[PriorityFactor]:
        factors = []
        for rule in self.config.custom_rules:
            if rule.priority == PriorityLevel.NORMAL:
                continue

            value = rule.value.strip().lower()
            if rule.type == PriorityRuleType.SENDER:
                hit = email.sender_address == value
            elif rule.type == PriorityRuleType.DOMAIN:
                hit = email.sender_domain == value.lstrip("@")
            elif rule.type == PriorityRuleType.LABEL:
                hit = value.casefold() in {label.casefold() for label in email.labels}
            else:
                hit = value in email.subject.lower() or value in email.body.lower()

            if hit:
                impact = CUSTOM_RULE_IMPACT if rule.priority == PriorityLevel.HIGH else -CUSTOM_RULE_IMPACT
                factors.append(
                    PriorityFactor(
                        name=f"Custom {rule.type.value} rule",
                        impact=impact,
                        description=f"{rule.value} -> {rule.priority.value}",
                    )
                )
        return factors

    def _is_newsletter(self, email: Email) -> bool:
        sender = email.sender.lower()
        subject = email.subject.lower()
        return any(hint in sender or hint in subject for hint in _NEWSLETTER_HINTS)

    def _is_promotion(self, email: Email) -> bool:
        subject = email.subject.lower()
        return any(hint in subject for hint in _PROMOTION_HINTS)

    def _is_automated(self, email: Email) -> bool:
        local_part = email.sender_address.split("@", 1)[0]
        return any(hint in local_part for hint in _AUTOMATED_HINTS)

    def _has_unsubscribe_link(self, email: Email) -> bool:
        body = email.body.lower()
        return any(hint in body for hint in _UNSUBSCRIBE_HINTS)
