"""Tests for built-in priority signals."""

import pytest

from mailsieve.config import PriorityRule, PrioritySignalsConfig
from mailsieve.models import Email, PriorityFactor
from mailsieve.scoring import PriorityScorer
from mailsieve.signals import (
    AUTOMATED_IMPACT,
    CUSTOM_RULE_IMPACT,
    DIRECT_MESSAGE_IMPACT,
    MENTION_IMPACT,
    NEWSLETTER_IMPACT,
    PROMOTION_IMPACT,
    UNSUBSCRIBE_LINK_IMPACT,
    URGENT_KEYWORD_IMPACT,
    VIP_IMPACT,
    SignalCollector,
)


def create_test_email(**kwargs) -> Email:
    """Helper to create test emails."""
    defaults = {
        "id": "1",
        "sender": "Ana Horvat <ana@company.hr>",
        "subject": "Sastanak",
        "body": "Vidimo se sutra.",
    }
    defaults.update(kwargs)
    return Email(**defaults)


def names(factors: list[PriorityFactor]) -> list[str]:
    return [f.name for f in factors]


class TestSignalCollector:
    """Tests for SignalCollector.collect."""

    def test_no_signals(self):
        assert SignalCollector().collect(create_test_email()) == []

    @pytest.mark.parametrize("entry", ["ana@company.hr", "ANA@company.hr", "@company.hr"])
    def test_vip_sender(self, entry):
        collector = SignalCollector(PrioritySignalsConfig(vip_senders=[entry]))

        factors = collector.collect(create_test_email())

        assert names(factors) == ["VIP sender"]
        assert factors[0].impact == VIP_IMPACT

    def test_urgent_keyword_counted_once(self):
        email = create_test_email(subject="HITNO: urgent", body="asap")

        factors = SignalCollector().collect(email)

        assert len(factors) == 1
        assert factors[0].impact == URGENT_KEYWORD_IMPACT

    def test_urgent_detection_disabled(self):
        config = PrioritySignalsConfig(detect_urgent_keywords=False)

        assert SignalCollector(config).collect(create_test_email(subject="urgent")) == []

    def test_custom_rules(self):
        config = PrioritySignalsConfig(
            custom_rules=[
                PriorityRule(type="domain", value="@company.hr", priority="high"),
                PriorityRule(type="keyword", value="sastanak", priority="low"),
                PriorityRule(type="sender", value="ana@company.hr", priority="normal"),
            ]
        )

        factors = SignalCollector(config).collect(create_test_email())

        assert [(f.name, f.impact) for f in factors] == [
            ("Custom domain rule", CUSTOM_RULE_IMPACT),
            ("Custom keyword rule", -CUSTOM_RULE_IMPACT),
        ]

    def test_newsletter(self):
        email = create_test_email(sender="newsletter@shop.com", subject="Weekly digest")

        factors = SignalCollector().collect(email)

        assert names(factors) == ["Newsletter"]
        assert factors[0].impact == NEWSLETTER_IMPACT

    def test_automated_sender(self):
        email = create_test_email(sender="GitHub <notifications@github.com>")

        factors = SignalCollector().collect(email)

        assert names(factors) == ["Automated sender"]
        assert factors[0].impact == AUTOMATED_IMPACT

    def test_newsletter_checks_disabled(self):
        config = PrioritySignalsConfig(newsletters_low=False, automated_low=False)
        email = create_test_email(sender="noreply@newsletter.com")

        assert SignalCollector(config).collect(email) == []

    def test_attachment_and_extra_last(self):
        external = PriorityFactor(name="Deadline tomorrow", impact=7)
        email = create_test_email(subject="Urgent", has_attachment=True)

        factors = SignalCollector().collect(email, [external])

        assert names(factors) == ["Keyword 'urgent'", "Attachment", "Deadline tomorrow"]

    def test_feeds_scorer(self):
        config = PrioritySignalsConfig(vip_senders=["@company.hr"])
        email = create_test_email(subject="Hitno")

        result = PriorityScorer().score(email, SignalCollector(config).collect(email))

        assert result.score == VIP_IMPACT + URGENT_KEYWORD_IMPACT


class TestOwnerSignals:
    """Tests for mention, direct message and label-based signals."""

    @pytest.fixture
    def config(self):
        return PrioritySignalsConfig(owner_addresses=["marko@company.hr"], owner_names=["marko.h"])

    def test_mention_by_handle(self, config):
        email = create_test_email(body="@Marko.H možeš li pogledati?")

        assert names(SignalCollector(config).collect(email)) == ["Mentions me"]

    def test_mention_by_address_local_part(self, config):
        email = create_test_email(subject="Pitanje za @marko")

        factors = SignalCollector(config).collect(email)

        assert names(factors) == ["Mentions me"]
        assert factors[0].impact == MENTION_IMPACT

    def test_mention_needs_owner(self):
        email = create_test_email(body="@marko pogledaj")

        assert SignalCollector().collect(email) == []

    def test_direct_message(self, config):
        email = create_test_email(recipients=["Marko <Marko@company.hr>"])

        factors = SignalCollector(config).collect(email)

        assert names(factors) == ["Direct message"]
        assert factors[0].impact == DIRECT_MESSAGE_IMPACT

    def test_not_direct_with_several_recipients(self, config):
        email = create_test_email(recipients=["marko@company.hr", "team@company.hr"])

        assert SignalCollector(config).collect(email) == []

    def test_direct_to_someone_else(self, config):
        email = create_test_email(recipients=["team@company.hr"])

        assert SignalCollector(config).collect(email) == []

    def test_direct_without_owner_addresses(self):
        email = create_test_email(recipients=["anyone@company.hr"])

        assert names(SignalCollector().collect(email)) == ["Direct message"]

    def test_owner_signals_disabled(self, config):
        config = config.model_copy(update={"mentions_high": False, "direct_messages_high": False})
        email = create_test_email(recipients=["marko@company.hr"], body="@marko")

        assert SignalCollector(config).collect(email) == []

    def test_label_rule_matches_engine_labels(self):
        config = PrioritySignalsConfig(
            custom_rules=[PriorityRule(type="label", value="fakture", priority="high")]
        )

        labelled = create_test_email(labels={"Fakture"})
        plain = create_test_email()

        assert [(f.name, f.impact) for f in SignalCollector(config).collect(labelled)] == [
            ("Custom label rule", CUSTOM_RULE_IMPACT)
        ]
        assert SignalCollector(config).collect(plain) == []


class TestLowPrioritySignals:
    """Tests for promotion and unsubscribe-link signals."""

    def test_promotion(self):
        email = create_test_email(sender="shop@store.com", subject="Akcija: 30% popust")

        factors = SignalCollector().collect(email)

        assert names(factors) == ["Promotion"]
        assert factors[0].impact == PROMOTION_IMPACT

    def test_promotion_toggle(self):
        config = PrioritySignalsConfig(promotions_low=False)
        email = create_test_email(sender="shop@store.com", subject="Promo week")

        assert SignalCollector(config).collect(email) == []

    def test_unsubscribe_link_off_by_default(self):
        email = create_test_email(body="Click here to unsubscribe.")

        assert SignalCollector().collect(email) == []

    def test_unsubscribe_link(self):
        config = PrioritySignalsConfig(unsubscribe_link_low=True)
        email = create_test_email(body="Click here to unsubscribe.")

        factors = SignalCollector(config).collect(email)

        assert names(factors) == ["Unsubscribe link"]
        assert factors[0].impact == UNSUBSCRIBE_LINK_IMPACT

    def test_unsubscribe_adds_to_newsletter(self):
        config = PrioritySignalsConfig(unsubscribe_link_low=True)
        email = create_test_email(sender="newsletter@shop.com", body="Odjava s liste")

        assert names(SignalCollector(config).collect(email)) == ["Newsletter", "Unsubscribe link"]
