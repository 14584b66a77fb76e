"""Tests for configuration module."""

import pytest
import tempfile

from mailsieve.config import (
    Config,
    LearnerConfig,
    PriorityLevel,
    PriorityRuleType,
    load_config,
    load_rules,
)
from mailsieve.diagnostics import RuleSetError
from mailsieve.models import ActionType, ConditionField, ConditionMatch, ConditionOperator


def write_yaml(content: str) -> str:
    """Write YAML to a temporary file and return its path."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yml", delete=False, encoding="utf-8") as f:
        f.write(content)
        f.flush()
        return f.name


class TestLoadConfig:
    """Tests for config loading."""

    def test_load_from_yaml(self):
        yaml_content = """
logging:
  level: DEBUG

rules:
  - id: invoices
    name: Fakture
    conditionOperator: any
    conditions:
      - field: subject
        operator: contains
        value: "faktura|račun"
      - field: hasAttachment
        operator: equals
        value: true
    actions:
      - type: moveTo
        target: Fakture
      - type: addLabel
        target: Fakture
  - id: big
    order: 1
    conditions:
      - field: size
        operator: greaterThan
        value: 10MB
    actions:
      - type: archive

learner:
  min_support: 5

priority:
  vip_senders:
    - "@partner.com"
  custom_rules:
    - type: keyword
      value: invoice
      priority: low
"""
        config = load_config(write_yaml(yaml_content))

        assert config.logging.level == "DEBUG"
        assert len(config.rules) == 2

        rule = config.rules[0]
        assert rule.condition_operator == ConditionMatch.ANY
        assert rule.conditions[0].operator == ConditionOperator.CONTAINS
        assert rule.conditions[1].field == ConditionField.HAS_ATTACHMENT
        assert rule.conditions[1].value == "true"
        assert rule.actions[0].type == ActionType.MOVE_TO

        assert config.learner.min_support == 5
        assert config.priority.vip_senders == ["@partner.com"]
        assert config.priority.custom_rules[0].type == PriorityRuleType.KEYWORD
        assert config.priority.custom_rules[0].priority == PriorityLevel.LOW

        rule_set = config.rule_set()
        assert [r.id for r in rule_set] == ["big", "invoices"]

    def test_rule_set_is_independent(self):
        yaml_content = """
rules:
  - id: r1
    conditions:
      - field: sender
        operator: contains
        value: x
    actions:
      - type: star
"""
        config = load_config(write_yaml(yaml_content))
        config.rule_set().toggle_rule("r1")

        assert config.rules[0].enabled is True

    def test_missing_config_file(self):
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/path/config.yml")

    def test_empty_config(self):
        config = load_config(write_yaml(""))

        # Should have defaults
        assert config.rules == []
        assert config.logging.level == "INFO"
        assert config.learner == LearnerConfig()
        assert config.priority.tiers.critical == 80
        assert "hitno" in config.priority.urgent_keywords

    def test_snake_case_values(self):
        yaml_content = """
rules:
  - id: r1
    condition_operator: ALL
    conditions:
      - field: has_attachment
        operator: not_contains
        value: x
    actions:
      - type: add_label
        target: X
      - type: mark_as
        target: read
"""
        rule = load_config(write_yaml(yaml_content)).rules[0]

        assert rule.conditions[0].field == ConditionField.HAS_ATTACHMENT
        assert rule.conditions[0].operator == ConditionOperator.NOT_CONTAINS
        assert [a.type for a in rule.actions] == [ActionType.ADD_LABEL, ActionType.MARK_AS]

    @pytest.mark.parametrize(
        "yaml_content",
        [
            # zero conditions
            """
rules:
  - id: r1
    conditions: []
    actions:
      - type: star
""",
            # duplicate ids
            """
rules:
  - id: r1
    conditions: [{field: subject, operator: contains, value: a}]
    actions: [{type: star}]
  - id: r1
    conditions: [{field: subject, operator: contains, value: b}]
    actions: [{type: star}]
""",
            # targeted action without target
            """
rules:
  - id: r1
    conditions: [{field: subject, operator: contains, value: a}]
    actions: [{type: moveTo}]
""",
            # unknown operator
            """
rules:
  - id: r1
    conditions: [{field: subject, operator: like, value: a}]
    actions: [{type: star}]
""",
            # tiers out of order
            """
priority:
  tiers:
    critical: 50
    high: 70
""",
            # not a mapping
            "- just\n- a list\n",
            # broken YAML
            "rules: [unclosed\n",
        ],
    )
    def test_invalid_config_rejected(self, yaml_content):
        with pytest.raises(RuleSetError):
            load_config(write_yaml(yaml_content))

    def test_config_from_dict(self):
        config = Config(
            rules=[
                {
                    "id": "r1",
                    "conditions": [{"field": "domain", "operator": "equals", "value": "banka.hr"}],
                    "actions": [{"type": "addLabel", "target": "Financije"}],
                }
            ]
        )

        assert len(config.rule_set()) == 1


class TestLoadRules:
    """Tests for standalone rule files."""

    RULE = """
  - id: r1
    conditions: [{field: subject, operator: contains, value: a}]
    actions: [{type: star}]
  - id: r2
    conditions: [{field: subject, operator: contains, value: b}]
    actions: [{type: star}]
"""

    def test_list(self):
        rule_set = load_rules(write_yaml(self.RULE))

        assert [r.id for r in rule_set] == ["r1", "r2"]
        assert [r.order for r in rule_set] == [1, 2]

    def test_mapping(self):
        rule_set = load_rules(write_yaml("rules:" + self.RULE))

        assert len(rule_set) == 2

    def test_empty_file(self):
        assert len(load_rules(write_yaml(""))) == 0

    def test_not_a_list(self):
        with pytest.raises(RuleSetError):
            load_rules(write_yaml("rules: 5\n"))
