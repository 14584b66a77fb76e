"""Configuration management for mailsieve."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from mailsieve.diagnostics import RuleSetError
from mailsieve.models import Rule
from mailsieve.rules_engine import RuleSet
from mailsieve.scoring import TierThresholds

DEFAULT_URGENT_KEYWORDS = ["urgent", "hitno", "asap", "immediately", "critical", "importante"]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_file: str | None = None
    audit_file: str | None = "audit.jsonl"


class LearnerConfig(BaseModel):
    """Thresholds for mining candidate rules from feedback."""

    min_support: int = Field(default=3, ge=1, description="Accepted events needed for a pattern")
    min_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum accepted / (accepted + rejected) ratio",
    )
    min_token_length: int = Field(default=4, ge=1)
    max_events: int = Field(default=1000, ge=1, description="Size of the rolling feedback window")
    window_days: int | None = Field(
        default=30,
        ge=1,
        description="Drop feedback older than this, relative to the newest event",
    )


class PriorityLevel(str, Enum):
    """Priority a custom priority rule assigns."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class PriorityRuleType(str, Enum):
    """What a custom priority rule matches on."""

    SENDER = "sender"
    DOMAIN = "domain"
    KEYWORD = "keyword"
    LABEL = "label"


class PriorityRule(BaseModel):
    """User-defined sender, domain, keyword or label priority override."""

    type: PriorityRuleType
    value: str = Field(min_length=1)
    priority: PriorityLevel = PriorityLevel.HIGH


class PrioritySignalsConfig(BaseModel):
    """Inputs for the built-in priority signal producers."""

    vip_senders: list[str] = Field(
        default_factory=list,
        description="Addresses, or '@domain' entries, treated as VIP",
    )
    urgent_keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_URGENT_KEYWORDS))
    detect_urgent_keywords: bool = True
    owner_addresses: list[str] = Field(
        default_factory=list,
        description="Mailbox owner's addresses, used for direct message and mention checks",
    )
    owner_names: list[str] = Field(
        default_factory=list,
        description="Handles that count as a mention when written as '@name'",
    )
    mentions_high: bool = True
    direct_messages_high: bool = True
    custom_rules: list[PriorityRule] = Field(default_factory=list)
    newsletters_low: bool = True
    promotions_low: bool = True
    automated_low: bool = True
    unsubscribe_link_low: bool = False
    tiers: TierThresholds = Field(default_factory=TierThresholds)


class Config(BaseModel):
    """Main configuration."""

    logging: LoggingConfig = Field(default_factory=lambda: LoggingConfig())
    rules: list[Rule] = Field(default_factory=list)
    learner: LearnerConfig = Field(default_factory=lambda: LearnerConfig())
    priority: PrioritySignalsConfig = Field(default_factory=lambda: PrioritySignalsConfig())

    def rule_set(self) -> RuleSet:
        """Build the ordered rule set; raises RuleSetError on duplicate ids."""
        return RuleSet(rule.model_copy(deep=True) for rule in self.rules)


def _read_yaml(path: str | Path) -> Any:
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleSetError(f"Invalid YAML in {path}: {e}") from e


def load_config(config_path: str | Path) -> Config:
    """Load configuration from YAML file."""
    data = _read_yaml(config_path) or {}
    if not isinstance(data, dict):
        raise RuleSetError(f"Configuration in {config_path} must be a mapping")

    try:
        config = Config(**data)
    except ValidationError as e:
        raise RuleSetError(f"Invalid configuration in {config_path}: {e}") from e

    # Reject duplicate ids before anything is processed
    config.rule_set()
    return config


def load_rules(rules_path: str | Path) -> RuleSet:
    """Load a rule set from a YAML list or a mapping with a 'rules' key."""
    data = _read_yaml(rules_path)
    if isinstance(data, dict):
        data = data.get("rules", [])
    if data is None:
        data = []
    if not isinstance(data, list):
        raise RuleSetError(f"Rules in {rules_path} must be a list")
    return RuleSet(data)
