"""Command-line interface for mailsieve."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from mailsieve import __version__
from mailsieve.audit import AuditLog
from mailsieve.config import Config, load_config
from mailsieve.diagnostics import Diagnostic, RuleSetError
from mailsieve.learner import SuggestionLearner
from mailsieve.models import Email, FeedbackEvent, PriorityFactor
from mailsieve.rules_engine import RulesEngine
from mailsieve.scoring import PriorityScorer
from mailsieve.signals import SignalCollector

console = Console(width=200, soft_wrap=False)
logger = logging.getLogger("mailsieve")

CONFIG_OPTION = click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to configuration YAML file",
)


def setup_logging(level: str, log_file: str | None = None) -> None:
    """Configure logging."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
    ]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,
    )


def _load(config: str, verbose: bool) -> Config:
    cfg = load_config(config)
    setup_logging("DEBUG" if verbose else cfg.logging.level, cfg.logging.log_file)
    return cfg


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _load_emails(path: str) -> list[Email]:
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("emails", [])
    return [Email.from_dict(item) for item in data]


def _load_factors(path: str | None) -> dict[str, list[PriorityFactor]]:
    if not path:
        return {}
    data = _read_json(path)
    return {
        str(email_id): [PriorityFactor.model_validate(f) for f in factors]
        for email_id, factors in data.items()
    }


def _print_diagnostics(diagnostics: list[Diagnostic]) -> None:
    if not diagnostics:
        return
    table = Table(title="Diagnostics")
    table.add_column("Kind", style="yellow")
    table.add_column("Rule")
    table.add_column("Email")
    table.add_column("Message")
    for diagnostic in diagnostics:
        table.add_row(
            diagnostic.kind.value,
            diagnostic.rule_id or "-",
            diagnostic.email_id or "-",
            diagnostic.message,
        )
    console.print(table)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """mailsieve - Rule-based email classification and priority scoring."""
    pass


@cli.command()
@CONFIG_OPTION
def validate(config: str) -> None:
    """Load the configuration and list the rule set."""
    try:
        cfg = load_config(config)
        rule_set = cfg.rule_set()
        console.print("[green][OK] Configuration valid[/green]")

        table = Table(title=f"{len(rule_set)} rules")
        table.add_column("#", justify="right")
        table.add_column("Id", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Enabled", justify="center")
        table.add_column("Match")
        table.add_column("Conditions", justify="right")
        table.add_column("Actions")
        table.add_column("Source")

        for rule in rule_set:
            table.add_row(
                str(rule.order),
                rule.id,
                rule.name or "-",
                "[green]yes[/green]" if rule.enabled else "[dim]no[/dim]",
                rule.condition_operator.value,
                str(len(rule.conditions)),
                ", ".join(
                    f"{a.type.value}({a.target})" if a.target else a.type.value for a in rule.actions
                ),
                rule.source.value,
            )
        console.print(table)

    except (FileNotFoundError, RuleSetError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@CONFIG_OPTION
@click.argument("emails", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Path(), help="Write results as JSON")
@click.option("--workers", "-w", type=int, default=None, help="Process emails in parallel")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def process(config: str, emails: str, output: str | None, workers: int | None, verbose: bool) -> None:
    """Run the rule set over a JSON list of emails."""
    try:
        cfg = _load(config, verbose)
        rule_set = cfg.rule_set()
        snapshots = _load_emails(emails)

        audit = AuditLog(cfg.logging.audit_file)
        audit.log_startup({"command": "process", "rules": len(rule_set), "emails": len(snapshots)})

        engine = RulesEngine()
        results = engine.process_batch(snapshots, rule_set, max_workers=workers)

        table = Table(title="Processing Summary")
        table.add_column("Email", style="cyan")
        table.add_column("Subject")
        table.add_column("Folder")
        table.add_column("Labels")
        table.add_column("Rules", style="green")
        table.add_column("Effects")

        diagnostics: list[Diagnostic] = []
        for result in results:
            audit.log_email_processed(result)
            diagnostics.extend(result.diagnostics)
            table.add_row(
                result.email.id,
                result.email.subject[:50],
                result.email.folder,
                ", ".join(sorted(result.email.labels)) or "-",
                ", ".join(result.applied_rule_ids) or "-",
                ", ".join(
                    f"{e.type.value}:{e.target}" if e.target else e.type.value for e in result.effects
                )
                or "-",
            )

        console.print(table)
        _print_diagnostics(diagnostics)

        if output:
            Path(output).write_text(
                json.dumps([r.to_dict() for r in results], indent=2, default=str),
                encoding="utf-8",
            )
            console.print(f"Results saved: {output}")

        console.print(f"\n[bold green]Processed {len(results)} emails[/bold green]")

    except (FileNotFoundError, RuleSetError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@CONFIG_OPTION
@click.argument("emails", type=click.Path(exists=True))
@click.option(
    "--factors",
    "-f",
    type=click.Path(exists=True),
    help="JSON mapping of email id to externally produced factors",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def score(config: str, emails: str, factors: str | None, verbose: bool) -> None:
    """Score and rank a JSON list of emails by priority."""
    try:
        cfg = _load(config, verbose)
        snapshots = _load_emails(emails)
        external = _load_factors(factors)

        collector = SignalCollector(cfg.priority)
        scorer = PriorityScorer()
        ranked = scorer.rank(
            ((email, collector.collect(email, external.get(email.id, ()))) for email in snapshots),
            thresholds=cfg.priority.tiers,
        )

        table = Table(title="Priority Inbox")
        table.add_column("Score", justify="right", style="bold")
        table.add_column("Tier")
        table.add_column("Email", style="cyan")
        table.add_column("From")
        table.add_column("Subject")
        table.add_column("Factors", style="dim")

        for email, result in ranked:
            table.add_row(
                str(result.score),
                result.tier.value,
                email.id,
                email.sender_address,
                email.subject[:50],
                ", ".join(f"{f.name} ({f.impact:+d})" for f in result.factors) or "-",
            )
        console.print(table)

    except (FileNotFoundError, RuleSetError, ValidationError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@CONFIG_OPTION
@click.argument("feedback", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Path(), help="Write candidate rules as YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def suggest(config: str, feedback: str, output: str | None, verbose: bool) -> None:
    """Mine a JSON list of feedback events for candidate rules."""
    try:
        cfg = _load(config, verbose)
        events = [FeedbackEvent.model_validate(item) for item in _read_json(feedback)]

        learner = SuggestionLearner(cfg.learner)
        for event in events:
            learner.observe(event)

        diagnostics: list[Diagnostic] = []
        candidates = learner.mine(existing_rules=cfg.rule_set().ordered(), diagnostics=diagnostics)
        AuditLog(cfg.logging.audit_file).log_candidates(candidates, len(learner.events))

        if not candidates:
            console.print("No candidate rules found")
        else:
            table = Table(title=f"{len(candidates)} candidate rules")
            table.add_column("Id", style="dim")
            table.add_column("Name", style="cyan")
            table.add_column("Confidence", justify="right")
            table.add_column("Support", justify="right")
            for candidate in candidates:
                table.add_row(
                    candidate.id,
                    candidate.name,
                    f"{candidate.confidence:.0%}",
                    str(candidate.support_count),
                )
            console.print(table)

        if verbose:
            _print_diagnostics(diagnostics)

        if output:
            Path(output).write_text(
                yaml.safe_dump({"rules": [c.to_dict() for c in candidates]}, sort_keys=False, allow_unicode=True),
                encoding="utf-8",
            )
            console.print(f"Candidates saved: {output}")

    except (FileNotFoundError, RuleSetError, ValidationError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("output", type=click.Path())
def init_config(output: str) -> None:
    """Generate a sample configuration file."""
    sample_config = """# mailsieve configuration

logging:
  level: INFO
  # log_file: mailsieve.log
  audit_file: audit.jsonl

rules:
  - id: invoices
    name: Fakture u mapu Fakture
    conditionOperator: any
    conditions:
      - field: subject
        operator: contains
        value: "faktura|račun|invoice"
    actions:
      - type: moveTo
        target: Fakture
      - type: addLabel
        target: Fakture

  - id: newsletters
    name: Newsletter arhiviraj
    conditions:
      - field: sender
        operator: contains
        value: newsletter
    actions:
      - type: moveTo
        target: Newsletter
      - type: markAs
        target: read

  - id: vip
    name: VIP pošiljatelji
    enabled: false
    conditions:
      - field: domain
        operator: equals
        value: partner.com
    actions:
      - type: star
      - type: addLabel
        target: Važno

learner:
  min_support: 3
  min_confidence: 0.7
  min_token_length: 4
  max_events: 1000
  window_days: 30

priority:
  vip_senders:
    - ceo@company.hr
    - "@partner.com"
  custom_rules:
    - type: domain
      value: company.hr
      priority: high
    - type: keyword
      value: invoice
      priority: high
    - type: label
      value: Fakture
      priority: high
  owner_addresses:
    - marko@company.hr
  mentions_high: true
  direct_messages_high: true
  newsletters_low: true
  promotions_low: true
  automated_low: true
  unsubscribe_link_low: false
"""
    Path(output).write_text(sample_config, encoding="utf-8")
    console.print(f"[green]Sample configuration written to {output}[/green]")
    console.print("\nNext steps:")
    console.print("1. Edit the rules to match your mailbox")
    console.print("2. Run: mailsieve validate --config " + output)
    console.print("3. Run: mailsieve process --config " + output + " emails.json")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
