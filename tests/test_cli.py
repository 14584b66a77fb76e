"""Tests for the command-line interface."""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from mailsieve.cli import cli
from mailsieve.config import load_rules

EMAILS = [
    {"id": "1", "from": "racuni@hep.hr", "subject": "Vaš račun za ožujak"},
    {"id": "2", "from": "newsletter@shop.com", "subject": "Akcija tjedna"},
    {"id": "3", "from": "ceo@company.hr", "subject": "Hitno: sastanak", "hasAttachment": True},
]

FEEDBACK = [
    {"emailId": str(i), "proposedLabel": "Financije", "accepted": True, "senderDomain": "banka.hr",
     "subject": subject, "timestamp": f"2024-03-0{i + 1}T09:00:00Z"}
    for i, subject in enumerate(
        ["Izvod za siječanj", "Obavijest o kartici", "Nova ponuda kredita", "Potvrda uplate"]
    )
]


@pytest.fixture
def runner():
    return CliRunner()


def init_workspace(runner: CliRunner) -> None:
    """Write the sample config and input files into the current directory."""
    result = runner.invoke(cli, ["init-config", "config.yml"])
    assert result.exit_code == 0
    Path("emails.json").write_text(json.dumps(EMAILS), encoding="utf-8")
    Path("feedback.json").write_text(json.dumps(FEEDBACK), encoding="utf-8")


class TestCli:
    """End-to-end runs of the CLI commands."""

    def test_validate_sample_config(self, runner):
        with runner.isolated_filesystem():
            init_workspace(runner)

            result = runner.invoke(cli, ["validate", "-c", "config.yml"])

            assert result.exit_code == 0
            assert "Configuration valid" in result.output

    def test_validate_rejects_bad_config(self, runner):
        with runner.isolated_filesystem():
            Path("bad.yml").write_text("rules:\n  - id: r1\n    conditions: []\n", encoding="utf-8")

            result = runner.invoke(cli, ["validate", "-c", "bad.yml"])

            assert result.exit_code == 1
            assert "Error" in result.output

    def test_process(self, runner):
        with runner.isolated_filesystem():
            init_workspace(runner)

            result = runner.invoke(cli, ["process", "-c", "config.yml", "emails.json", "-o", "out.json"])

            assert result.exit_code == 0
            results = {r["email_id"]: r for r in json.loads(Path("out.json").read_text(encoding="utf-8"))}
            assert results["1"]["applied_rule_ids"] == ["invoices"]
            assert results["1"]["patch"] == {"folder": "Fakture", "labels": ["Fakture"]}
            assert results["2"]["applied_rule_ids"] == ["newsletters"]
            assert results["2"]["patch"] == {"folder": "Newsletter", "unread": False}
            assert results["3"]["applied_rule_ids"] == []

            audit = Path("audit.jsonl").read_text(encoding="utf-8").splitlines()
            event_types = [json.loads(line)["event_type"] for line in audit]
            assert event_types.count("email_processed") == 3

    def test_process_in_parallel(self, runner):
        with runner.isolated_filesystem():
            init_workspace(runner)

            result = runner.invoke(
                cli, ["process", "-c", "config.yml", "emails.json", "-w", "2", "-o", "out.json"]
            )

            assert result.exit_code == 0
            ids = [r["email_id"] for r in json.loads(Path("out.json").read_text(encoding="utf-8"))]
            assert ids == ["1", "2", "3"]

    def test_process_rejects_email_without_id(self, runner):
        with runner.isolated_filesystem():
            init_workspace(runner)
            Path("emails.json").write_text(json.dumps([{"subject": "x"}]), encoding="utf-8")

            result = runner.invoke(cli, ["process", "-c", "config.yml", "emails.json"])

            assert result.exit_code == 1

    def test_score(self, runner):
        with runner.isolated_filesystem():
            init_workspace(runner)
            Path("factors.json").write_text(
                json.dumps({"2": [{"name": "Deadline", "impact": 9}]}), encoding="utf-8"
            )

            result = runner.invoke(cli, ["score", "-c", "config.yml", "emails.json", "-f", "factors.json"])

            assert result.exit_code == 0
            assert "Priority Inbox" in result.output

    def test_score_rejects_bad_factor(self, runner):
        with runner.isolated_filesystem():
            init_workspace(runner)
            Path("factors.json").write_text(
                json.dumps({"1": [{"name": "Huge", "impact": 50}]}), encoding="utf-8"
            )

            result = runner.invoke(cli, ["score", "-c", "config.yml", "emails.json", "-f", "factors.json"])

            assert result.exit_code == 1

    def test_suggest(self, runner):
        with runner.isolated_filesystem():
            init_workspace(runner)

            result = runner.invoke(
                cli, ["suggest", "-c", "config.yml", "feedback.json", "-o", "candidates.yml"]
            )

            assert result.exit_code == 0
            data = yaml.safe_load(Path("candidates.yml").read_text(encoding="utf-8"))
            assert len(data["rules"]) == 1
            assert data["rules"][0]["supportCount"] == 4

            rule_set = load_rules("candidates.yml")
            assert [r.enabled for r in rule_set] == [False]

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output
