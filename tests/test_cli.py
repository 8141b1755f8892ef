"""Tests for Toolwright CLI commands."""

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from typer.testing import CliRunner

from toolwright.cli import app
from toolwright.store import LearningStore, PatternType, RulePriority, RuleScope

runner = CliRunner()


@pytest.fixture
def cli_db(tmp_path: Path) -> Path:
    return tmp_path / "cli.db"


@pytest.fixture
def cli_store(cli_db: Path) -> LearningStore:
    return LearningStore(cli_db)


def _invoke(cli_db: Path, *args: str):
    return runner.invoke(app, ["--db", str(cli_db), *args])


class TestVersionCommand:
    """Tests for the --version flag."""

    def test_version_shows_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "Toolwright v" in result.stdout


class TestGlobalOptions:
    def test_invalid_log_format(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "--log-format", "xml", "rules")
        assert result.exit_code == 1
        assert "Logging configuration error" in result.stdout

    def test_invalid_config_file(self, cli_db: Path, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("mining:\n  max_window: 99\n")
        result = runner.invoke(
            app, ["--db", str(cli_db), "--config", str(bad), "rules", "--json"]
        )
        assert result.exit_code == 1
        assert json.loads(result.stdout)["success"] is False


# =========================================================================
# Rules and validation
# =========================================================================


class TestRulesCommand:
    def test_empty(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "rules")
        assert result.exit_code == 0
        assert "No validation rules found" in result.stdout

    def test_json_with_scope_filter(self, cli_db: Path, cli_store: LearningStore) -> None:
        cli_store.create_validation_rule(
            scope=RuleScope.GLOBAL,
            category="syntax",
            pattern=r"console\.log",
            message="Remove console.log",
            technology="javascript",
        )
        cli_store.create_validation_rule(
            scope=RuleScope.PROJECT,
            category="style",
            pattern="var ",
            message="Use let",
            learned_from="acme/crm",
        )

        result = _invoke(cli_db, "rules", "--scope", "global", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [r["scope"] for r in data] == ["global"]
        assert data[0]["pattern_text"] == r"console\.log"
        assert data[0]["is_active"] is True

    def test_unknown_scope(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "rules", "--scope", "galaxy")
        assert result.exit_code == 1
        assert "Unknown scope" in result.stdout


class TestValidateCommand:
    @pytest.fixture
    def script(self, tmp_path: Path) -> Path:
        path = tmp_path / "order.js"
        path.write_text("const a = 1;\ndebugger;\n", encoding="utf-8")
        return path

    @pytest.fixture
    def rule_id(self, cli_store: LearningStore) -> str:
        rule = cli_store.create_validation_rule(
            scope=RuleScope.PROJECT,
            category="style",
            pattern=r"\bdebugger\b",
            message="Remove debugger statements",
            priority=RulePriority.ERROR,
            technology="javascript",
            learned_from="acme/crm",
        )
        assert rule is not None
        return rule.rule_id

    def test_issue_reported_and_tracked(
        self, cli_db: Path, cli_store: LearningStore, script: Path, rule_id: str
    ) -> None:
        result = _invoke(
            cli_db, "validate", str(script), "-c", "acme", "-p", "acme/crm", "--json"
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["rules_applied"] == 1
        assert [(i["rule_id"], i["line"], i["column"]) for i in data["issues"]] == [
            (rule_id, 2, 1)
        ]
        assert data["issues"][0]["severity"] == "error"

        applications = cli_store.get_rule_applications(rule_id)
        assert len(applications) == 1
        assert applications[0].success is True
        assert applications[0].project_path == "acme/crm"

    def test_no_track(
        self, cli_db: Path, cli_store: LearningStore, script: Path, rule_id: str
    ) -> None:
        _invoke(
            cli_db, "validate", str(script), "-c", "acme", "-p", "acme/crm", "--no-track"
        )
        assert cli_store.get_rule_applications(rule_id) == []

    def test_other_project_does_not_see_rule(
        self, cli_db: Path, script: Path, rule_id: str
    ) -> None:
        result = _invoke(cli_db, "validate", str(script), "-c", "acme", "-p", "acme/web")
        assert result.exit_code == 0
        assert "passed" in result.stdout

    def test_missing_file(self, cli_db: Path, tmp_path: Path) -> None:
        result = _invoke(cli_db, "validate", str(tmp_path / "missing.js"))
        assert result.exit_code != 0


# =========================================================================
# Propagation and audit
# =========================================================================


class TestPropagationCommands:
    def test_propagate_json(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "propagate", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["succeeded"] is True
        assert data["skipped"] is False
        assert data["promotions"] == []
        assert data["stats"]["rules_promoted"] == 0

    def test_propagate_text(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "propagate")
        assert result.exit_code == 0
        assert "Propagation cycle completed" in result.stdout

    def test_propagation_stats(self, cli_db: Path, cli_store: LearningStore) -> None:
        cli_store.create_validation_rule(
            scope=RuleScope.GLOBAL, category="style", pattern="x", message="m"
        )
        result = _invoke(cli_db, "propagation-stats", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["total_rules"] == 1
        assert data["global_rules"] == 1
        assert data["recent_promotions"] == 0

    def test_knowledge_after_cycle(self, cli_db: Path) -> None:
        _invoke(cli_db, "propagate")

        result = _invoke(cli_db, "knowledge", "--tag", "propagation", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [e["entry_type"] for e in data] == ["system_activity"]
        assert json.loads(data[0]["content"])["event"] == "propagation_cycle"

    def test_knowledge_unknown_type(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "knowledge", "--type", "gossip")
        assert result.exit_code == 1


# =========================================================================
# Mining and generated tools
# =========================================================================


class TestPatternCommands:
    def test_mine_records_patterns(self, cli_db: Path, cli_store: LearningStore) -> None:
        base = datetime.now() - timedelta(minutes=5)
        for i in range(2):
            cli_store.record_execution(
                "search", {"limit": 10}, created_at=base + timedelta(seconds=2 * i)
            )
            cli_store.record_execution(
                "load", {"id": i}, created_at=base + timedelta(seconds=2 * i + 1)
            )

        result = _invoke(cli_db, "mine", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        sequences = [p for p in data if p["pattern_type"] == "sequence"]
        assert [p["occurrences"] for p in sequences] == [2]

        listed = _invoke(cli_db, "patterns", "--type", "sequence", "--json")
        assert [p["id"] for p in json.loads(listed.stdout)] == [sequences[0]["id"]]

    def test_mine_nothing(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "mine")
        assert result.exit_code == 0
        assert "No patterns detected" in result.stdout

    def test_patterns_unknown_type(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "patterns", "--type", "bogus")
        assert result.exit_code == 1

    def test_generate_by_prefix(self, cli_db: Path, cli_store: LearningStore) -> None:
        pattern = cli_store.insert_pattern(
            signature="search:{}->load:{}",
            pattern_type=PatternType.SEQUENCE,
            pattern_data={},
            occurrences=2,
            confidence=0.4,
            tool_suggestion={
                "name": "auto_search_load",
                "description": "Automated sequence of 2 actions",
                "steps": [
                    {"action": "search", "params": {}},
                    {"action": "load", "params": {}},
                ],
                "parameters": [],
            },
            now=datetime.now(),
        )

        result = _invoke(cli_db, "generate", pattern.id[:8], "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["tool_name"] == "auto_search_load"
        assert data["source_pattern_id"] == pattern.id
        assert "async def auto_search_load(" in data["code_content"]

        tools = json.loads(_invoke(cli_db, "tools", "--json").stdout)
        assert [t["tool_name"] for t in tools] == ["auto_search_load"]

    def test_generate_unknown_pattern(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "generate", "nope", "--json")
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert "nope" in data["message"]

    def test_tools_empty(self, cli_db: Path) -> None:
        result = _invoke(cli_db, "tools")
        assert result.exit_code == 0
        assert "No generated tools yet" in result.stdout
