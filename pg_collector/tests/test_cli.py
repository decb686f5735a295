"""
Tests for the command-line entry point and result display.
"""

import json

from rich.console import Console

from pg_collector import cli
from pg_collector.protocol.errors import ErrorDetails
from pg_collector.protocol.result import CycleResult
from pg_collector.runner.cycle import CollectionCycle
from pg_collector.snapshot.store import NullStateStore
from pg_collector.ui.display import ResultDisplay

from .mocks import MockConnection, server_responses

CONFIG_TOML = """
[[servers]]
name = "primary"
api_key = "key-primary"
host = "db1"
"""


def collected_result(server, opts):
    return CollectionCycle(server, NullStateStore(), opts).run()


class TestParseArgs:

    def test_defaults(self):
        args = cli.parse_args([])

        assert args.config is None
        assert args.interval is None
        assert not args.test

    def test_flags(self):
        args = cli.parse_args(["-c", "x.toml", "--test", "--no-write-state", "--json", "-v",
                               "--statement-timeout-ms", "500", "--interval", "30"])

        assert args.config == "x.toml"
        assert args.test and args.no_write_state and args.json and args.verbose
        assert args.statement_timeout_ms == 500
        assert args.interval == 30.0


class TestMain:

    def test_invalid_config_exits_nonzero(self, tmp_path):
        path = tmp_path / "empty.toml"
        path.write_text("")

        assert cli.main(["-c", str(path)]) == 1

    def test_missing_config_exits_nonzero(self, tmp_path):
        assert cli.main(["-c", str(tmp_path / "missing.toml")]) == 1

    def test_init_config(self, tmp_path):
        target = tmp_path / "new.toml"

        assert cli.main(["--init-config", str(target)]) == 0
        assert target.exists()

    def test_single_test_run(self, tmp_path, monkeypatch):
        path = tmp_path / "pg_collector.toml"
        path.write_text(CONFIG_TOML)
        monkeypatch.setattr(
            "pg_collector.runner.cycle.connect",
            lambda config, opts: MockConnection(server_responses()),
        )

        assert cli.main(["-c", str(path), "--test", "--json"]) == 0


class TestResultDisplay:

    def test_summary_table(self, server, opts):
        result = collected_result(server, opts)
        console = Console(record=True, width=200)

        ResultDisplay(console).show([result])

        output = console.export_text()
        assert "primary" in output
        assert "baseline" in output

    def test_failure_is_shown(self):
        console = Console(record=True, width=200)
        result = CycleResult.failure("down", ErrorDetails(message="Connection refused", phase="CONNECT"))

        ResultDisplay(console).show([result])

        output = console.export_text()
        assert "failed" in output
        assert "Connection refused" in output

    def test_json_output(self, server, opts):
        result = collected_result(server, opts)
        console = Console(record=True, width=200)

        ResultDisplay(console, json_output=True).show([result])

        data = json.loads(console.export_text())
        assert data["server"] == "primary"
        assert data["cold_start"] is True
        assert "SELECT * FROM accounts WHERE id = $1" in data["queries"].values()

    def test_verbose_top_statements(self, server, opts):
        result = collected_result(server, opts)
        console = Console(record=True, width=200)

        ResultDisplay(console, verbose=True).show([result])

        assert "Top statements" in console.export_text()
