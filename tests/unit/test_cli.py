"""
tests/unit/test_cli.py - Tests for strategy/jobs/run_monitor.py
"""

from decimal import Decimal

import click
import pytest
from click.testing import CliRunner

from strategy.jobs import run_monitor


@pytest.fixture
def runner(monkeypatch):
    # Keep the root logger pointed at pytest's streams
    monkeypatch.setattr(run_monitor, "setup_logging", lambda **kwargs: None)
    return CliRunner()


class TestParseNotional:

    def test_none(self):
        assert run_monitor._parse_notional(None) is None

    def test_decimal(self):
        assert run_monitor._parse_notional("2500.5") == Decimal("2500.5")

    @pytest.mark.parametrize("value", ["abc", "0", "-5", "NaN", "Infinity"])
    def test_rejected(self, value):
        with pytest.raises(click.BadParameter):
            run_monitor._parse_notional(value)


class TestMain:

    def test_bad_notional_is_usage_error(self, runner, tmp_path):
        result = runner.invoke(run_monitor.main, ["--once", "--notional", "abc", "--data-dir", str(tmp_path)])
        assert result.exit_code == 2
        assert "--notional" in result.output

    def test_missing_config_exits_2(self, runner, tmp_path):
        empty = tmp_path / "config"
        empty.mkdir()
        result = runner.invoke(run_monitor.main, ["--once", "--config-dir", str(empty), "--data-dir", str(tmp_path)])
        assert result.exit_code == 2

    def test_help(self, runner):
        result = runner.invoke(run_monitor.main, ["--help"])
        assert result.exit_code == 0
        assert "--once" in result.output


def test_print_summary(capsys):
    run_monitor.print_summary({
        "monitor": {"poll_ticks": 3, "simulated": 2, "profitable": 1},
        "scanner": {"total_scans": 3, "opportunities_found": 2, "simple_found": 2},
        "simulator": {"cache": {"hits": 1, "requests": 3}},
        "store": {"total": 2, "simulated_net_profit_usd": "12.5"},
    })
    out = capsys.readouterr().out
    assert "DEXWATCH RUN SUMMARY" in out
    assert "Opportunities found:   2" in out
    assert "Simulation cache:      1/3 hits" in out
    assert "Stored opportunities:  2" in out
