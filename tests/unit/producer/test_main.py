"""
Unit tests for the command line entry point.

Tests cover:
- sub-command arguments parse to the expected values
- configuration errors exit with status 2
- hazards --once prints the cycle as JSON without publishing
- a failed background stats publish is logged
"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

from coastwatch.producer import main as cli
from coastwatch.producer.source_manager import CycleResult


class TestParser:
    def setup_method(self) -> None:
        self.parser = cli.build_parser()

    def test_hazards_once(self) -> None:
        args = self.parser.parse_args(["hazards", "--once"])
        assert args.command == "hazards"
        assert args.once is True
        assert args.config == "config/coastwatch.yaml"

    def test_vessels(self) -> None:
        args = self.parser.parse_args(["vessels", "--region", "singapore", "--no-positions", "--sample", "5"])
        assert (args.region, args.no_positions, args.sample) == ("singapore", True, 5)

    def test_vessels_unknown_region(self) -> None:
        with pytest.raises(SystemExit):
            self.parser.parse_args(["vessels", "--region", "atlantis"])

    def test_enrich(self) -> None:
        args = self.parser.parse_args(["enrich", "--all", "--mmsi", "1", "--mmsi", "2", "--limit", "10"])
        assert args.all is True
        assert args.mmsi == ["1", "2"]
        assert args.limit == 10
        assert args.stats is False

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            self.parser.parse_args([])


class TestMain:
    def test_config_error_exits_2(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("MARINESIA_API_KEY", raising=False)
        config = tmp_path / "coastwatch.yaml"
        config.write_text(f"database:\n  url: sqlite:///{tmp_path / 'cw.db'}\n")

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["--config", str(config), "enrich"])
        assert excinfo.value.code == 2

    def test_hazards_once_prints_json(self, tmp_path, capsys) -> None:
        config = tmp_path / "coastwatch.yaml"
        config.write_text("hazards:\n  earthquake_sources: []\n  tsunami_sources: []\n")

        with patch.object(
            cli.SourceManager, "run_cycle", AsyncMock(return_value=CycleResult())
        ) as run_cycle:
            with pytest.raises(SystemExit) as excinfo:
                cli.main(["--config", str(config), "hazards", "--once"])

        assert excinfo.value.code == 0
        run_cycle.assert_awaited_once_with(publish=False)
        out = capsys.readouterr().out
        payload, _ = json.JSONDecoder().raw_decode(out[out.index("{") :])
        assert payload["earthquakes"] == []
        assert payload["records_sent"] == 0


class TestStatsPublishFailure:
    def _run(self, exc) -> None:
        async def scenario():
            future = asyncio.get_running_loop().create_future()
            if exc is None:
                future.set_result(None)
            else:
                future.set_exception(exc)
            cli._log_stats_publish_failure(future)

        asyncio.run(scenario())

    def test_failure_logged(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="coastwatch.producer.main"):
            self._run(RuntimeError("CloudWatch unavailable"))
        assert "Ingestion stats publish failed" in caplog.text
        assert "CloudWatch unavailable" in caplog.text

    def test_success_is_silent(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="coastwatch.producer.main"):
            self._run(None)
        assert caplog.text == ""
