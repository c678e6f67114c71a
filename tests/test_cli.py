"""Tests for the command line entry point."""

import csv
import json

import pytest
from click.testing import CliRunner

from cdnspeed import __version__, prober
from cdnspeed.cli import main, resolve_quota
from cdnspeed.models import IPResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_probe(monkeypatch):
    async def probe(address, config):
        return IPResult(address, 4, 4, 4 * (10.0 + int(str(address).rsplit(".", 1)[1])))

    monkeypatch.setattr(prober, "probe_address", probe)


class TestResolveQuota:
    """Test preset and explicit quota merging."""

    def test_no_preset(self):
        assert resolve_quota("3", None, 4) == "3"

    def test_preset_over_empty(self):
        assert resolve_quota("", "12", 6) == "12"

    def test_smaller_explicit_wins(self):
        assert resolve_quota("4", "12", 6) == "4"

    def test_larger_explicit_loses(self):
        assert resolve_quota("16", "12", 6) == "12"


class TestCommand:
    """Test invocation through click."""

    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "--httping" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_range_exits_1(self, runner):
        result = runner.invoke(main, ["--ip", "not-an-address", "-o", ""])
        assert result.exit_code == 1
        assert "Invalid address range" in result.output

    def test_missing_file_exits_1(self, runner, tmp_path):
        result = runner.invoke(main, ["-f", str(tmp_path / "missing.txt"), "-o", ""])
        assert result.exit_code == 1

    def test_undecodable_file_exits_1(self, runner, tmp_path):
        path = tmp_path / "ranges.txt"
        path.write_bytes(b"1.1.1.1\n\xff\xfe\n")
        result = runner.invoke(main, ["-f", str(path), "-o", ""])
        assert result.exit_code == 1
        assert "UTF-8" in result.output

    def test_bad_status_code(self, runner):
        result = runner.invoke(main, ["--httping-code", "20x", "--ip", "1.1.1.1"])
        assert result.exit_code == 2

    def test_json_output(self, runner, fake_probe):
        result = runner.invoke(
            main, ["--ip", "1.1.1.9,1.1.1.2", "--dd", "--json", "-o", "", "--seed", "1"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["candidates"] == 2
        assert [r["address"] for r in data["results"]] == ["1.1.1.2", "1.1.1.9"]

    def test_writes_csv(self, runner, fake_probe, tmp_path):
        out = tmp_path / "result.csv"
        result = runner.invoke(main, ["--ip", "1.1.1.1", "--dd", "-p", "0", "-o", str(out)])
        assert result.exit_code == 0, result.output
        rows = list(csv.reader(out.open(encoding="utf-8")))
        assert rows[1][0] == "1.1.1.1"
