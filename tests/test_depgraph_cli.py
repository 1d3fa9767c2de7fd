"""Tests for the depgraph command line."""

import asyncio
import json
import logging
from unittest.mock import patch

import pytest

from args import parse_args
from common.logging_utils import ENV_LOG_LEVEL
from constants import Constants, ExitCodes
from depgraph import main, run

from fake_provider import FakeProvider

MODULES = {
    "puppetlabs-apache": {"5.0.0": [("puppetlabs/stdlib", ">= 4.0.0 < 9.0.0")], "6.0.0": []},
    "puppetlabs-stdlib": {"8.0.0": [], "9.0.0": []},
}


class ContextProvider(FakeProvider):
    """Fake provider usable as ``async with``."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def puppetfile(tmp_path):
    path = tmp_path / "Puppetfile"
    path.write_text(
        "forge 'https://forgeapi.puppet.com'\n"
        "mod 'puppetlabs/apache', '5.0.0'\n"
        "mod 'puppetlabs/stdlib', '9.0.0'\n",
        encoding="utf-8",
    )
    return path


def run_cli(argv, provider=None):
    provider = provider or ContextProvider(MODULES)
    with patch("depgraph.RegistryProvider", return_value=provider):
        return asyncio.run(run(parse_args(argv)))


class TestRun:
    """Views and exit codes."""

    def test_tree_view(self, puppetfile, capsys):
        """The default view draws the tree and its conflicts."""
        assert run_cli(["-f", str(puppetfile)]) == ExitCodes.SUCCESS.value
        out = capsys.readouterr().out
        assert out.startswith("├── puppetlabs/apache (5.0.0) [forge]")
        assert "[conflict]" in out
        assert "No version of puppetlabs-stdlib satisfies all requirements:" in out

    def test_error_on_conflicts(self, puppetfile):
        """Conflicts change the exit code when asked to."""
        code = run_cli(["-f", str(puppetfile), "--error-on-conflicts", "-q"])
        assert code == ExitCodes.EXIT_CONFLICTS.value

    def test_clean_manifest_with_error_on_conflicts(self, tmp_path, capsys):
        """A clean manifest still exits zero."""
        path = tmp_path / "Puppetfile"
        path.write_text("mod 'puppetlabs/stdlib', '8.0.0'\n", encoding="utf-8")
        assert run_cli(["-f", str(path), "--view", "conflicts", "--error-on-conflicts"]) == 0
        assert capsys.readouterr().out == "No dependency conflicts found.\n"

    def test_list_view(self, puppetfile, capsys):
        """The list view starts with totals."""
        run_cli(["-f", str(puppetfile), "--view", "list"])
        out = capsys.readouterr().out
        assert out.startswith("Total Dependencies: ")
        assert "Direct Dependencies (2):" in out

    def test_upgrade_view(self, puppetfile, capsys):
        """The upgrade view prints the plan summary."""
        assert run_cli(["-f", str(puppetfile), "--view", "upgrade"]) == 0
        out = capsys.readouterr().out
        assert out.startswith("# Upgrade Plan Summary")
        assert "- **puppetlabs/apache**: 5.0.0 → 6.0.0" in out

    def test_upgrade_apply_rewrites_pins(self, puppetfile):
        """--apply writes the upgraded pins back to the Puppetfile."""
        assert run_cli(["-f", str(puppetfile), "--view", "upgrade", "--apply", "-q"]) == 0
        content = puppetfile.read_text(encoding="utf-8")
        assert "mod 'puppetlabs/apache', '6.0.0'\n" in content
        assert "mod 'puppetlabs/stdlib', '9.0.0'\n" in content
        assert content.startswith("forge 'https://forgeapi.puppet.com'\n")

    def test_apply_without_upgrades_leaves_file(self, tmp_path):
        """Nothing is written when every module is current."""
        path = tmp_path / "Puppetfile"
        path.write_text("mod 'puppetlabs/stdlib', '9.0.0'\n", encoding="utf-8")
        assert run_cli(["-f", str(path), "--view", "upgrade", "--apply", "-q"]) == 0
        assert path.read_text(encoding="utf-8") == "mod 'puppetlabs/stdlib', '9.0.0'\n"

    def test_apply_is_ignored_outside_upgrade_view(self, puppetfile):
        """Other views never touch the Puppetfile."""
        before = puppetfile.read_text(encoding="utf-8")
        run_cli(["-f", str(puppetfile), "--apply", "-q"])
        assert puppetfile.read_text(encoding="utf-8") == before

    def test_quiet_suppresses_output(self, puppetfile, capsys):
        """-q keeps stdout empty."""
        run_cli(["-f", str(puppetfile), "-q"])
        assert capsys.readouterr().out == ""

    def test_json_export(self, puppetfile, tmp_path):
        """-o writes the JSON document."""
        out_path = tmp_path / "deps.json"
        run_cli(["-f", str(puppetfile), "-q", "-o", str(out_path)])
        data = json.loads(out_path.read_text(encoding="utf-8"))
        assert [d["name"] for d in data["dependencies"]] == ["puppetlabs/apache", "puppetlabs/stdlib"]
        assert "puppetlabs-stdlib" in data["modules"]
        assert data["conflicts"]
        assert data["parse_errors"] == []

    def test_max_depth_option(self, puppetfile, tmp_path):
        """--max-depth limits expansion."""
        out_path = tmp_path / "deps.json"
        run_cli(["-f", str(puppetfile), "-q", "--max-depth", "0", "-o", str(out_path)])
        data = json.loads(out_path.read_text(encoding="utf-8"))
        assert data["dependencies"][0]["children"] == []

    def test_missing_file(self, tmp_path):
        """An unreadable Puppetfile is a file error."""
        assert run_cli(["-f", str(tmp_path / "nope")]) == ExitCodes.FILE_ERROR.value

    def test_no_modules(self, tmp_path, capsys, caplog):
        """A manifest with no valid modules exits cleanly."""
        path = tmp_path / "Puppetfile"
        path.write_text("forge 'https://forgeapi.puppet.com'\nmod :broken\n", encoding="utf-8")
        assert run_cli(["-f", str(path)]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out == "No modules found.\n"
        assert "Line 2: Invalid module declaration syntax" in caplog.text

    def test_unreachable_registry(self, puppetfile, caplog):
        """No metadata at all is a connection error."""
        provider = ContextProvider(MODULES, failing=["puppetlabs/apache", "puppetlabs/stdlib"])
        assert run_cli(["-f", str(puppetfile)], provider) == ExitCodes.CONNECTION_ERROR.value
        assert f"Connection to {Constants.FORGE_BASE_URL} failed" in caplog.text

    def test_git_only_manifest_skips_registry_check(self, tmp_path, capsys):
        """Git-only manifests never query the registry."""
        path = tmp_path / "Puppetfile"
        path.write_text("mod 'tool', :git => 'https://github.com/acme/tool'\n", encoding="utf-8")
        assert run_cli(["-f", str(path)]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out == "└── tool (git) [git]\n"


class TestMain:
    """Process entry point."""

    @pytest.fixture(autouse=True)
    def restore_logging(self, monkeypatch):
        monkeypatch.setenv(ENV_LOG_LEVEL, "WARNING")
        root = logging.getLogger()
        handlers = list(root.handlers)
        level = root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_exit_code_is_propagated(self, tmp_path):
        """main exits with the run status."""
        with pytest.raises(SystemExit) as excinfo:
            main(["-f", str(tmp_path / "nope")])
        assert excinfo.value.code == ExitCodes.FILE_ERROR.value

    def test_logfile(self, tmp_path):
        """--logfile mirrors log records to a file."""
        log_path = tmp_path / "depgraph.log"
        with pytest.raises(SystemExit):
            main(["-f", str(tmp_path / "nope"), "--logfile", str(log_path), "--loglevel", "INFO"])
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "Puppetfile couldn't be read" in log_path.read_text(encoding="utf-8")
