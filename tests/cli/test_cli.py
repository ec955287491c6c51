"""Tests for the swb command line interface."""

import logging

import pytest
from typer.testing import CliRunner

from switchboard import __version__
from switchboard.cli import main as cli_main
from switchboard.cli.commands import test as test_commands
from switchboard.clients.base import ConnectionResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def keep_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
def test_version():
    result = runner.invoke(cli_main.app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


@pytest.mark.unit
def test_config_docs_lists_variables():
    result = runner.invoke(cli_main.app, ["config", "docs"])
    assert result.exit_code == 0
    assert "SWB_MAX_CONCURRENT_REQUESTS" in result.output


@pytest.mark.unit
def test_config_validate(monkeypatch):
    result = runner.invoke(cli_main.app, ["config", "validate"])
    assert result.exit_code == 0
    assert "Configuration is valid" in result.output

    monkeypatch.setenv("SWB_MAX_CONCURRENT_REQUESTS", "many")
    result = runner.invoke(cli_main.app, ["config", "validate"])
    assert result.exit_code == 1
    assert "Configuration errors" in result.output


@pytest.mark.unit
def test_start_runs_uvicorn_with_overrides(monkeypatch):
    for name in ("HOST", "PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    calls = []
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.append(kwargs))

    result = runner.invoke(cli_main.app, ["start", "--port", "9000"])

    assert result.exit_code == 0
    assert calls == [{"host": "0.0.0.0", "port": 9000, "log_level": "info"}]


@pytest.mark.unit
def test_start_rejects_invalid_configuration(monkeypatch):
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: pytest.fail("server started"))

    result = runner.invoke(cli_main.app, ["start"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


@pytest.mark.unit
def test_connection_command(monkeypatch):
    async def probe(provider):
        return {
            "openai": ConnectionResult(connected=True, latency_ms=42.0, status_code=200),
            "lmstudio": ConnectionResult(connected=False, error="Connection refused"),
        }

    monkeypatch.setattr(test_commands, "_probe", probe)
    result = runner.invoke(cli_main.app, ["test", "connection"])

    assert result.exit_code == 0
    assert "openai" in result.output
    assert "42ms" in result.output


@pytest.mark.unit
def test_connection_command_fails_when_nothing_connects(monkeypatch):
    async def probe(provider):
        return {provider: ConnectionResult(connected=False, error="Not initialized")}

    monkeypatch.setattr(test_commands, "_probe", probe)
    result = runner.invoke(cli_main.app, ["test", "connection", "--provider", "gemini"])

    assert result.exit_code == 1
    assert "Next Steps" in result.output
