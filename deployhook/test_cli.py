"""
Entry point and logging setup tests. uvicorn.run is patched out; nothing
binds a socket.
"""

import logging
from unittest.mock import patch

import pytest
import structlog

from deployhook import __version__
from deployhook.cli import main
from deployhook.config import Config
from deployhook.logging_config import setup_logging


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("WEBHOOK_SECRET", "s")
    monkeypatch.setenv("PROJECT_PATH", str(tmp_path))
    monkeypatch.setenv("PORT", "4000")
    for name in ("HOST", "LOG_FORMAT", "LOG_LEVEL", "ALLOWED_BRANCHES"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def run():
    with patch("deployhook.cli.setup_logging"), \
         patch("deployhook.cli.uvicorn.run") as run:
        yield run


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    access = logging.getLogger("uvicorn.access")
    handlers, level, access_level = root.handlers[:], root.level, access.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    access.setLevel(access_level)
    structlog.reset_defaults()


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------

class TestMain:
    def test_serves_on_configured_address(self, env, run):
        assert main([]) == 0
        run.assert_called_once()
        kwargs = run.call_args.kwargs
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 4000
        assert kwargs["log_config"] is None

    def test_app_carries_config(self, env, run):
        main([])
        app = run.call_args.args[0]
        assert app.state.config.secret == "s"
        assert app.state.config.port == 4000

    def test_flags_override_environment(self, env, run):
        assert main(["--host", "127.0.0.1", "--port", "9000"]) == 0
        kwargs = run.call_args.kwargs
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9000
        assert run.call_args.args[0].state.config.port == 9000

    def test_missing_secret(self, env, run, capsys):
        env.delenv("WEBHOOK_SECRET")
        assert main([]) == 1
        err = capsys.readouterr().err
        assert err.startswith("Configuration error:")
        assert "WEBHOOK_SECRET" in err
        run.assert_not_called()

    def test_bad_log_level(self, env, run, capsys):
        env.setenv("LOG_LEVEL", "basicConfig")
        assert main([]) == 1
        assert "LOG_LEVEL" in capsys.readouterr().err
        run.assert_not_called()

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out


# ---------------------------------------------------------------------------
# setup_logging()
# ---------------------------------------------------------------------------

def _renderer_types(root: logging.Logger) -> list[type]:
    assert len(root.handlers) == 1
    formatter = root.handlers[0].formatter
    assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
    return [type(p) for p in formatter.processors]


class TestSetupLogging:
    def test_json_format(self, root_logger):
        setup_logging(Config(secret="s", project_path="/srv/app",
                             log_format="json"))
        types = _renderer_types(root_logger)
        assert structlog.processors.JSONRenderer in types
        assert structlog.dev.ConsoleRenderer not in types

    def test_text_format(self, root_logger):
        setup_logging(Config(secret="s", project_path="/srv/app"))
        types = _renderer_types(root_logger)
        assert structlog.dev.ConsoleRenderer in types
        assert structlog.processors.JSONRenderer not in types

    def test_level_applied(self, root_logger):
        setup_logging(Config(secret="s", project_path="/srv/app",
                             log_level="WARNING"))
        assert root_logger.level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_replaces_existing_handlers(self, root_logger):
        root_logger.addHandler(logging.NullHandler())
        setup_logging(Config(secret="s", project_path="/srv/app"))
        assert len(root_logger.handlers) == 1
