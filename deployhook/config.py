"""
Configuration. One immutable snapshot per server, built from the environment.

Nothing below the HTTP app factory reads os.environ; the Config is passed
in explicitly. A missing or empty WEBHOOK_SECRET is fatal: no Config, no app.

Variables:
    WEBHOOK_SECRET        required
    PROJECT_PATH          default: current working directory
    DEPLOY_COMMAND        default: yarn install && yarn build
    ALLOWED_BRANCHES      comma separated, default: main,master
    ENABLE_DETAILED_LOGS  "true" enables deploy stdout/stderr logging
    HOST, PORT            listener, default 0.0.0.0:3000
    LOG_LEVEL, LOG_FORMAT logging, default INFO / text
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog


logger = structlog.get_logger(__name__)

DEFAULT_DEPLOY_COMMAND = "yarn install && yarn build"
DEFAULT_BRANCHES = frozenset({"main", "master"})
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
LOG_FORMATS = ("text", "json")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(Exception):
    """Configuration is unusable. Raised at startup, never per request."""


@dataclass(frozen=True)
class Config:
    secret: str = field(repr=False)
    project_path: str
    deploy_command: str = DEFAULT_DEPLOY_COMMAND
    allowed_branches: frozenset[str] = DEFAULT_BRANCHES
    verbose_logging: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self):
        if not self.secret:
            raise ConfigError("WEBHOOK_SECRET environment variable is required")
        if not isinstance(self.allowed_branches, frozenset):
            object.__setattr__(self, "allowed_branches",
                               frozenset(self.allowed_branches))


def parse_branches(raw: str | None) -> frozenset[str]:
    """Split a comma-separated branch list. Blank or unset means the default."""
    if raw is None:
        return DEFAULT_BRANCHES
    branches = frozenset(b.strip() for b in raw.split(",") if b.strip())
    return branches or DEFAULT_BRANCHES


def _parse_port(raw: str | None) -> int:
    if not raw:
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(f"PORT must be an integer, got {raw!r}")
    if not 0 < port < 65536:
        raise ConfigError(f"PORT out of range: {port}")
    return port


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from an environment mapping (os.environ by default)."""
    env = os.environ if environ is None else environ

    log_format = env.get("LOG_FORMAT", "text").lower()
    if log_format not in LOG_FORMATS:
        raise ConfigError(
            f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got {log_format!r}")

    log_level = env.get("LOG_LEVEL", "INFO").upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(
            f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    return Config(
        secret=env.get("WEBHOOK_SECRET", ""),
        project_path=env.get("PROJECT_PATH") or os.getcwd(),
        deploy_command=env.get("DEPLOY_COMMAND") or DEFAULT_DEPLOY_COMMAND,
        allowed_branches=parse_branches(env.get("ALLOWED_BRANCHES")),
        verbose_logging=env.get("ENABLE_DETAILED_LOGS") == "true",
        host=env.get("HOST") or DEFAULT_HOST,
        port=_parse_port(env.get("PORT")),
        log_level=log_level,
        log_format=log_format,
    )


def log_config(config: Config) -> None:
    """Log the resolved configuration. The secret is never included."""
    logger.info(
        "config_loaded",
        project_path=config.project_path,
        deploy_command=config.deploy_command,
        allowed_branches=", ".join(sorted(config.allowed_branches)),
        detailed_logs=config.verbose_logging,
    )
