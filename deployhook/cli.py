"""Server entry point: load config, set up logging, run uvicorn."""

from __future__ import annotations

import argparse
import dataclasses
import sys

import uvicorn

from deployhook import __version__
from deployhook.api import create_app
from deployhook.config import ConfigError, load_config
from deployhook.logging_config import setup_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="deployhook",
        description="GitHub push webhook receiver that runs a deploy command",
    )
    parser.add_argument("--version", action="version",
                        version=f"deployhook {__version__}")
    parser.add_argument("--host", default=None,
                        help="Listen address (overrides HOST)")
    parser.add_argument("--port", type=int, default=None,
                        help="Listen port (overrides PORT)")
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    overrides = {k: v for k, v in (("host", args.host), ("port", args.port))
                 if v is not None}
    if overrides:
        config = dataclasses.replace(config, **overrides)

    setup_logging(config)
    app = create_app(config)

    # uvicorn handles SIGTERM/SIGINT: stop accepting, finish in-flight
    # responses, then run the lifespan shutdown (deployment drain).
    uvicorn.run(app, host=config.host, port=config.port,
                log_config=None, server_header=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
