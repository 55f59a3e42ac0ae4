from __future__ import annotations

import argparse
from typing import List, Optional

from loguru import logger

from . import __version__
from .config import load_config
from .console import Console
from .infra.errors import ConfigError
from .logging_setup import configure_logging
from .session.reload import command_reload
from .session.runner import EXIT_FAILURE, run_session


def cmd_run(args: argparse.Namespace) -> int:
    configure_logging(verbose=bool(args.verbose))
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("{}", e)
        return EXIT_FAILURE

    configure_logging(verbose=bool(args.verbose), log_file=config.log_file)
    reload = None
    if config.reload_command and not args.no_reload:
        reload = command_reload(config.reload_command)
    return run_session(config, Console(), reload=reload)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="whitelister",
        description="Whitelist partner IP addresses in the web dispatcher and router ACL tables.",
    )
    p.add_argument("--config", default=None, help="Path to whitelister.yml (default: $WHITELISTER_CONFIG or /etc/whitelister/whitelister.yml)")
    p.add_argument("--no-reload", action="store_true", help="Do not run the configured reload command")
    p.add_argument("--verbose", "-v", action="store_true", help="Log debug details to stderr")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.set_defaults(func=cmd_run)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args) or 0)


if __name__ == "__main__":
    raise SystemExit(main())
