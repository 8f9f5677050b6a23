"""
main.py — Tandem Entry Point

Usage:
    python -m tandem                           # single-agent driver REPL
    python -m tandem --two-agent               # planner/executor REPL
    python -m tandem --log-level DEBUG         # verbose logging
    python -m tandem --config path/to/config.yaml
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tandem",
        description="Tandem — streaming tool-using agent runtime",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $TANDEM_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    parser.add_argument(
        "--two-agent",
        action="store_true",
        default=False,
        help="Run the planner/executor pair instead of the single-agent driver",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - config.yaml has invalid values (Pydantic ValidationError)
      - cross-field problems are found (ConfigError from validate_all())
    """
    from pydantic import ValidationError

    from tandem.config.settings import ConfigError, load_settings
    from tandem.observability.logger import get_logger, setup_logging

    # -- Load and parse -------------------------------------------------------
    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {e['loc'][-1] if e['loc'] else '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except (OSError, ValueError, TypeError) as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    if args.two_agent:
        settings.two_agent.enabled = True

    # -- Cross-field validation -----------------------------------------------
    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # -- Logging --------------------------------------------------------------
    # CLI --log-level flag overrides config.yaml
    log_level = args.log_level or settings.log_level

    setup_logging(
        level=log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("tandem.main")
    return settings, log


async def main(argv: list[str] | None = None) -> int:
    load_dotenv(dotenv_path=Path(os.getcwd()) / ".env")
    args = parse_args(argv)
    settings, log = bootstrap(args)

    log.info(
        "tandem.starting",
        mode="two_agent" if settings.two_agent_enabled else "driver",
        llm_provider=settings.llm.provider,
        llm_model=settings.llm.model,
    )

    from tandem.brain import create_llm_client
    from tandem.interfaces.cli import run_cli
    from tandem.tools.registry import ToolRegistry

    try:
        llm = create_llm_client(settings.llm.provider, settings.openai_api_key, settings.llm.base_url)
    except ValueError as e:
        log.error("tandem.llm_init_failed", error=str(e), error_type=type(e).__name__)
        print(f"\n❌  Failed to initialize LLM provider '{settings.llm.provider}': {e}\n", file=sys.stderr)
        return 1

    registry = ToolRegistry()
    await run_cli(settings, llm, registry)
    log.info("tandem.stopped")
    return 0
