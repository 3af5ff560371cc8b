"""Entry point for running the triage relay.

This module provides the main entry point for the triage relay.
It handles:
- Configuration loading
- Logging setup with secret sanitization
- Adapter instantiation
- Serving the webhook application with uvicorn
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

import structlog

from triage_relay._version import __version__

log = structlog.get_logger()


def setup_logging(
    debug: bool = False,
    log_format: str = "console",
    file_path: Path | None = None,
    file_enabled: bool = False,
) -> None:
    """Configure structured logging with secret sanitization.

    Args:
        debug: Enable debug logging if True
        log_format: Output format ("json" or "console")
        file_path: Path to log file (if file logging enabled)
        file_enabled: Whether to enable file logging
    """
    from triage_relay.utils.logging import LogFormat, LogLevel, configure_logging

    level = LogLevel.DEBUG if debug else LogLevel.INFO

    configure_logging(
        level=level,
        log_format=LogFormat(log_format.lower()),
        file_path=file_path,
        file_enabled=file_enabled,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed argument namespace
    """
    parser = argparse.ArgumentParser(
        prog="triage-relay",
        description="Triage relay - classify new GitHub issues and route them to a human or a fix agent",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )

    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse config and validate without starting the server",
    )

    parser.add_argument(
        "--format",
        choices=["json", "console"],
        default="console",
        help="Log output format (default: console)",
    )

    parser.add_argument(
        "--health-check",
        action="store_true",
        help="Run health check and exit",
    )

    return parser.parse_args(argv)


def config_summary(config: Any) -> dict[str, Any]:
    """Describe the loaded configuration with secrets masked."""
    from triage_relay.utils.security import mask_secret

    return {
        "listen": f"{config.server.host}:{config.server.port}",
        "webhook_secret": mask_secret(config.server.webhook_secret),
        "github_owner": config.github.owner,
        "github_token": mask_secret(config.github.token),
        "anthropic_model": config.anthropic.model,
        "anthropic_api_key": mask_secret(config.anthropic.api_key),
        "slack_channel": config.slack.channel,
        "repositories": sorted(config.repositories),
    }


def apply_logging_config(config: Any, debug: bool = False) -> None:
    """Reconfigure logging from the loaded config file.

    The ``--debug`` flag takes priority over the configured level. The
    configured credentials are registered for literal redaction.
    """
    from triage_relay.utils.logging import LogLevel, configure_logging, register_secrets

    register_secrets(
        [
            config.server.webhook_secret,
            config.github.token,
            config.anthropic.api_key,
            config.slack.bot_token,
        ]
    )
    configure_logging(
        level=LogLevel.DEBUG if debug else config.logging.level,
        log_format=config.logging.format,
        file_path=config.logging.file.path if config.logging.file.enabled else None,
        file_enabled=config.logging.file.enabled,
    )


async def run_relay(
    config_path: Path,
    dry_run: bool = False,
    health_check: bool = False,
    debug: bool = False,
) -> int:
    """Run the triage relay.

    Args:
        config_path: Path to configuration file
        dry_run: If True, only validate config without starting
        health_check: If True, run health check and exit
        debug: If True, log at DEBUG whatever the config file says

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    log.info(
        "starting_triage_relay",
        version=__version__,
        config_path=str(config_path),
    )

    try:
        from triage_relay.config.loader import load_config

        log.info("loading_configuration", path=str(config_path))
        config = load_config(config_path)
        log.info("configuration_loaded")

        apply_logging_config(config, debug=debug)

        if dry_run:
            log.info("dry_run_mode_config_valid", **config_summary(config))
            return 0

        if health_check:
            from triage_relay.utils.health import HealthChecker

            checker = HealthChecker(config)
            report = await checker.run_all_checks()

            if report.healthy:
                log.info("health_check_passed", report=report.to_dict())
                return 0
            log.error("health_check_failed", report=report.to_dict())
            return 1

        import uvicorn

        from triage_relay.core.relay import create_relay
        from triage_relay.server.app import create_app

        log.info("creating_relay")
        relay = create_relay(config)
        app = create_app(relay, config.server)

        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=config.server.host,
                port=config.server.port,
                log_config=None,
                access_log=False,
            )
        )

        log.info("server_starting", host=config.server.host, port=config.server.port)
        await server.serve()

        return 0

    except FileNotFoundError as e:
        log.error("configuration_file_not_found", path=str(config_path), error=str(e))
        return 1
    except ValueError as e:
        # Includes pydantic.ValidationError
        log.error("configuration_invalid", error=str(e))
        return 1
    except KeyboardInterrupt:
        log.info("keyboard_interrupt_received")
        return 0
    except Exception as e:
        log.exception("fatal_error", error=str(e))
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(
        debug=args.debug,
        log_format=args.format,
    )

    try:
        return asyncio.run(
            run_relay(args.config, args.dry_run, args.health_check, debug=args.debug)
        )
    except KeyboardInterrupt:
        log.info("shutting_down_gracefully")
        return 0


if __name__ == "__main__":
    sys.exit(main())
