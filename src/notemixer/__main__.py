"""CLI entry point for the mixer relay.

Loads ``.env`` (when present), the YAML configuration and the deployment
environment overrides, connects the event store and runs the relay either
for a single cycle (``--once``) or continuously with a Prometheus metrics
server.

Examples:
    ```bash
    python -m notemixer
    python -m notemixer --config config/relay.yaml --log-level DEBUG
    notemixer --json-logs
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from notemixer.core import EventStore, MetricsServer
from notemixer.core.exceptions import ConfigurationError, StorageError
from notemixer.core.logger import JsonFormatter, Logger, StructuredFormatter
from notemixer.core.yaml import load_yaml
from notemixer.services.relay import MixerRelay, MixerRelayConfig, apply_env_overrides


DEFAULT_CONFIG = Path("config") / "relay.yaml"

logger = Logger("cli")


async def run_service(relay: MixerRelay, *, once: bool) -> int:
    """Run the relay in one-shot or continuous mode.

    In one-shot mode the relay runs a single cycle and exits. In continuous
    mode a Prometheus metrics server is started and the relay runs until a
    shutdown signal is received.

    Returns:
        Exit code: 0 for success, 1 for failure.
    """
    if once:
        try:
            async with relay:
                await relay.run()
            logger.info("relay_completed")
            return 0
        except Exception as e:  # Intentionally broad: CLI error boundary for one-shot mode
            logger.error("relay_failed", error=str(e))
            return 1

    metrics_config = relay.config.metrics
    metrics_server = MetricsServer(metrics_config)
    await metrics_server.start()
    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        relay.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        async with relay:
            await relay.run_forever()
        return 0
    except Exception as e:  # Intentionally broad: CLI error boundary for continuous mode
        logger.error("relay_failed", error=str(e))
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the relay runner."""
    parser = argparse.ArgumentParser(
        prog="notemixer",
        description="Nostr mixer relay",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Relay config path (default: {DEFAULT_CONFIG})",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit one JSON object per log line",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run once and exit (default: run continuously)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str, *, json_output: bool = False) -> None:
    """Configure the root logger with structured formatting.

    Installs a ``StructuredFormatter`` (or a ``JsonFormatter`` with
    ``json_output``) on the root handler so that all log output -- from both
    ``Logger`` and plain ``logging.getLogger()`` calls in utils -- is unified.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if json_output else StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return {}
    return load_yaml(path)


def build_relay(config_dict: dict[str, Any]) -> MixerRelay:
    """Split *config_dict* into store and relay sections and build the relay.

    The optional ``store`` key configures the
    [EventStore][notemixer.core.store.EventStore] (including its ``pool``);
    everything else is the relay configuration, overlaid with the deployment
    environment variables.

    Raises:
        ConfigurationError: If either section fails validation, or the relay
            key cannot be loaded.
    """
    data = dict(config_dict)
    store_dict = data.pop("store", None) or {}
    try:
        store = EventStore.from_dict(store_dict)
        config = MixerRelayConfig(**apply_env_overrides(data))
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(str(e)) from e
    return MixerRelay(store=store, config=config)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, load configuration and run the relay."""
    args = parse_args(argv)
    setup_logging(args.log_level, json_output=args.json_logs)
    load_dotenv()

    try:
        relay = build_relay(_load_yaml_dict(args.config))
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error("config_invalid", error=str(e))
        return 1

    store = relay.store
    try:
        async with store:
            await store.ensure_schema()
            return await run_service(relay, once=args.once)
    except (ConnectionError, StorageError) as e:
        logger.error("connection_failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
