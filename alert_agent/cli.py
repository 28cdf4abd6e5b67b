"""Command-line entry point for the alert agent."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
from pathlib import Path
from typing import Any

import aiohttp

from .agent import AlertAgent
from .collaborators import StaticConfigStore
from .config import Endpoint, YamlConfigStore, env_settings, load_config
from .errors import AlertAgentConfigError
from .http import DisplayHttpClient, HttpAlertPresenter, HttpStatusSink

_LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="alert-agent",
        description="Listen for emergency alerts from a control endpoint",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=os.environ.get("ALERT_AGENT_CONFIG"),
        help="YAML config file (also stores the location label)",
    )
    parser.add_argument("--host", help="Control endpoint host")
    parser.add_argument("--port", type=int, help="Control endpoint port (default: 3002)")
    parser.add_argument("--location", help="Location label sent at registration")
    parser.add_argument(
        "--set-location",
        metavar="LABEL",
        help="Save LABEL as the location label in --config and exit",
    )
    parser.add_argument("--display-url", help="Base URL of a local display service")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "host": args.host,
        "port": args.port,
        "location_label": args.location,
        "display_url": args.display_url,
    }


async def _amain(
    args: argparse.Namespace, stop_event: asyncio.Event | None = None
) -> int:
    overrides = _overrides(args)
    config = load_config(args.config, overrides=overrides)

    def endpoint_provider() -> Endpoint:
        # Re-read on every attempt so an edited endpoint takes effect.
        return load_config(args.config, overrides=overrides).endpoint

    # The file label is re-read per attempt only when no later layer set it.
    label_pinned = (
        args.location is not None or "location_label" in env_settings(os.environ)
    )
    config_store: YamlConfigStore | StaticConfigStore
    if args.config is not None and not label_pinned:
        config_store = YamlConfigStore(args.config, default=config.location_label)
    else:
        config_store = StaticConfigStore(config.location_label)

    if stop_event is None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop_event.set)

    async with contextlib.AsyncExitStack() as stack:
        presenter = None
        status_sink = None
        if config.display_url:
            http_session = await stack.enter_async_context(aiohttp.ClientSession())
            display = DisplayHttpClient(http_session, config.display_url)
            presenter = HttpAlertPresenter(display)
            status_sink = HttpStatusSink(display)
            _LOGGER.info("Forwarding alerts to display service %s", config.display_url)

        agent = AlertAgent(
            config,
            presenter=presenter,
            status_sink=status_sink,
            config_store=config_store,
            endpoint_provider=endpoint_provider,
        )
        _LOGGER.info("Starting alert agent for %s", config.endpoint.url)
        agent.start()
        try:
            await stop_event.wait()
        finally:
            await agent.shutdown()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.set_location is not None:
            if args.config is None:
                raise SystemExit("--set-location requires --config")
            YamlConfigStore(args.config).save_location_label(args.set_location)
            _LOGGER.info("Location label saved to %s", args.config)
            raise SystemExit(0)
        raise SystemExit(asyncio.run(_amain(args)))
    except AlertAgentConfigError as err:
        raise SystemExit(f"Configuration error: {err}") from err
