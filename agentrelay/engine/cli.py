"""CLI entry point for the session engine.

Usage:
    agentrelay run --provider claude --workspace ws1 "Fix the failing test"
    agentrelay run --provider codex --workspace ws1 --cwd ../wt "Add docs"
    agentrelay providers
    agentrelay tail --provider claude --workspace ws1
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys

from agentrelay.adapters.event_bus import EventBus
from agentrelay.adapters.events import (
    StreamComplete,
    StreamError,
    StreamOutput,
    event_to_dict,
)

from .config import EngineConfig
from .errors import OrchestrationError
from .log_store import log_path_for, read_log_tail
from .models import SessionKey, SessionRequest, SessionStatus, TerminalKind
from .orchestrator import Orchestrator
from .providers.registry import ProviderRegistry, build_provider_registry
from .yaml_config import load_yaml_config

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.config:
        relay = load_yaml_config(args.config)
        config, providers_cfg = relay.engine, relay.providers
    else:
        config, providers_cfg = EngineConfig.from_env(), None
    if args.data_dir:
        config.data_dir = args.data_dir

    level = logging.DEBUG if args.verbose else getattr(
        logging, config.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.command == "tail":
        sys.exit(_tail(config, args))

    providers = build_provider_registry(providers_cfg)
    if args.command == "providers":
        sys.exit(_list_providers(providers))

    if args.no_sdk:
        config.prefer_stream_transport = False
    sys.exit(asyncio.run(_run(config, providers, args)))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentrelay",
        description="Run agent CLI sessions with one session per workspace",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file (engine + providers sections)",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Root directory for stream logs (default: ~/.agentrelay)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Start a session and stream its output")
    run.add_argument("message", help="Message to send to the agent")
    run.add_argument("--provider", "-p", default="claude")
    run.add_argument("--workspace", "-w", required=True)
    run.add_argument(
        "--cwd",
        default=".",
        help="Worktree the agent runs in (default: current dir)",
    )
    run.add_argument("--correlation-id", default=None)
    run.add_argument(
        "--no-sdk",
        action="store_true",
        help="Always spawn the CLI instead of using the Agent SDK",
    )
    run.add_argument(
        "--json",
        action="store_true",
        help="Print events as JSON lines",
    )

    sub.add_parser("providers", help="Show provider availability")

    tail = sub.add_parser("tail", help="Print the end of a session's stream log")
    tail.add_argument("--provider", "-p", default="claude")
    tail.add_argument("--workspace", "-w", required=True)
    tail.add_argument("--bytes", type=int, default=None)
    return parser


def _list_providers(providers: ProviderRegistry) -> int:
    for name, available in providers.get_availability_report().items():
        print(f"{name}: {'available' if available else 'not installed'}")
        if not available:
            for line in providers.install_instructions(name).splitlines():
                print(f"    {line}")
    return 0


def _tail(config: EngineConfig, args: argparse.Namespace) -> int:
    key = SessionKey(args.provider, args.workspace)
    path = log_path_for(config.data_path, key)
    content = read_log_tail(path, args.bytes or config.tail_max_bytes)
    if not content:
        print(f"No stream log at {path}", file=sys.stderr)
        return 1
    sys.stdout.write(content)
    return 0


async def _print_events(bus: EventBus, as_json: bool) -> None:
    async for event in bus.consume():
        if as_json:
            print(json.dumps(event_to_dict(event)), flush=True)
        elif isinstance(event, StreamOutput):
            sys.stdout.write(event.text)
            sys.stdout.flush()
        elif isinstance(event, StreamError):
            sys.stderr.write(event.text)
            sys.stderr.flush()
        elif isinstance(event, StreamComplete):
            print(f"\n[exit code {event.exit_code}]", file=sys.stderr)


class _StopRequests:
    """Stops issued from the SIGINT handler, awaited before the run exits."""

    def __init__(self, orchestrator: Orchestrator, key: SessionKey) -> None:
        self._orchestrator = orchestrator
        self._key = key
        self._tasks: list[asyncio.Task] = []

    def request(self) -> None:
        self._tasks.append(
            asyncio.ensure_future(self._orchestrator.stop(self._key))
        )

    async def drain(self) -> None:
        if not self._tasks:
            return
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Stop of %s failed: %s", self._key, result)


def _exit_status(status: SessionStatus | None) -> int:
    """Process exit status for the session's outcome."""
    if status is None or status.outcome is None:
        return 1
    if status.outcome == TerminalKind.CANCELLED:
        return 130
    if status.outcome != TerminalKind.COMPLETE:
        return 1
    code = status.exit_code or 0
    if code < 0:
        # Killed by signal -code, reported the way a shell does.
        return min(128 - code, 255)
    return code if code <= 255 else 1


async def _run(
    config: EngineConfig,
    providers: ProviderRegistry,
    args: argparse.Namespace,
) -> int:
    bus = EventBus()
    orchestrator = Orchestrator(config, providers, event_sink=bus)
    request = SessionRequest(
        provider_id=args.provider,
        workspace_id=args.workspace,
        worktree_path=args.cwd,
        message=args.message,
        correlation_id=args.correlation_id,
    )
    key = request.key

    try:
        await orchestrator.start(request)
    except OrchestrationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        provider = providers.get(args.provider)
        if provider is not None and not provider.is_available():
            print(provider.install_instructions(), file=sys.stderr)
        return 1

    stops = _StopRequests(orchestrator, key)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stops.request)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unsupported; Ctrl+C will not stop cleanly")

    printer = asyncio.create_task(_print_events(bus, args.json))
    try:
        await orchestrator.wait(key)
        # The cancelled event is published by stop(), which may still be
        # reaping the agent.
        await stops.drain()
    finally:
        bus.close()
        await printer
        await orchestrator.shutdown()

    return _exit_status(orchestrator.status(key))


if __name__ == "__main__":
    main()
