"""
roslink command line
====================

Small tool for poking at a rosbridge server.

Usage:
    python -m roslink topics                       # List topics
    python -m roslink nodes                        # List nodes
    python -m roslink services                     # List services
    python -m roslink echo /rosout --count 5       # Print messages on a topic
    python -m roslink pub /chatter std_msgs/String '{"data": "hi"}'
    python -m roslink call /rosapi/topics '{}'     # Call a service
    python -m roslink param get /rosdistro
    python -m roslink param set /answer 42

The server URL comes from --url, then ROSLINK_URL, then ws://localhost:9090.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from .client import Rosbridge
from .config import ClientConfig
from .errors import RosbridgeError, TransportError
from .logging_config import configure_logging
from .param import Param
from .reconnect import ReconnectSupervisor
from .service import Service
from .topic import Topic

logger = logging.getLogger(__name__)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, sort_keys=True))


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise SystemExit(f"Invalid JSON argument {text!r}: {e}")


async def _open(config: ClientConfig, timeout: float) -> Rosbridge:
    """Connects and waits for the connection to open or fail."""
    ros = Rosbridge.from_config(config)
    opened = ros.on_open.wait()
    failed = ros.on_error.wait()
    await ros.connect()

    done, _ = await asyncio.wait({opened, failed}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    for future in (opened, failed):
        if not future.done():
            future.cancel()

    if opened in done:
        return ros
    await ros.close()
    if failed in done:
        raise failed.result()
    raise TransportError(f"Timed out connecting to {config.url}")


async def cmd_list(ros: Rosbridge, args: argparse.Namespace) -> int:
    """List topics, nodes or services."""
    getter = {
        "topics": ros.get_topics,
        "nodes": ros.get_nodes,
        "services": ros.get_services,
    }[args.command]
    for name in sorted(await getter(timeout=args.timeout)):
        print(name)
    return 0


async def cmd_echo(ros: Rosbridge, args: argparse.Namespace) -> int:
    """Print messages on a topic until --count is reached or interrupted."""
    finished = asyncio.Event()
    received = 0

    def on_message(message: Any) -> None:
        nonlocal received
        received += 1
        _print_json(message)
        if args.count and received >= args.count:
            finished.set()

    topic = Topic(ros, args.topic, args.type, throttle_rate=args.throttle_rate)
    supervisor: Optional[ReconnectSupervisor] = None
    if args.config.reconnect:
        supervisor = ReconnectSupervisor(
            ros,
            initial_retry_delay=args.config.initial_retry_delay,
            max_retry_delay=args.config.max_retry_delay,
        )
        supervisor.watch(topic)

    topic.subscribe(on_message)
    try:
        await finished.wait()
    finally:
        if supervisor:
            supervisor.stop()
        topic.unsubscribe()
        await ros.drain()
    return 0


async def cmd_pub(ros: Rosbridge, args: argparse.Namespace) -> int:
    """Advertise a topic, publish one message and withdraw the advertisement."""
    topic = Topic(ros, args.topic, args.type, latch=args.latch)
    topic.advertise()
    topic.publish(_parse_json(args.message))
    topic.unadvertise()
    await ros.drain()
    return 0


async def cmd_call(ros: Rosbridge, args: argparse.Namespace) -> int:
    """Call a service and print the response values."""
    service = Service(ros, args.service, args.type)
    _print_json(await service.call(_parse_json(args.request), timeout=args.timeout))
    return 0


async def cmd_param(ros: Rosbridge, args: argparse.Namespace) -> int:
    """Read or write a parameter."""
    param = Param(ros, args.name)
    if args.action == "get":
        _print_json(await param.get(timeout=args.timeout))
    else:
        await param.set(_parse_json(args.value), timeout=args.timeout)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roslink",
        description="Talk to a rosbridge server from the command line",
    )
    parser.add_argument("--url", help="rosbridge URL (default: $ROSLINK_URL or ws://localhost:9090)")
    parser.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait for the server")
    parser.add_argument("--reconnect", action="store_true", default=None, help="Reconnect after drops (echo)")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name in ("topics", "nodes", "services"):
        p = subparsers.add_parser(name, help=f"List {name}")
        p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("echo", help="Print messages on a topic")
    p.add_argument("topic")
    p.add_argument("--type", default=None, help="Message type")
    p.add_argument("--count", type=int, default=0, help="Stop after N messages")
    p.add_argument("--throttle-rate", type=int, default=0, help="Minimum ms between messages")
    p.set_defaults(func=cmd_echo)

    p = subparsers.add_parser("pub", help="Publish one message")
    p.add_argument("topic")
    p.add_argument("type", help="Message type, e.g. std_msgs/String")
    p.add_argument("message", help="Message as JSON")
    p.add_argument("--latch", action="store_true")
    p.set_defaults(func=cmd_pub)

    p = subparsers.add_parser("call", help="Call a service")
    p.add_argument("service")
    p.add_argument("request", nargs="?", default="{}", help="Arguments as JSON")
    p.add_argument("--type", default=None, help="Service type")
    p.set_defaults(func=cmd_call)

    p = subparsers.add_parser("param", help="Read or write a parameter")
    param_actions = p.add_subparsers(dest="action", required=True)
    get = param_actions.add_parser("get")
    get.add_argument("name")
    set_ = param_actions.add_parser("set")
    set_.add_argument("name")
    set_.add_argument("value", help="Value as JSON")
    p.set_defaults(func=cmd_param)

    return parser


async def run(args: argparse.Namespace) -> int:
    ros = await _open(args.config, args.timeout)
    try:
        return await args.func(ros, args)
    finally:
        await ros.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_file=args.log_file,
    )
    args.config = ClientConfig.from_env(url=args.url, reconnect=args.reconnect)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130
    except asyncio.TimeoutError:
        print("Timed out waiting for the server.", file=sys.stderr)
        return 1
    except RosbridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
