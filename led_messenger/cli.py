"""
LED Messenger - CLI

Drive the LED wall from a terminal: send texts through the slot rotation,
blank the wall, run the start-up test pattern or ping the display engine.

Usage:
    led-messenger --host 192.168.1.20 send "HAPPY BIRTHDAY" "TABLE 12"
    led-messenger --config led_messenger.yaml clear
    python -m led_messenger --host 192.168.1.20 test-pattern
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import OscConfig, RetryPolicy, apply_overrides, load_config
from .controller import QueueController
from .errors import ConfigurationError, TransportError
from .model import Message
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "led_messenger.yaml"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="led-messenger",
        description="LED Messenger - send text messages to an LED wall over OSC",
    )
    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_FILE,
        help=f"YAML config file (default: {DEFAULT_CONFIG_FILE})"
    )
    parser.add_argument("--host", help="Display engine host")
    parser.add_argument("--port", type=int, help="Display engine OSC port")
    parser.add_argument("--layer", type=int, help="Layer holding the text clips")
    parser.add_argument("--start-slot", type=int, help="First content clip")
    parser.add_argument("--clip-count", type=int, help="Number of content clips")
    parser.add_argument("--text-delay", type=float, help="Seconds between text and activate")
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose logging"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    send = commands.add_parser("send", help="Send texts one after another")
    send.add_argument("texts", nargs="+", metavar="TEXT")
    send.add_argument(
        "--hold", type=float, default=0.0,
        help="Seconds to wait between messages"
    )

    commands.add_parser("clear", help="Blank the wall")

    pattern = commands.add_parser("test-pattern", help="Show the start-up test pattern")
    pattern.add_argument(
        "--interval", type=float, default=2.5,
        help="Seconds each test text stays up"
    )

    commands.add_parser("ping", help="Send a /ping message")
    return parser


def resolve_config(args: argparse.Namespace):
    """
    Merge the config file with command line overrides.

    Raises:
        ConfigurationError: invalid file or resulting configuration
    """
    config, retry = load_config(args.config)
    config = apply_overrides(
        config,
        host=args.host,
        port=args.port,
        layer=args.layer,
        start_slot=args.start_slot,
        clip_count=args.clip_count,
        text_delay=args.text_delay,
    )
    return config.validate(), retry


async def run_command(args: argparse.Namespace, config: OscConfig, retry: RetryPolicy) -> int:
    transport = Transport(config, retry)
    controller = QueueController(transport)
    try:
        if not await controller.ensure_connection(timeout=retry.connect_timeout):
            logger.error(f"Could not connect to {config.host}:{config.port}: {transport.last_error}")
            return EXIT_FAILED

        if args.command == "send":
            ok = True
            for index, text in enumerate(args.texts):
                message = controller.enqueue(Message(text))
                ok = await controller.send(message) and ok
                if args.hold > 0 and index < len(args.texts) - 1:
                    await asyncio.sleep(args.hold)
            return EXIT_OK if ok else EXIT_FAILED

        if args.command == "clear":
            return EXIT_OK if await transport.clear() else EXIT_FAILED

        if args.command == "test-pattern":
            shown = await controller.send_test_pattern(interval=args.interval)
            return EXIT_OK if shown else EXIT_FAILED

        if args.command == "ping":
            try:
                ok = await transport.ping()
            except TransportError as e:
                logger.error(f"Ping failed: {e}")
                return EXIT_FAILED
            logger.info("Ping sent" if ok else "Ping dropped")
            return EXIT_OK if ok else EXIT_FAILED

        logger.error(f"Unknown command: {args.command}")
        return EXIT_FAILED
    finally:
        await controller.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s"
    )

    try:
        config, retry = resolve_config(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    try:
        return asyncio.run(run_command(args, config, retry))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
