"""
Run text turns through the stateless transport against an in-memory store.

Usage:
    python -m kitchen_bridge "I bought 2 pounds of chicken" "what can I cook?"

Needs GEMINI_API_KEY (environment or .env_local).
"""
import argparse
import asyncio
import sys

from logging_setup import setup_logging

from .client import ProtocolClient
from .client_events import ClientEvent, EventType
from .config import get_config, load_env_files
from .dispatcher import FunctionDispatcher
from .instructions import get_instructions
from .store import InMemoryKitchenStore


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="kitchen_bridge", description=__doc__.strip().splitlines()[0])
    parser.add_argument("messages", nargs="+", help="user turns, sent in order")
    parser.add_argument("--log-level", default="WARNING", help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--persona", default=None, help="persona name under kitchen_bridge/prompts")
    return parser.parse_args(argv)


async def _run(messages, persona) -> int:
    config = get_config()
    store = InMemoryKitchenStore()
    client = ProtocolClient(
        FunctionDispatcher(store),
        config,
        system_instruction=get_instructions(persona or config.persona),
    )

    failed = False
    done = asyncio.Event()

    def on_text(event: ClientEvent) -> None:
        if event.is_final and event.text:
            print(f"assistant> {event.text}")

    def on_tool(event: ClientEvent) -> None:
        result = event.tool_result
        mark = "ok" if result.success else "failed"
        print(f"  [{result.name}: {mark}] {result.message}")

    def on_error(event: ClientEvent) -> None:
        nonlocal failed
        failed = True
        print(f"error> {event.error.user_message()} ({event.error})", file=sys.stderr)
        done.set()

    client.on(EventType.OUTPUT_TEXT, on_text)
    client.on(EventType.TOOL_CALL_EXECUTED, on_tool)
    client.on(EventType.ERROR, on_error)
    client.on(EventType.RESPONSE_ENDED, lambda _event: done.set())

    try:
        for message in messages:
            print(f"you> {message}")
            done.clear()
            await client.send_text(message)
            if not client.is_responding:
                # rejected before sending (e.g. missing credential)
                break
            await done.wait()
    finally:
        await client.aclose()

    return 1 if failed else 0


def main(argv=None) -> int:
    args = _parse_args(argv)
    load_env_files()
    setup_logging(level=args.log_level.upper(), use_json=False)
    return asyncio.run(_run(args.messages, args.persona))


if __name__ == "__main__":
    sys.exit(main())
