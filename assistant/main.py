"""CLI entry point for the personal assistant.

A terminal chat loop for development.  For production, use the FastAPI
server (assistant/server.py).

Usage:
    uv run python -m assistant.main                    # general mode
    uv run python -m assistant.main --mode calendar    # calendar tools enabled
    uv run python -m assistant.main --debug            # shows API calls

In calendar mode, set ``GOOGLE_ACCESS_TOKEN`` to use a real calendar;
without it the calendar tools return simulated results.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import uuid

from dotenv import load_dotenv

from assistant.agent import ChatTurn, ModelCallFailed, ToolCallOrchestrator
from assistant.prompts import MODES, get_mode
from assistant.services.calendar_client import CalendarCredentials
from assistant.services.conversation_store import ConversationStore
from assistant.tools.calendar import build_calendar_registry

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("assistant").setLevel(logging.DEBUG if debug else logging.INFO)


def _credentials_from_env() -> CalendarCredentials | None:
    token = os.getenv("GOOGLE_ACCESS_TOKEN")
    if not token:
        return None
    return CalendarCredentials(access_token=token, refresh_token=os.getenv("GOOGLE_REFRESH_TOKEN"))


async def chat_loop(mode_id: str) -> None:
    mode = get_mode(mode_id)
    orchestrator = ToolCallOrchestrator()
    store = ConversationStore()
    credentials = _credentials_from_env()
    session_id = str(uuid.uuid4())
    logger.info("Started new session: %s (mode=%s)", session_id, mode.mode_id)

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        if user_input.lower() == "new":
            session_id = str(uuid.uuid4())
            print(f"\n>> New session started: {session_id[:8]}...\n")
            continue

        turn = ChatTurn(
            message=user_input,
            system_prompt=mode.prompt,
            history=store.get_history(session_id),
            tools_enabled=mode.tools_enabled,
        )
        registry = build_calendar_registry(credentials) if mode.tools_enabled else None

        try:
            result = await orchestrator.run_turn(turn, registry)
        except ModelCallFailed as e:
            logger.error("Model call failed: %s", e)
            print("\nAssistant: I can't reach the language model right now. Please try again.\n")
            continue

        store.append(
            session_id,
            {"role": "user", "content": user_input},
            {"role": "assistant", "content": result.reply},
        )
        for record in result.tool_results:
            marker = " (simulated)" if record["result"].get("simulated") else ""
            logger.info("Tool %s%s", record["name"], marker)
        print(f"\nAssistant: {result.reply}\n")


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Personal assistant CLI")
    parser.add_argument("--mode", choices=sorted(MODES), default="general")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print(f"  Personal Assistant - CLI Chat ({args.mode} mode)")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")

    try:
        asyncio.run(chat_loop(args.mode))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")


if __name__ == "__main__":
    main()
