"""Interactive terminal host for the wapflow engine."""

from __future__ import annotations

import asyncio
import html
import logging
import re
import signal
from typing import (
    List,
    Optional,
    Tuple,
)

from wapflow.agent.agent_loop import Orchestrator
from wapflow.agent.callbacks import EngineCallbacks
from wapflow.agent.session import LoopState
from wapflow.common import (
    AnsiColors,
    colored_print,
    extract_actions,
)
from wapflow.core.schema import UserAction
from wapflow.tools.todo_api import TodoApiClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Terminal helpers
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def fragment_to_text(fragment: str) -> str:
    """Rough plain-text view of an HTML fragment."""
    text = re.sub(r"<(br|/p|/div|/li|/tr|/h\d)\b[^>]*>", "\n", fragment, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    lines = [" ".join(line.split()) for line in html.unescape(text).splitlines()]
    return "\n".join(line for line in lines if line)


class TerminalUI:
    """Prints engine events and asks the user for decisions."""

    def __init__(self) -> None:
        self.actions: List[UserAction] = []

    def callbacks(self) -> EngineCallbacks:
        return EngineCallbacks(
            on_thinking=self.show_thinking,
            on_ui=self.show_ui,
            on_response=lambda text: colored_print(text, AnsiColors.YELLOW),
            on_error=lambda exc: colored_print(f"Error: {exc}", AnsiColors.RED),
            on_render_retry=self.ask_render_retry,
        )

    @staticmethod
    def show_thinking(text: str) -> None:
        if text:
            colored_print(text, AnsiColors.GREY)

    def show_ui(self, fragment: str) -> None:
        self.actions = extract_actions(fragment)
        if fragment:
            colored_print(fragment_to_text(fragment), AnsiColors.GREEN)

    @staticmethod
    async def ask_render_retry(exc: Exception) -> bool:
        colored_print(f"Could not generate the UI: {exc}", AnsiColors.RED)
        answer = await asyncio.to_thread(input, "Retry? [y/N] ")
        return answer.strip().lower() in {"y", "yes"}

    async def choose_action(self) -> Optional[UserAction]:
        """Ask which bound action to take; None means abort."""
        for number, action in enumerate(self.actions, start=1):
            colored_print(f"  [{number}] {action.action_id}", AnsiColors.BLUE)
        while True:
            answer = (await asyncio.to_thread(input, "Choose an action (empty to abort): ")).strip()
            if not answer:
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(self.actions):
                return self.actions[int(answer) - 1]
            for action in self.actions:
                if action.action_id == answer:
                    return action
            colored_print(f"No such action: {answer}", AnsiColors.RED)


# ---------------------------------------------------------------------------
# CLI loop
# ---------------------------------------------------------------------------
async def orchestrate(message: str) -> LoopState:
    """Run one request to completion, prompting for decisions along the way."""
    terminal = TerminalUI()
    async with TodoApiClient() as api:
        orchestrator = Orchestrator(api=api, callbacks=terminal.callbacks())
        handle = orchestrator.execute(message)

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, handle.abort)
        try:
            waiter = asyncio.ensure_future(handle.wait())
            while not waiter.done():
                if handle.session.gate.pending:
                    action = await terminal.choose_action()
                    if handle.done() or handle.session.aborted:
                        continue
                    if action is None:
                        handle.abort()
                    else:
                        orchestrator.submit_user_action(action)
                else:
                    await asyncio.wait({waiter}, timeout=0.1)
            state = waiter.result()
        finally:
            loop.remove_signal_handler(signal.SIGINT)

    if state is LoopState.ABORTED:
        colored_print("Aborted.", AnsiColors.RED)
    return state


def run_cli() -> None:
    """Run the interactive shell."""
    colored_print("\nwapflow shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    colored_print("Ctrl+C while a request is running aborts it.", AnsiColors.GREY)
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        state = asyncio.run(orchestrate(user_msg))
        logger.debug("Request finished in state %s", state.value)


if __name__ == "__main__":
    run_cli()
