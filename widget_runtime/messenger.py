"""
Standalone messenger view for a widget tenant, in the terminal.

Usage:
    python -m widget_runtime <tenant-id> [--base-url URL] [--storage file|redis|memory]

Commands inside the chat:
    /faq N     ask FAQ suggestion N
    /form      fill in and submit the live form
    /end       end the conversation and start a new one
    /quit      close the messenger

Ctrl-C or closing the terminal counts as a page unload: the end signal is
queued on the beacon transport and delivered while the process exits.
"""
import argparse
import asyncio
import sys
from typing import Optional

from dotenv import load_dotenv
from markupsafe import Markup

from .core.config import settings
from .core.logging_config import setup_logging, get_logger
from .schemas.conversation import MessageRole, SendStatus
from .schemas.form import FieldKind
from .services.form_renderer import render_form_text
from .services.identity_store import create_identity_store
from .services.lifecycle import LifecycleController
from .services.widget_client import WidgetApiClient
from .services.widget_view import build_view

logger = get_logger("messenger")


def _plain(html: str) -> str:
    text = html.replace("<br>", "\n").replace("</p><p>", "\n\n").replace("<li>", "\n- ")
    # striptags() also collapses whitespace, so apply it line by line
    return "\n".join(Markup(line).striptags() for line in text.split("\n")).strip()


async def _prompt(label: str) -> Optional[str]:
    try:
        return await asyncio.to_thread(input, label)
    except EOFError:
        return None


class TerminalMessenger:

    def __init__(self, controller: LifecycleController):
        self.controller = controller
        self._printed = 0

    def print_new_messages(self) -> None:
        view = build_view(self.controller)
        for message in view.messages[self._printed:]:
            speaker = view.title if message.role == MessageRole.AGENT else "You"
            print(f"{speaker}: {_plain(message.html)}")
        self._printed = len(view.messages)

        for notice in self.controller.machine.dismiss_notifications():
            print(f"[{notice.level}] {notice.text}")

        if self.controller.machine.form_session is not None:
            print(render_form_text(self.controller.machine.form_session))
            print("(type /form to fill it in)")

        suggestions = view.faq_suggestions
        if suggestions:
            for index, question in enumerate(suggestions, start=1):
                print(f"  [{index}] {question}")

    async def fill_form(self) -> None:
        session = self.controller.machine.form_session
        if session is None:
            print("There is no form to fill in.")
            return

        for spec in session.schema.fields:
            if spec.kind == FieldKind.CHECKBOX:
                for option in spec.options or []:
                    answer = await _prompt(f"{spec.label}: select '{option}'? [y/N] ")
                    if answer and answer.strip().lower().startswith("y"):
                        session.toggle_option(spec.id, option)
                continue
            answer = await _prompt(f"{spec.label}{' *' if spec.required else ''}: ")
            if answer is None:
                return
            session.set_value(spec.id, answer.strip())

        if session.schema.require_terms_acceptance:
            answer = await _prompt("Accept the terms and conditions? [y/N] ")
            session.accept_terms(bool(answer) and answer.strip().lower().startswith("y"))

        outcome = await self.controller.submit_form()
        if outcome.status == SendStatus.REJECTED and session.errors:
            for error in session.errors.values():
                print(f"  ! {error}")

    async def run(self) -> None:
        self.print_new_messages()
        while True:
            line = await _prompt("> ")
            if line is None:
                self.controller.on_unload()
                return
            line = line.strip()
            if not line:
                continue

            if line == "/quit":
                await self.controller.teardown()
                return
            if line == "/end":
                await self.controller.end_chat()
                self._printed = 0
                print("--- conversation ended, starting a new one ---")
            elif line == "/form":
                await self.fill_form()
            elif line.startswith("/faq"):
                suggestions = self.controller.faq_suggestions
                try:
                    faq = suggestions[int(line.split()[1]) - 1]
                except (IndexError, ValueError):
                    print("Unknown FAQ number")
                    continue
                await self.controller.ask_faq(faq.question)
            else:
                outcome = await self.controller.send(line)
                if outcome.status == SendStatus.REJECTED:
                    print(f"(not sent: {outcome.reason})")
            self.print_new_messages()


async def run_messenger(tenant_id: str, base_url: Optional[str], storage: Optional[str]) -> int:
    controller = LifecycleController(
        tenant_id,
        client=WidgetApiClient(base_url=base_url),
        store=create_identity_store(storage),
    )
    if not await controller.start():
        print(controller.load_error.user_message, file=sys.stderr)
        return 1

    controller.register_unload_handler()
    messenger = TerminalMessenger(controller)
    try:
        await messenger.run()
    except (KeyboardInterrupt, asyncio.CancelledError):
        controller.on_unload()
    return 0


def main():
    load_dotenv()
    parser = argparse.ArgumentParser(description="Chat with a widget tenant from the terminal")
    parser.add_argument("tenant_id", help="Chatbot (tenant) id")
    parser.add_argument("--base-url", default=None,
                        help=f"Widget API base URL (default: {settings.WIDGET_API_BASE_URL})")
    parser.add_argument("--storage", choices=["file", "redis", "memory"], default=None,
                        help=f"Identity storage backend (default: {settings.STORAGE_BACKEND})")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    args = parser.parse_args()

    setup_logging(log_level=args.log_level)
    try:
        exit_code = asyncio.run(run_messenger(args.tenant_id, args.base_url, args.storage))
    except KeyboardInterrupt:
        # The atexit hook queues the end signal on the way out
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
