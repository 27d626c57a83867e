"""Interactive chat session handler."""

from __future__ import annotations

import asyncio

from rich.console import Console

from unillm.chat import ChatRequest, ChatResponse
from unillm.cli.output import OutputFormatter
from unillm.errors import LLMError
from unillm.messages import Message
from unillm.registry import ProviderRegistry


class ChatHandler:
    """
    Manages the interactive chat loop.

    Keeps the growing conversation, streams or performs each turn through
    the registry and handles inline commands.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        model: str,
        console: Console | None = None,
        stream: bool = True,
        system_prompt: str = "",
    ) -> None:
        self.registry = registry
        self.model = model
        self.stream = stream
        self.system_prompt = system_prompt
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.messages: list[Message] = []
        self._running = True
        self.reset()

    def reset(self) -> None:
        self.messages = [Message.system(self.system_prompt)] if self.system_prompt else []

    def build_request(self, user_input: str) -> ChatRequest:
        return ChatRequest(
            model=self.model,
            messages=[*self.messages, Message.user(user_input)],
            stream=self.stream,
        )

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/reset":
            self.reset()
            self.console.print("  Conversation cleared.")
            return True

        if cmd == "/model":
            if not arg:
                self.console.print(f"  Model: [bold]{self.model}[/bold]")
            else:
                self.model = arg
                self.console.print(f"  Switched to model: [bold]{arg}[/bold]")
            return True

        if cmd == "/providers":
            self.formatter.format_provider_list(self.registry.providers)
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit        - Exit the chat\n"
                "  /reset       - Clear the conversation\n"
                "  /model NAME  - Switch the target model\n"
                "  /providers   - List registered providers\n"
                "  /help        - Show this help\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> str | None:
        """Send one user turn and print the reply. Returns the reply text."""
        request = self.build_request(user_input)

        try:
            if self.stream:
                reply = await self._stream_turn(request)
            else:
                response = await self.registry.perform(request)
                reply = response.text
                self.console.print(reply, markup=False)
                self.formatter.format_usage(response)
        except LLMError as e:
            self.console.print(f"\n[red]Error ({e.kind}):[/red] {e}")
            return None

        self.messages = [*request.messages, Message.assistant(reply)]
        return reply

    async def _stream_turn(self, request: ChatRequest) -> str:
        content_parts: list[str] = []
        last = ChatResponse.empty()
        async for partial in self.registry.stream(request):
            choice = partial.first_choice
            text = ""
            if choice is not None and choice.delta is not None:
                text = choice.delta.content or ""
            elif choice is not None and choice.message is not None:
                text = choice.message.text
            if text:
                content_parts.append(text)
                self.console.print(text, end="", markup=False)
            last = last.combine(partial)

        # Newline after streaming
        self.console.print()
        self.formatter.format_usage(last)
        return "".join(content_parts)

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            f"[bold]unillm[/bold] - chatting with [cyan]{self.model}[/cyan]\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            await self.handle_input(user_input)
