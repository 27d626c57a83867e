"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from unillm.chat import ChatResponse


class OutputFormatter:
    """Rich-based output formatting for the unillm CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_provider_list(self, providers: list[Any]) -> None:
        if not providers:
            self.console.print("[dim]No providers configured.[/dim]")
            return

        table = Table(title="Providers (dispatch order)", show_lines=True)
        table.add_column("#", no_wrap=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Adapter", no_wrap=True)
        table.add_column("Models")

        for i, p in enumerate(providers, start=1):
            models = ", ".join(getattr(p, "models", ()) or ("*",))
            table.add_row(str(i), p.name, type(p).__name__, models)

        self.console.print(table)

    def format_usage(self, response: ChatResponse) -> None:
        if response.usage is None:
            return
        u = response.usage
        self.console.print(
            f"[dim]tokens: prompt={u.prompt_tokens} "
            f"completion={u.completion_tokens} total={u.total_tokens}[/dim]"
        )

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))

    def format_problems(self, problems: list[str]) -> None:
        for p in problems:
            self.console.print(f"  [red]-[/red] {p}")
