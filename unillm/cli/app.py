"""
Main CLI application for unillm.

Usage:
    unillm chat [PROMPT] [--model NAME] [--stream/--no-stream] [--profile NAME] [--config PATH]
    unillm providers list
    unillm config show|validate
    unillm version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from unillm import __version__
from unillm.config import ClientConfig, load_config, validate_config

app = typer.Typer(name="unillm", help="unillm - one client for many model backends")
providers_app = typer.Typer(help="Provider management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(providers_app, name="providers")
app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path(explicit: str | None = None) -> Path | None:
    """Find config file in standard locations."""
    if explicit:
        return Path(explicit).expanduser()
    candidates = [
        Path.cwd() / "unillm.yaml",
        Path.cwd() / "unillm.yml",
        Path.home() / ".config" / "unillm" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load(
    config: str | None = None,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> ClientConfig:
    cfg = load_config(_get_config_path(config), profile=profile, cli_overrides=cli_overrides)
    _setup_logging(cfg.logging.level)
    return cfg


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    prompt: Optional[str] = typer.Argument(None, help="One-shot prompt; omit for an interactive session"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Target model id"),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Stream the reply"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """Chat with a model, one-shot or interactively."""
    from unillm.cli.chat import ChatHandler
    from unillm.providers import build_registry

    overrides: dict[str, Any] = {}
    if model:
        overrides["completion.model"] = model
    if stream is not None:
        overrides["completion.stream"] = stream
    cfg = _load(config, profile, overrides)

    async def _run() -> int:
        registry = build_registry(cfg)
        handler = ChatHandler(
            registry,
            model=cfg.completion.model,
            console=console,
            stream=cfg.completion.stream,
            system_prompt=cfg.completion.system_prompt,
        )
        try:
            if prompt:
                reply = await handler.handle_input(prompt)
                return 0 if reply is not None else 1
            await handler.run_loop()
            return 0
        finally:
            await registry.aclose()

    code = asyncio.run(_run())
    if code:
        raise typer.Exit(code)


@providers_app.command("list")
def providers_list(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """List configured providers in dispatch order."""
    from unillm.cli.output import OutputFormatter
    from unillm.providers import build_registry

    cfg = _load(config, profile)
    registry = build_registry(cfg)
    formatter = OutputFormatter(console)
    formatter.format_provider_list(registry.providers)
    asyncio.run(registry.aclose())


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """Show effective config."""
    from unillm.cli.output import OutputFormatter

    cfg = _load(config, profile)
    formatter = OutputFormatter(console)
    formatter.format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """Validate config and show any problems."""
    from unillm.cli.output import OutputFormatter

    config_path = _get_config_path(config)
    try:
        cfg = load_config(config_path, profile=profile)
    except Exception as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    problems = validate_config(cfg)
    if problems:
        console.print("[red]Config validation failed:[/red]")
        OutputFormatter(console).format_problems(problems)
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path and config_path.is_file():
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Model: {cfg.completion.model} (stream={cfg.completion.stream})")
    for p in cfg.providers:
        key_state = "set" if p.api_key() else "unset"
        console.print(f"  Provider: {p.kind} at {p.url} models={p.models} key={key_state}")


@app.command()
def version():
    """Show version."""
    console.print(f"unillm-core v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
