"""Command-line interface for heroku-inference."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from heroku_inference.config import InferenceConfig, load_config
from heroku_inference.errors import InferenceError
from heroku_inference.llm.client import AsyncInferenceClient
from heroku_inference.types import ChatMessage

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _print_tool_calls(message: ChatMessage) -> None:
    if not message.tool_calls:
        return
    table = Table(title="Tool calls")
    table.add_column("id", style="dim")
    table.add_column("name", style="bold cyan")
    table.add_column("args")
    for tc in message.tool_calls:
        args = tc.args if isinstance(tc.args, str) else json.dumps(tc.args)
        table.add_row(tc.id, tc.name, args)
    console.print(table)


async def _run_chat(
    config: InferenceConfig,
    messages: list[dict[str, str]],
    stream: bool,
) -> ChatMessage:
    async with AsyncInferenceClient(config) as client:
        if not stream:
            message = await client.chat(messages)
            console.print(message.content)
            return message

        async for chunk in client.chat_stream(messages):
            if chunk.content:
                console.print(chunk.content, end="", highlight=False)
        console.print()
        return client.last_message or ChatMessage()


async def _run_embed(config: InferenceConfig, texts: list[str]) -> list[list[float]]:
    async with AsyncInferenceClient(config) as client:
        return await client.embed(texts)


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to heroku_inference.yaml (auto-detected from CWD or ~/.config/heroku-inference/)")
@click.option("--model", "-m", default=None, help="Model ID (overrides INFERENCE_MODEL_ID)")
@click.option("--timeout", "timeout_ms", type=int, default=None, help="Per-attempt timeout in milliseconds")
@click.option("--max-retries", type=int, default=None, help="Retries after the first attempt")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, model: str | None,
         timeout_ms: int | None, max_retries: int | None, verbose: bool):
    """Talk to a Heroku Managed Inference model."""
    _setup_logging(verbose)
    ctx.obj = load_config(
        config_path, model=model, timeout_ms=timeout_ms, max_retries=max_retries,
    )


@main.command()
@click.argument("prompt")
@click.option("--system", "-s", default=None, help="System prompt")
@click.option("--stream/--no-stream", default=True, help="Stream tokens as they arrive")
@click.pass_obj
def chat(config: InferenceConfig, prompt: str, system: str | None, stream: bool):
    """Send PROMPT and print the reply."""
    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    try:
        message = asyncio.run(_run_chat(config, messages, stream))
    except InferenceError as e:
        status = f" (HTTP {e.status_code})" if e.status_code else ""
        err_console.print(f"[red]Error{status}: {e.message}[/red]")
        sys.exit(1)

    _print_tool_calls(message)
    if message.finish_reason:
        console.print(f"[dim]finish_reason: {message.finish_reason}[/dim]")


@main.command()
@click.argument("texts", nargs=-1, required=True)
@click.pass_obj
def embed(config: InferenceConfig, texts: tuple[str, ...]):
    """Print embedding vectors for TEXTS as JSON."""
    try:
        vectors = asyncio.run(_run_embed(config, list(texts)))
    except InferenceError as e:
        status = f" (HTTP {e.status_code})" if e.status_code else ""
        err_console.print(f"[red]Error{status}: {e.message}[/red]")
        sys.exit(1)
    click.echo(json.dumps(vectors))


if __name__ == "__main__":
    main()
