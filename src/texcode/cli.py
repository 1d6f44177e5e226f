from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import typing
from pathlib import Path

import click
from rich import console as rich_console

from texcode import render
from texcode.llm import LiteLLMBackend, ReplayBackend
from texcode.logger import (
    apply_logging_settings,
    get_log_manager,
    init_file_logging,
    init_log_manager,
)
from texcode.patch import ValidationPolicy
from texcode.session import Session, StreamUpdate, TurnResult
from texcode.settings import Settings, load_settings

QUIT_COMMANDS = (":quit", ":q", ":exit")
UNDO_COMMAND = ":undo"
SHOW_COMMAND = ":doc"
LOG_COMMAND = ":log"
LOG_LINES_SHOWN = 50

REPLAY_INSTRUCTION = "Apply the recorded reply."


def _read_document(path: Path) -> str:
    if not path.exists():
        return ""
    # newline="" keeps CRLF endings so the store can write them back
    with path.open("r", encoding="utf-8", newline="") as f:
        return f.read()


def _write_document(path: Path, text: str) -> None:
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(text)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML or JSON5 settings file.",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write logs to this file.",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, log_file: Path | None) -> None:
    """Edit a LaTeX document together with an AI assistant."""
    settings = load_settings(config_path) if config_path else Settings()
    init_log_manager()
    apply_logging_settings(settings.logging)
    if log_file is not None:
        init_file_logging(log_file)
    ctx.obj = settings


@main.command("apply")
@click.argument(
    "document", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.argument("reply", type=click.File("r", encoding="utf-8"))
@click.option(
    "--policy",
    type=click.Choice([p.value for p in ValidationPolicy]),
    default=None,
    help="How to treat patches that address lines outside the document.",
)
@click.option("--dry-run", is_flag=True, help="Show the changes without writing.")
@click.pass_obj
def apply_cmd(
    settings: Settings,
    document: Path,
    reply: typing.TextIO,
    policy: str | None,
    dry_run: bool,
) -> None:
    """Apply the edits contained in a saved assistant REPLY to DOCUMENT."""
    settings = settings.model_copy(deep=True)
    if policy is not None:
        settings.session.validation_policy = ValidationPolicy(policy)

    session = Session(
        ReplayBackend([reply.read()]),
        settings=settings,
        initial_text=_read_document(document),
    )
    result = asyncio.run(session.apply_user_turn(REPLAY_INSTRUCTION))

    console = rich_console.Console()
    if result.previews:
        console.print(render.render_previews(result.previews))
    console.print(render.render_turn_summary(result))

    if result.error is not None:
        raise click.ClickException(result.error)
    if not result.document_updated:
        console.print("No changes to apply.")
        return
    if dry_run:
        console.print("Dry run: document not written.")
        return
    _write_document(document, session.current_document())


async def _run_turn(
    session: Session, instruction: str, console: rich_console.Console
) -> TurnResult:
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, session.cancel)

    def on_update(update: StreamUpdate) -> None:
        console.print(update.chunk, end="", markup=False, highlight=False)

    try:
        return await session.apply_user_turn(instruction, on_update=on_update)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        console.print()


def _print_logs(console: rich_console.Console) -> None:
    manager = get_log_manager()
    entries = manager.get_logs(logging.INFO, limit=LOG_LINES_SHOWN) if manager else []
    console.print(render.render_log_records(entries), soft_wrap=True)


async def _chat_loop(session: Session, console: rich_console.Console) -> None:
    console.print(
        f"Editing {session.store.line_count} line(s). "
        f"Commands: {UNDO_COMMAND}, {SHOW_COMMAND}, {LOG_COMMAND}, {QUIT_COMMANDS[0]}"
    )
    while True:
        try:
            instruction = await asyncio.to_thread(console.input, "> ")
        except (EOFError, KeyboardInterrupt):
            return

        instruction = instruction.strip()
        if not instruction:
            continue
        if instruction in QUIT_COMMANDS:
            return
        if instruction == UNDO_COMMAND:
            if session.undo():
                console.print("Undone.")
            else:
                console.print("Nothing to undo.")
            continue
        if instruction == SHOW_COMMAND:
            console.print(session.current_document(), markup=False, highlight=False)
            continue
        if instruction == LOG_COMMAND:
            _print_logs(console)
            continue

        manager = get_log_manager()
        mark = manager.last_seq if manager else 0
        result = await _run_turn(session, instruction, console)
        if result.previews:
            console.print(render.render_previews(result.previews))
        console.print(render.render_turn_summary(result))

        warned = manager.get_logs(logging.WARNING, after_seq=mark) if manager else []
        if warned:
            console.print(
                f"{len(warned)} warning(s) logged, type {LOG_COMMAND} to view.",
                style=render.PREVIEW_META_STYLE,
            )


@main.command("chat")
@click.argument("document", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--model", default=None, help="Override the configured model id.")
@click.pass_obj
def chat_cmd(settings: Settings, document: Path, model: str | None) -> None:
    """Chat with the assistant about DOCUMENT; accepted edits are saved to it."""
    settings = settings.model_copy(deep=True)
    if model:
        settings.model.model = model

    session = Session(
        LiteLLMBackend(max_retries=settings.model.max_retries),
        settings=settings,
        initial_text=_read_document(document),
        observer=lambda text: _write_document(document, text),
    )
    asyncio.run(_chat_loop(session, rich_console.Console()))


if __name__ == "__main__":
    main()
