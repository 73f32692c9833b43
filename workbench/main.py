"""Command-line entry point.

Usage:
    workbench [--project-root PATH] [--model NAME] [--no-history]
    workbench --init
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

import structlog

from workbench.agent.agent import AgentLoop
from workbench.agent.context_builder import ContextBuilder
from workbench.agent.model_client import OpenAICompatModelClient
from workbench.agent.prompt_builder import PromptBuilder
from workbench.channels.terminal import TerminalChannel
from workbench.config.settings import (
    Settings,
    init_project,
    load_settings,
    log_settings_loaded,
)
from workbench.infra.errors import ConfigError
from workbench.infra.logging import setup_logging
from workbench.memory.notes import ProjectNotes
from workbench.memory.tasks import TaskList
from workbench.session.history import HistoryStore
from workbench.tools.builtins import register_builtins
from workbench.tools.path_validator import PathValidator
from workbench.tools.registry import ToolRegistry

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workbench",
        description="Tool-calling coding agent for the current project.",
    )
    parser.add_argument(
        "--project-root", type=Path, default=None,
        help="Project directory the agent may touch (default: current directory)",
    )
    parser.add_argument(
        "--model", default=None,
        help="Model name, overrides WORKBENCH_MODEL_MODEL and config.json",
    )
    parser.add_argument(
        "--no-history", action="store_true",
        help="Neither restore nor save the conversation history",
    )
    parser.add_argument(
        "--init", action="store_true",
        help="Create .workbench/ with a default config.json and exit",
    )
    return parser


def build_channel(settings: Settings, *, use_history: bool = True) -> TerminalChannel:
    """Wire settings into the agent loop and the terminal channel."""
    validator = PathValidator(settings.project_root, reserved_dir=settings.config_dir_name)
    notes = ProjectNotes(settings.config_dir)
    tasks = TaskList()

    registry = ToolRegistry()
    register_builtins(registry, validator, notes, tasks, settings.command)

    model_client = OpenAICompatModelClient(
        api_key=settings.model.api_key,
        model=settings.model.model,
        base_url=settings.model.base_url,
        temperature=settings.model.temperature,
        max_retries=settings.model.max_retries,
    )
    prompt_builder = PromptBuilder(notes, tasks, registry)
    agent = AgentLoop(model_client, registry, prompt_builder, settings.agent)
    history = HistoryStore(settings.config_dir) if use_history else None
    return TerminalChannel(
        agent,
        notes,
        tasks,
        history,
        context_builder=ContextBuilder(model_client, registry, prompt_builder),
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.project_root)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    log_file = None
    if settings.enable_logging:
        log_file = settings.config_dir / "logs" / f"workbench-{date.today().isoformat()}.log"
    handle = setup_logging(
        json_output=True,
        log_level=settings.log_level,
        log_file=log_file,
        enabled=settings.enable_logging,
    )
    log_settings_loaded(settings)

    try:
        if args.init:
            init_project(settings)
            print(f"Initialized {settings.config_dir}")
            return 0

        if args.model:
            settings.model.model = args.model
        if not settings.model.api_key:
            print(
                "Error: no API key configured. Set WORKBENCH_MODEL_API_KEY "
                "(environment or .env).",
                file=sys.stderr,
            )
            return 2

        channel = build_channel(settings, use_history=not args.no_history)
        logger.info(
            "workbench_started",
            project_root=str(settings.project_root),
            model=settings.model.model,
        )
        asyncio.run(channel.run())
        return 0
    finally:
        if handle is not None:
            handle.close()


if __name__ == "__main__":
    sys.exit(main())
