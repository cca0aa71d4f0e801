"""Wiring and entry point for the planner command line."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as pkg_version
from typing import List, Optional

from application.settings_store import SettingsStore
from application.task_store import TaskStore
from application.task_sync import TaskSync
from config import SyncConfig, load_sync_config
from core import PlannerSettings
from infrastructure.file_store import LocalFileStore
from infrastructure.json_persistence import JsonFilePersistence, PersistenceError
from interface import cli_commands
from interface.cli_io import fail
from interface.cli_parser import build_parser
from interface.logging_setup import level_from_name, setup_logging

logger = logging.getLogger("planner.cli")


@dataclass
class PlannerApp:
    config: SyncConfig
    settings_store: SettingsStore
    settings: PlannerSettings
    store: TaskStore
    file_store: LocalFileStore
    sync: TaskSync

    async def save_settings(self) -> None:
        await self.settings_store.save(self.settings)


async def open_app(config: SyncConfig) -> PlannerApp:
    persistence = JsonFilePersistence(config.data_file)
    settings_store = SettingsStore(persistence)
    settings = await settings_store.load()
    store = TaskStore(persistence, settings)
    await store.ensure_loaded()
    file_store = LocalFileStore(config.vault_path, poll_interval=config.poll_interval)

    async def save_settings() -> None:
        await settings_store.save(settings)

    sync = TaskSync(
        store,
        file_store,
        settings,
        suppression_window=config.suppression_window,
        created_read_delay=config.created_read_delay,
        initial_sync_pause=config.initial_sync_pause,
        initial_sync_cooldown=config.initial_sync_cooldown,
        save_settings=save_settings,
        reload_store=True,
    )
    app = PlannerApp(
        config=config,
        settings_store=settings_store,
        settings=settings,
        store=store,
        file_store=file_store,
        sync=sync,
    )
    # Persist a normalized settings block (first run creates the default project).
    await app.save_settings()
    project = settings.active_project
    if settings.sync_on_startup and project is not None:
        await sync.initial_sync(project.id, project.name)
    return app


async def run_command(args, config: Optional[SyncConfig] = None) -> int:
    try:
        app = await open_app(config or load_sync_config())
    except PersistenceError as exc:
        return fail(args.command, str(exc))
    try:
        return await args.func(args, app)
    finally:
        app.sync.close()
        app.file_store.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser(cli_commands)
    args = parser.parse_args(argv)
    if getattr(args, "version", False):
        try:
            print(pkg_version("planner-sync"))
        except PackageNotFoundError:
            print("0.0.0")
        return 0
    if not getattr(args, "command", None):
        parser.print_help()
        return 1

    config = load_sync_config()
    level = logging.DEBUG if getattr(args, "verbose", False) else level_from_name(config.log_level)
    setup_logging(console_level=level, log_file=config.log_file)
    try:
        return asyncio.run(run_command(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
