"""Bidirectional sync between the TaskStore and a folder of task notes.

Push writes a task's note; pull decodes a note and upserts it into the store.
File-change notifications arrive asynchronously after every write, including
our own, so each sync direction marks the task id as suppressed and releases
it only after a fixed window. A notification that lands inside the window is
ignored. Two external edits to the same note faster than the window can still
race; the window stays finite so fast legitimate edits are not dropped forever.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from application.ports import EVENT_CHANGED, EVENT_CREATED, EVENT_DELETED, FileStore
from application.task_store import TaskStore
from core import PlannerSettings, PlannerTask, derive_completion
from infrastructure.task_note_codec import TaskNoteCodec

logger = logging.getLogger("planner.sync")

Clock = Callable[[], float]
SaveSettings = Callable[[], Awaitable[None]]

TASKS_FOLDER = "Tasks"
NOTE_SUFFIX = ".md"


@dataclass(frozen=True)
class Suppressed:
    expires_at: Optional[float] = None  # None while the owning operation is still running


class SuppressionRegistry:
    """Per-task sync state: Idle (no entry) or Suppressed(expires_at)."""

    def __init__(self, window: float, clock: Optional[Clock] = None):
        self.window = window
        self.clock = clock or time.monotonic
        self._entries: Dict[str, Suppressed] = {}

    def acquire(self, task_id: str) -> None:
        self._entries[task_id] = Suppressed()

    def release_later(self, task_id: str) -> None:
        self._entries[task_id] = Suppressed(expires_at=self.clock() + self.window)

    def is_suppressed(self, task_id: str) -> bool:
        entry = self._entries.get(task_id)
        if entry is None:
            return False
        if entry.expires_at is None or self.clock() < entry.expires_at:
            return True
        del self._entries[task_id]
        return False

    def state(self, task_id: str) -> Optional[Suppressed]:
        return self._entries.get(task_id) if self.is_suppressed(task_id) else None

    def clear(self) -> None:
        self._entries.clear()


class TaskSync:
    def __init__(
        self,
        store: TaskStore,
        file_store: FileStore,
        settings: PlannerSettings,
        *,
        suppression_window: float = 2.0,
        created_read_delay: float = 1.0,
        initial_sync_pause: float = 0.05,
        initial_sync_cooldown: float = 300.0,
        save_settings: Optional[SaveSettings] = None,
        clock: Optional[Clock] = None,
        reload_store: bool = False,
    ):
        self.store = store
        self.file_store = file_store
        self.settings = settings
        self.created_read_delay = created_read_delay
        self.initial_sync_pause = initial_sync_pause
        self.initial_sync_cooldown = initial_sync_cooldown
        self.save_settings = save_settings
        self.suppression = SuppressionRegistry(suppression_window, clock)
        self._known_paths: Dict[str, str] = {}
        self._unsubscribers: List[Callable[[], None]] = []
        # reload_store: re-read the data file before applying an outside change.
        self.reload_store = reload_store
        self._apply_lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.settings.enable_markdown_sync

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def project_folder(self, project_name: str) -> str:
        parts = [self.settings.projects_base_path.strip("/"), project_name, TASKS_FOLDER]
        return "/".join(part for part in parts if part)

    def get_task_file_path(self, task: PlannerTask, project_name: str) -> str:
        return f"{self.project_folder(project_name)}/{TaskNoteCodec.sanitize_file_name(task.title)}{NOTE_SUFFIX}"

    def _lookup(self, project_id: str) -> Callable[[str], Optional[PlannerTask]]:
        return lambda task_id: self.store.get_task_by_id(task_id, project_id=project_id)

    def _find_note(self, task_id: str, folder: str) -> Optional[str]:
        known = self._known_paths.get(task_id)
        if known and self.file_store.exists(known):
            return known
        for path in self.file_store.list_files(folder, NOTE_SUFFIX):
            metadata = self.file_store.get_frontmatter(path) or {}
            if str(metadata.get("id") or "") == task_id:
                return path
        return None

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    async def sync_task_to_markdown(self, task: PlannerTask, project_id: str) -> Optional[str]:
        """Write the task's note; returns its path, or None when skipped."""
        if not self.enabled:
            return None
        project = self.settings.find_project(project_id)
        if project is None:
            logger.debug("Push skipped, unknown project %s", project_id)
            return None
        if self.suppression.is_suppressed(task.id):
            logger.debug("Push skipped, task %s is suppressed", task.id)
            return None

        path = self.get_task_file_path(task, project.name)
        folder = self.project_folder(project.name)
        self.suppression.acquire(task.id)
        try:
            if not self.file_store.exists(folder):
                await self.file_store.create_folder(folder)
            await self._move_previous_note(task.id, folder, path)
            content = TaskNoteCodec.encode(task, project.name, lookup=self._lookup(project_id))
            if self.file_store.exists(path):
                await self.file_store.modify(path, content)
            else:
                await self.file_store.create(path, content)
            self._known_paths[task.id] = path
            logger.info("Pushed task %s to %s", task.id, path)
        finally:
            self.suppression.release_later(task.id)
        return path

    async def _move_previous_note(self, task_id: str, folder: str, path: str) -> None:
        previous = self._find_note(task_id, folder)
        if previous is None or previous == path:
            return
        if self.file_store.exists(path):
            logger.warning("Not moving %s: %s already exists", previous, path)
            return
        await self.file_store.rename(previous, path)
        logger.info("Moved note %s -> %s", previous, path)

    async def push_project(self, project_id: str) -> int:
        written = 0
        for task in self.store.get_all_for_project(project_id):
            if await self.sync_task_to_markdown(task, project_id):
                written += 1
        return written

    async def handle_task_rename(self, task: PlannerTask, old_title: str, project_id: str) -> Optional[str]:
        project = self.settings.find_project(project_id)
        if project is None or not self.enabled:
            return None
        old_path = self.get_task_file_path(PlannerTask(id=task.id, title=old_title), project.name)
        if old_path != self.get_task_file_path(task, project.name) and self.file_store.exists(old_path):
            try:
                await self.file_store.delete(old_path)
            except OSError as exc:
                logger.warning("Cannot delete renamed note %s: %s", old_path, exc)
        self._known_paths.pop(task.id, None)
        return await self.sync_task_to_markdown(task, project_id)

    async def delete_task_markdown(self, task: PlannerTask, project_name: str) -> bool:
        if not self.enabled:
            return False
        path = self.get_task_file_path(task, project_name)
        self._known_paths.pop(task.id, None)
        if not self.file_store.exists(path):
            return False
        await self.file_store.delete(path)
        return True

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    async def markdown_to_task(self, path: str) -> Optional[PlannerTask]:
        try:
            text = await self.file_store.read(path)
        except (OSError, UnicodeDecodeError) as exc:
            # Degrade to the cached header: the task still syncs, minus body sections.
            logger.warning("Cannot read note %s: %s", path, exc)
            return TaskNoteCodec.decode_metadata(self.file_store.get_frontmatter(path))
        return TaskNoteCodec.decode(text)

    async def sync_markdown_to_task(self, path: str, project_id: str) -> Optional[PlannerTask]:
        task = await self.markdown_to_task(path)
        if task is None:
            logger.debug("Pull ignored %s: not a task note", path)
            return None
        if self.suppression.is_suppressed(task.id):
            logger.debug("Pull skipped, task %s is suppressed", task.id)
            return None

        self.suppression.acquire(task.id)
        try:
            stored = self.store.get_task_by_id(task.id, project_id=project_id)
            project = self.settings.find_project(project_id)
            if project is not None and stored is not None and stored.title != task.title:
                path = await self._follow_title(task, path, project.name)
            self._known_paths[task.id] = path
            self._reconcile(task, stored)
            if stored is not None and stored.to_dict() == task.to_dict():
                logger.debug("Pull of %s changed nothing", path)
                return stored
            logger.info("Pulled task %s from %s", task.id, path)
            return await self.store.add_task_from_object(task, project_id=project_id)
        finally:
            self.suppression.release_later(task.id)

    async def _follow_title(self, task: PlannerTask, path: str, project_name: str) -> str:
        expected = self.get_task_file_path(task, project_name)
        if expected == path or self.file_store.exists(expected):
            return path
        try:
            await self.file_store.rename(path, expected)
        except OSError as exc:
            logger.warning("Cannot move note %s -> %s: %s", path, expected, exc)
            return path
        return expected

    def _reconcile(self, task: PlannerTask, stored: Optional[PlannerTask]) -> None:
        """Carry stored checklist/link ids over and keep status and completed consistent."""
        done = self.settings.done_status
        if stored is None:
            if task.status == done:
                task.completed = True
            elif task.completed:
                task.status = done
            return

        free_subtasks = list(stored.subtasks)
        for subtask in task.subtasks:
            match = next((s for s in free_subtasks if s.title == subtask.title), None)
            if match is not None:
                subtask.id = match.id
                free_subtasks.remove(match)
        free_links = list(stored.links)
        for link in task.links:
            match = next((c for c in free_links if c.url == link.url and c.type == link.type), None)
            if match is not None:
                link.id = match.id
                if link.is_internal and match.title:
                    link.title = match.title
                free_links.remove(match)

        status_changed = task.status != stored.status
        completed_changed = bool(task.completed) != bool(stored.completed)
        if status_changed or completed_changed:
            task.status, task.completed = derive_completion(
                stored.status,
                status=task.status if status_changed else None,
                completed=bool(task.completed) if completed_changed else None,
                status_last=status_changed,
                done_status=done,
                default_status=self.settings.default_status,
            )

    # ------------------------------------------------------------------
    # Watch / initial sync
    # ------------------------------------------------------------------

    def watch_project_folder(self, project_id: str, project_name: str) -> Callable[[], None]:
        prefix = self.project_folder(project_name) + "/"
        if not self.enabled:
            logger.info("Markdown sync disabled, not watching %s", prefix)
            return lambda: None

        def in_scope(path: str) -> bool:
            return path.startswith(prefix) and path.endswith(NOTE_SUFFIX)

        async def on_changed(path: str) -> None:
            if in_scope(path):
                await self._apply_external(self.sync_markdown_to_task, path, project_id)

        async def on_created(path: str) -> None:
            if in_scope(path):
                self._schedule_pull(path, project_id)

        async def on_deleted(path: str) -> None:
            if in_scope(path):
                await self._apply_external(self._handle_deleted_note, path, project_id, project_name)

        handles = [
            self.file_store.on(EVENT_CHANGED, on_changed),
            self.file_store.on(EVENT_CREATED, on_created),
            self.file_store.on(EVENT_DELETED, on_deleted),
        ]

        def unsubscribe() -> None:
            for handle in handles:
                handle()
            if unsubscribe in self._unsubscribers:
                self._unsubscribers.remove(unsubscribe)

        self._unsubscribers.append(unsubscribe)
        logger.info("Watching %s for project %s", prefix, project_name)
        return unsubscribe

    async def _apply_external(self, action: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        # One outside change at a time, each against the data file's current contents.
        async with self._apply_lock:
            if self.reload_store:
                await self.store.reload()
            return await action(*args)

    def _schedule_pull(self, path: str, project_id: str) -> None:
        async def pull_later() -> None:
            # Give the file store's metadata index time to see the new file.
            await asyncio.sleep(self.created_read_delay)
            await self._apply_external(self.sync_markdown_to_task, path, project_id)

        task = asyncio.get_running_loop().create_task(pull_later())
        self._pending.add(task)
        task.add_done_callback(self._pull_finished)

    def _pull_finished(self, task: "asyncio.Task") -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Delayed pull failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait until every delayed pull of a created note has finished."""
        while self._pending:
            await asyncio.wait(list(self._pending))
            self._pending = {task for task in self._pending if not task.done()}

    async def _handle_deleted_note(self, path: str, project_id: str, project_name: str) -> None:
        metadata = self.file_store.get_frontmatter(path) or {}
        task_id = str(metadata.get("id") or "").strip()
        if not task_id:
            return
        if self.suppression.is_suppressed(task_id):
            logger.debug("Ignoring deletion of %s, task %s is suppressed", path, task_id)
            return
        stored = self.store.get_task_by_id(task_id, project_id=project_id)
        if stored is not None:
            current = self._known_paths.get(task_id) or self.get_task_file_path(stored, project_name)
            if current != path and self.file_store.exists(current):
                logger.debug("Ignoring deletion of %s, task %s lives at %s", path, task_id, current)
                return
        self._known_paths.pop(task_id, None)
        logger.info("Note %s deleted, removing task %s", path, task_id)
        await self.store.delete_task(task_id, project_id=project_id)

    async def initial_sync(self, project_id: str, project_name: str, *, force: bool = False) -> int:
        """Pull every note of a project once; returns the number of notes read."""
        project = self.settings.find_project(project_id)
        if project is None or not self.enabled:
            return 0
        folder = self.project_folder(project_name)
        if not self.file_store.exists(folder):
            logger.info("No notes folder %s yet", folder)
            return 0
        last = project.last_sync_timestamp
        if not force and last is not None and time.time() - last < self.initial_sync_cooldown:
            logger.debug("Initial sync of %s skipped, last scan %.0fs ago", project_name, time.time() - last)
            return 0

        files = self.file_store.list_files(folder, NOTE_SUFFIX)
        logger.info("Initial sync of %s: %d notes", folder, len(files))
        for index, path in enumerate(files):
            if index and self.initial_sync_pause > 0:
                await asyncio.sleep(self.initial_sync_pause)
            try:
                await self.sync_markdown_to_task(path, project_id)
            except Exception:
                logger.exception("Initial sync failed for %s", path)

        project.last_sync_timestamp = time.time()
        if self.save_settings is not None:
            await self.save_settings()
        return len(files)

    def close(self) -> None:
        for unsubscribe in list(self._unsubscribers):
            unsubscribe()
        self._unsubscribers.clear()
        for task in list(self._pending):
            task.cancel()
        self.suppression.clear()


__all__ = ["Suppressed", "SuppressionRegistry", "TaskSync", "TASKS_FOLDER"]
