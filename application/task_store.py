"""Authoritative multi-project task registry.

Tasks live in ordered per-project buckets (``tasks_by_project``). Every
mutation updates memory, notifies subscribers synchronously and then awaits
the persistence write, so a failing write surfaces to the caller of the
mutation while subscribers have already seen the new state.

Unknown task or project ids are silent no-ops throughout.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from application.ports import PersistenceProvider
from core import (
    PlannerSettings,
    PlannerSubtask,
    PlannerTask,
    TaskDependency,
    TaskLink,
    derive_completion,
    now_iso,
)
from core.status import DEFAULT_PRIORITY

logger = logging.getLogger("planner.store")

Listener = Callable[[], None]

LEGACY_TASKS_KEY = "tasks"
TASKS_BY_PROJECT_KEY = "tasksByProject"

# Public snake_case attribute for every accepted camelCase key.
_FIELD_ALIASES = {
    "parentId": "parent_id",
    "startDate": "start_date",
    "dueDate": "due_date",
    "bucketId": "bucket_id",
    "createdDate": "created_date",
    "lastModifiedDate": "last_modified_date",
}
_MUTABLE_FIELDS = frozenset(
    {
        "title",
        "status",
        "completed",
        "parent_id",
        "collapsed",
        "priority",
        "start_date",
        "due_date",
        "description",
        "tags",
        "bucket_id",
        "subtasks",
        "dependencies",
        "links",
        "created_date",
        "last_modified_date",
    }
)


def _coerce_change(name: str, value: Any) -> Any:
    """Accept wire-shaped dicts for the nested list fields of an update."""
    if name == "subtasks":
        return [s if isinstance(s, PlannerSubtask) else PlannerSubtask.from_dict(s) for s in value or []]
    if name == "links":
        return [link if isinstance(link, TaskLink) else TaskLink.from_dict(link) for link in value or []]
    if name == "dependencies":
        deps = [d if isinstance(d, TaskDependency) else TaskDependency.from_dict(d) for d in value or []]
        return [d for d in deps if d is not None]
    if name == "tags":
        if isinstance(value, str):
            value = [value]
        return [str(t).strip() for t in value or [] if str(t).strip()]
    return value


class TaskStore:
    def __init__(self, persistence: PersistenceProvider, settings: PlannerSettings):
        self.persistence = persistence
        self.settings = settings
        self.tasks_by_project: Dict[str, List[PlannerTask]] = {}
        self._listeners: List[Listener] = []
        self._loaded = False

    @property
    def active_project_id(self) -> str:
        return self.settings.active_project_id

    # ------------------------------------------------------------------
    # Loading / persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        raw = await self._read_blob()
        stored = raw.get(TASKS_BY_PROJECT_KEY) or {}
        self.tasks_by_project = {
            str(project_id): self._parse_bucket(tasks)
            for project_id, tasks in stored.items()
            if isinstance(tasks, list)
        } if isinstance(stored, dict) else {}

        project_id = self.active_project_id
        legacy = raw.get(LEGACY_TASKS_KEY)
        dirty = False
        if not self.tasks_by_project and isinstance(legacy, list) and legacy:
            logger.info("Migrating %d legacy tasks into project %s", len(legacy), project_id)
            self.tasks_by_project = {project_id: self._parse_bucket(legacy)}
            dirty = True
        elif LEGACY_TASKS_KEY in raw:
            dirty = True
        if project_id and project_id not in self.tasks_by_project:
            self.tasks_by_project[project_id] = []
            dirty = True
        if dirty:
            await self._write_blob(raw)
        self._loaded = True

    async def reload(self) -> None:
        """Replace in-memory buckets with what persistence holds now.

        Long-running processes call this before applying outside changes so
        writes made by other processes to the same data file are not lost.
        """
        self._loaded = False
        await self.load()
        self._emit()

    async def ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    def is_loaded(self) -> bool:
        return self._loaded

    async def _read_blob(self) -> Dict[str, Any]:
        raw = await self.persistence.load()
        return dict(raw) if isinstance(raw, dict) else {}

    async def _write_blob(self, raw: Dict[str, Any]) -> None:
        raw[TASKS_BY_PROJECT_KEY] = {
            project_id: [task.to_dict() for task in tasks] for project_id, tasks in self.tasks_by_project.items()
        }
        raw.pop(LEGACY_TASKS_KEY, None)
        await self.persistence.save(raw)

    async def _save(self) -> None:
        # Merge into whatever else the blob holds (settings and other keys survive).
        try:
            raw = await self._read_blob()
            await self._write_blob(raw)
        except Exception:
            logger.exception("Saving tasks failed")
            raise

    async def _commit(self) -> None:
        self._emit()
        await self._save()

    @staticmethod
    def _parse_bucket(items: List[Any]) -> List[PlannerTask]:
        bucket: List[PlannerTask] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            task = PlannerTask.from_dict(item)
            if task.id:
                bucket.append(task)
        return bucket

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def refresh(self) -> None:
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Task store listener failed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _bucket(self, project_id: Optional[str] = None) -> List[PlannerTask]:
        key = project_id or self.active_project_id
        return self.tasks_by_project.setdefault(key, [])

    def get_all(self) -> List[PlannerTask]:
        return list(self.tasks_by_project.get(self.active_project_id, []))

    def get_all_for_project(self, project_id: str) -> List[PlannerTask]:
        return list(self.tasks_by_project.get(project_id, []))

    def get_task_by_id(self, task_id: str, project_id: Optional[str] = None) -> Optional[PlannerTask]:
        for task in self.tasks_by_project.get(project_id or self.active_project_id, []):
            if task.id == task_id:
                return task
        return None

    def find_task(self, task_id: str) -> Tuple[Optional[str], Optional[PlannerTask]]:
        for project_id, tasks in self.tasks_by_project.items():
            for task in tasks:
                if task.id == task_id:
                    return project_id, task
        return None, None

    def get_children(self, task_id: str, project_id: Optional[str] = None) -> List[PlannerTask]:
        return [t for t in self.tasks_by_project.get(project_id or self.active_project_id, []) if t.parent_id == task_id]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_task(self, title: str) -> PlannerTask:
        task = PlannerTask.create(title, status=self.settings.default_status, priority=DEFAULT_PRIORITY)
        task.last_modified_date = task.created_date
        self._bucket().append(task)
        await self._commit()
        return task

    async def update_task(self, task_id: str, changes: Dict[str, Any]) -> Optional[PlannerTask]:
        task = self.get_task_by_id(task_id)
        if task is None:
            return None

        normalized: Dict[str, Any] = {}
        for key, value in (changes or {}).items():
            name = _FIELD_ALIASES.get(key, key)
            if name not in _MUTABLE_FIELDS:
                if name != "id":
                    logger.debug("Ignoring unknown task field %r", key)
                continue
            normalized[name] = _coerce_change(name, value)

        keys = list(normalized)
        if "status" in normalized or "completed" in normalized:
            status_last = "completed" not in normalized or (
                "status" in normalized and keys.index("status") > keys.index("completed")
            )
            status, completed = derive_completion(
                task.status,
                status=normalized.get("status"),
                completed=None if "completed" not in normalized else bool(normalized["completed"]),
                status_last=status_last,
                done_status=self.settings.done_status,
                default_status=self.settings.default_status,
            )
            normalized["status"] = status
            normalized["completed"] = completed

        for name, value in normalized.items():
            setattr(task, name, value)
        task.last_modified_date = now_iso()
        await self._commit()
        return task

    async def delete_task(self, task_id: str, project_id: Optional[str] = None) -> bool:
        key = project_id or self.active_project_id
        bucket = self.tasks_by_project.get(key)
        if not bucket or not any(t.id == task_id for t in bucket):
            return False
        remaining: List[PlannerTask] = []
        for task in bucket:
            if task.id == task_id:
                continue
            if task.parent_id == task_id:
                task.parent_id = None
            remaining.append(task)
        self.tasks_by_project[key] = remaining
        await self._commit()
        return True

    async def set_order(self, ids: List[str]) -> None:
        bucket = self._bucket()
        by_id = {t.id: t for t in bucket}
        ordered: List[PlannerTask] = []
        seen = set()
        for task_id in ids:
            task = by_id.get(task_id)
            if task is None or task_id in seen:
                continue
            seen.add(task_id)
            ordered.append(task)
        dropped = len(bucket) - len(ordered)
        if dropped:
            logger.warning("set_order dropped %d task(s) missing from the new order", dropped)
        self.tasks_by_project[self.active_project_id] = ordered
        await self._commit()

    async def toggle_collapsed(self, task_id: str) -> None:
        task = self.get_task_by_id(task_id)
        if task is None:
            return
        task.collapsed = not bool(task.collapsed)
        await self._commit()

    async def make_subtask(self, task_id: str, parent_id: str) -> None:
        task = self.get_task_by_id(task_id)
        if task is None or task_id == parent_id:
            return
        task.parent_id = parent_id
        task.last_modified_date = now_iso()
        await self._commit()

    async def promote_subtask(self, task_id: str) -> None:
        task = self.get_task_by_id(task_id)
        if task is None:
            return
        task.parent_id = None
        task.last_modified_date = now_iso()
        await self._commit()

    async def add_task_from_object(self, task: PlannerTask, project_id: Optional[str] = None) -> PlannerTask:
        """Upsert by id; importers and the note sync use this instead of update_task."""
        stored = self._upsert(task, project_id or self.active_project_id)
        await self._commit()
        return stored

    async def add_task_to_project(self, task: PlannerTask, project_id: str) -> PlannerTask:
        stored = self._upsert(task, project_id)
        await self._commit()
        return stored

    def _upsert(self, task: PlannerTask, project_id: str) -> PlannerTask:
        incoming = task.copy()
        # Buckets are disjoint: an id moving projects leaves its old bucket.
        for other_id, tasks in self.tasks_by_project.items():
            if other_id != project_id and any(t.id == incoming.id for t in tasks):
                self.tasks_by_project[other_id] = [t for t in tasks if t.id != incoming.id]

        bucket = self._bucket(project_id)
        for index, existing in enumerate(bucket):
            if existing.id == incoming.id:
                incoming.created_date = incoming.created_date or existing.created_date or now_iso()
                incoming.last_modified_date = incoming.last_modified_date or now_iso()
                bucket[index] = incoming
                return incoming

        incoming.created_date = incoming.created_date or now_iso()
        incoming.last_modified_date = incoming.last_modified_date or incoming.created_date
        bucket.append(incoming)
        return incoming


__all__ = ["TaskStore", "Listener", "LEGACY_TASKS_KEY", "TASKS_BY_PROJECT_KEY"]
