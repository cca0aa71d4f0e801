import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from .status import DEFAULT_PRIORITY, DEFAULT_STATUS, DEPENDENCY_TYPES

LINK_INTERNAL = "internal"
LINK_EXTERNAL = "external"
# Older data names internal note references after the editor that created them.
_LINK_TYPE_ALIASES = {"obsidian": LINK_INTERNAL, "wiki": LINK_INTERNAL, "url": LINK_EXTERNAL}


def new_task_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def coerce_text(value: Any) -> str:
    """Normalize loose values (YAML dates, numbers) to a stripped string."""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def coerce_optional_text(value: Any) -> Optional[str]:
    raw = coerce_text(value)
    return raw or None


def coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    token = str(value).strip().lower()
    if token in ("true", "yes", "1", "on", "x"):
        return True
    if token in ("false", "no", "0", "off", ""):
        return False
    return default


def _dependency_type(value: Any) -> str:
    # Unknown link kinds fall back to finish-to-start.
    token = coerce_text(value).upper()
    return token if token in DEPENDENCY_TYPES else "FS"


def _pick(data: Dict[str, Any], camel: str, snake: str) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake)


@dataclass
class PlannerSubtask:
    """Checklist item shown in the task details, not a grid child."""

    title: str
    completed: bool = False
    id: str = field(default_factory=new_task_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannerSubtask":
        if not isinstance(data, dict):
            raise ValueError("subtask must be object")
        return cls(
            title=coerce_text(data.get("title")),
            completed=coerce_bool(data.get("completed")),
            id=coerce_text(data.get("id")) or new_task_id(),
        )


@dataclass
class TaskDependency:
    predecessor_id: str
    type: str = "FS"

    def to_token(self) -> str:
        return f"{self.type}:{self.predecessor_id}"

    @classmethod
    def from_token(cls, token: Any) -> Optional["TaskDependency"]:
        raw = coerce_text(token)
        dep_type, sep, predecessor = raw.partition(":")
        if not sep or not predecessor.strip():
            return None
        return cls(predecessor_id=predecessor.strip(), type=_dependency_type(dep_type))

    def to_dict(self) -> Dict[str, Any]:
        return {"predecessorId": self.predecessor_id, "type": self.type}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["TaskDependency"]:
        if isinstance(data, str):
            return cls.from_token(data)
        if not isinstance(data, dict):
            return None
        predecessor = coerce_text(_pick(data, "predecessorId", "predecessor_id"))
        if not predecessor:
            return None
        return cls(predecessor_id=predecessor, type=_dependency_type(data.get("type")))


@dataclass
class TaskLink:
    url: str
    title: str = ""
    type: str = LINK_EXTERNAL
    id: str = field(default_factory=new_task_id)

    @property
    def is_internal(self) -> bool:
        return self.type == LINK_INTERNAL

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "url": self.url, "type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskLink":
        if not isinstance(data, dict):
            raise ValueError("link must be object")
        raw_type = coerce_text(data.get("type")).lower() or LINK_EXTERNAL
        url = coerce_text(data.get("url"))
        return cls(
            url=url,
            title=coerce_text(data.get("title")) or url,
            type=_LINK_TYPE_ALIASES.get(raw_type, raw_type),
            id=coerce_text(data.get("id")) or new_task_id(),
        )


@dataclass
class PlannerTask:
    id: str
    title: str
    status: str = DEFAULT_STATUS
    completed: bool = False
    parent_id: Optional[str] = None  # None = root row
    collapsed: Optional[bool] = None  # UI hint, stored but never interpreted
    priority: Optional[str] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    bucket_id: Optional[str] = None  # board column, independent of status
    subtasks: List[PlannerSubtask] = field(default_factory=list)
    dependencies: List[TaskDependency] = field(default_factory=list)
    links: List[TaskLink] = field(default_factory=list)
    created_date: Optional[str] = None
    last_modified_date: Optional[str] = None

    @classmethod
    def create(cls, title: str, *, status: str = DEFAULT_STATUS, priority: str = DEFAULT_PRIORITY) -> "PlannerTask":
        return cls(
            id=new_task_id(),
            title=title,
            status=status,
            priority=priority,
            completed=False,
            parent_id=None,
            collapsed=False,
            created_date=now_iso(),
        )

    def copy(self) -> "PlannerTask":
        return PlannerTask.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "completed": bool(self.completed),
            "parentId": self.parent_id,
        }
        optional = {
            "collapsed": self.collapsed,
            "priority": self.priority,
            "startDate": self.start_date,
            "dueDate": self.due_date,
            "description": self.description,
            "tags": list(self.tags),
            "bucketId": self.bucket_id,
            "subtasks": [s.to_dict() for s in self.subtasks],
            "dependencies": [d.to_dict() for d in self.dependencies],
            "links": [link.to_dict() for link in self.links],
            "createdDate": self.created_date,
            "lastModifiedDate": self.last_modified_date,
        }
        payload.update({k: v for k, v in optional.items() if v not in (None, "", [])})
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannerTask":
        if not isinstance(data, dict):
            raise ValueError("task must be object")
        raw_tags = data.get("tags") or []
        if not isinstance(raw_tags, list):
            raw_tags = [raw_tags]
        raw_collapsed = data.get("collapsed")
        dependencies = [TaskDependency.from_dict(d) for d in (data.get("dependencies") or []) if d]
        return cls(
            id=coerce_text(data.get("id")),
            title=coerce_text(data.get("title")),
            status=coerce_text(data.get("status")) or DEFAULT_STATUS,
            completed=coerce_bool(data.get("completed")),
            parent_id=coerce_optional_text(_pick(data, "parentId", "parent_id")),
            collapsed=None if raw_collapsed is None else coerce_bool(raw_collapsed),
            priority=coerce_optional_text(data.get("priority")),
            start_date=coerce_optional_text(_pick(data, "startDate", "start_date")),
            due_date=coerce_optional_text(_pick(data, "dueDate", "due_date")),
            description=coerce_optional_text(data.get("description")),
            tags=[coerce_text(t) for t in raw_tags if coerce_text(t)],
            bucket_id=coerce_optional_text(_pick(data, "bucketId", "bucket_id")),
            subtasks=[PlannerSubtask.from_dict(s) for s in (data.get("subtasks") or []) if isinstance(s, dict)],
            dependencies=[d for d in dependencies if d is not None],
            links=[TaskLink.from_dict(link) for link in (data.get("links") or []) if isinstance(link, dict)],
            created_date=coerce_optional_text(_pick(data, "createdDate", "created_date")),
            last_modified_date=coerce_optional_text(_pick(data, "lastModifiedDate", "last_modified_date")),
        )


__all__ = [
    "LINK_INTERNAL",
    "LINK_EXTERNAL",
    "PlannerSubtask",
    "PlannerTask",
    "TaskDependency",
    "TaskLink",
    "coerce_bool",
    "coerce_optional_text",
    "coerce_text",
    "new_task_id",
    "now_iso",
]
