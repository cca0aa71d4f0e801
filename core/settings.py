from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .status import DEFAULT_STATUS, DEFAULT_STATUSES, DONE_STATUS
from .task import coerce_bool, coerce_optional_text, coerce_text, new_task_id, now_iso

DEFAULT_PROJECT_NAME = "My Project"
DEFAULT_PROJECTS_BASE_PATH = "Project Planner"


@dataclass
class PlannerProject:
    id: str
    name: str
    created_date: Optional[str] = None
    last_updated_date: Optional[str] = None
    last_sync_timestamp: Optional[float] = None  # epoch seconds of the last full folder scan

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.created_date:
            payload["createdDate"] = self.created_date
        if self.last_updated_date:
            payload["lastUpdatedDate"] = self.last_updated_date
        if self.last_sync_timestamp is not None:
            payload["lastSyncTimestamp"] = self.last_sync_timestamp
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannerProject":
        raw_ts = data.get("lastSyncTimestamp")
        try:
            last_sync = float(raw_ts) if raw_ts is not None else None
        except (TypeError, ValueError):
            last_sync = None
        return cls(
            id=coerce_text(data.get("id")) or new_task_id(),
            name=coerce_text(data.get("name")) or DEFAULT_PROJECT_NAME,
            created_date=coerce_optional_text(data.get("createdDate")),
            last_updated_date=coerce_optional_text(data.get("lastUpdatedDate")),
            last_sync_timestamp=last_sync,
        )


@dataclass
class PlannerSettings:
    projects: List[PlannerProject] = field(default_factory=list)
    active_project_id: str = ""
    projects_base_path: str = DEFAULT_PROJECTS_BASE_PATH
    statuses: List[str] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    done_status: str = DONE_STATUS
    default_status: str = DEFAULT_STATUS
    enable_markdown_sync: bool = True
    sync_on_startup: bool = False

    def find_project(self, project_id: str) -> Optional[PlannerProject]:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def find_project_by_name(self, name: str) -> Optional[PlannerProject]:
        wanted = (name or "").strip().lower()
        for project in self.projects:
            if project.name.lower() == wanted:
                return project
        return None

    @property
    def active_project(self) -> Optional[PlannerProject]:
        return self.find_project(self.active_project_id)

    def add_project(self, name: str) -> PlannerProject:
        stamp = now_iso()
        project = PlannerProject(id=new_task_id(), name=name, created_date=stamp, last_updated_date=stamp)
        self.projects.append(project)
        return project

    def set_active_project(self, project_id: str) -> bool:
        if self.find_project(project_id) is None:
            return False
        self.active_project_id = project_id
        return True

    def normalize(self) -> "PlannerSettings":
        """Guarantee at least one project and a valid active project id."""
        if not self.projects:
            project = self.add_project(DEFAULT_PROJECT_NAME)
            self.active_project_id = project.id
        if not self.active_project_id or self.find_project(self.active_project_id) is None:
            self.active_project_id = self.projects[0].id
        if not self.statuses:
            self.statuses = list(DEFAULT_STATUSES)
        if self.done_status not in self.statuses:
            self.statuses.append(self.done_status)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "activeProjectId": self.active_project_id,
            "projectsBasePath": self.projects_base_path,
            "availableStatuses": [{"name": s} for s in self.statuses],
            "doneStatus": self.done_status,
            "defaultStatus": self.default_status,
            "enableMarkdownSync": self.enable_markdown_sync,
            "syncOnStartup": self.sync_on_startup,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PlannerSettings":
        data = data if isinstance(data, dict) else {}
        statuses: List[str] = []
        for entry in data.get("availableStatuses") or []:
            name = coerce_text(entry.get("name") if isinstance(entry, dict) else entry)
            if name and name not in statuses:
                statuses.append(name)
        base_path = data.get("projectsBasePath")
        settings = cls(
            projects=[PlannerProject.from_dict(p) for p in (data.get("projects") or []) if isinstance(p, dict)],
            active_project_id=coerce_text(data.get("activeProjectId")),
            projects_base_path=DEFAULT_PROJECTS_BASE_PATH if base_path is None else coerce_text(base_path),
            statuses=statuses or list(DEFAULT_STATUSES),
            done_status=coerce_text(data.get("doneStatus")) or DONE_STATUS,
            default_status=coerce_text(data.get("defaultStatus")) or DEFAULT_STATUS,
            enable_markdown_sync=coerce_bool(data.get("enableMarkdownSync"), True),
            sync_on_startup=coerce_bool(data.get("syncOnStartup"), False),
        )
        return settings.normalize()


__all__ = [
    "DEFAULT_PROJECT_NAME",
    "DEFAULT_PROJECTS_BASE_PATH",
    "PlannerProject",
    "PlannerSettings",
]
