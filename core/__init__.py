from .status import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DEFAULT_STATUSES,
    DONE_STATUS,
    derive_completion,
    normalize_status_name,
)
from .task import (
    LINK_EXTERNAL,
    LINK_INTERNAL,
    PlannerSubtask,
    PlannerTask,
    TaskDependency,
    TaskLink,
    new_task_id,
    now_iso,
)
from .settings import PlannerProject, PlannerSettings

__all__ = [
    "DEFAULT_PRIORITY",
    "DEFAULT_STATUS",
    "DEFAULT_STATUSES",
    "DONE_STATUS",
    "derive_completion",
    "normalize_status_name",
    "LINK_EXTERNAL",
    "LINK_INTERNAL",
    "PlannerSubtask",
    "PlannerTask",
    "TaskDependency",
    "TaskLink",
    "new_task_id",
    "now_iso",
    "PlannerProject",
    "PlannerSettings",
]
