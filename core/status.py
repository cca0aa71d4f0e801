from typing import Final, Optional, Sequence, Tuple

NOT_STARTED: Final[str] = "Not Started"
IN_PROGRESS: Final[str] = "In Progress"
BLOCKED: Final[str] = "Blocked"
COMPLETED: Final[str] = "Completed"

DEFAULT_STATUSES: Final[Tuple[str, ...]] = (NOT_STARTED, IN_PROGRESS, BLOCKED, COMPLETED)
DEFAULT_STATUS: Final[str] = NOT_STARTED
DONE_STATUS: Final[str] = COMPLETED

PRIORITIES: Final[Tuple[str, ...]] = ("Low", "Medium", "High", "Critical")
DEFAULT_PRIORITY: Final[str] = "Medium"

DEPENDENCY_TYPES: Final[Tuple[str, ...]] = ("FS", "SS", "FF", "SF")


def normalize_status_name(value: Optional[str], statuses: Sequence[str] = DEFAULT_STATUSES) -> str:
    """Match a status name case-insensitively against the configured set.

    Statuses are an open set: an unknown name is returned stripped, not rejected.
    """
    raw = str(value or "").strip()
    if not raw:
        return ""
    lowered = raw.lower()
    for name in statuses:
        if name.lower() == lowered:
            return name
    return raw


def derive_completion(
    current_status: str,
    *,
    status: Optional[str] = None,
    completed: Optional[bool] = None,
    status_last: bool = True,
    done_status: str = DONE_STATUS,
    default_status: str = DEFAULT_STATUS,
) -> Tuple[str, bool]:
    """Return the consistent (status, completed) pair for an update.

    When both fields are given, ``status_last`` says which one was written last
    and therefore wins.
    """
    if status is not None and (completed is None or status_last):
        return status, status == done_status
    if completed is not None:
        if completed:
            return done_status, True
        if current_status == done_status:
            return default_status, False
        return current_status, False
    return current_status, current_status == done_status


__all__ = [
    "NOT_STARTED",
    "IN_PROGRESS",
    "BLOCKED",
    "COMPLETED",
    "DEFAULT_STATUSES",
    "DEFAULT_STATUS",
    "DONE_STATUS",
    "PRIORITIES",
    "DEFAULT_PRIORITY",
    "DEPENDENCY_TYPES",
    "normalize_status_name",
    "derive_completion",
]
