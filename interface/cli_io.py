"""JSON envelope printed by every planner command.

Each response names the command, its outcome, the project it acted on and a
command-specific payload::

    {"command": "add", "status": "OK", "message": "...",
     "project": {"id": "...", "name": "Work"}, "at": "...", "payload": {...}}
"""

import json
from typing import Any, Dict, Optional

from core import PlannerProject, now_iso

STATUS_OK = "OK"
STATUS_ERROR = "ERROR"


def _project_context(project: Optional[PlannerProject]) -> Optional[Dict[str, str]]:
    if project is None:
        return None
    return {"id": project.id, "name": project.name}


def _emit(command: str, status: str, message: str, project: Optional[PlannerProject], payload: Optional[Dict[str, Any]]) -> int:
    body = {
        "command": command,
        "status": status,
        "message": message,
        "project": _project_context(project),
        "at": now_iso(),
        "payload": payload or {},
    }
    print(json.dumps(body, ensure_ascii=False, indent=2))
    return 0 if status == STATUS_OK else 1


def reply(
    command: str,
    message: str,
    *,
    project: Optional[PlannerProject] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> int:
    return _emit(command, STATUS_OK, message, project, payload)


def fail(
    command: str,
    message: str,
    *,
    project: Optional[PlannerProject] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> int:
    return _emit(command, STATUS_ERROR, message, project, payload)


__all__ = ["STATUS_OK", "STATUS_ERROR", "reply", "fail"]
