import logging
from typing import Any, Dict, Optional

from core import PlannerProject, PlannerTask, normalize_status_name
from interface.cli_io import fail, reply

logger = logging.getLogger("planner.cli")


def _resolve_project(app, ref: Optional[str]) -> Optional[PlannerProject]:
    settings = app.settings
    if not ref:
        return settings.active_project
    return settings.find_project(ref) or settings.find_project_by_name(ref)


def _task_to_dict(task: PlannerTask) -> Dict[str, Any]:
    return task.to_dict()


def _project_to_dict(app, project: PlannerProject) -> Dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "active": project.id == app.settings.active_project_id,
        "tasks": len(app.store.get_all_for_project(project.id)),
        "folder": app.sync.project_folder(project.name),
        "last_sync": project.last_sync_timestamp,
    }


def _sync_disabled(command: str, project: PlannerProject) -> int:
    return fail(command, "Markdown sync is disabled in the planner settings", project=project)


async def cmd_projects(args, app) -> int:
    projects = [_project_to_dict(app, p) for p in app.settings.projects]
    return reply(
        "projects",
        f"{len(projects)} project(s)",
        project=app.settings.active_project,
        payload={"total": len(projects), "projects": projects},
    )


async def cmd_use(args, app) -> int:
    project = _resolve_project(app, args.project)
    if project is None:
        if not getattr(args, "create", False):
            return fail("use", f"Project not found: {args.project}")
        project = app.settings.add_project(args.project.strip())
        logger.info("Created project %s", project.name)
    app.settings.set_active_project(project.id)
    await app.save_settings()
    await app.store.ensure_loaded()
    app.store.refresh()
    return reply("use", f"Active project: {project.name}", project=project, payload={"project": _project_to_dict(app, project)})


async def cmd_add(args, app) -> int:
    project = _resolve_project(app, getattr(args, "project", None))
    if project is None:
        return fail("add", f"Project not found: {args.project}")
    title = (args.title or "").strip()
    if not title:
        return fail("add", "Task title is empty", project=project)

    if project.id == app.settings.active_project_id:
        task = await app.store.add_task(title)
    else:
        task = PlannerTask.create(title, status=app.settings.default_status)
        task = await app.store.add_task_to_project(task, project.id)

    parent_id = getattr(args, "parent", None)
    if parent_id:
        if app.store.get_task_by_id(parent_id, project_id=project.id) is None:
            return fail("add", f"Parent task not found: {parent_id}", project=project, payload={"task": _task_to_dict(task)})
        if project.id == app.settings.active_project_id:
            await app.store.make_subtask(task.id, parent_id)
        else:
            task.parent_id = parent_id
            await app.store.add_task_to_project(task, project.id)
        task = app.store.get_task_by_id(task.id, project_id=project.id) or task

    note = None
    if getattr(args, "push", False):
        note = await app.sync.sync_task_to_markdown(task, project.id)
    return reply("add", f"Task added to {project.name}", project=project, payload={"task": _task_to_dict(task), "note": note})


async def cmd_list(args, app) -> int:
    project = _resolve_project(app, getattr(args, "project", None))
    if project is None:
        return fail("list", f"Project not found: {args.project}")
    tasks = app.store.get_all_for_project(project.id)
    status = normalize_status_name(getattr(args, "status", None), app.settings.statuses)
    if status:
        tasks = [t for t in tasks if normalize_status_name(t.status, app.settings.statuses) == status]
    return reply(
        "list",
        f"{len(tasks)} task(s) in {project.name}",
        project=project,
        payload={"total": len(tasks), "tasks": [_task_to_dict(t) for t in tasks]},
    )


def _collect_changes(args, statuses) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for name in ("title", "status", "completed", "priority", "start_date", "due_date", "description"):
        value = getattr(args, name, None)
        if name == "status" and value is not None:
            value = normalize_status_name(value, statuses) or None
        if value is not None:
            changes[name] = value
    tags = getattr(args, "tags", None)
    if tags is not None:
        changes["tags"] = [t.strip() for t in tags.split(",") if t.strip()]
    return changes


async def cmd_update(args, app) -> int:
    project_id, task = app.store.find_task(args.task_id)
    if task is None:
        return fail("update", f"Task not found: {args.task_id}")
    project = app.settings.find_project(project_id)
    if project_id != app.settings.active_project_id:
        return fail("update", "Task belongs to another project; switch with `planner use` first", project=project)

    old_title = task.title
    changes = _collect_changes(args, app.settings.statuses)
    if changes:
        task = await app.store.update_task(task.id, changes) or task
    if getattr(args, "promote", False):
        await app.store.promote_subtask(task.id)
    elif getattr(args, "parent", None):
        await app.store.make_subtask(task.id, args.parent)
    task = app.store.get_task_by_id(task.id) or task

    note = None
    if getattr(args, "push", False):
        if task.title != old_title:
            note = await app.sync.handle_task_rename(task, old_title, project_id)
        else:
            note = await app.sync.sync_task_to_markdown(task, project_id)
    return reply("update", "Task updated", project=project, payload={"task": _task_to_dict(task), "note": note})


async def cmd_delete(args, app) -> int:
    project_id, task = app.store.find_task(args.task_id)
    if task is None:
        return fail("delete", f"Task not found: {args.task_id}")
    children = [t.id for t in app.store.get_children(task.id, project_id=project_id)]
    await app.store.delete_task(task.id, project_id=project_id)
    note_deleted = False
    project = app.settings.find_project(project_id)
    if project is not None and not getattr(args, "keep_note", False):
        note_deleted = await app.sync.delete_task_markdown(task, project.name)
    return reply(
        "delete",
        "Task deleted",
        project=project,
        payload={"task_id": task.id, "promoted_children": children, "note_deleted": note_deleted},
    )


async def cmd_push(args, app) -> int:
    project = _resolve_project(app, getattr(args, "project", None))
    if project is None:
        return fail("push", f"Project not found: {args.project}")
    if not app.sync.enabled:
        return _sync_disabled("push", project)
    try:
        written = await app.sync.push_project(project.id)
    except OSError as exc:
        logger.error("Push of %s failed: %s", project.name, exc)
        return fail("push", f"Cannot write notes: {exc}", project=project)
    return reply(
        "push",
        f"{written} note(s) written",
        project=project,
        payload={"folder": app.sync.project_folder(project.name), "written": written},
    )


async def cmd_pull(args, app) -> int:
    project = _resolve_project(app, getattr(args, "project", None))
    if project is None:
        return fail("pull", f"Project not found: {args.project}")
    if not app.sync.enabled:
        return _sync_disabled("pull", project)
    scanned = await app.sync.initial_sync(project.id, project.name, force=bool(getattr(args, "force", False)))
    return reply(
        "pull",
        f"{scanned} note(s) read",
        project=project,
        payload={"scanned": scanned, "tasks": len(app.store.get_all_for_project(project.id))},
    )


async def cmd_watch(args, app) -> int:
    project = _resolve_project(app, getattr(args, "project", None))
    if project is None:
        return fail("watch", f"Project not found: {args.project}")
    if not app.sync.enabled:
        return _sync_disabled("watch", project)
    await app.sync.initial_sync(project.id, project.name)
    unsubscribe = app.sync.watch_project_folder(project.id, project.name)
    try:
        if getattr(args, "once", False):
            events = await app.file_store.poll()
            await app.sync.drain()
        else:
            events = None
            logger.info("Watching %s, press Ctrl+C to stop", app.sync.project_folder(project.name))
            await app.file_store.watch()
    finally:
        unsubscribe()
    return reply(
        "watch",
        f"Stopped watching {project.name}",
        project=project,
        payload={"events": events, "tasks": len(app.store.get_all_for_project(project.id))},
    )


__all__ = [
    "cmd_projects",
    "cmd_use",
    "cmd_add",
    "cmd_list",
    "cmd_update",
    "cmd_delete",
    "cmd_push",
    "cmd_pull",
    "cmd_watch",
]
