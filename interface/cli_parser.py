"""CLI parser construction for the planner command line."""

import argparse
from typing import Any

from core.status import PRIORITIES


def _bool_arg(value: str) -> bool:
    token = str(value).strip().lower()
    if token in ("true", "yes", "1", "on"):
        return True
    if token in ("false", "no", "0", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got {value!r}")


def build_parser(commands: Any) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="planner",
        description="planner: multi-project task list synced with a folder of markdown notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging on stderr")

    def add_project_arg(sp):
        sp.add_argument("--project", "-p", help="project id or name (default: active project)")
        return sp

    sub = parser.add_subparsers(dest="command", help="Commands")

    # projects
    pp = sub.add_parser("projects", help="List projects")
    pp.set_defaults(func=commands.cmd_projects)

    # use
    up = sub.add_parser("use", help="Switch the active project")
    up.add_argument("project", help="project id or name")
    up.add_argument("--create", action="store_true", help="create the project when it does not exist")
    up.set_defaults(func=commands.cmd_use)

    # add
    ap = sub.add_parser("add", help="Add a task")
    ap.add_argument("title")
    ap.add_argument("--parent", help="parent task id")
    ap.add_argument("--push", action="store_true", help="write the task note right away")
    add_project_arg(ap)
    ap.set_defaults(func=commands.cmd_add)

    # list
    lp = sub.add_parser("list", help="List tasks")
    lp.add_argument("--status", help="only tasks with this status")
    add_project_arg(lp)
    lp.set_defaults(func=commands.cmd_list)

    # update
    ep = sub.add_parser("update", help="Update a task of the active project")
    ep.add_argument("task_id")
    ep.add_argument("--title")
    ep.add_argument("--status")
    ep.add_argument("--completed", type=_bool_arg, metavar="true|false")
    ep.add_argument("--priority", choices=PRIORITIES)
    ep.add_argument("--start", dest="start_date")
    ep.add_argument("--due", dest="due_date")
    ep.add_argument("--description", "-d")
    ep.add_argument("--tags", help="comma-separated tags")
    ep.add_argument("--parent", help="make the task a child of this task id")
    ep.add_argument("--promote", action="store_true", help="move the task back to root")
    ep.add_argument("--push", action="store_true", help="rewrite the task note after the update")
    ep.set_defaults(func=commands.cmd_update)

    # delete
    dp = sub.add_parser("delete", help="Delete a task (children move to root)")
    dp.add_argument("task_id")
    dp.add_argument("--keep-note", action="store_true", help="leave the task note on disk")
    dp.set_defaults(func=commands.cmd_delete)

    # push
    sp = sub.add_parser("push", help="Write every task of a project to its note")
    add_project_arg(sp)
    sp.set_defaults(func=commands.cmd_push)

    # pull
    lp2 = sub.add_parser("pull", help="Read every note of a project into the task list")
    lp2.add_argument("--force", action="store_true", help="ignore the rescan cool-down")
    add_project_arg(lp2)
    lp2.set_defaults(func=commands.cmd_pull)

    # watch
    wp = sub.add_parser("watch", help="Pull note changes until interrupted")
    wp.add_argument("--once", action="store_true", help="poll a single time and exit")
    add_project_arg(wp)
    wp.set_defaults(func=commands.cmd_watch)

    return parser


__all__ = ["build_parser"]
