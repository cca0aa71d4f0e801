import json
from pathlib import Path

import pytest

from config import SyncConfig
from core import PlannerTask
from interface import cli_commands
from interface.app import main, run_command
from interface.cli_parser import build_parser
from infrastructure.task_note_codec import TaskNoteCodec


@pytest.fixture
def cfg(tmp_path: Path) -> SyncConfig:
    vault = tmp_path / "vault"
    return SyncConfig(
        vault_path=vault,
        data_file=vault / "planner-data.json",
        created_read_delay=0,
        initial_sync_pause=0,
    )


async def _run(cfg: SyncConfig, capsys, *argv: str):
    args = build_parser(cli_commands).parse_args(list(argv))
    rc = await run_command(args, cfg)
    return rc, json.loads(capsys.readouterr().out)


@pytest.mark.asyncio
async def test_add_list_and_update(cfg, capsys):
    rc, added = await _run(cfg, capsys, "add", "Draft spec")
    assert rc == 0
    task_id = added["payload"]["task"]["id"]

    rc, listed = await _run(cfg, capsys, "list")
    assert [t["title"] for t in listed["payload"]["tasks"]] == ["Draft spec"]

    rc, updated = await _run(cfg, capsys, "update", task_id, "--status", "Completed")
    assert rc == 0
    assert updated["payload"]["task"]["completed"] is True

    rc, listed = await _run(cfg, capsys, "list", "--status", "completed")
    assert listed["payload"]["total"] == 1


@pytest.mark.asyncio
async def test_update_unknown_task_is_error(cfg, capsys):
    rc, body = await _run(cfg, capsys, "update", "nope", "--title", "x")
    assert rc == 1
    assert body["status"] == "ERROR"


@pytest.mark.asyncio
async def test_projects_and_use(cfg, capsys):
    rc, body = await _run(cfg, capsys, "use", "Work")
    assert rc == 1

    rc, body = await _run(cfg, capsys, "use", "Work", "--create")
    assert rc == 0
    assert body["payload"]["project"]["active"] is True

    rc, body = await _run(cfg, capsys, "projects")
    names = {p["name"]: p["active"] for p in body["payload"]["projects"]}
    assert names == {"My Project": False, "Work": True}


@pytest.mark.asyncio
async def test_push_then_pull_roundtrip(cfg, capsys):
    await _run(cfg, capsys, "use", "Work", "--create")
    rc, added = await _run(cfg, capsys, "add", "Draft spec", "--push")
    assert added["payload"]["note"] == "Project Planner/Work/Tasks/Draft spec.md"
    note = cfg.vault_path / "Project Planner" / "Work" / "Tasks" / "Draft spec.md"
    assert "status: Not Started" in note.read_text(encoding="utf-8")

    rc, pushed = await _run(cfg, capsys, "push")
    assert pushed["payload"]["written"] == 1

    note.write_text(note.read_text(encoding="utf-8").replace("status: Not Started", "status: Completed"), encoding="utf-8")
    rc, pulled = await _run(cfg, capsys, "pull")
    assert pulled["payload"]["scanned"] == 1

    rc, listed = await _run(cfg, capsys, "list")
    task = listed["payload"]["tasks"][0]
    assert (task["status"], task["completed"]) == ("Completed", True)

    # A second scan inside the cool-down is skipped unless forced.
    rc, again = await _run(cfg, capsys, "pull")
    assert again["payload"]["scanned"] == 0
    rc, forced = await _run(cfg, capsys, "pull", "--force")
    assert forced["payload"]["scanned"] == 1


@pytest.mark.asyncio
async def test_delete_removes_note_and_promotes_children(cfg, capsys):
    _, parent = await _run(cfg, capsys, "add", "Parent", "--push")
    parent_id = parent["payload"]["task"]["id"]
    _, child = await _run(cfg, capsys, "add", "Child", "--parent", parent_id)
    child_id = child["payload"]["task"]["id"]
    assert child["payload"]["task"]["parentId"] == parent_id

    rc, deleted = await _run(cfg, capsys, "delete", parent_id)
    assert rc == 0
    assert deleted["payload"]["promoted_children"] == [child_id]
    assert deleted["payload"]["note_deleted"] is True

    _, listed = await _run(cfg, capsys, "list")
    assert [(t["id"], t["parentId"]) for t in listed["payload"]["tasks"]] == [(child_id, None)]


@pytest.mark.asyncio
async def test_watch_once_pulls_folder(cfg, capsys):
    _, added = await _run(cfg, capsys, "add", "Watched", "--push")
    rc, body = await _run(cfg, capsys, "watch", "--once")
    assert rc == 0
    assert body["payload"]["tasks"] == 1


@pytest.mark.asyncio
async def test_corrupt_data_file_reports_error(cfg, capsys):
    cfg.data_file.parent.mkdir(parents=True)
    cfg.data_file.write_text("{nope", encoding="utf-8")
    rc, body = await _run(cfg, capsys, "list")
    assert rc == 1
    assert "invalid planner data" in body["message"]


def test_main_without_command_prints_help(capsys):
    assert main([]) == 1
    assert "planner" in capsys.readouterr().out


def _edit_settings(cfg: SyncConfig, **values) -> None:
    blob = json.loads(cfg.data_file.read_text(encoding="utf-8"))
    blob["settings"].update(values)
    cfg.data_file.write_text(json.dumps(blob), encoding="utf-8")


@pytest.mark.asyncio
async def test_responses_carry_project_context(cfg, capsys):
    _, added = await _run(cfg, capsys, "add", "Context")
    assert added["project"]["name"] == "My Project"
    assert added["status"] == "OK"

    _, missing = await _run(cfg, capsys, "list", "-p", "Nowhere")
    assert missing["project"] is None
    assert missing["status"] == "ERROR"


@pytest.mark.asyncio
async def test_status_names_are_matched_case_insensitively(cfg, capsys):
    _, added = await _run(cfg, capsys, "add", "Loose status")
    task_id = added["payload"]["task"]["id"]

    _, updated = await _run(cfg, capsys, "update", task_id, "--status", "in progress")
    assert updated["payload"]["task"]["status"] == "In Progress"

    _, listed = await _run(cfg, capsys, "list", "--status", "IN PROGRESS")
    assert listed["payload"]["total"] == 1


def test_priority_must_be_known():
    parser = build_parser(cli_commands)
    assert parser.parse_args(["update", "t", "--priority", "High"]).priority == "High"
    with pytest.raises(SystemExit):
        parser.parse_args(["update", "t", "--priority", "Urgent"])


@pytest.mark.asyncio
async def test_sync_commands_refuse_when_disabled(cfg, capsys):
    await _run(cfg, capsys, "add", "Local only")
    _edit_settings(cfg, enableMarkdownSync=False)

    for command in ("push", "pull", "watch"):
        rc, body = await _run(cfg, capsys, command)
        assert rc == 1
        assert "disabled" in body["message"]

    _, added = await _run(cfg, capsys, "add", "Still local", "--push")
    assert added["payload"]["note"] is None
    assert not (cfg.vault_path / "Project Planner").exists()


@pytest.mark.asyncio
async def test_sync_on_startup_reads_notes_before_any_command(cfg, capsys):
    await _run(cfg, capsys, "projects")
    folder = cfg.vault_path / "Project Planner" / "My Project" / "Tasks"
    folder.mkdir(parents=True)
    note = TaskNoteCodec.encode(PlannerTask(id="boot", title="Written offline"), "My Project")
    (folder / "Written offline.md").write_text(note, encoding="utf-8")
    _edit_settings(cfg, syncOnStartup=True)

    _, listed = await _run(cfg, capsys, "list")

    assert [t["title"] for t in listed["payload"]["tasks"]] == ["Written offline"]
