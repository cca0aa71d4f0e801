import os
from pathlib import Path

import pytest

from infrastructure.file_store import LocalFileStore

NOTE = "---\nid: t1\ntitle: One\n---\n\nbody\n"


def _bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))


def _recorder(store: LocalFileStore):
    events = []
    for name in ("created", "changed", "deleted"):

        async def handler(path, _name=name):
            events.append((_name, path, store.get_frontmatter(path)))

        store.on(name, handler)
    return events


@pytest.mark.asyncio
async def test_create_read_modify_delete(tmp_path: Path):
    store = LocalFileStore(tmp_path)

    await store.create("Work/Tasks/One.md", NOTE)
    assert store.exists("Work/Tasks/One.md")
    assert await store.read("Work/Tasks/One.md") == NOTE
    assert store.get_frontmatter("Work/Tasks/One.md")["id"] == "t1"

    with pytest.raises(FileExistsError):
        await store.create("Work/Tasks/One.md", NOTE)

    await store.modify("Work/Tasks/One.md", NOTE.replace("One", "Uno"))
    assert store.get_frontmatter("Work/Tasks/One.md")["title"] == "Uno"

    await store.delete("Work/Tasks/One.md")
    assert not store.exists("Work/Tasks/One.md")
    with pytest.raises(FileNotFoundError):
        await store.modify("Work/Tasks/One.md", NOTE)


@pytest.mark.asyncio
async def test_list_files_and_folders(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    await store.create_folder("Work/Tasks")
    assert store.exists("Work/Tasks")
    await store.create("Work/Tasks/b.md", NOTE)
    await store.create("Work/Tasks/a.md", NOTE)
    (tmp_path / "Work" / "Tasks" / "skip.txt").write_text("x", encoding="utf-8")

    assert store.list_files("Work/Tasks") == ["Work/Tasks/a.md", "Work/Tasks/b.md"]
    assert store.list_files("Missing") == []


def test_paths_cannot_escape_root(tmp_path: Path):
    store = LocalFileStore(tmp_path / "vault")
    with pytest.raises(ValueError):
        store.exists("../outside.md")
    with pytest.raises(ValueError):
        store.exists("/etc/passwd")


@pytest.mark.asyncio
async def test_poll_reports_external_changes(tmp_path: Path):
    note = tmp_path / "Work" / "Tasks" / "One.md"
    note.parent.mkdir(parents=True)
    note.write_text(NOTE, encoding="utf-8")
    store = LocalFileStore(tmp_path)
    events = _recorder(store)

    assert await store.poll() == 0

    note.write_text(NOTE.replace("One", "Changed"), encoding="utf-8")
    _bump_mtime(note)
    (tmp_path / "Work" / "Tasks" / "Two.md").write_text(NOTE.replace("t1", "t2"), encoding="utf-8")
    assert await store.poll() == 2
    assert ("changed", "Work/Tasks/One.md") in [(e[0], e[1]) for e in events]
    created = [e for e in events if e[0] == "created"]
    assert created[0][1] == "Work/Tasks/Two.md"
    assert created[0][2]["id"] == "t2"

    events.clear()
    note.unlink()
    assert await store.poll() == 1
    # Handlers of a deletion still see the last known frontmatter.
    assert events == [("deleted", "Work/Tasks/One.md", {"id": "t1", "title": "Changed"})]
    assert store.get_frontmatter("Work/Tasks/One.md") is None


@pytest.mark.asyncio
async def test_own_writes_are_reported_on_next_poll(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    events = _recorder(store)

    await store.create("Work/Tasks/One.md", NOTE)
    assert events == []
    await store.poll()
    assert [(e[0], e[1]) for e in events] == [("created", "Work/Tasks/One.md")]


@pytest.mark.asyncio
async def test_rename_produces_no_events(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    await store.create("Work/Tasks/Old.md", NOTE)
    await store.poll()
    events = _recorder(store)

    await store.rename("Work/Tasks/Old.md", "Work/Tasks/New.md")

    assert await store.poll() == 0
    assert events == []
    assert store.get_frontmatter("Work/Tasks/New.md")["id"] == "t1"
    assert not store.exists("Work/Tasks/Old.md")


@pytest.mark.asyncio
async def test_hidden_folders_are_ignored(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    events = _recorder(store)
    hidden = tmp_path / ".trash" / "One.md"
    hidden.parent.mkdir()
    hidden.write_text(NOTE, encoding="utf-8")
    assert await store.poll() == 0
    assert events == []


@pytest.mark.asyncio
async def test_handler_errors_are_logged(tmp_path: Path, caplog):
    store = LocalFileStore(tmp_path)
    seen = []

    async def broken(path):
        raise RuntimeError("boom")

    async def healthy(path):
        seen.append(path)

    store.on("created", broken)
    unsubscribe = store.on("created", healthy)
    await store.create("a.md", NOTE)
    await store.poll()

    assert seen == ["a.md"]
    assert "handler failed" in caplog.text

    unsubscribe()
    await store.create("b.md", NOTE)
    await store.poll()
    assert seen == ["a.md"]


def test_unknown_event_rejected(tmp_path: Path):
    store = LocalFileStore(tmp_path)

    async def handler(path):
        return None

    with pytest.raises(ValueError):
        store.on("renamed", handler)


@pytest.mark.asyncio
async def test_list_files_skips_hidden_folders(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    await store.create("Work/Tasks/One.md", NOTE)
    trashed = tmp_path / "Work" / "Tasks" / ".trash" / "Old.md"
    trashed.parent.mkdir()
    trashed.write_text(NOTE, encoding="utf-8")

    assert store.list_files("Work/Tasks") == ["Work/Tasks/One.md"]
