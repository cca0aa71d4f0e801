"""Local folder file store with polling change notifications.

Paths are POSIX-style and relative to ``root``. Change events are found by
diffing an ``{path: mtime_ns}`` snapshot, so they always arrive after the
write that caused them, including our own writes. The metadata cache holds
the last parsed frontmatter of every note so a deleted note can still be
identified by the handlers of its ``deleted`` event.
"""

import asyncio
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Optional

from application.ports import EVENT_CHANGED, EVENT_CREATED, EVENT_DELETED, FILE_EVENTS, FileEventHandler
from infrastructure.task_note_codec import TaskNoteCodec

logger = logging.getLogger("planner.files")


def _in_hidden_folder(rel: PurePosixPath) -> bool:
    # Hidden folders belong to editors and trash bins, not to projects.
    return any(part.startswith(".") for part in rel.parts[:-1])


class LocalFileStore:
    def __init__(self, root: Path, poll_interval: float = 1.0, suffix: str = ".md"):
        self.root = Path(root).expanduser()
        self.poll_interval = poll_interval
        self.suffix = suffix
        self._handlers: Dict[str, List[FileEventHandler]] = {event: [] for event in FILE_EVENTS}
        self._metadata: Dict[str, Dict[str, Any]] = {}
        self._closed = False
        self._snapshot: Dict[str, int] = self._scan()
        for path in self._snapshot:
            self._refresh_metadata(path)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _resolve_path(self, path: str) -> Path:
        raw = str(path or "").replace("\\", "/")
        if raw.startswith("/") or ".." in PurePosixPath(raw).parts:
            raise ValueError(f"Invalid path: escapes the store root: {path}")
        resolved = (self.root / raw).resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise ValueError(f"Path traversal detected: {resolved} is outside {self.root}")
        return resolved

    def _relative(self, file: Path) -> str:
        return file.resolve().relative_to(self.root.resolve()).as_posix()

    def _scan(self) -> Dict[str, int]:
        snapshot: Dict[str, int] = {}
        if not self.root.is_dir():
            return snapshot
        for file in self.root.rglob(f"*{self.suffix}"):
            rel = file.relative_to(self.root)
            if _in_hidden_folder(rel):
                continue
            try:
                snapshot[rel.as_posix()] = int(file.stat().st_mtime_ns)
            except OSError:
                continue
        return snapshot

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    async def read(self, path: str) -> str:
        return self._resolve_path(path).read_text(encoding="utf-8")

    async def create(self, path: str, content: str) -> None:
        target = self._resolve_path(path)
        if target.exists():
            raise FileExistsError(f"File already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        self._remember(path, content)

    async def modify(self, path: str, content: str) -> None:
        target = self._resolve_path(path)
        if not target.is_file():
            raise FileNotFoundError(f"No such file: {path}")
        target.write_text(content, encoding="utf-8")
        self._remember(path, content)

    async def delete(self, path: str) -> None:
        # Snapshot and cache stay until the next poll reports the deletion.
        self._resolve_path(path).unlink()

    async def rename(self, old_path: str, new_path: str) -> None:
        source = self._resolve_path(old_path)
        target = self._resolve_path(new_path)
        if target.exists():
            raise FileExistsError(f"File already exists: {new_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)
        old_key, new_key = self._relative(source), self._relative(target)
        self._snapshot.pop(old_key, None)
        if new_key.endswith(self.suffix):
            self._snapshot[new_key] = int(target.stat().st_mtime_ns)
        metadata = self._metadata.pop(old_key, None)
        if metadata is not None:
            self._metadata[new_key] = metadata

    async def create_folder(self, path: str) -> None:
        self._resolve_path(path).mkdir(parents=True, exist_ok=True)

    def list_files(self, folder: str, suffix: str = ".md") -> List[str]:
        base = self._resolve_path(folder)
        if not base.is_dir():
            return []
        files = (self._relative(f) for f in base.rglob(f"*{suffix}") if f.is_file())
        return sorted(path for path in files if not _in_hidden_folder(PurePosixPath(path)))

    # ------------------------------------------------------------------
    # Metadata cache
    # ------------------------------------------------------------------

    def get_frontmatter(self, path: str) -> Optional[Dict[str, Any]]:
        key = self._relative(self._resolve_path(path))
        if key not in self._metadata:
            self._refresh_metadata(key)
        metadata = self._metadata.get(key)
        return dict(metadata) if metadata is not None else None

    def _remember(self, path: str, content: str) -> None:
        key = self._relative(self._resolve_path(path))
        metadata, _ = TaskNoteCodec.split_frontmatter(content)
        if metadata is None:
            self._metadata.pop(key, None)
        else:
            self._metadata[key] = metadata

    def _refresh_metadata(self, key: str) -> None:
        target = self.root / key
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Cannot index %s: %s", key, exc)
            return
        self._remember(key, content)

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    def on(self, event: str, handler: FileEventHandler) -> Callable[[], None]:
        if event not in self._handlers:
            raise ValueError(f"Unknown file event: {event}")
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    async def poll(self) -> int:
        """Diff the folder against the last snapshot and dispatch events; returns the event count."""
        current = self._scan()
        previous = self._snapshot
        self._snapshot = current

        created = [p for p in current if p not in previous]
        deleted = [p for p in previous if p not in current]
        changed = [p for p in current if p in previous and current[p] != previous[p]]

        for path in created + changed:
            self._refresh_metadata(path)
        for path in created:
            await self._dispatch(EVENT_CREATED, path)
        for path in changed:
            await self._dispatch(EVENT_CHANGED, path)
        for path in deleted:
            await self._dispatch(EVENT_DELETED, path)
            self._metadata.pop(path, None)
        return len(created) + len(changed) + len(deleted)

    async def _dispatch(self, event: str, path: str) -> None:
        logger.debug("File %s: %s", event, path)
        for handler in list(self._handlers[event]):
            try:
                await handler(path)
            except Exception:
                logger.exception("File %s handler failed for %s", event, path)

    async def watch(self) -> None:
        self._closed = False
        while not self._closed:
            await self.poll()
            await asyncio.sleep(self.poll_interval)

    def close(self) -> None:
        self._closed = True


__all__ = ["LocalFileStore"]
