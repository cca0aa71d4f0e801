from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

FileEventHandler = Callable[[str], Awaitable[None]]

EVENT_CHANGED = "changed"
EVENT_CREATED = "created"
EVENT_DELETED = "deleted"
FILE_EVENTS = (EVENT_CHANGED, EVENT_CREATED, EVENT_DELETED)


class PersistenceProvider(Protocol):
    async def load(self) -> Optional[Dict[str, Any]]:
        ...

    async def save(self, blob: Dict[str, Any]) -> None:
        ...


class FileStore(Protocol):
    """Path-addressed text files below one root; paths use forward slashes."""

    def exists(self, path: str) -> bool:
        ...

    async def read(self, path: str) -> str:
        ...

    async def create(self, path: str, content: str) -> None:
        ...

    async def modify(self, path: str, content: str) -> None:
        ...

    async def delete(self, path: str) -> None:
        ...

    async def rename(self, old_path: str, new_path: str) -> None:
        ...

    async def create_folder(self, path: str) -> None:
        ...

    def list_files(self, folder: str, suffix: str = ".md") -> List[str]:
        ...

    def get_frontmatter(self, path: str) -> Optional[Dict[str, Any]]:
        ...

    def on(self, event: str, handler: FileEventHandler) -> Callable[[], None]:
        ...
