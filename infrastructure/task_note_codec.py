import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from core import LINK_EXTERNAL, LINK_INTERNAL, PlannerSubtask, PlannerTask, TaskLink
from core.task import coerce_text

logger = logging.getLogger("planner.sync")

TaskLookup = Callable[[str], Optional[PlannerTask]]

FOOTER_PREFIX = "*Task from Project: "
SUBTASKS_HEADING = "Subtasks"
DEPENDENCIES_HEADING = "Dependencies"
LINKS_HEADING = "Links"


class _NoteDumper(yaml.SafeDumper):
    """Indent block sequences under their key (``tags:\\n  - a``)."""

    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)


class TaskNoteCodec:
    """Pure conversion between a PlannerTask and its markdown note.

    The note is a YAML frontmatter block followed by the description, the
    ``## Subtasks`` / ``## Dependencies`` / ``## Links`` sections and a footer
    naming the owning project. Nothing here touches the filesystem.
    """

    FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)
    FOOTER_PATTERN = re.compile(r"(?:^|\r?\n)---[ \t]*\r?\n\*Task from Project: (.*)\*\s*\Z")
    STEP_PATTERN = re.compile(r"^-\s*\[(x|X| )\]\s*(.+)$")
    INTERNAL_LINK_PATTERN = re.compile(r"^-\s*\[\[([^\]]+)\]\]")
    # URLs may contain parentheses; angle brackets wrap them on write.
    EXTERNAL_LINK_PATTERN = re.compile(r"^-\s*\[([^\]]+)\]\((<[^>]+>|.+)\)\s*$")
    ILLEGAL_FILE_CHARS = re.compile(r'[\\/:*?"<>|]')

    # Frontmatter keys in emission order; everything else in a note's header is ignored.
    OPTIONAL_KEYS = (
        "parentId",
        "priority",
        "bucketId",
        "startDate",
        "dueDate",
        "tags",
        "collapsed",
        "createdDate",
        "lastModifiedDate",
    )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    @classmethod
    def encode(cls, task: PlannerTask, project_name: str, lookup: Optional[TaskLookup] = None) -> str:
        header = yaml.dump(
            cls.frontmatter(task),
            Dumper=_NoteDumper,
            allow_unicode=True,
            default_flow_style=False,
            sort_keys=False,
        ).strip()
        lines = ["---", header, "---", ""]

        if task.description:
            lines.append(task.description.strip())
            lines.append("")

        def add_section(title: str, content: List[str]) -> None:
            if content:
                lines.append(f"## {title}")
                lines.append("")
                lines.extend(content)
                lines.append("")

        add_section(SUBTASKS_HEADING, [f"- [{'x' if st.completed else ' '}] {st.title}" for st in task.subtasks])

        dependency_lines: List[str] = []
        for dep in task.dependencies:
            predecessor = lookup(dep.predecessor_id) if lookup else None
            if predecessor is not None:
                dependency_lines.append(f"- {dep.type}: [[{predecessor.title}]]")
        add_section(DEPENDENCIES_HEADING, dependency_lines)

        link_lines: List[str] = []
        for link in task.links:
            if link.is_internal:
                link_lines.append(f"- [[{link.url}]]")
            else:
                link_lines.append(f"- [{link.title or link.url}]({cls._link_target(link.url)})")
        add_section(LINKS_HEADING, link_lines)

        lines.append("---")
        lines.append(f"{FOOTER_PREFIX}{project_name}*")
        return "\n".join(lines) + "\n"

    @classmethod
    def frontmatter(cls, task: PlannerTask) -> Dict[str, Any]:
        data = task.to_dict()
        metadata: Dict[str, Any] = {
            "id": task.id,
            "title": task.title,
            "status": task.status,
            "completed": bool(task.completed),
        }
        for key in cls.OPTIONAL_KEYS:
            value = data.get(key)
            if value is not None and value != "" and value != []:
                metadata[key] = value
        if task.dependencies:
            metadata["dependencies"] = [dep.to_token() for dep in task.dependencies]
        return metadata

    @staticmethod
    def _link_target(url: str) -> str:
        if any(ch in url for ch in "() ") and "<" not in url and ">" not in url:
            return f"<{url}>"
        return url

    @classmethod
    def sanitize_file_name(cls, title: str) -> str:
        safe = cls.ILLEGAL_FILE_CHARS.sub("-", title or "").strip()
        return safe or "Untitled"

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    @classmethod
    def split_frontmatter(cls, text: str) -> Tuple[Optional[Dict[str, Any]], str]:
        """Return ``(metadata, body)``; metadata is None without a valid header."""
        if not text:
            return None, ""
        text = text.lstrip("\ufeff")
        match = cls.FRONTMATTER_PATTERN.match(text)
        if not match:
            return None, text
        body = text[match.end():]
        try:
            metadata = yaml.safe_load(match.group(1))
        except yaml.YAMLError as exc:
            logger.debug("Unparsable note frontmatter: %s", exc)
            return None, body
        if not isinstance(metadata, dict):
            return None, body
        return metadata, body

    @classmethod
    def decode(cls, text: str) -> Optional[PlannerTask]:
        metadata, body = cls.split_frontmatter(text)
        if metadata is None:
            return None
        task = cls.decode_metadata(metadata)
        if task is None:
            return None
        description, sections = cls._split_body(body)
        task.description = description
        task.subtasks = cls._parse_subtasks(sections.get(SUBTASKS_HEADING, []))
        task.links = cls._parse_links(sections.get(LINKS_HEADING, []))
        return task

    @classmethod
    def decode_metadata(cls, metadata: Optional[Dict[str, Any]]) -> Optional[PlannerTask]:
        """Build a task from frontmatter alone (no description, subtasks or links)."""
        if not isinstance(metadata, dict):
            return None
        if not coerce_text(metadata.get("id")) or not coerce_text(metadata.get("title")):
            return None
        payload = {key: metadata[key] for key in ("id", "title", "status", "completed") if key in metadata}
        for key in cls.OPTIONAL_KEYS:
            if key in metadata:
                payload[key] = metadata[key]
        deps = metadata.get("dependencies")
        if deps is not None:
            payload["dependencies"] = deps if isinstance(deps, list) else [deps]
        return PlannerTask.from_dict(payload)

    @staticmethod
    def decode_project_name(text: str) -> Optional[str]:
        match = TaskNoteCodec.FOOTER_PATTERN.search(text or "")
        return match.group(1).strip() if match else None

    @classmethod
    def _split_body(cls, body: str) -> Tuple[Optional[str], Dict[str, List[str]]]:
        footer = cls.FOOTER_PATTERN.search(body)
        if footer:
            body = body[: footer.start()]

        description: List[str] = []
        sections: Dict[str, List[str]] = {}
        section: Optional[str] = None
        for line in body.splitlines():
            if line.startswith("## "):
                section = line[3:].strip()
                sections.setdefault(section, [])
                continue
            if section is None:
                description.append(line)
            else:
                sections[section].append(line)
        text = "\n".join(description).strip()
        return (text or None), sections

    @classmethod
    def _parse_subtasks(cls, lines: List[str]) -> List[PlannerSubtask]:
        subtasks: List[PlannerSubtask] = []
        for raw_line in lines:
            match = cls.STEP_PATTERN.match(raw_line.strip())
            if match:
                subtasks.append(PlannerSubtask(title=match.group(2).strip(), completed=match.group(1).lower() == "x"))
        return subtasks

    @classmethod
    def _parse_links(cls, lines: List[str]) -> List[TaskLink]:
        links: List[TaskLink] = []
        for raw_line in lines:
            line = raw_line.strip()
            internal = cls.INTERNAL_LINK_PATTERN.match(line)
            if internal:
                target = internal.group(1).strip()
                links.append(TaskLink(url=target, title=target, type=LINK_INTERNAL))
                continue
            external = cls.EXTERNAL_LINK_PATTERN.match(line)
            if external:
                url = external.group(2).strip()
                if url.startswith("<") and url.endswith(">"):
                    url = url[1:-1].strip()
                links.append(TaskLink(url=url, title=external.group(1).strip(), type=LINK_EXTERNAL))
        return links


__all__ = ["TaskNoteCodec", "TaskLookup", "FOOTER_PREFIX"]
