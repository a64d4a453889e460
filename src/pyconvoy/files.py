"""File-tree collaborator.

The executor never touches a filesystem. It asks a FileTree whether a
task's input references exist, and notifies it of the file changes a
completed task produced. Hosting applications plug in their own tree
(repository checkout, object store, editor buffer); ``InMemoryFileTree``
covers tests and single-process use.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from pyconvoy.models import ChangeKind, FileChange, FileNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    """A resolved path in the file tree."""

    path: str
    content: str | None = None
    is_directory: bool = False


@runtime_checkable
class FileTree(Protocol):
    """Lookup and change notification for project files."""

    async def resolve(self, path: str) -> FileEntry | None:
        """Return the entry at ``path``, or None if it does not exist."""
        ...

    async def apply(self, change: FileChange) -> None:
        """Record a create, update or delete produced by a task."""
        ...


class InMemoryFileTree:
    """FileTree over a dict of path -> entry.

    Example:
        ```python
        tree = InMemoryFileTree.from_node(context.source_files)
        entry = await tree.resolve("/src/app.js")
        ```
    """

    def __init__(self, files: dict[str, str | None] | None = None):
        self._entries: dict[str, FileEntry] = {
            path: FileEntry(path=path, content=content) for path, content in (files or {}).items()
        }
        self._changes: list[FileChange] = []
        self._lock = asyncio.Lock()

    @classmethod
    def from_node(cls, root: FileNode) -> InMemoryFileTree:
        """Build a tree holding every file and directory under ``root``."""
        tree = cls()
        for node in root.walk():
            tree._entries[node.path] = FileEntry(
                path=node.path,
                content=node.content,
                is_directory=node.is_directory,
            )
        return tree

    async def resolve(self, path: str) -> FileEntry | None:
        async with self._lock:
            return self._entries.get(path)

    async def apply(self, change: FileChange) -> None:
        async with self._lock:
            if change.change_kind is ChangeKind.DELETE:
                self._entries.pop(change.path, None)
            else:
                self._entries[change.path] = FileEntry(path=change.path, content=change.content)
            self._changes.append(change)

        logger.debug(f"File {change.change_kind}: {change.path}")

    @property
    def changes(self) -> list[FileChange]:
        """Every change applied so far, in order."""
        return list(self._changes)

    def paths(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)
