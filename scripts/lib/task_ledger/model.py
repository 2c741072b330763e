"""
In-memory model of a task ledger (TASK.md).

    ---
    PREFIX: task-          metadata
    ---
    optional description
    ---
    ## Heading             body: headings, stray text and task entries
    - [ ] [Title][task-1] @agent
      - 2026-02-12 14:30 comment [abc1234]

    ---
    [task-1]: 20260212/143022    references: id -> note reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

DEFAULT_PREFIX = "task-"

STATUS_BACKLOG = "backlog"
STATUS_DOING = "doing"
STATUS_DONE = "done"
STATUSES = (STATUS_BACKLOG, STATUS_DOING, STATUS_DONE)


@dataclass
class TextLine:
    """A line kept verbatim: headings, blanks, stray text."""

    text: str

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


@dataclass
class Comment:
    text: str
    timestamp: str | None = None
    git_hash: str | None = None
    # Original line as read from disk; None for comments added in memory
    raw: str | None = None


@dataclass
class TaskEntry:
    id: str
    title: str | None = None
    done: bool = False
    owner: str | None = None
    comments: list[Comment] = field(default_factory=list)


@dataclass
class Reference:
    id: str
    target: str
    raw: str | None = None


BodyNode = Union[TextLine, TaskEntry]
ReferenceNode = Union[Reference, TextLine]


@dataclass(frozen=True)
class TaskView:
    """Read-only projection of one task for listings."""

    id: str
    node_ref: str
    title: str | None
    status: str
    owner: str | None
    comments: tuple[Comment, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "node_ref": self.node_ref,
            "title": self.title,
            "status": self.status,
            "owner": self.owner,
            "comments": [
                {"timestamp": c.timestamp, "text": c.text, "git_hash": c.git_hash}
                for c in self.comments
            ],
        }


@dataclass
class TaskLedger:
    meta: list[TextLine] = field(default_factory=list)
    description: list[TextLine] = field(default_factory=list)
    body: list[BodyNode] = field(default_factory=list)
    references: list[ReferenceNode] = field(default_factory=list)
    # Exact rule lines, so the document re-emits unchanged
    meta_rules: tuple[str, str] | None = None
    description_rule: str | None = None
    reference_rule: str | None = None
    trailing_newline: bool = True

    def meta_value(self, key: str) -> str | None:
        for line in self.meta:
            name, sep, value = line.text.partition(":")
            if sep and name.strip().upper() == key.upper():
                return value.strip()
        return None

    @property
    def prefix(self) -> str:
        return self.meta_value("PREFIX") or DEFAULT_PREFIX

    def reference_list(self) -> list[Reference]:
        return [node for node in self.references if isinstance(node, Reference)]

    def reference(self, task_id: str) -> Reference | None:
        for ref in self.reference_list():
            if ref.id == task_id:
                return ref
        return None

    def entry(self, task_id: str) -> TaskEntry | None:
        for node in self.body:
            if isinstance(node, TaskEntry) and node.id == task_id:
                return node
        return None

    def status(self, task_id: str) -> str | None:
        entry = self.entry(task_id)
        if entry is not None:
            return STATUS_DONE if entry.done else STATUS_DOING
        if self.reference(task_id) is not None:
            return STATUS_BACKLOG
        return None

    def task(self, task_id: str) -> TaskView | None:
        ref = self.reference(task_id)
        if ref is None:
            return None
        entry = self.entry(task_id)
        if entry is None:
            return TaskView(ref.id, ref.target, None, STATUS_BACKLOG, None)
        return TaskView(
            id=ref.id,
            node_ref=ref.target,
            title=entry.title,
            status=STATUS_DONE if entry.done else STATUS_DOING,
            owner=entry.owner,
            comments=tuple(entry.comments),
        )

    def tasks(self) -> list[TaskView]:
        """All tasks in reference order."""
        return [self.task(ref.id) for ref in self.reference_list()]
