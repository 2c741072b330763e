"""
Task ledger operations: add, take, comment, release.

Each operation works on a deep copy and validates before touching it, so a
failed call leaves the caller's ledger as it was. Callers save the returned
ledger; nothing here writes to disk.
"""

from __future__ import annotations

import copy
import logging
import re
from datetime import datetime

from note_ref.resolver import require_unique
from utils import sanitize_line

from .codec import heading_text
from .errors import (
    AlreadyOwned,
    DuplicateId,
    HeaderNotFound,
    InvalidTaskArguments,
    NotOwned,
    TaskNotFound,
    TaskNotTaken,
)
from .model import Comment, Reference, TaskEntry, TaskLedger, TextLine

logger = logging.getLogger(__name__)

COMMENT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"
ANONYMOUS_AGENT = "anonymous"


def _now(now: datetime | None) -> str:
    return (now or datetime.now()).strftime(COMMENT_TIMESTAMP_FORMAT)


def _normalize_agent(agent: str | None) -> str | None:
    """Owner marker as one token: '@Claude Bot' -> 'Claude-Bot'."""
    if not agent:
        return None
    agent = "-".join(agent.strip().lstrip("@").split())
    return agent or None


def _normalize_title(title: str | None) -> str | None:
    if not title:
        return None
    title = sanitize_line(title)
    # Entry lines are [title][id]; a bracket in the title would split them.
    if "[" in title or "]" in title:
        raise InvalidTaskArguments(f"Task title cannot contain '[' or ']': {title!r}")
    return title or None


def next_task_id(ledger: TaskLedger) -> str:
    """PREFIX + (highest numeric suffix among ids with PREFIX) + 1."""
    prefix = ledger.prefix
    pattern = re.compile(rf"^{re.escape(prefix)}([0-9]+)$")
    highest = 0
    for ref in ledger.reference_list():
        match = pattern.match(ref.id)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}{highest + 1}"


def add(ledger: TaskLedger, node_ref: str, context=None) -> tuple[TaskLedger, str]:
    """Register node_ref as a backlog task and return (ledger, id).

    Adding a node_ref that is already registered returns its existing id.
    When a resolve context is given, node_ref must name exactly one note.
    """
    node_ref = node_ref.strip()
    if not node_ref:
        raise InvalidTaskArguments("Note reference cannot be empty")

    for ref in ledger.reference_list():
        if ref.target == node_ref:
            logger.info(f"{node_ref} is already tracked as {ref.id}")
            return ledger, ref.id

    if context is not None:
        require_unique(node_ref, context)

    task_id = next_task_id(ledger)
    if ledger.reference(task_id) is not None or ledger.entry(task_id) is not None:
        raise DuplicateId(task_id)

    updated = copy.deepcopy(ledger)
    refs = updated.references
    last_ref = max((i for i, node in enumerate(refs) if isinstance(node, Reference)), default=None)
    if last_ref is not None:
        insert_at = last_ref + 1
    else:
        insert_at = 0
        while insert_at < len(refs) and isinstance(refs[insert_at], TextLine) and refs[insert_at].is_blank:
            insert_at += 1
    refs.insert(insert_at, Reference(id=task_id, target=node_ref))
    if updated.reference_rule is None:
        updated.reference_rule = "---"

    logger.info(f"Added {task_id} -> {node_ref}")
    return updated, task_id


def _is_heading(node) -> bool:
    return isinstance(node, TextLine) and heading_text(node.text) is not None


def _normalize_header(header: str) -> str:
    return header.strip().lstrip("#").strip().lower()


def _header_insert_index(body: list, header: str) -> int:
    wanted = _normalize_header(header)
    for index, node in enumerate(body):
        if _is_heading(node) and heading_text(node.text).strip().lower() == wanted:
            insert_at = index + 1
            for offset in range(index + 1, len(body)):
                if _is_heading(body[offset]):
                    break
                if isinstance(body[offset], TaskEntry):
                    insert_at = offset + 1
            return insert_at
    raise HeaderNotFound(header)


def _default_insert_index(body: list) -> int:
    first_heading = next((i for i, node in enumerate(body) if _is_heading(node)), None)
    if first_heading is not None:
        insert_at = first_heading
        while insert_at > 0 and isinstance(body[insert_at - 1], TextLine) and body[insert_at - 1].is_blank:
            insert_at -= 1
        return insert_at

    insert_at = len(body)
    while insert_at > 0 and isinstance(body[insert_at - 1], TextLine) and body[insert_at - 1].is_blank:
        insert_at -= 1
    return insert_at


def take(
    ledger: TaskLedger,
    task_id: str,
    agent: str | None = None,
    title: str | None = None,
    header: str | None = None,
    now: datetime | None = None,
) -> TaskLedger:
    """Move a task into the body as doing, owned by agent."""
    if ledger.reference(task_id) is None:
        raise TaskNotFound(task_id)
    existing = ledger.entry(task_id)
    if existing is not None and existing.owner:
        raise AlreadyOwned(task_id, existing.owner)

    agent = _normalize_agent(agent)
    title = _normalize_title(title)

    updated = copy.deepcopy(ledger)
    body = updated.body
    entry = updated.entry(task_id)

    if header is not None:
        if entry is not None:
            body.remove(entry)
        else:
            entry = TaskEntry(id=task_id)
        body.insert(_header_insert_index(body, header), entry)
    elif entry is None:
        entry = TaskEntry(id=task_id)
        has_heading = any(_is_heading(node) for node in body)
        insert_at = _default_insert_index(body)
        body.insert(insert_at, entry)
        if not has_heading and insert_at == len(body) - 1:
            body.append(TextLine(""))

    entry.done = False
    entry.owner = agent
    if title:
        if not entry.title:
            entry.title = title
        elif entry.title != title:
            entry.comments.append(Comment(text=f"title: {title}", timestamp=_now(now)))

    owner = f" as @{agent}" if agent else ""
    logger.info(f"Took {task_id}{owner}")
    return updated


def comment(
    ledger: TaskLedger,
    task_id: str,
    text: str,
    git_hash: str | None = None,
    now: datetime | None = None,
) -> TaskLedger:
    """Append a timestamped comment to a task in the body."""
    if ledger.reference(task_id) is None:
        raise TaskNotFound(task_id)
    if ledger.entry(task_id) is None:
        raise TaskNotTaken(task_id)
    text = sanitize_line(text)
    if not text:
        raise InvalidTaskArguments("Comment text cannot be empty")
    git_hash = git_hash.strip() if git_hash else None

    updated = copy.deepcopy(ledger)
    updated.entry(task_id).comments.append(
        Comment(text=text, timestamp=_now(now), git_hash=git_hash or None)
    )
    logger.info(f"Commented on {task_id}")
    return updated


def release(
    ledger: TaskLedger,
    task_ids: list[str],
    done: bool = False,
    force: bool = False,
    agent: str | None = None,
    now: datetime | None = None,
) -> TaskLedger:
    """Clear the owner of one or more tasks, optionally marking them done.

    An unowned task can still be marked done; releasing it otherwise needs
    force, which only applies to a single id. Completing without an agent
    leaves a "Completed by @anonymous" comment on each task.
    """
    requested = [task_id for task_id in task_ids if task_id]
    if not requested:
        raise InvalidTaskArguments("No task ids given")
    if force and len(requested) > 1:
        raise InvalidTaskArguments("--force releases exactly one task at a time")
    ids = list(dict.fromkeys(requested))
    agent = _normalize_agent(agent)

    for task_id in ids:
        entry = ledger.entry(task_id)
        if entry is None:
            if ledger.reference(task_id) is not None:
                raise TaskNotTaken(task_id)
            raise TaskNotFound(task_id)
        if not entry.owner and not (force or done):
            raise NotOwned(task_id)

    updated = copy.deepcopy(ledger)
    for task_id in ids:
        entry = updated.entry(task_id)
        entry.owner = None
        if done:
            entry.done = True
            if agent is None:
                entry.comments.append(
                    Comment(text=f"Completed by @{ANONYMOUS_AGENT}", timestamp=_now(now))
                )
        logger.info(f"Released {task_id}{' as done' if done else ''}")
    return updated
