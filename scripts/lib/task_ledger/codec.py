"""Parse and serialize the task ledger markdown document."""

from __future__ import annotations

import re

from .errors import DuplicateId, MalformedLedger
from .model import Comment, Reference, TaskEntry, TaskLedger, TextLine

RULE_TEXTS = ("---", "***")

ENTRY_RE = re.compile(
    r"^- \[( |x|X)\]\s+(?:\[([^\]]*)\])?\[([^\]\s]+)\](?:\s+@(\S+))?\s*$"
)
REFERENCE_RE = re.compile(r"^\[([^\]\s]+)\]:\s*(\S.*?)\s*$")
COMMENT_RE = re.compile(
    r"^\s+-\s+(?:([0-9]{4}-[0-9]{2}-[0-9]{2} [0-9]{2}:[0-9]{2})\s*)?(.*?)(?:\s+\[([0-9a-fA-F]{4,40})\])?\s*$"
)
# Comment text that itself ends in a bracketed hex word is written with the
# bracket escaped, so it is not read back as a git hash.
HASH_LIKE_TAIL_RE = re.compile(r"(^|\s)(\[[0-9a-fA-F]{4,40}\]\s*)$")
ESCAPED_HASH_TAIL_RE = re.compile(r"(^|\s)\\(\[[0-9a-fA-F]{4,40}\])$")
HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")

COMMENT_INDENT = "  "


def is_rule(line: str) -> bool:
    return line.strip() in RULE_TEXTS


def heading_text(line: str) -> str | None:
    """Text of a markdown heading line, or None."""
    match = HEADING_RE.match(line)
    return match.group(2) if match else None


def _parse_comment(line: str) -> Comment:
    match = COMMENT_RE.match(line)
    if not match:
        return Comment(text=line.strip(), raw=line)
    timestamp, text, git_hash = match.groups()
    text = ESCAPED_HASH_TAIL_RE.sub(r"\1\2", text)
    return Comment(text=text, timestamp=timestamp, git_hash=git_hash, raw=line)


def _parse_body(lines: list[str], first_line_num: int) -> tuple[list, list[tuple[str, int]]]:
    body: list = []
    positions: list[tuple[str, int]] = []
    current: TaskEntry | None = None
    for offset, line in enumerate(lines):
        match = ENTRY_RE.match(line)
        if match:
            checkbox, title, task_id, owner = match.groups()
            current = TaskEntry(
                id=task_id,
                title=title or None,
                done=checkbox.lower() == "x",
                owner=owner,
            )
            positions.append((task_id, first_line_num + offset))
            body.append(current)
            continue
        if current is not None and line.strip() and line[:1].isspace():
            current.comments.append(_parse_comment(line))
            continue
        current = None
        body.append(TextLine(line))
    return body, positions


def _parse_references(lines: list[str]) -> list:
    references: list = []
    seen: set[str] = set()
    for line in lines:
        match = REFERENCE_RE.match(line)
        if not match:
            references.append(TextLine(line))
            continue
        task_id, target = match.groups()
        if task_id in seen:
            raise DuplicateId(task_id)
        seen.add(task_id)
        references.append(Reference(id=task_id, target=target, raw=line))
    return references


def _check_entries(ledger: TaskLedger, positions: list[tuple[str, int]]) -> None:
    known = {ref.id for ref in ledger.reference_list()}
    seen: set[str] = set()
    for task_id, line_num in positions:
        if task_id in seen:
            raise MalformedLedger(f"task '{task_id}' appears more than once in body", line_num)
        if task_id not in known:
            raise MalformedLedger(f"task '{task_id}' has no reference definition", line_num)
        seen.add(task_id)


def parse_ledger(text: str) -> TaskLedger:
    """Parse ledger text into a TaskLedger.

    Raises DuplicateId for a reference id defined twice and MalformedLedger
    for body entries that do not map to exactly one reference.
    """
    lines = text.splitlines()
    ledger = TaskLedger(trailing_newline=text.endswith(("\n", "\r")) or not text)

    start = 0
    if lines and is_rule(lines[0]):
        close = next((i for i in range(1, len(lines)) if is_rule(lines[i])), None)
        if close is None:
            raise MalformedLedger("metadata block is never closed", 1)
        ledger.meta_rules = (lines[0], lines[close])
        ledger.meta = [TextLine(line) for line in lines[1:close]]
        start = close + 1

    rules = [i for i in range(start, len(lines)) if is_rule(lines[i])]
    body_start, body_end = start, len(lines)

    if ledger.meta_rules is not None and len(rules) >= 2:
        first = rules[0]
        ledger.description = [TextLine(line) for line in lines[start:first]]
        ledger.description_rule = lines[first]
        body_start = first + 1
    if rules:
        last = rules[-1]
        body_end = last
        ledger.reference_rule = lines[last]
        ledger.references = _parse_references(lines[last + 1:])

    ledger.body, positions = _parse_body(lines[body_start:body_end], body_start + 1)
    _check_entries(ledger, positions)
    return ledger


def render_entry(entry: TaskEntry) -> str:
    checkbox = "[x]" if entry.done else "[ ]"
    title = f"[{entry.title}]" if entry.title else ""
    owner = f" @{entry.owner}" if entry.owner else ""
    return f"- {checkbox} {title}[{entry.id}]{owner}"


def render_comment(comment: Comment) -> str:
    if comment.raw is not None:
        return comment.raw
    text = comment.text
    if comment.git_hash:
        suffix = f"[{comment.git_hash}]"
    else:
        suffix = None
        if text:
            text = HASH_LIKE_TAIL_RE.sub(r"\1\\\2", text)
    parts = [part for part in (comment.timestamp, text, suffix) if part]
    return f"{COMMENT_INDENT}- {' '.join(parts)}"


def render_reference(ref: Reference) -> str:
    if ref.raw is not None:
        return ref.raw
    return f"[{ref.id}]: {ref.target}"


def serialize_ledger(ledger: TaskLedger) -> str:
    lines: list[str] = []
    if ledger.meta_rules is not None:
        lines.append(ledger.meta_rules[0])
        lines.extend(node.text for node in ledger.meta)
        lines.append(ledger.meta_rules[1])
    if ledger.description_rule is not None:
        lines.extend(node.text for node in ledger.description)
        lines.append(ledger.description_rule)

    for node in ledger.body:
        if isinstance(node, TaskEntry):
            lines.append(render_entry(node))
            lines.extend(render_comment(c) for c in node.comments)
        else:
            lines.append(node.text)

    if ledger.reference_rule is not None or ledger.references:
        lines.append(ledger.reference_rule or "---")
        for node in ledger.references:
            lines.append(render_reference(node) if isinstance(node, Reference) else node.text)

    text = "\n".join(lines)
    if ledger.trailing_newline and lines:
        text += "\n"
    return text
