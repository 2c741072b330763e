#!/usr/bin/env python3
"""
Notes CLI - resolve note references and manage the collection task ledger.

Usage:
    notes.py [--collection DIR] [-v] resolve REF [--force | --source]
    notes.py task add NODE_REF [--no-verify]
    notes.py task take ID [--title T] [--header H] [--dry-run]
    notes.py task comment ID MESSAGE [--git HASH] [--dry-run]
    notes.py task release ID... [--done] [--force] [--dry-run]
    notes.py task list [--status backlog|doing|done|all] [--owner NAME|(none)] [--oneline] [--json]
    notes.py task show ID
    notes.py task log ID
    notes.py task find NODE_REF
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

# Add lib directory to path for imports
_SCRIPT_DIR = Path(__file__).parent.resolve()
if str(_SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(_SCRIPT_DIR))
if str(_SCRIPT_DIR / "lib") not in sys.path:
    sys.path.insert(0, str(_SCRIPT_DIR / "lib"))

from note_ref.errors import AmbiguousReference
from note_ref.parser import Literal
from note_ref.resolver import ResolveContext, resolve_paths, source_dir
from task_ledger.codec import serialize_ledger
from task_ledger.errors import TaskNotFound
from task_ledger.model import STATUSES, TaskLedger
from task_ledger.mutator import add, comment, release, take
from task_ledger.store import ledger_path, load_ledger, save_ledger
from utils import current_agent, current_datetime, display_path, get_collection_dir

logger = logging.getLogger(__name__)

NO_OWNER = "(none)"


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level_name = os.getenv("NOTES_LOG_LEVEL", "WARNING").strip().upper()
        level = getattr(logging, level_name, None)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _collection(args) -> Path:
    return get_collection_dir(args.collection)


def _context(args) -> ResolveContext:
    return ResolveContext.for_collection(_collection(args), current_datetime())


def _write(args, ledger: TaskLedger, path: Path) -> bool:
    """Save ledger, or print it under --dry-run. Returns True when written."""
    if getattr(args, "dry_run", False):
        print(serialize_ledger(ledger), end="")
        print(f"(dry run) Would write: {path}", file=sys.stderr)
        return False
    save_ledger(ledger, path)
    return True


def cmd_resolve(args):
    """Print the path(s) a note reference resolves to."""
    if args.source:
        print(display_path(source_dir(Literal(args.reference), _context(args))))
        return
    for path in resolve_paths(args.reference, _context(args), force=args.force):
        print(display_path(path))


def cmd_task_add(args):
    path = ledger_path(_collection(args))
    ledger = load_ledger(path)
    context = None if args.no_verify else _context(args)
    updated, task_id = add(ledger, args.node_ref, context)
    if updated is not ledger:
        save_ledger(updated, path)
    print(task_id)


def cmd_task_take(args):
    path = ledger_path(_collection(args))
    ledger = take(
        load_ledger(path),
        args.id,
        agent=current_agent(),
        title=args.title,
        header=args.header,
        now=current_datetime(),
    )
    if _write(args, ledger, path):
        print(f"✅ Took {args.id}")


def cmd_task_comment(args):
    path = ledger_path(_collection(args))
    ledger = comment(load_ledger(path), args.id, args.message, git_hash=args.git, now=current_datetime())
    if _write(args, ledger, path):
        print(f"✅ Commented on {args.id}")


def cmd_task_release(args):
    path = ledger_path(_collection(args))
    ledger = release(
        load_ledger(path),
        args.ids,
        done=args.done,
        force=args.force,
        agent=current_agent(),
        now=current_datetime(),
    )
    if _write(args, ledger, path):
        verb = "Completed" if args.done else "Released"
        print(f"✅ {verb}: {', '.join(dict.fromkeys(args.ids))}")


def _format_task(view, oneline: bool = False) -> str:
    title = view.title or view.node_ref
    if oneline:
        return f"{view.id} [{view.status}] {title}"
    owner = f"@{view.owner}" if view.owner else "-"
    return f"{view.id:<10} {view.status:<8} {owner:<12} {title} ({view.node_ref})"


def cmd_task_list(args):
    views = load_ledger(ledger_path(_collection(args))).tasks()
    if args.status != "all":
        views = [v for v in views if v.status == args.status]
    if args.owner:
        if args.owner == NO_OWNER:
            views = [v for v in views if not v.owner]
        else:
            owner = args.owner.lstrip("@")
            views = [v for v in views if v.owner == owner]

    if args.json:
        print(json.dumps([v.to_dict() for v in views], indent=2, ensure_ascii=False))
        return
    if not views:
        print("No tasks.")
        return
    for view in views:
        print(_format_task(view, oneline=args.oneline))


def _require_task(args):
    view = load_ledger(ledger_path(_collection(args))).task(args.id)
    if view is None:
        raise TaskNotFound(args.id)
    return view


def cmd_task_show(args):
    view = _require_task(args)
    print(f"ID:     {view.id}")
    print(f"Note:   {view.node_ref}")
    print(f"Title:  {view.title or '-'}")
    print(f"Status: {view.status}")
    print(f"Owner:  {'@' + view.owner if view.owner else '-'}")
    if view.comments:
        print(f"Comments: {len(view.comments)}")


def cmd_task_log(args):
    view = _require_task(args)
    if not view.comments:
        print(f"No comments for {view.id}")
        return
    for entry in view.comments:
        parts = [part for part in (entry.timestamp, entry.text) if part]
        if entry.git_hash:
            parts.append(f"[{entry.git_hash}]")
        print(" ".join(parts))


def cmd_task_find(args):
    query = args.node_ref.strip().lower()
    matches = [
        view for view in load_ledger(ledger_path(_collection(args))).tasks()
        if query in view.node_ref.lower()
    ]
    if not matches:
        print(f"❌ No task references '{args.node_ref}'", file=sys.stderr)
        sys.exit(1)
    for view in matches:
        print(f"{view.id}\t{view.status}\t{view.node_ref}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Note reference resolver and task ledger")
    parser.add_argument("--collection", help="Collection name under NOTES_HOME, or a directory path")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a note reference to file path(s)")
    resolve_parser.add_argument("reference", help="Note reference (e.g. 22, 20260212/143022, my-title)")
    resolve_parser.add_argument("--force", action="store_true", help="Print every candidate when ambiguous")
    resolve_parser.add_argument(
        "--source",
        action="store_true",
        help="Treat REF as a source string and print its hashed note directory",
    )
    resolve_parser.set_defaults(func=cmd_resolve)

    task_parser = subparsers.add_parser("task", help="Manage the task ledger")
    task_sub = task_parser.add_subparsers(dest="task_command", required=True)

    t_add = task_sub.add_parser("add", help="Track a note as a backlog task")
    t_add.add_argument("node_ref", help="Note reference")
    t_add.add_argument("--no-verify", action="store_true", help="Do not check that the note exists")
    t_add.set_defaults(func=cmd_task_add)

    t_take = task_sub.add_parser("take", help="Start working on a task")
    t_take.add_argument("id", help="Task id")
    t_take.add_argument("--title", help="Task title")
    t_take.add_argument("--header", help="Body heading to file the task under")
    t_take.add_argument("--dry-run", action="store_true")
    t_take.set_defaults(func=cmd_task_take)

    t_comment = task_sub.add_parser("comment", help="Add a progress comment")
    t_comment.add_argument("id", help="Task id")
    t_comment.add_argument("message", help="Comment text")
    t_comment.add_argument("--git", help="Commit hash to reference")
    t_comment.add_argument("--dry-run", action="store_true")
    t_comment.set_defaults(func=cmd_task_comment)

    t_release = task_sub.add_parser("release", help="Release task(s)")
    t_release.add_argument("ids", nargs="+", help="Task id(s)")
    t_release.add_argument("--done", action="store_true", help="Mark as done")
    t_release.add_argument("--force", action="store_true", help="Release an unowned task (single id only)")
    t_release.add_argument("--dry-run", action="store_true")
    t_release.set_defaults(func=cmd_task_release)

    t_list = task_sub.add_parser("list", help="List tasks")
    t_list.add_argument("--status", choices=[*STATUSES, "all"], default="all")
    t_list.add_argument("--owner", help=f"Agent name, or {NO_OWNER} for unowned tasks")
    t_list.add_argument("--oneline", action="store_true")
    t_list.add_argument("--json", action="store_true", help="Output as JSON")
    t_list.set_defaults(func=cmd_task_list)

    t_show = task_sub.add_parser("show", help="Show one task")
    t_show.add_argument("id", help="Task id")
    t_show.set_defaults(func=cmd_task_show)

    t_log = task_sub.add_parser("log", help="Show task comments")
    t_log.add_argument("id", help="Task id")
    t_log.set_defaults(func=cmd_task_log)

    t_find = task_sub.add_parser("find", help="Find tasks by note reference")
    t_find.add_argument("node_ref", help="Substring of the note reference")
    t_find.set_defaults(func=cmd_task_find)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        args.func(args)
    except AmbiguousReference as e:
        print(f"❌ {e}", file=sys.stderr)
        collection = _collection(args)
        for candidate in e.candidates:
            print(f"   {display_path(candidate, collection)}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, OSError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
