"""Tests for task ledger operations (add, take, comment, release)."""

import copy
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Allow imports from scripts/ and scripts/lib/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'scripts'))
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'scripts' / 'lib'))

from note_ref.errors import AmbiguousReference, NoteNotFound
from note_ref.resolver import ResolveContext
from task_ledger.codec import parse_ledger, serialize_ledger
from task_ledger.errors import (
    AlreadyOwned,
    HeaderNotFound,
    InvalidTaskArguments,
    NotOwned,
    TaskNotFound,
    TaskNotTaken,
)
from task_ledger.model import Reference, TaskEntry
from task_ledger.mutator import add, comment, next_task_id, release, take
from task_ledger.store import default_ledger_text

NOW = datetime(2026, 2, 12, 14, 30)

SECTIONED = """\
---
PREFIX: task-
---

## Doing
- [ ] [Alpha][task-1] @ana

## Done

---

[task-1]: a
[task-2]: b
[task-3]: c
"""


@pytest.fixture
def empty():
    return parse_ledger(default_ledger_text())


@pytest.fixture
def sectioned():
    return parse_ledger(SECTIONED)


class TestEndToEnd:

    def test_add_take_comment_release(self, empty):
        ledger, task_id = add(empty, "143022")
        assert task_id == "task-1"

        ledger = take(ledger, task_id, title="Implement X", now=NOW)
        entry = ledger.entry(task_id)
        assert entry.done is False
        assert entry.owner is None
        assert entry.title == "Implement X"

        ledger = comment(ledger, task_id, "did work", now=NOW)
        assert len(ledger.entry(task_id).comments) == 1
        assert ledger.entry(task_id).comments[0].timestamp == "2026-02-12 14:30"

        ledger = release(ledger, [task_id], done=True, now=NOW)
        assert ledger.entry(task_id).done is True
        assert ledger.entry(task_id).owner is None

        assert serialize_ledger(ledger) == (
            "---\nPREFIX: task-\n---\n"
            "- [x] [Implement X][task-1]\n"
            "  - 2026-02-12 14:30 did work\n"
            "  - 2026-02-12 14:30 Completed by @anonymous\n"
            "\n---\n\n"
            "[task-1]: 143022\n"
        )

    def test_take_records_agent(self, empty):
        ledger, task_id = add(empty, "143022")
        ledger = take(ledger, task_id, agent="@claude")
        assert ledger.entry(task_id).owner == "claude"
        assert "- [ ] [task-1] @claude" in serialize_ledger(ledger)

    def test_add_is_idempotent(self, empty):
        ledger, first = add(empty, "143022")
        again, second = add(ledger, "143022")
        assert first == second
        assert again is ledger
        assert [r.target for r in again.reference_list()] == ["143022"]


class TestAdd:

    def test_ids_follow_highest_suffix(self, empty):
        ledger = copy.deepcopy(empty)
        ledger.references[1:1] = [
            Reference("task-1", "a"),
            Reference("task-7", "b"),
            Reference("other-3", "c"),
        ]
        assert next_task_id(ledger) == "task-8"

    def test_prefix_from_metadata(self):
        ledger = parse_ledger("---\nPREFIX: job-\n---\n\n---\n")
        _, task_id = add(ledger, "x")
        assert task_id == "job-1"

    def test_appends_after_last_reference(self):
        ledger = parse_ledger("---\n---\n\n---\n[task-1]: a\n<!-- end -->\n")
        ledger, _ = add(ledger, "b")
        assert serialize_ledger(ledger).endswith("[task-1]: a\n[task-2]: b\n<!-- end -->\n")

    def test_empty_reference_block_keeps_leading_blank(self, empty):
        ledger, _ = add(empty, "n")
        assert serialize_ledger(ledger).endswith("---\n\n[task-1]: n\n")

    def test_empty_node_ref_rejected(self, empty):
        with pytest.raises(InvalidTaskArguments):
            add(empty, "   ")

    def test_input_left_untouched(self, empty):
        before = serialize_ledger(empty)
        add(empty, "x")
        assert serialize_ledger(empty) == before


class TestAddWithContext:

    @pytest.fixture
    def context(self, tmp_path):
        day = tmp_path / "#daily" / "20260212"
        day.mkdir(parents=True)
        (day / "143022-design.md").write_text("x")
        (day / "140000-coffee.md").write_text("x")
        return ResolveContext.for_collection(tmp_path, NOW)

    def test_resolvable_reference(self, empty, context):
        _, task_id = add(empty, "143022", context)
        assert task_id == "task-1"

    def test_unknown_reference(self, empty, context):
        with pytest.raises(NoteNotFound):
            add(empty, "99", context)

    def test_ambiguous_reference(self, empty, context):
        with pytest.raises(AmbiguousReference):
            add(empty, "14", context)


class TestTake:

    def test_unknown_id(self, sectioned):
        with pytest.raises(TaskNotFound):
            take(sectioned, "task-9")

    def test_owned_entry_is_not_overwritten(self, sectioned):
        with pytest.raises(AlreadyOwned) as exc:
            take(sectioned, "task-1", agent="bob")
        assert exc.value.owner == "ana"
        assert sectioned.entry("task-1").owner == "ana"

    def test_new_entry_goes_before_first_heading(self, sectioned):
        ledger = take(sectioned, "task-2")
        text = serialize_ledger(ledger)
        assert text.startswith("---\nPREFIX: task-\n---\n- [ ] [task-2]\n\n## Doing\n")

    def test_header_places_after_last_entry(self, sectioned):
        ledger = take(sectioned, "task-2", header="## doing")
        assert "## Doing\n- [ ] [Alpha][task-1] @ana\n- [ ] [task-2]\n" in serialize_ledger(ledger)

    def test_header_without_entries(self, sectioned):
        ledger = take(sectioned, "task-3", header="Done")
        assert "## Done\n- [ ] [task-3]\n\n---" in serialize_ledger(ledger)

    def test_header_moves_existing_entry(self, sectioned):
        ledger = release(sectioned, ["task-1"])
        ledger = take(ledger, "task-1", header="Done")
        text = serialize_ledger(ledger)
        assert "## Doing\n\n## Done\n- [ ] [Alpha][task-1]\n" in text

    def test_missing_header(self, sectioned):
        with pytest.raises(HeaderNotFound):
            take(sectioned, "task-2", header="Someday")

    def test_missing_header_without_any_heading(self, empty):
        ledger, task_id = add(empty, "x")
        with pytest.raises(HeaderNotFound):
            take(ledger, task_id, header="Doing")

    def test_reopens_done_entry_in_place(self, sectioned):
        ledger = release(sectioned, ["task-1"], done=True)
        ledger = take(ledger, "task-1", agent="bob")
        entry = ledger.entry("task-1")
        assert entry.done is False
        assert entry.owner == "bob"
        assert "## Doing\n- [ ] [Alpha][task-1] @bob\n" in serialize_ledger(ledger)

    def test_second_title_becomes_comment(self, sectioned):
        ledger = release(sectioned, ["task-1"])
        ledger = take(ledger, "task-1", title="Beta", now=NOW)
        entry = ledger.entry("task-1")
        assert entry.title == "Alpha"
        assert entry.comments[-1].text == "title: Beta"
        assert entry.comments[-1].timestamp == "2026-02-12 14:30"

    def test_same_title_adds_nothing(self, sectioned):
        ledger = release(sectioned, ["task-1"])
        ledger = take(ledger, "task-1", title="Alpha")
        assert ledger.entry("task-1").comments == []


class TestComment:

    def test_backlog_task_cannot_be_commented(self, sectioned):
        with pytest.raises(TaskNotTaken):
            comment(sectioned, "task-2", "hi")

    def test_unknown_task(self, sectioned):
        with pytest.raises(TaskNotFound):
            comment(sectioned, "task-9", "hi")

    def test_git_hash_and_flattened_text(self, sectioned):
        ledger = comment(sectioned, "task-1", "line one\nline two", git_hash="abc1234", now=NOW)
        assert "  - 2026-02-12 14:30 line one line two [abc1234]" in serialize_ledger(ledger)
        entry = ledger.entry("task-1")
        assert entry.owner == "ana"
        assert entry.done is False

    def test_empty_comment(self, sectioned):
        with pytest.raises(InvalidTaskArguments):
            comment(sectioned, "task-1", " \n ")


class TestRelease:

    def test_clears_owner(self, sectioned):
        ledger = release(sectioned, ["task-1"])
        assert ledger.entry("task-1").owner is None
        assert ledger.entry("task-1").done is False
        assert sectioned.entry("task-1").owner == "ana"

    def test_unowned_needs_force(self, sectioned):
        ledger = release(sectioned, ["task-1"])
        with pytest.raises(NotOwned):
            release(ledger, ["task-1"])
        assert release(ledger, ["task-1"], force=True).entry("task-1").owner is None

    def test_unowned_can_be_marked_done(self, sectioned):
        ledger = release(sectioned, ["task-1"])
        assert release(ledger, ["task-1"], done=True).entry("task-1").done is True

    def test_force_with_two_ids_rejected_first(self, sectioned):
        with pytest.raises(InvalidTaskArguments):
            release(sectioned, ["task-1", "task-9"], force=True)

    def test_no_ids(self, sectioned):
        with pytest.raises(InvalidTaskArguments):
            release(sectioned, [])

    def test_batch_validated_before_mutation(self, sectioned):
        ledger = take(sectioned, "task-2", agent="bob")
        with pytest.raises(TaskNotTaken):
            release(ledger, ["task-1", "task-2", "task-3"])
        assert ledger.entry("task-1").owner == "ana"
        assert ledger.entry("task-2").owner == "bob"

    def test_unknown_id(self, sectioned):
        with pytest.raises(TaskNotFound):
            release(sectioned, ["task-9"])

    def test_force_counts_repeated_ids(self, sectioned):
        with pytest.raises(InvalidTaskArguments):
            release(sectioned, ["task-1", "task-1"], force=True)
        assert sectioned.entry("task-1").owner == "ana"

    def test_repeated_ids_without_force_release_once(self, sectioned):
        ledger = release(sectioned, ["task-1", "task-1"], agent="ana")
        assert ledger.entry("task-1").owner is None

    def test_done_without_agent_leaves_anonymous_comment(self, sectioned):
        ledger = release(sectioned, ["task-1"], done=True, now=NOW)
        last = ledger.entry("task-1").comments[-1]
        assert last.text == "Completed by @anonymous"
        assert last.timestamp == "2026-02-12 14:30"
        assert "  - 2026-02-12 14:30 Completed by @anonymous\n" in serialize_ledger(ledger)

    def test_done_with_agent_adds_no_comment(self, sectioned):
        ledger = release(sectioned, ["task-1"], done=True, agent="@ana", now=NOW)
        assert ledger.entry("task-1").comments == []

    def test_plain_release_adds_no_comment(self, sectioned):
        ledger = release(sectioned, ["task-1"], now=NOW)
        assert ledger.entry("task-1").comments == []


class TestSaveAndReload:
    """Mutated ledgers must read back as the same tasks."""

    def _reload(self, ledger):
        return parse_ledger(serialize_ledger(ledger))

    def test_title_with_brackets_rejected(self, sectioned):
        with pytest.raises(InvalidTaskArguments):
            take(sectioned, "task-2", title="Fix [urgent] bug")
        with pytest.raises(InvalidTaskArguments):
            take(sectioned, "task-2", title="a]b")
        assert sectioned.entry("task-2") is None

    def test_taken_task_reloads(self, sectioned):
        ledger = take(sectioned, "task-2", agent="bob", title="Fix the (urgent) bug")
        reloaded = self._reload(ledger)
        view = reloaded.task("task-2")
        assert view.status == "doing"
        assert view.title == "Fix the (urgent) bug"
        assert view.owner == "bob"
        assert [n.id for n in reloaded.body if isinstance(n, TaskEntry)] == ["task-2", "task-1"]

    def test_agent_with_spaces_is_one_token(self, sectioned):
        ledger = take(sectioned, "task-2", agent="@Claude Bot")
        assert ledger.entry("task-2").owner == "Claude-Bot"
        assert "- [ ] [task-2] @Claude-Bot\n" in serialize_ledger(ledger)
        view = self._reload(ledger).task("task-2")
        assert view.status == "doing"
        assert view.owner == "Claude-Bot"

    def test_blank_agent_is_no_owner(self, sectioned):
        ledger = take(sectioned, "task-2", agent="@  ")
        assert ledger.entry("task-2").owner is None

    def test_comment_ending_in_hex_word_keeps_its_text(self, sectioned):
        ledger = comment(sectioned, "task-1", "see [deadbeef]", now=NOW)
        assert "  - 2026-02-12 14:30 see \\[deadbeef]\n" in serialize_ledger(ledger)
        last = self._reload(ledger).entry("task-1").comments[-1]
        assert (last.text, last.git_hash) == ("see [deadbeef]", None)

    def test_comment_that_is_only_a_hex_word(self, sectioned):
        ledger = comment(sectioned, "task-1", "[cafe]", now=NOW)
        last = self._reload(ledger).entry("task-1").comments[-1]
        assert (last.text, last.git_hash) == ("[cafe]", None)

    def test_real_git_hash_still_reloads(self, sectioned):
        ledger = comment(sectioned, "task-1", "see [deadbeef]", git_hash="abc1234", now=NOW)
        assert "  - 2026-02-12 14:30 see [deadbeef] [abc1234]\n" in serialize_ledger(ledger)
        last = self._reload(ledger).entry("task-1").comments[-1]
        assert (last.text, last.git_hash) == ("see [deadbeef]", "abc1234")
