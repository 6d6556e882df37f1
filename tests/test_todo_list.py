"""Tests for the todo list state machine and checklist format."""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from agentloop.errors import InvalidTodoTransition
from agentloop.todo_list import (
    TodoItem,
    TodoList,
    TodoStatus,
    checklist_id,
    is_legal_transition,
    parse_markdown_checklist,
    todo_list_to_markdown,
)

CHECKLIST = "- [x] read the code\n- [-] fix the bug\n- [ ] run the tests"


class TestChecklistFormat:
    def test_parse(self):
        items = parse_markdown_checklist(CHECKLIST)
        assert [(t.content, t.status) for t in items] == [
            ("read the code", TodoStatus.COMPLETED),
            ("fix the bug", TodoStatus.IN_PROGRESS),
            ("run the tests", TodoStatus.PENDING),
        ]

    def test_ids_are_content_and_status_hashes(self):
        item = parse_markdown_checklist("- [ ] write docs")[0]
        assert item.id == checklist_id("write docs", TodoStatus.PENDING)
        assert len(item.id) == 32

    def test_marker_variants(self):
        items = parse_markdown_checklist("[X] done\n[~] doing\n-[ ] todo\n  - [ ]   spaced  ")
        assert [t.status for t in items] == [
            TodoStatus.COMPLETED, TodoStatus.IN_PROGRESS, TodoStatus.PENDING, TodoStatus.PENDING,
        ]
        assert items[3].content == "spaced"

    def test_non_checklist_lines_skipped(self):
        items = parse_markdown_checklist("# Plan\n\nsome prose\n- [ ] real item\n* bullet")
        assert [t.content for t in items] == ["real item"]

    def test_crlf_input(self):
        assert len(parse_markdown_checklist("- [ ] a\r\n- [x] b\r\n")) == 2

    def test_non_string_input(self):
        assert parse_markdown_checklist(None) == []

    def test_render(self):
        items = parse_markdown_checklist(CHECKLIST)
        assert todo_list_to_markdown(items) == CHECKLIST

    def test_round_trip(self):
        items = parse_markdown_checklist(CHECKLIST + "\n- [ ] another [bracketed] item")
        assert parse_markdown_checklist(todo_list_to_markdown(items)) == items


class TestTransitions:
    def test_legal_transitions(self):
        assert is_legal_transition(TodoStatus.PENDING, TodoStatus.IN_PROGRESS)
        assert is_legal_transition(TodoStatus.IN_PROGRESS, TodoStatus.COMPLETED)
        assert is_legal_transition(TodoStatus.COMPLETED, TodoStatus.COMPLETED)

    def test_illegal_transitions(self):
        assert not is_legal_transition(TodoStatus.COMPLETED, TodoStatus.PENDING)
        assert not is_legal_transition(TodoStatus.IN_PROGRESS, TodoStatus.PENDING)
        assert not is_legal_transition(TodoStatus.PENDING, TodoStatus.COMPLETED)


class TestTodoList:
    def test_add_assigns_random_hex_id(self):
        todos = TodoList()
        a = todos.add("first")
        b = todos.add("second")
        assert a.id != b.id
        assert len(a.id) == 32
        assert a.status == TodoStatus.PENDING

    def test_add_with_explicit_id(self):
        todos = TodoList()
        assert todos.add("x", item_id="t1").id == "t1"
        assert todos.get("t1").content == "x"

    def test_forward_updates(self):
        todos = TodoList()
        item = todos.add("task")
        assert todos.update_status(item.id, TodoStatus.IN_PROGRESS).success
        update = todos.update_status(item.id, TodoStatus.COMPLETED)
        assert update.success
        assert update.item.status == TodoStatus.COMPLETED
        assert not todos.has_incomplete()

    def test_completed_to_pending_rejected(self):
        todos = TodoList([TodoItem("t1", "task", TodoStatus.COMPLETED)])
        before = todos.items
        update = todos.update_status("t1", TodoStatus.PENDING)
        assert not update.success
        assert isinstance(update.error, InvalidTodoTransition)
        assert update.error.current == "completed"
        assert update.error.requested == "pending"
        assert todos.items == before

    def test_skipping_in_progress_rejected(self):
        todos = TodoList([TodoItem("t1", "task")])
        assert not todos.update_status("t1", TodoStatus.COMPLETED).success
        assert todos.get("t1").status == TodoStatus.PENDING

    def test_unknown_item(self):
        update = TodoList().update_status("nope", TodoStatus.COMPLETED)
        assert not update.success
        assert update.error is None
        assert "not found" in update.message

    def test_accepts_status_strings(self):
        todos = TodoList([TodoItem("t1", "task")])
        assert todos.update_status("t1", "in_progress").success

    def test_remove(self):
        todos = TodoList([TodoItem("t1", "task")])
        assert todos.remove("t1")
        assert not todos.remove("t1")
        assert len(todos) == 0


class TestReplaceAll:
    def test_replace_from_markdown(self):
        todos = TodoList()
        assert todos.replace_from_markdown(CHECKLIST).success
        assert len(todos) == 3
        assert todos.to_markdown() == CHECKLIST

    def test_forward_progress_accepted(self):
        todos = TodoList()
        todos.replace_from_markdown("- [ ] a\n- [ ] b")
        assert todos.replace_from_markdown("- [-] a\n- [ ] b").success
        assert todos.replace_from_markdown("- [x] a\n- [-] b\n- [ ] c").success
        assert [t.status for t in todos.items] == [
            TodoStatus.COMPLETED, TodoStatus.IN_PROGRESS, TodoStatus.PENDING,
        ]

    def test_skipping_in_progress_rejected(self):
        todos = TodoList()
        todos.replace_from_markdown("- [ ] a")
        before = todos.items
        update = todos.replace_from_markdown("- [x] a")
        assert not update.success
        assert update.error.current == "pending"
        assert update.error.requested == "completed"
        assert todos.items == before
        # the same jump through update_status is rejected too
        assert not todos.update_status(before[0].id, TodoStatus.COMPLETED).success

    def test_new_items_may_start_in_any_state(self):
        todos = TodoList()
        todos.replace_from_markdown("- [ ] a")
        assert todos.replace_from_markdown("- [ ] a\n- [x] already done").success

    def test_backward_move_rejected(self):
        todos = TodoList()
        todos.replace_from_markdown("- [x] a\n- [ ] b")
        before = todos.items
        update = todos.replace_from_markdown("- [ ] a\n- [ ] b")
        assert not update.success
        assert isinstance(update.error, InvalidTodoTransition)
        assert "'a' is already completed" in update.message
        assert todos.items == before

    def test_dropping_items_is_allowed(self):
        todos = TodoList()
        todos.replace_from_markdown("- [x] a\n- [ ] b")
        assert todos.replace_from_markdown("- [ ] b").success
        assert [t.content for t in todos.items] == ["b"]


class TestSummaryAndPersistence:
    def test_progress_summary(self):
        todos = TodoList()
        assert todos.progress_summary() == "No todos defined."
        todos.replace_from_markdown(CHECKLIST)
        assert todos.progress_summary() == "Progress: 1/3 complete, 1 in progress, 1 pending"

    def test_incomplete(self):
        todos = TodoList()
        todos.replace_from_markdown(CHECKLIST)
        assert [t.content for t in todos.incomplete()] == ["fix the bug", "run the tests"]

    def test_dict_round_trip(self):
        todos = TodoList()
        todos.replace_from_markdown(CHECKLIST)
        todos.add("extra", item_id="e1")
        restored = TodoList.from_dict(todos.to_dict())
        assert restored.items == todos.items

    def test_clear(self):
        todos = TodoList([TodoItem("t1", "task")])
        todos.clear()
        assert len(todos) == 0
