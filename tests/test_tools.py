"""Tests for tool implementations and the tool registry."""

import asyncio
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from agentloop.config import Config
from agentloop.errors import ToolExecutionError
from agentloop.interaction import AutoApproveInteraction
from agentloop.interrupt import CancellationToken, TaskCancelled
from agentloop.session import TaskSession
from agentloop.todo_list import TodoStatus, parse_markdown_checklist
from agentloop.tools import build_default_registry
from agentloop.tools.file_tools import (
    WorkspaceFileStore,
    list_files,
    read_file,
    resolve_path,
    search_files,
    write_to_file,
)
from agentloop.tools.registry import Tool, ToolRegistry, ToolResult
from agentloop.tools.shell_tools import clip_output, execute_command

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell commands")


def run(coro):
    return asyncio.run(coro)


def block(search: str, replace: str) -> str:
    return f"<<<<<<< SEARCH\n{search}\n=======\n{replace}\n>>>>>>> REPLACE"


def make_session(workspace, **overrides):
    config = Config(workspace_path=workspace, **overrides)
    return TaskSession.from_config(config)


class TestResolvePath:
    def test_relative_path(self, tmp_path):
        assert resolve_path(tmp_path, "a/b.txt") == (tmp_path / "a" / "b.txt").resolve()

    def test_workspace_root(self, tmp_path):
        assert resolve_path(tmp_path, ".") == tmp_path.resolve()

    def test_escape_rejected(self, tmp_path):
        with pytest.raises(ToolExecutionError):
            resolve_path(tmp_path, "../outside.txt")

    def test_absolute_outside_rejected(self, tmp_path):
        with pytest.raises(ToolExecutionError):
            resolve_path(tmp_path / "ws", str(tmp_path / "other.txt"))


class TestFileTools:
    def test_read_file_numbers_lines(self, tmp_path):
        (tmp_path / "a.txt").write_text("hello\nworld\n")
        result = run(read_file(tmp_path, {"path": "a.txt"}))
        assert result.success
        assert result.output == "   1 | hello\n   2 | world"

    def test_read_file_range(self, tmp_path):
        (tmp_path / "a.txt").write_text("\n".join(f"line{i}" for i in range(1, 11)))
        result = run(read_file(tmp_path, {"path": "a.txt", "start_line": "3", "end_line": "4"}))
        assert result.output == "   3 | line3\n   4 | line4"

    def test_read_file_missing(self, tmp_path):
        result = run(read_file(tmp_path, {"path": "nope.txt"}))
        assert not result.success
        assert "File not found" in result.to_message()

    def test_read_file_bad_line_number(self, tmp_path):
        (tmp_path / "a.txt").write_text("x\n")
        with pytest.raises(ToolExecutionError):
            run(read_file(tmp_path, {"path": "a.txt", "start_line": "one"}))

    def test_write_to_file_creates_directories(self, tmp_path):
        result = run(write_to_file(tmp_path, {"path": "pkg/mod.py", "content": "x = 1"}))
        assert result.success
        assert (tmp_path / "pkg" / "mod.py").read_text() == "x = 1\n"
        assert "already existed" not in result.output

    def test_write_to_file_overwrite_note(self, tmp_path):
        (tmp_path / "a.py").write_text("old\n")
        result = run(write_to_file(tmp_path, {"path": "a.py", "content": "new\n"}))
        assert "already existed" in result.output
        assert (tmp_path / "a.py").read_text() == "new\n"

    def test_list_files_skips_vcs_dirs(self, tmp_path):
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "HEAD").write_text("ref")
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "main.py").write_text("")
        (tmp_path / "README.md").write_text("")
        result = run(list_files(tmp_path, {"path": ".", "recursive": "true"}))
        lines = result.output.splitlines()
        assert "README.md" in lines
        assert "src/" in lines
        assert os.path.join("src", "main.py") in lines
        assert not any(".git" in line for line in lines)

    def test_list_files_flat(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "main.py").write_text("")
        result = run(list_files(tmp_path, {"path": "."}))
        assert result.output.splitlines() == ["src/"]

    def test_list_files_missing_dir(self, tmp_path):
        assert not run(list_files(tmp_path, {"path": "nope"})).success

    def test_search_files(self, tmp_path):
        (tmp_path / "a.py").write_text("import os\nTODO = 1\n")
        (tmp_path / "b.txt").write_text("TODO here too\n")
        result = run(search_files(tmp_path, {"path": ".", "regex": "TODO", "file_pattern": "*.py"}))
        assert result.output == "a.py:2: TODO = 1"

    def test_search_files_no_match(self, tmp_path):
        (tmp_path / "a.py").write_text("nothing\n")
        assert run(search_files(tmp_path, {"path": ".", "regex": "zzz"})).output == "(no matches)"

    def test_search_files_invalid_regex(self, tmp_path):
        result = run(search_files(tmp_path, {"path": ".", "regex": "("}))
        assert not result.success
        assert "Invalid regex" in result.error


class TestWorkspaceFileStore:
    def test_missing_file_reads_none(self, tmp_path):
        assert run(WorkspaceFileStore(tmp_path).read("nope.txt")) is None

    def test_crlf_survives_read_and_write(self, tmp_path):
        (tmp_path / "win.txt").write_bytes(b"a\r\nb\r\n")
        store = WorkspaceFileStore(tmp_path)
        content = run(store.read("win.txt"))
        assert content == "a\r\nb\r\n"
        run(store.write("win.txt", content.replace("a", "A")))
        assert (tmp_path / "win.txt").read_bytes() == b"A\r\nb\r\n"

    def test_escape_is_an_agent_error(self, tmp_path):
        with pytest.raises(ToolExecutionError):
            run(WorkspaceFileStore(tmp_path / "ws").read("../x"))


@posix_only
class TestShellTools:
    def test_success(self, tmp_path):
        result = run(execute_command(tmp_path, {"command": "echo hello"}))
        assert result.success
        assert "hello" in result.output

    def test_runs_in_workspace(self, tmp_path):
        (tmp_path / "marker.txt").write_text("")
        result = run(execute_command(tmp_path, {"command": "ls"}))
        assert "marker.txt" in result.output

    def test_nonzero_exit(self, tmp_path):
        result = run(execute_command(tmp_path, {"command": "echo oops; exit 3"}))
        assert not result.success
        assert "exited with code 3" in result.error
        assert "oops" in result.error

    def test_timeout_kills_process(self, tmp_path):
        result = run(execute_command(tmp_path, {"command": "sleep 10"}, timeout=0.5))
        assert not result.success
        assert "timed out" in result.error

    def test_timeout_keeps_partial_output(self, tmp_path):
        result = run(execute_command(tmp_path, {"command": "echo started; sleep 10"}, timeout=0.5))
        assert not result.success
        assert "timed out" in result.error
        assert "started" in result.error
        assert "(no output)" not in result.error

    def test_cancellation_raises(self, tmp_path):
        async def scenario():
            token = CancellationToken()
            task = asyncio.ensure_future(
                execute_command(tmp_path, {"command": "sleep 10"}, timeout=30, token=token))
            await asyncio.sleep(0.3)
            token.cancel()
            with pytest.raises(TaskCancelled):
                await task
        run(scenario())

    def test_empty_command(self, tmp_path):
        assert not run(execute_command(tmp_path, {"command": "  "})).success

    def test_clip_output(self):
        text = "a" * 50 + "b" * 50
        clipped = clip_output(text, limit=20)
        assert clipped.startswith("a" * 10)
        assert clipped.endswith("b" * 10)
        assert "80 characters omitted" in clipped


class TestToolRegistry:
    def test_exception_becomes_failed_result(self):
        async def boom(params):
            raise ValueError("bad input")

        registry = ToolRegistry()
        registry.register(Tool("boom", "", boom))
        result = run(registry.execute("boom", {}))
        assert not result.success
        assert result.to_message() == "Error executing boom: ValueError: bad input"

    def test_non_tool_result_is_a_contract_violation(self):
        registry = ToolRegistry()
        registry.register(Tool("bad", "", lambda params: "just a string"))
        with pytest.raises(TypeError):
            run(registry.execute("bad", {}))

    def test_sync_functions_supported(self):
        registry = ToolRegistry()

        @registry.register_function("echo")
        def echo(params):
            return ToolResult.ok(params["text"])

        assert run(registry.execute("echo", {"text": "hi"})).output == "hi"
        assert "echo" in registry

    def test_unknown_tool(self):
        result = run(ToolRegistry().execute("nope", {}))
        assert not result.success
        assert "Unknown tool" in result.to_message()

    def test_to_message(self):
        assert ToolResult.ok({"a": 1}).to_message() == '{\n  "a": 1\n}'
        assert ToolResult.fail("boom").to_message() == "Error: boom"
        assert ToolResult.fail("Error: already prefixed").to_message() == "Error: already prefixed"


class TestDefaultRegistry:
    def test_all_tools_registered(self, tmp_path):
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        assert set(registry.names()) == {
            "read_file", "write_to_file", "apply_diff", "list_files", "search_files",
            "execute_command", "update_todo_list", "switch_mode",
            "ask_followup_question", "attempt_completion",
        }

    def test_apply_diff_single_file(self, tmp_path):
        (tmp_path / "a.py").write_text("foo baz foo")
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        result = run(registry.execute("apply_diff", {"path": "a.py", "diff": block("foo", "bar")}))
        assert result.success
        assert (tmp_path / "a.py").read_text() == "bar baz foo"
        assert "<notice>" in result.output

    def test_apply_diff_failure_leaves_file(self, tmp_path):
        (tmp_path / "a.py").write_text("foo\n")
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        result = run(registry.execute("apply_diff", {"path": "a.py", "diff": block("nope", "x")}))
        assert not result.success
        assert "Failed to apply 1 of 1" in result.to_message()
        assert (tmp_path / "a.py").read_text() == "foo\n"

    def test_apply_diff_empty_diff(self, tmp_path):
        (tmp_path / "a.py").write_text("foo\n")
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        result = run(registry.execute("apply_diff", {"path": "a.py", "diff": ""}))
        assert not result.success
        assert "No valid SEARCH/REPLACE blocks" in result.to_message()

    def test_apply_diff_batch(self, tmp_path):
        (tmp_path / "a.py").write_text("a\n")
        (tmp_path / "b.py").write_text("b\n")
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        result = run(registry.execute("apply_diff", {"args": [
            {"path": "a.py", "diff": block("a", "A")},
            {"path": "b.py", "diff": block("b", "B")},
        ]}))
        assert result.success
        assert (tmp_path / "a.py").read_text() == "A\n"
        assert (tmp_path / "b.py").read_text() == "B\n"

    def test_apply_diff_batch_entry_without_path(self, tmp_path):
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        result = run(registry.execute("apply_diff", {"args": [{"diff": "x"}]}))
        assert not result.success
        assert "missing its <path>" in result.to_message()

    def test_apply_diff_outside_workspace(self, tmp_path):
        workspace = tmp_path / "ws"
        workspace.mkdir()
        registry = build_default_registry(make_session(workspace), AutoApproveInteraction())
        result = run(registry.execute("apply_diff", {"path": "../x.py", "diff": block("a", "b")}))
        assert not result.success
        assert "outside the workspace" in result.to_message()

    def test_user_denial_is_flagged(self, tmp_path):
        from agentloop.batch_diff import ApprovalResponse

        class Denier(AutoApproveInteraction):
            async def approve_edits(self, rows):
                return ApprovalResponse.deny_all("not now")

        (tmp_path / "a.py").write_text("a\n")
        registry = build_default_registry(make_session(tmp_path), Denier())
        result = run(registry.execute("apply_diff", {"path": "a.py", "diff": block("a", "A")}))
        assert not result.success
        assert result.user_rejected
        assert "not now" in result.to_message()
        assert (tmp_path / "a.py").read_text() == "a\n"

    def test_read_outside_workspace_is_error_result(self, tmp_path):
        workspace = tmp_path / "ws"
        workspace.mkdir()
        registry = build_default_registry(make_session(workspace), AutoApproveInteraction())
        result = run(registry.execute("read_file", {"path": "../secret"}))
        assert not result.success
        assert "outside the workspace" in result.to_message()


class TestTaskTools:
    def test_update_todo_list(self, tmp_path):
        session = make_session(tmp_path)
        registry = build_default_registry(session, AutoApproveInteraction())
        result = run(registry.execute("update_todo_list", {"todos": "- [-] a\n- [ ] b"}))
        assert result.success
        assert "Progress: 0/2 complete" in result.output
        assert session.todos.items[0].status == TodoStatus.IN_PROGRESS

    def test_update_todo_list_rejects_backward(self, tmp_path):
        session = make_session(tmp_path)
        session.todos.replace_from_markdown("- [x] a")
        registry = build_default_registry(session, AutoApproveInteraction())
        result = run(registry.execute("update_todo_list", {"todos": "- [ ] a"}))
        assert not result.success
        assert session.todos.items[0].status == TodoStatus.COMPLETED

    def test_update_todo_list_needs_items(self, tmp_path):
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        assert not run(registry.execute("update_todo_list", {"todos": "no checklist here"})).success

    def test_pending_user_list_takes_precedence(self, tmp_path):
        session = make_session(tmp_path)
        session.pending_todo_list = parse_markdown_checklist("- [ ] user item")
        registry = build_default_registry(session, AutoApproveInteraction())
        result = run(registry.execute("update_todo_list", {"todos": "- [ ] model item"}))
        assert result.success
        assert [t.content for t in session.todos.items] == ["user item"]
        assert session.pending_todo_list is None

    def test_pending_list_is_per_session(self, tmp_path):
        first = make_session(tmp_path)
        second = make_session(tmp_path)
        first.pending_todo_list = parse_markdown_checklist("- [ ] only first")
        registry = build_default_registry(second, AutoApproveInteraction())
        run(registry.execute("update_todo_list", {"todos": "- [ ] second"}))
        assert [t.content for t in second.todos.items] == ["second"]
        assert first.pending_todo_list is not None

    def test_switch_mode(self, tmp_path):
        session = make_session(tmp_path)
        session.window.add("system", session.system_prompt())
        registry = build_default_registry(session, AutoApproveInteraction())
        result = run(registry.execute("switch_mode", {"mode_slug": "ask", "reason": "questions only"}))
        assert result.success
        assert session.mode == "ask"
        assert "from Code mode to Ask mode because: questions only" in result.output
        assert "Current mode: ask" in session.window.messages[0].content

    def test_switch_mode_invalid(self, tmp_path):
        session = make_session(tmp_path)
        registry = build_default_registry(session, AutoApproveInteraction())
        assert run(registry.execute("switch_mode", {"mode_slug": "nope"})).error == "Invalid mode: nope"
        assert run(registry.execute("switch_mode", {"mode_slug": "code"})).error == "Already in Code mode."
        assert session.mode == "code"

    def test_ask_followup_question(self, tmp_path):
        interaction = AutoApproveInteraction(answers=["use port 8080"])
        registry = build_default_registry(make_session(tmp_path), interaction)
        result = run(registry.execute("ask_followup_question", {"question": "Which port?"}))
        assert result.output == "<answer>\nuse port 8080\n</answer>"
        assert interaction.questions == ["Which port?"]

    def test_ask_followup_unanswered(self, tmp_path):
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        result = run(registry.execute("ask_followup_question", {"question": "?"}))
        assert result.success
        assert "did not answer" in result.output

    def test_attempt_completion(self, tmp_path):
        registry = build_default_registry(make_session(tmp_path), AutoApproveInteraction())
        result = run(registry.execute("attempt_completion", {"result": "all done"}))
        assert result.success and result.terminal
        assert result.output == "all done"

    def test_attempt_completion_blocked_by_open_todos(self, tmp_path):
        session = make_session(tmp_path, prevent_completion_with_open_todos=True)
        session.todos.replace_from_markdown("- [x] a\n- [ ] b")
        registry = build_default_registry(session, AutoApproveInteraction())
        result = run(registry.execute("attempt_completion", {"result": "done"}))
        assert not result.success
        assert not result.terminal
        assert "- [ ] b" in result.error

    def test_attempt_completion_open_todos_allowed_by_default(self, tmp_path):
        session = make_session(tmp_path)
        session.todos.replace_from_markdown("- [ ] b")
        registry = build_default_registry(session, AutoApproveInteraction())
        assert run(registry.execute("attempt_completion", {"result": "done"})).terminal
