"""Tests for modes and the permission gate."""

import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from agentloop.errors import PermissionDenied
from agentloop.modes import ALWAYS_AVAILABLE_TOOLS, Mode, ModeRegistry
from agentloop.permissions import check_tool_permission, is_tool_allowed
from agentloop.tool_registry import TOOL_NAMES


class TestBuiltinModes:
    def test_ask_mode_denies_execute_command(self):
        decision = check_tool_permission("execute_command", "ask")
        assert not decision.allowed
        assert "ask" in decision.reason

    def test_code_mode_allows_read_file(self):
        assert is_tool_allowed("read_file", "code")

    def test_code_mode_allows_every_builtin_tool(self):
        for name in TOOL_NAMES:
            assert is_tool_allowed(name, "code"), name

    @pytest.mark.parametrize("tool", ["write_to_file", "apply_diff", "execute_command"])
    def test_architect_and_ask_cannot_write_or_execute(self, tool):
        assert not is_tool_allowed(tool, "architect")
        assert not is_tool_allowed(tool, "ask")

    def test_flow_tools_always_available(self):
        for slug in ("code", "architect", "ask"):
            for tool in ALWAYS_AVAILABLE_TOOLS:
                assert is_tool_allowed(tool, slug)

    def test_unknown_mode_allows_everything(self):
        assert is_tool_allowed("execute_command", "no-such-mode")

    def test_accepts_mode_object(self):
        assert not is_tool_allowed("execute_command", Mode("ask"))


class TestCustomModes:
    def test_denied_tools_win_over_everything(self):
        reviewer = Mode("reviewer", denied_tools=frozenset({"execute_command"}))
        decision = check_tool_permission("execute_command", "reviewer", [reviewer])
        assert not decision.allowed
        assert "denied by mode configuration" in decision.reason

    def test_allowed_tools_is_an_exact_list(self):
        docs = Mode("docs", allowed_tools=frozenset({"read_file", "write_to_file"}))
        assert is_tool_allowed("write_to_file", "docs", [docs])
        assert not is_tool_allowed("execute_command", "docs", [docs])

    def test_deny_beats_allow(self):
        odd = Mode("odd", allowed_tools=frozenset({"read_file"}), denied_tools=frozenset({"read_file"}))
        assert not is_tool_allowed("read_file", "odd", [odd])

    def test_custom_override_of_builtin_slug_falls_back_to_table(self):
        strict_code = Mode("code", denied_tools=frozenset({"write_to_file"}))
        assert not is_tool_allowed("write_to_file", "code", [strict_code])
        assert is_tool_allowed("apply_diff", "code", [strict_code])

    def test_denied_only_custom_mode_allows_the_rest(self):
        mode = Mode("loose", denied_tools=frozenset({"execute_command"}))
        assert is_tool_allowed("write_to_file", "loose", [mode])


class TestToolRequirements:
    def test_missing_capability_denies(self):
        decision = check_tool_permission("search_files", "code", tool_requirements={"search_files": False})
        assert not decision.allowed
        assert "capability" in decision.reason

    def test_present_capability_allows(self):
        assert is_tool_allowed("search_files", "code", tool_requirements={"search_files": True})

    def test_mode_denial_reported_first(self):
        decision = check_tool_permission("execute_command", "ask",
                                         tool_requirements={"execute_command": False})
        assert "ask mode" in decision.reason


class TestPermissionDecision:
    def test_to_error(self):
        decision = check_tool_permission("execute_command", "ask")
        error = decision.to_error()
        assert isinstance(error, PermissionDenied)
        assert error.tool_name == "execute_command"
        assert error.mode == "ask"
        assert error.to_tool_result().startswith("Error: ")


class TestModeRegistry:
    def test_custom_shadows_builtin(self):
        registry = ModeRegistry([Mode("code", name="My Code")])
        assert registry.get("code").display_name == "My Code"
        assert [m.slug for m in registry.all_modes()].count("code") == 1

    def test_from_dicts_skips_invalid(self):
        registry = ModeRegistry.from_dicts([
            {"slug": "docs", "name": "Docs", "allowedTools": ["read_file"]},
            {"name": "no slug"},
        ])
        assert [m.slug for m in registry.custom_modes] == ["docs"]
        assert registry.get("docs").allowed_tools == frozenset({"read_file"})

    def test_mode_from_dict_snake_case(self):
        mode = Mode.from_dict({"slug": "x", "denied_tools": ["execute_command"]})
        assert mode.denied_tools == frozenset({"execute_command"})
        assert mode.allowed_tools is None

    def test_mode_dict_round_trip(self):
        mode = Mode("docs", "Docs", allowed_tools=frozenset({"read_file"}), description="d")
        assert Mode.from_dict(mode.to_dict()) == mode

    def test_validate_switch(self):
        registry = ModeRegistry()
        ok = registry.validate_switch("code", "ask")
        assert ok.success and ok.previous_mode == "code" and ok.new_mode == "ask"

        unknown = registry.validate_switch("code", "nope")
        assert not unknown.success
        assert unknown.error == "Invalid mode: nope"

        same = registry.validate_switch("code", "code")
        assert not same.success
        assert same.error == "Already in Code mode."
