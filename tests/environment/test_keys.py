"""
Tests for the tabpilot.environment.keys module.

This module tests:
- Key definitions
- Combination resolution, including ControlOrMeta per platform
- Key event sequences and modifier masks
"""

import pytest

from tabpilot.agents.exceptions import ActionError, UnsupportedKeyError
from tabpilot.environment.keys import (
    KEY_DEFINITIONS,
    build_key_events,
    resolve_key_combo,
    supported_key_names,
)


def _summary(events):
    return [(e["type"], e["key"], e["modifiers"]) for e in events]


# =============================================================================
# Definition Tests
# =============================================================================

class TestKeyDefinitions:
    """Tests for the key definition table."""

    def test_enter(self):
        """Test Enter carries its virtual key code and carriage return text."""
        enter = KEY_DEFINITIONS["Enter"]

        assert enter.key_code == 13
        assert enter.text == "\r"

    def test_letter(self):
        """Test letters map to KeyX codes."""
        a = KEY_DEFINITIONS["a"]

        assert a.code == "KeyA"
        assert a.key_code == 65
        assert a.text == "a"

    def test_modifiers(self):
        """Test modifier keys are flagged as modifiers."""
        assert KEY_DEFINITIONS["Control"].is_modifier
        assert KEY_DEFINITIONS["Meta"].key_code == 91
        assert not KEY_DEFINITIONS["Tab"].is_modifier

    def test_supported_names(self):
        """Test help output lists ControlOrMeta and common keys."""
        names = supported_key_names()

        assert "ControlOrMeta" in names
        assert "Enter" in names
        assert " " not in names


# =============================================================================
# Resolution Tests
# =============================================================================

class TestResolveKeyCombo:
    """Tests for resolve_key_combo."""

    def test_control_or_meta_on_linux(self):
        """Test ControlOrMeta resolves to Control off macOS."""
        combo = resolve_key_combo("ControlOrMeta+a", platform="linux")

        assert [m.key for m in combo.modifiers] == ["Control"]
        assert combo.key.key == "a"
        assert combo.modifier_mask == 2

    def test_control_or_meta_on_mac(self):
        """Test ControlOrMeta resolves to Meta on macOS."""
        combo = resolve_key_combo("ControlOrMeta+a", platform="darwin")

        assert [m.key for m in combo.modifiers] == ["Meta"]
        assert combo.modifier_mask == 4

    def test_aliases_and_case(self):
        """Test common spellings are accepted."""
        assert resolve_key_combo("esc").key.key == "Escape"
        assert resolve_key_combo("ctrl+A", platform="linux").describe() == "Control+a"
        assert resolve_key_combo("shift+tab").describe() == "Shift+Tab"

    def test_unknown_key(self):
        """Test unknown keys raise UnsupportedKeyError."""
        with pytest.raises(UnsupportedKeyError) as exc_info:
            resolve_key_combo("Hyper")

        assert exc_info.value.key == "Hyper"
        assert exc_info.value.as_result() == "Error: Unsupported key: Hyper"

    def test_unsupported_key_is_action_error(self):
        """Test the error is reported like other argument errors."""
        with pytest.raises(ActionError):
            resolve_key_combo("Control+Hyper")

    def test_empty_parts(self):
        """Test empty and dangling combinations are rejected."""
        for combo in ["", "  ", "Control+", "+"]:
            with pytest.raises(UnsupportedKeyError):
                resolve_key_combo(combo)

    def test_non_modifier_prefix(self):
        """Test only modifiers may precede the main key."""
        with pytest.raises(UnsupportedKeyError):
            resolve_key_combo("a+b")


# =============================================================================
# Event Sequence Tests
# =============================================================================

class TestBuildKeyEvents:
    """Tests for build_key_events."""

    def test_select_all_linux(self):
        """Test modifier down, key down/up, modifier up with matching masks."""
        events = build_key_events("ControlOrMeta+a", platform="linux")

        assert _summary(events) == [
            ("rawKeyDown", "Control", 2),
            ("rawKeyDown", "a", 2),
            ("keyUp", "a", 2),
            ("keyUp", "Control", 0),
        ]
        assert "text" not in events[1]
        assert "commands" not in events[1]

    def test_select_all_mac(self):
        """Test the Meta variant carries the selectAll editing command."""
        events = build_key_events("ControlOrMeta+a", platform="darwin")

        assert _summary(events) == [
            ("rawKeyDown", "Meta", 4),
            ("rawKeyDown", "a", 4),
            ("keyUp", "a", 4),
            ("keyUp", "Meta", 0),
        ]
        assert events[1]["commands"] == ["selectAll"]

    def test_enter_inserts_text(self):
        """Test a plain Enter is a keyDown with text."""
        events = build_key_events("Enter", platform="linux")

        assert _summary(events) == [("keyDown", "Enter", 0), ("keyUp", "Enter", 0)]
        assert events[0]["text"] == "\r"
        assert events[0]["windowsVirtualKeyCode"] == 13
        assert events[0]["code"] == "Enter"

    def test_shift_letter_uppercases_text(self):
        """Test Shift keeps text insertion and uppercases letters."""
        events = build_key_events("Shift+a", platform="linux")

        assert events[1]["type"] == "keyDown"
        assert events[1]["text"] == "A"
        assert events[1]["unmodifiedText"] == "a"
        assert events[1]["modifiers"] == 8

    def test_multiple_modifiers_release_in_reverse(self):
        """Test modifiers accumulate going down and clear in reverse order."""
        events = build_key_events("Control+Shift+Tab", platform="linux")

        assert _summary(events) == [
            ("rawKeyDown", "Control", 2),
            ("rawKeyDown", "Shift", 10),
            ("rawKeyDown", "Tab", 10),
            ("keyUp", "Tab", 10),
            ("keyUp", "Shift", 2),
            ("keyUp", "Control", 0),
        ]

    def test_non_text_key(self):
        """Test keys without text use rawKeyDown."""
        events = build_key_events("ArrowDown", platform="linux")

        assert events[0]["type"] == "rawKeyDown"
        assert events[0]["windowsVirtualKeyCode"] == 40
