"""
Tests for tty_core/keymap.py - key sequence tables.
"""

import pytest

from tty_core.capabilities import StaticCapabilities
from tty_core.events import KeyEvent
from tty_core.keymap import (
    DEFAULT_SEQUENCES,
    TERMINFO_KEY_NAMES,
    KeyMap,
    KeyMapEntry,
    format_key_id,
    is_literal_sequence,
    make_entry,
    modifiers_from_param,
    parse_key_id,
)


class TestKeyIds:
    """Key identifier formatting and parsing."""

    def test_plain_key(self):
        assert format_key_id("up") == "up"

    def test_modifier_order(self):
        assert format_key_id("up", shift=True, alt=True, ctrl=True) == "shift+alt+ctrl+up"
        assert format_key_id("a", ctrl=True) == "ctrl+a"

    def test_parse(self):
        assert parse_key_id("ctrl+shift+p") == ("p", True, False, True)
        assert parse_key_id("alt+left") == ("left", False, True, False)
        assert parse_key_id("f5") == ("f5", False, False, False)

    def test_parse_plus_key(self):
        assert parse_key_id("ctrl++") == ("+", False, False, True)

    def test_parse_empty(self):
        assert parse_key_id("") is None
        assert parse_key_id("ctrl+") is None

    @pytest.mark.parametrize(
        "param,expected",
        [
            (1, (False, False, False)),
            (2, (True, False, False)),
            (3, (False, True, False)),
            (5, (False, False, True)),
            (8, (True, True, True)),
            (9, (False, True, False)),
            (0, (False, False, False)),
        ],
    )
    def test_modifiers_from_param(self, param, expected):
        assert modifiers_from_param(param) == expected


class TestKeyEventMatching:
    """KeyEvent.matches against identifiers."""

    def test_matches_ctrl(self):
        assert KeyEvent(key="c", ctrl=True).matches("ctrl+c")
        assert not KeyEvent(key="c").matches("ctrl+c")

    def test_modifier_order_ignored(self):
        event = KeyEvent(key="p", shift=True, ctrl=True)
        assert event.matches("ctrl+shift+p")
        assert event.matches("shift+ctrl+p")

    def test_letter_case_ignored(self):
        assert KeyEvent(key="a", shift=True, text="A").matches("shift+A")

    def test_named_key_case_sensitive(self):
        assert KeyEvent(key="pageUp").matches("pageUp")
        assert not KeyEvent(key="pageUp").matches("pageup")

    def test_invalid_identifier(self):
        assert not KeyEvent(key="a").matches("")


class TestLiteralSequences:
    """Which capability strings can be matched literally."""

    def test_escape_sequence(self):
        assert is_literal_sequence(b"\x1b[A")
        assert is_literal_sequence(b"\x1bOP")

    def test_rejects_parameterized(self):
        assert not is_literal_sequence(b"\x1b[%i%p1%d;%p2%dH")

    def test_rejects_single_bytes(self):
        assert not is_literal_sequence(b"\x7f")
        assert not is_literal_sequence(b"\x1b")

    def test_rejects_non_escape(self):
        assert not is_literal_sequence(b"ab")
        assert not is_literal_sequence(None)
        assert not is_literal_sequence(b"")


class TestKeyMap:
    """Longest-prefix lookup."""

    def test_defaults_loaded(self):
        keymap = KeyMap.defaults()
        assert len(keymap) == len(DEFAULT_SEQUENCES)
        assert keymap.lookup(b"\x1b[A").key == "up"
        assert b"\x1bOP" in keymap

    def test_modified_default(self):
        entry = KeyMap.defaults().lookup(b"\x1b[Z")
        assert entry == KeyMapEntry(sequence=b"\x1b[Z", key="tab", shift=True)
        assert entry.key_id == "shift+tab"

    def test_is_prefix(self):
        keymap = KeyMap.defaults()
        assert keymap.is_prefix(b"\x1b")
        assert keymap.is_prefix(b"\x1b[")
        assert keymap.is_prefix(b"\x1b[1")
        assert not keymap.is_prefix(b"\x1b[A")
        assert not keymap.is_prefix(b"\x1bx")

    def test_longest_match(self):
        keymap = KeyMap([make_entry(b"\x1b[1", "f9"), make_entry(b"\x1b[1~", "home")])

        entry, size = keymap.longest_match(b"\x1b[1~rest")
        assert (entry.key, size) == ("home", 4)

        entry, size = keymap.longest_match(b"\x1b[1x")
        assert (entry.key, size) == ("f9", 3)

        assert keymap.longest_match(b"\x1b[2") is None

    def test_conflicts(self):
        keymap = KeyMap([make_entry(b"\x1b[1", "f9"), make_entry(b"\x1b[1~", "home")])
        pairs = keymap.conflicts()
        assert [(short.key, long.key) for short, long in pairs] == [("f9", "home")]

    def test_no_conflicts_in_defaults(self):
        assert KeyMap.defaults().conflicts() == []

    def test_add_replaces(self):
        keymap = KeyMap.defaults()
        keymap.add(make_entry(b"\x1b[A", "f20"))
        assert keymap.lookup(b"\x1b[A").key == "f20"
        assert len(keymap) == len(DEFAULT_SEQUENCES)

    def test_max_length(self):
        keymap = KeyMap([make_entry(b"\x1b[1;2A", "shift+up"), make_entry(b"\x1b[A", "up")])
        assert keymap.max_length == 6

    def test_make_entry_rejects_empty(self):
        with pytest.raises(ValueError):
            make_entry(b"\x1b[A", "")

    def test_iteration(self):
        entries = list(KeyMap([make_entry(b"\x1b[A", "up")]))
        assert entries == [KeyMapEntry(sequence=b"\x1b[A", key="up")]


class TestFromCapabilities:
    """Tables built from terminal capabilities."""

    def test_terminfo_keys_added(self):
        source = StaticCapabilities({"kf13": b"\x1b[1;2P", "kUP5": b"\x1b[1;5A"})
        keymap = KeyMap.from_capabilities(source)

        assert keymap.lookup(b"\x1b[1;2P").key_id == "shift+f1"
        assert keymap.lookup(b"\x1b[1;5A").key_id == "ctrl+up"

    def test_terminfo_overrides_defaults(self):
        keymap = KeyMap.from_capabilities(StaticCapabilities({"kend": b"\x1b[4~"}))
        assert keymap.lookup(b"\x1b[4~").key == "end"

        keymap = KeyMap.from_capabilities(StaticCapabilities({"kf20": b"\x1b[A"}))
        assert keymap.lookup(b"\x1b[A").key_id == "shift+f8"

    def test_mouse_capability_skipped(self):
        keymap = KeyMap.from_capabilities(StaticCapabilities({"kmous": b"\x1b[M"}))
        assert b"\x1b[M" not in keymap

    def test_unusable_capabilities_skipped(self):
        source = StaticCapabilities({"kbs": b"\x7f", "kcuu1": b"\x1b[%p1%dA"})
        keymap = KeyMap.from_capabilities(source)
        assert len(keymap) == len(DEFAULT_SEQUENCES)

    def test_known_capability_names(self):
        assert TERMINFO_KEY_NAMES["kcuu1"] == "up"
        assert TERMINFO_KEY_NAMES["kDC5"] == "ctrl+delete"
        assert TERMINFO_KEY_NAMES["kRIT3"] == "alt+right"
        assert TERMINFO_KEY_NAMES["kf25"] == "ctrl+f1"
        assert "kmous" not in TERMINFO_KEY_NAMES
