#!/usr/bin/env python3
"""
ABOUTME: Unit tests for word_diff.py
ABOUTME: Checks LCS edit scripts, reconstruction and the added-before-removed tie-break
"""

import sys
from pathlib import Path

# Add skills/claim-refine/scripts directory to path (must be before import)
_scripts_dir = Path(__file__).parent.parent / 'skills' / 'claim-refine' / 'scripts'
sys.path.insert(0, str(_scripts_dir))

import pytest  # noqa: E402

import word_diff  # noqa: E402  # type: ignore[import-not-found]
from word_diff import (  # noqa: E402  # type: ignore[import-not-found]
    OP_ADDED, OP_REMOVED, OP_SAME, DiffOp,
    compute_word_diff, has_changes, reconstruct_new, reconstruct_old, render_diff, tokenize,
)


SAMPLES = [
    ("", ""),
    ("", "brand new text"),
    ("old text only", ""),
    ("The device uses Zigbee.", "The device uses Zigbee 3.0 per §7.3."),
    ("a  b\tc\nd", "a b c d"),
    ("  leading and trailing  ", "leading and trailing"),
    ("same same same", "same same same"),
]


class TestTokenize:

    def test_keeps_whitespace_runs(self):
        assert tokenize("a  b\tc") == ["a", "  ", "b", "\t", "c"]

    def test_leading_whitespace(self):
        assert tokenize("  x") == ["  ", "x"]

    def test_empty(self):
        assert tokenize("") == []

    @pytest.mark.parametrize("text", [s[0] for s in SAMPLES])
    def test_join_is_identity(self, text):
        assert "".join(tokenize(text)) == text


class TestComputeWordDiff:

    @pytest.mark.parametrize("old,new", SAMPLES)
    def test_reconstruction(self, old, new):
        """Concatenating same+removed gives old; same+added gives new"""
        ops = compute_word_diff(old, new)
        assert reconstruct_old(ops) == old
        assert reconstruct_new(ops) == new

    def test_identical_texts_all_same(self):
        ops = compute_word_diff("one two", "one two")
        assert all(op.type == OP_SAME for op in ops)
        assert not has_changes(ops)

    def test_tie_emits_added_before_removed(self):
        ops = compute_word_diff("a b", "a c")
        assert ops == [
            DiffOp(OP_SAME, "a"),
            DiffOp(OP_SAME, " "),
            DiffOp(OP_ADDED, "c"),
            DiffOp(OP_REMOVED, "b"),
        ]

    def test_insertion_in_middle(self):
        ops = compute_word_diff("radio module", "radio transceiver module")
        assert [op for op in ops if op.type != OP_SAME] == [
            DiffOp(OP_ADDED, "transceiver"),
            DiffOp(OP_ADDED, " "),
        ]

    def test_empty_old(self):
        ops = compute_word_diff("", "x y")
        assert all(op.type == OP_ADDED for op in ops)

    def test_empty_new(self):
        ops = compute_word_diff("x y", "")
        assert all(op.type == OP_REMOVED for op in ops)

    def test_large_input_falls_back_to_whole_replacement(self, monkeypatch):
        monkeypatch.setattr(word_diff, "MAX_DIFF_CELLS", 10)
        ops = compute_word_diff("one two three", "four five six")
        assert ops == [
            DiffOp(OP_REMOVED, "one two three"),
            DiffOp(OP_ADDED, "four five six"),
        ]


class TestRenderDiff:

    def test_no_changes(self):
        assert render_diff("same text", "same text") == "(no text changes proposed)"

    def test_markers(self):
        assert render_diff("a b", "a c") == "a {+c+}[-b-]"

    def test_adjacent_ops_merged(self):
        assert render_diff("", "new words") == "{+new words+}"
