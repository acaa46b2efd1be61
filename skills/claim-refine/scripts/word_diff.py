#!/usr/bin/env python3
"""
ABOUTME: Word-level diff between current and proposed field text
ABOUTME: LCS over whitespace-preserving tokens; ties emit "added" before "removed"
"""

import re
from dataclasses import dataclass
from typing import List

OP_SAME = 'same'
OP_ADDED = 'added'
OP_REMOVED = 'removed'

# Token tables above this many cells degrade to a whole-text replacement
MAX_DIFF_CELLS = 4_000_000

_WHITESPACE_SPLIT = re.compile(r'(\s+)')


@dataclass(frozen=True)
class DiffOp:
    type: str    # same | added | removed
    text: str


def tokenize(text: str) -> List[str]:
    """
    Split text into word and whitespace-run tokens.

    ''.join(tokenize(text)) == text for every input.
    """
    if not text:
        return []
    return [token for token in _WHITESPACE_SPLIT.split(text) if token]


def compute_word_diff(old_text: str, new_text: str) -> List[DiffOp]:
    """
    Compute token-level edit operations turning old_text into new_text.

    The LCS table is filled backward so that reconstruction can walk forward
    from the start. When neither branch retains a longer common subsequence,
    the "added" branch is taken first.

    Args:
        old_text: Current field value
        new_text: Proposed field value

    Returns:
        Ordered list of DiffOp
    """
    old_tokens = tokenize(old_text or '')
    new_tokens = tokenize(new_text or '')
    m = len(old_tokens)
    n = len(new_tokens)

    if (m + 1) * (n + 1) > MAX_DIFF_CELLS:
        ops = []
        if old_text:
            ops.append(DiffOp(OP_REMOVED, old_text))
        if new_text:
            ops.append(DiffOp(OP_ADDED, new_text))
        return ops

    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m - 1, -1, -1):
        row = dp[i]
        next_row = dp[i + 1]
        for j in range(n - 1, -1, -1):
            if old_tokens[i] == new_tokens[j]:
                row[j] = 1 + next_row[j + 1]
            else:
                row[j] = max(next_row[j], row[j + 1])

    ops = []
    i = j = 0
    while i < m or j < n:
        if i < m and j < n and old_tokens[i] == new_tokens[j]:
            ops.append(DiffOp(OP_SAME, old_tokens[i]))
            i += 1
            j += 1
        elif j < n and (i >= m or dp[i][j + 1] >= dp[i + 1][j]):
            ops.append(DiffOp(OP_ADDED, new_tokens[j]))
            j += 1
        else:
            ops.append(DiffOp(OP_REMOVED, old_tokens[i]))
            i += 1
    return ops


def reconstruct_old(ops: List[DiffOp]) -> str:
    return ''.join(op.text for op in ops if op.type in (OP_SAME, OP_REMOVED))


def reconstruct_new(ops: List[DiffOp]) -> str:
    return ''.join(op.text for op in ops if op.type in (OP_SAME, OP_ADDED))


def has_changes(ops: List[DiffOp]) -> bool:
    return any(op.type != OP_SAME for op in ops)


def render_diff(old_text: str, new_text: str) -> str:
    """
    Render a diff for terminal review.

    Removed runs are wrapped in [-...-] and added runs in {+...+}. Adjacent
    operations of the same type are merged first.
    """
    ops = compute_word_diff(old_text, new_text)
    if not has_changes(ops):
        return "(no text changes proposed)"

    merged = []
    for op in ops:
        if merged and merged[-1][0] == op.type:
            merged[-1][1] += op.text
        else:
            merged.append([op.type, op.text])

    parts = []
    for op_type, text in merged:
        if op_type == OP_REMOVED:
            parts.append(f"[-{text}-]")
        elif op_type == OP_ADDED:
            parts.append(f"{{+{text}+}}")
        else:
            parts.append(text)
    return ''.join(parts)
