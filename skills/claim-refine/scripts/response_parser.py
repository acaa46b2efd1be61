#!/usr/bin/env python3
"""
ABOUTME: Tolerant extraction of JSON payloads from free-form LLM responses
ABOUTME: Produces tagged refinement results (Rewrite / NoChange / ParseFailure); never raises

Accepted grammar: one JSON object (or array, for element extraction) that may
be surrounded by prose and/or Markdown code fences. Strategies are tried in
order and the first one that yields a value of the expected type wins:

1. Direct parse when the trimmed text starts with the opening bracket.
2. First balanced bracket span, found with a quote-aware scanner.
3. Code fence markers stripped, then direct parse.
4. Every bracket-delimited candidate, longest first.
"""

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from claim_model import clamp_confidence, normalize_flags

BRACKET_PAIRS = {
    '{': '}',
    '[': ']',
}

_FENCE_RE = re.compile(r'```[ \t]*(?:json|JSON)?[ \t]*\r?\n?')


# ============================================================
# Result Types
# ============================================================

@dataclass(frozen=True)
class Rewrite:
    """AI proposed new reasoning and/or evidence text (None = field absent)"""
    refined_reasoning: Optional[str]
    refined_evidence: Optional[str]
    confidence: int
    flags: Tuple[str, ...]
    explanation: str
    proposed_change: bool = False    # AI's own proposedChange flag, informational only


@dataclass(frozen=True)
class NoChange:
    """AI returned commentary only; confirmed=True when it set noChangeNeeded"""
    confidence: int
    flags: Tuple[str, ...]
    explanation: str
    confirmed: bool = False


@dataclass(frozen=True)
class ParseFailure:
    """No usable JSON payload could be recovered"""
    reason: str
    raw_text: str = ''


RefinementResult = Union[Rewrite, NoChange, ParseFailure]


# ============================================================
# Bracket Scanning
# ============================================================

def find_balanced_end(text: str, start: int) -> Optional[int]:
    """
    Find the index of the bracket closing the one at text[start].

    Brackets inside double-quoted string literals (including escaped quotes)
    are ignored.

    Args:
        text: Text to scan
        start: Index of an opening bracket ('{' or '[')

    Returns:
        Index of the matching closing bracket, or None if unbalanced
    """
    opener = text[start]
    closer = BRACKET_PAIRS[opener]
    depth = 0
    in_string = False
    escaped = False

    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return idx
    return None


def _try_load(candidate: str, expected_type: type):
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return None
    if isinstance(value, expected_type):
        return value
    return None


def _first_balanced_span(text: str, opener: str) -> Optional[str]:
    start = text.find(opener)
    while start != -1:
        end = find_balanced_end(text, start)
        if end is not None:
            return text[start:end + 1]
        start = text.find(opener, start + 1)
    return None


def _bracket_candidates(text: str, opener: str) -> List[str]:
    """All spans from an opening bracket to its balanced close or to the last closer."""
    closer = BRACKET_PAIRS[opener]
    last_close = text.rfind(closer)
    candidates = set()
    for idx, ch in enumerate(text):
        if ch != opener:
            continue
        end = find_balanced_end(text, idx)
        if end is not None:
            candidates.add(text[idx:end + 1])
        if last_close > idx:
            candidates.add(text[idx:last_close + 1])
    return sorted(candidates, key=len, reverse=True)


def extract_json_block(text: str, opener: str = '{'):
    """
    Recover the embedded JSON value from an LLM response.

    Args:
        text: Raw response text
        opener: '{' to look for an object, '[' to look for an array

    Returns:
        Decoded dict (or list) on success, None when every strategy fails
    """
    if not isinstance(text, str) or not text.strip():
        return None
    expected_type = dict if opener == '{' else list
    trimmed = text.strip()

    # Strategy 1: direct parse
    if trimmed.startswith(opener):
        value = _try_load(trimmed, expected_type)
        if value is not None:
            return value

    # Strategy 2: first balanced span (quote-aware)
    span = _first_balanced_span(trimmed, opener)
    if span is not None:
        value = _try_load(span, expected_type)
        if value is not None:
            return value

    # Strategy 3: strip code fences
    stripped = _FENCE_RE.sub('', trimmed).strip()
    if stripped.startswith(opener):
        value = _try_load(stripped, expected_type)
        if value is not None:
            return value

    # Strategy 4: longest bracket-delimited candidate first
    for candidate in _bracket_candidates(trimmed, opener):
        value = _try_load(candidate, expected_type)
        if value is not None:
            return value

    return None


# ============================================================
# Field Coercion
# ============================================================

def _optional_text(value) -> Optional[str]:
    """Non-blank string -> the string; anything else -> None (absent)."""
    if isinstance(value, str) and value.strip():
        return value
    return None


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == 'true'
    return False


def parse_refinement_response(text: str) -> RefinementResult:
    """
    Turn a raw refinement response into a tagged result.

    A Rewrite is produced only when at least one of refinedReasoning /
    refinedEvidence is non-blank and noChangeNeeded is not set. Missing
    fields default to confidence=100, flags=(), booleans False.

    Args:
        text: Raw LLM response

    Returns:
        Rewrite, NoChange or ParseFailure
    """
    if not isinstance(text, str) or not text.strip():
        return ParseFailure(reason="Empty response", raw_text=text if isinstance(text, str) else '')

    data = extract_json_block(text, '{')
    if data is None:
        return ParseFailure(reason="No JSON object found in response", raw_text=text)

    confidence = clamp_confidence(data.get('confidence'))
    flags = normalize_flags(data.get('flags'))
    explanation = data.get('explanation') if isinstance(data.get('explanation'), str) else ''
    no_change_needed = _as_bool(data.get('noChangeNeeded'))
    refined_reasoning = _optional_text(data.get('refinedReasoning'))
    refined_evidence = _optional_text(data.get('refinedEvidence'))

    if not no_change_needed and (refined_reasoning is not None or refined_evidence is not None):
        return Rewrite(
            refined_reasoning=refined_reasoning,
            refined_evidence=refined_evidence,
            confidence=confidence,
            flags=flags,
            explanation=explanation,
            proposed_change=_as_bool(data.get('proposedChange')),
        )

    return NoChange(
        confidence=confidence,
        flags=flags,
        explanation=explanation,
        confirmed=no_change_needed,
    )


def parse_extracted_elements(text: str) -> Optional[List[dict]]:
    """
    Recover the extracted element list from an extraction response.

    Also accepts an object wrapping the list under an "elements" key.

    Returns:
        List of element dicts, or None when no array could be recovered
    """
    data = extract_json_block(text, '[')
    if data is None:
        wrapper = extract_json_block(text, '{')
        if wrapper is not None and isinstance(wrapper.get('elements'), list):
            data = wrapper['elements']
    if data is None:
        return None
    return [entry for entry in data if isinstance(entry, dict)]
