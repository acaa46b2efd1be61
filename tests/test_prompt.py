#!/usr/bin/env python3
"""
ABOUTME: Unit tests for prompt.py
"""

import sys
from pathlib import Path

# Add skills/claim-refine/scripts directory to path (must be before import)
_scripts_dir = Path(__file__).parent.parent / 'skills' / 'claim-refine' / 'scripts'
sys.path.insert(0, str(_scripts_dir))

from claim_model import ChatMessage, ChatRole, ClaimElement, ContextDoc  # noqa: E402  # type: ignore[import-not-found]
from prompt import (  # noqa: E402  # type: ignore[import-not-found]
    EXTRACTION_CHAR_LIMIT,
    NO_REFERENCE_DOCS_NOTICE,
    REFERENCE_DOC_CHAR_LIMIT,
    build_extract_system_prompt,
    build_extract_user_prompt,
    build_refine_system_prompt,
    build_refine_user_prompt,
    format_chat_history,
    format_reference_docs,
)


def test_reference_docs_truncated():
    text = format_reference_docs([ContextDoc("manual.md", "x" * (REFERENCE_DOC_CHAR_LIMIT + 500))])
    assert text.startswith('=== DOCUMENT: "manual.md" ===\n')
    assert text.count("x") == REFERENCE_DOC_CHAR_LIMIT


def test_reference_docs_accept_dicts():
    text = format_reference_docs([{"name": "a.txt", "text": "alpha"}, {"name": "b.txt", "text": "beta"}])
    assert '=== DOCUMENT: "a.txt" ===\nalpha' in text
    assert '=== DOCUMENT: "b.txt" ===\nbeta' in text


def test_no_reference_docs():
    assert format_reference_docs([]) == NO_REFERENCE_DOCS_NOTICE


def test_chat_history_speakers():
    turns = [ChatMessage(ChatRole.USER, "Find evidence"), ChatMessage(ChatRole.ASSISTANT, "Done")]
    assert format_chat_history(turns) == "Analyst: Find evidence\nAI: Done"


def test_refine_user_prompt():
    element = ClaimElement(id="1.c", element="a processor", evidence="", reasoning="Has a CPU.")
    prompt = build_refine_user_prompt(
        element, "Add evidence", [ContextDoc("ds.txt", "§4 ARM Cortex-M33")],
        [ChatMessage(ChatRole.USER, "earlier question")],
    )
    assert "Element ID: 1.c" in prompt
    assert "Current Evidence: (none)" in prompt
    assert "Analyst: earlier question" in prompt
    assert prompt.rstrip().endswith("Add evidence")


def test_refine_system_prompt_language(monkeypatch):
    monkeypatch.setenv("CLAIM_REFINE_LANGUAGE", "German")
    prompt = build_refine_system_prompt()
    assert "written in German" in prompt
    assert '"noChangeNeeded"' in prompt


def test_extract_prompts():
    assert "JSON array" in build_extract_system_prompt()
    user_prompt = build_extract_user_prompt("y" * (EXTRACTION_CHAR_LIMIT + 100))
    assert user_prompt.count("y") == EXTRACTION_CHAR_LIMIT
