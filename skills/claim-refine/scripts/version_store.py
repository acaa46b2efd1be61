#!/usr/bin/env python3
"""
ABOUTME: Append-only version log per claim element and rollback target resolution
ABOUTME: Restores are proposed for review, never applied directly
"""

import re
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from claim_model import ClaimElement, ElementVersion, ProposedChange, utc_timestamp

NOTE_BEFORE_REFINEMENT = 'Before refinement'
NOTE_BEFORE_ROLLBACK = 'Before rollback'

RESTORE_VERSION_PATTERN = re.compile(r'restore\s+version\s+v?(\d+)', re.IGNORECASE)
UNDO_PATTERN = re.compile(r'\bundo\b|\brevert\b|\broll.?back\b', re.IGNORECASE)


def snapshot(element: ClaimElement, note: str, timestamp: Optional[str] = None) -> ClaimElement:
    """
    Append the element's current tracked fields to its version log.

    Args:
        element: Element to snapshot
        note: Short label stored with the version
        timestamp: ISO timestamp (defaults to now, UTC)

    Returns:
        New element whose version log is one entry longer
    """
    version = ElementVersion(
        reasoning=element.reasoning,
        evidence=element.evidence,
        confidence=element.confidence,
        flags=element.flags,
        timestamp=timestamp or utc_timestamp(),
        note=note,
    )
    return replace(element, versions=element.versions + (version,))


def is_restore_request(request_text: str) -> bool:
    if not request_text:
        return False
    return bool(RESTORE_VERSION_PATTERN.search(request_text) or UNDO_PATTERN.search(request_text))


def resolve_restore_target(versions: Sequence[ElementVersion], request_text: str) -> Optional[int]:
    """
    Map an analyst request onto an index in the version log.

    An explicit "restore version vN" (1-based, case-insensitive) takes
    precedence over generic undo/revert/rollback phrasing when both match.
    Out-of-range N resolves to the most recent version.

    Args:
        versions: Element version log
        request_text: Analyst's chat message

    Returns:
        0-based index into versions, or None when the log is empty or the
        text is not a restore request
    """
    if not versions or not request_text:
        return None

    latest = len(versions) - 1
    match = RESTORE_VERSION_PATTERN.search(request_text)
    if match:
        requested = int(match.group(1)) - 1
        if 0 <= requested <= latest:
            return requested
        return latest

    if UNDO_PATTERN.search(request_text):
        return latest
    return None


def build_restore_proposal(element: ClaimElement, target: ElementVersion) -> ProposedChange:
    """Pair the element's current values (old) with the target version's values (new)."""
    return ProposedChange(
        old_reasoning=element.reasoning,
        new_reasoning=target.reasoning,
        old_evidence=element.evidence,
        new_evidence=target.evidence,
        new_confidence=target.confidence,
        new_flags=target.flags,
        is_restore=True,
    )


def describe_version(index: int, version: ElementVersion) -> str:
    """Human label such as 'v2 (14:03:11, Before refinement)'."""
    try:
        when = datetime.fromisoformat(version.timestamp).strftime('%H:%M:%S')
    except ValueError:
        when = version.timestamp or 'unknown time'
    label = f"v{index + 1} ({when}"
    if version.note:
        label += f", {version.note}"
    return label + ")"
