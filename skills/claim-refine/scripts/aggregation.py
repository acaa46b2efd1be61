#!/usr/bin/env python3
"""
ABOUTME: Merges AI-reported confidence and flags into an element outside the review path
ABOUTME: Confidence can only fall here; flags are unioned. Only accepted proposals reset them.
"""

from dataclasses import replace
from typing import Iterable

from claim_model import ClaimElement, clamp_confidence, normalize_flags


def merge_confidence(current: int, incoming) -> int:
    return min(clamp_confidence(current), clamp_confidence(incoming))


def merge_flags(current: Iterable[str], incoming: Iterable[str]) -> tuple:
    """Exact-string union; existing flags keep their position, new ones are appended."""
    return normalize_flags(list(current or ()) + list(incoming or ()))


def apply_unreviewed_update(element: ClaimElement, confidence, flags) -> ClaimElement:
    """
    Fold an unreviewed interaction's confidence/flags into the element.

    Returns the same element object when nothing changes.
    """
    new_confidence = merge_confidence(element.confidence, confidence)
    new_flags = merge_flags(element.flags, flags)
    if new_confidence == element.confidence and new_flags == element.flags:
        return element
    return replace(element, confidence=new_confidence, flags=new_flags)
