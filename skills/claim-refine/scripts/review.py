#!/usr/bin/env python3
"""
ABOUTME: Proposal/review state machine for AI-suggested element changes
ABOUTME: pending -> accepted | rejected, both terminal; repeated decisions are no-ops
"""

from dataclasses import replace
from enum import Enum
from typing import List, Optional, Tuple

from aggregation import apply_unreviewed_update
from claim_model import ChatMessage, ChatRole, ClaimElement, MessageStatus, ProposedChange
from response_parser import NoChange, ParseFailure, RefinementResult, Rewrite
from version_store import NOTE_BEFORE_REFINEMENT, NOTE_BEFORE_ROLLBACK, snapshot

REFINEMENT_FAILED_MESSAGE = "AI refinement failed. Please try again."
DEFAULT_PROPOSAL_MESSAGE = "Here is my proposed refinement:"
DEFAULT_CONFIRMED_MESSAGE = "This element is well-supported. No changes are needed."
DEFAULT_COMMENTARY_MESSAGE = "Analysis complete."


class ReviewDecision(str, Enum):
    ACCEPT = 'accept'
    REJECT = 'reject'


def next_status(status: MessageStatus, decision: ReviewDecision) -> Optional[MessageStatus]:
    """
    Resolve the status a message moves to under a review decision.

    Returns None when the message cannot transition (not pending, or already
    decided).
    """
    if status is MessageStatus.PENDING:
        if decision is ReviewDecision.ACCEPT:
            return MessageStatus.ACCEPTED
        if decision is ReviewDecision.REJECT:
            return MessageStatus.REJECTED
        raise ValueError(f"Unknown review decision: {decision!r}")
    if status in (MessageStatus.NONE, MessageStatus.ACCEPTED, MessageStatus.REJECTED):
        return None
    raise ValueError(f"Unknown message status: {status!r}")


# ============================================================
# Routing parsed AI results
# ============================================================

def build_rewrite_proposal(element: ClaimElement, result: Rewrite) -> ProposedChange:
    """An absent refined field proposes the current value, i.e. no change."""
    return ProposedChange(
        old_reasoning=element.reasoning,
        new_reasoning=result.refined_reasoning if result.refined_reasoning is not None else element.reasoning,
        old_evidence=element.evidence,
        new_evidence=result.refined_evidence if result.refined_evidence is not None else element.evidence,
        new_confidence=result.confidence,
        new_flags=result.flags,
    )


def apply_result(element: ClaimElement, result: RefinementResult) -> ClaimElement:
    """
    Record a parsed AI result on the element's chat history.

    Rewrite -> pending assistant message carrying a ProposedChange; element
    fields untouched until accepted.
    NoChange -> plain assistant message; confidence/flags merged through the
    unreviewed path.
    ParseFailure -> generic failure message; nothing else changes.
    """
    if isinstance(result, Rewrite):
        message = ChatMessage(
            role=ChatRole.ASSISTANT,
            content=result.explanation or DEFAULT_PROPOSAL_MESSAGE,
            proposed_change=build_rewrite_proposal(element, result),
            status=MessageStatus.PENDING,
        )
        return element.with_message(message)

    if isinstance(result, NoChange):
        default = DEFAULT_CONFIRMED_MESSAGE if result.confirmed else DEFAULT_COMMENTARY_MESSAGE
        updated = apply_unreviewed_update(element, result.confidence, result.flags)
        return updated.with_message(ChatMessage(role=ChatRole.ASSISTANT, content=result.explanation or default))

    if isinstance(result, ParseFailure):
        return element.with_message(ChatMessage(role=ChatRole.ASSISTANT, content=REFINEMENT_FAILED_MESSAGE))

    raise TypeError(f"Unsupported refinement result: {type(result).__name__}")


def add_restore_proposal(element: ClaimElement, proposal: ProposedChange, label: str) -> ClaimElement:
    message = ChatMessage(
        role=ChatRole.ASSISTANT,
        content=f"Here is what the rollback to version {label} would change:",
        proposed_change=proposal,
        status=MessageStatus.PENDING,
    )
    return element.with_message(message)


# ============================================================
# Review transitions
# ============================================================

def _get_message(element: ClaimElement, message_index: int) -> ChatMessage:
    if not 0 <= message_index < len(element.chat_history):
        raise IndexError(
            f"Message index {message_index} out of range for element {element.id} "
            f"({len(element.chat_history)} messages)"
        )
    return element.chat_history[message_index]


def _with_status(element: ClaimElement, message_index: int, status: MessageStatus) -> Tuple[ChatMessage, ...]:
    history = list(element.chat_history)
    history[message_index] = replace(history[message_index], status=status)
    return tuple(history)


def accept_proposal(element: ClaimElement, message_index: int) -> Tuple[ClaimElement, bool]:
    """
    Accept the pending proposal on chat message message_index.

    Snapshots the pre-change fields, overwrites reasoning/evidence only where
    the proposed value is non-empty, replaces confidence/flags wholesale when
    the proposal carries them, and marks the message accepted.

    Returns:
        (element, applied) - applied is False and element is returned
        unchanged when the message is not pending
    """
    message = _get_message(element, message_index)
    status = next_status(message.status, ReviewDecision.ACCEPT)
    proposal = message.proposed_change
    if status is None or proposal is None:
        return element, False

    note = NOTE_BEFORE_ROLLBACK if proposal.is_restore else NOTE_BEFORE_REFINEMENT
    updated = snapshot(element, note)
    updated = replace(
        updated,
        reasoning=proposal.new_reasoning or element.reasoning,
        evidence=proposal.new_evidence or element.evidence,
        confidence=element.confidence if proposal.new_confidence is None else proposal.new_confidence,
        flags=element.flags if proposal.new_flags is None else proposal.new_flags,
        chat_history=_with_status(element, message_index, status),
    )
    return updated, True


def reject_proposal(element: ClaimElement, message_index: int) -> Tuple[ClaimElement, bool]:
    """Mark a pending proposal rejected; element fields and versions stay untouched."""
    message = _get_message(element, message_index)
    status = next_status(message.status, ReviewDecision.REJECT)
    if status is None:
        return element, False
    return replace(element, chat_history=_with_status(element, message_index, status)), True


def pending_message_indices(element: ClaimElement) -> List[int]:
    return [
        idx for idx, message in enumerate(element.chat_history)
        if message.status is MessageStatus.PENDING
    ]
