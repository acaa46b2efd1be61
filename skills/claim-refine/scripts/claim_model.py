#!/usr/bin/env python3
"""
ABOUTME: Data model for claim charts: elements, versions, chat messages, proposals
ABOUTME: All records are frozen; changes are made by building replacement values
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

DEFAULT_CONFIDENCE = 100

# ============================================================
# Helper Functions
# ============================================================


def clamp_confidence(value, default: int = DEFAULT_CONFIDENCE) -> int:
    """
    Coerce a confidence value into an integer in [0, 100].

    Accepts ints, floats and numeric strings. Booleans, NaN and anything
    non-numeric fall back to default; infinities clamp to the nearest bound.
    """
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        value = value.strip().rstrip('%')
        try:
            value = float(value)
        except ValueError:
            return default
    if not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return default
        return 100 if value > 0 else 0
    return max(0, min(100, int(round(value))))


def normalize_flags(flags: Optional[Iterable]) -> Tuple[str, ...]:
    """
    Normalize a flag collection into a duplicate-free tuple.

    Non-string entries and blank strings are dropped. First-seen order is kept
    so that serialized charts stay stable between runs.
    """
    if not flags or isinstance(flags, (str, bytes)):
        return ()
    seen = []
    for flag in flags:
        if not isinstance(flag, str):
            continue
        flag = flag.strip()
        if flag and flag not in seen:
            seen.append(flag)
    return tuple(seen)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# Data Classes
# ============================================================


class MessageStatus(str, Enum):
    """Review state of a chat message"""
    NONE = 'none'
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'


class ChatRole(str, Enum):
    USER = 'user'
    ASSISTANT = 'assistant'


@dataclass(frozen=True)
class ElementVersion:
    """Immutable snapshot of an element's tracked fields"""
    reasoning: str
    evidence: str
    confidence: int
    flags: Tuple[str, ...]
    timestamp: str
    note: str = ''

    def to_dict(self) -> dict:
        return {
            'reasoning': self.reasoning,
            'evidence': self.evidence,
            'confidence': self.confidence,
            'flags': list(self.flags),
            'timestamp': self.timestamp,
            'note': self.note,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ElementVersion':
        return cls(
            reasoning=data.get('reasoning', '') or '',
            evidence=data.get('evidence', '') or '',
            confidence=clamp_confidence(data.get('confidence')),
            flags=normalize_flags(data.get('flags')),
            timestamp=data.get('timestamp', '') or '',
            note=data.get('note', '') or '',
        )


@dataclass(frozen=True)
class ProposedChange:
    """
    Diff-ready pair of old/new field values awaiting analyst review.

    new_confidence and new_flags are None when the proposal does not touch
    them. When present they replace the element's values wholesale on accept.
    """
    old_reasoning: str
    new_reasoning: str
    old_evidence: str
    new_evidence: str
    new_confidence: Optional[int] = None
    new_flags: Optional[Tuple[str, ...]] = None
    is_restore: bool = False     # Rollback proposals snapshot with a distinct note

    def to_dict(self) -> dict:
        data = {
            'oldReasoning': self.old_reasoning,
            'newReasoning': self.new_reasoning,
            'oldEvidence': self.old_evidence,
            'newEvidence': self.new_evidence,
            'isRestore': self.is_restore,
        }
        if self.new_confidence is not None:
            data['newConfidence'] = self.new_confidence
        if self.new_flags is not None:
            data['newFlags'] = list(self.new_flags)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'ProposedChange':
        new_confidence = data.get('newConfidence')
        new_flags = data.get('newFlags')
        return cls(
            old_reasoning=data.get('oldReasoning', '') or '',
            new_reasoning=data.get('newReasoning', '') or '',
            old_evidence=data.get('oldEvidence', '') or '',
            new_evidence=data.get('newEvidence', '') or '',
            new_confidence=None if new_confidence is None else clamp_confidence(new_confidence),
            new_flags=None if new_flags is None else normalize_flags(new_flags),
            is_restore=bool(data.get('isRestore', False)),
        )


@dataclass(frozen=True)
class ChatMessage:
    """Single chat turn attached to an element"""
    role: ChatRole
    content: str
    proposed_change: Optional[ProposedChange] = None
    status: MessageStatus = MessageStatus.NONE

    def to_dict(self) -> dict:
        data = {
            'role': self.role.value,
            'content': self.content,
            'status': self.status.value,
        }
        if self.proposed_change is not None:
            data['proposedChange'] = self.proposed_change.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'ChatMessage':
        change = data.get('proposedChange')
        return cls(
            role=ChatRole(data.get('role', 'assistant')),
            content=data.get('content', '') or '',
            proposed_change=ProposedChange.from_dict(change) if change else None,
            status=MessageStatus(data.get('status') or 'none'),
        )


@dataclass(frozen=True)
class ClaimElement:
    """One row of a claim chart"""
    id: str
    element: str
    evidence: str = ''
    reasoning: str = ''
    confidence: int = DEFAULT_CONFIDENCE
    flags: Tuple[str, ...] = ()
    versions: Tuple[ElementVersion, ...] = ()
    chat_history: Tuple[ChatMessage, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'confidence', clamp_confidence(self.confidence))
        object.__setattr__(self, 'flags', normalize_flags(self.flags))
        object.__setattr__(self, 'versions', tuple(self.versions))
        object.__setattr__(self, 'chat_history', tuple(self.chat_history))

    def with_message(self, message: ChatMessage) -> 'ClaimElement':
        return replace(self, chat_history=self.chat_history + (message,))

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'element': self.element,
            'evidence': self.evidence,
            'reasoning': self.reasoning,
            'confidence': self.confidence,
            'flags': list(self.flags),
            'versions': [v.to_dict() for v in self.versions],
            'chatHistory': [m.to_dict() for m in self.chat_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ClaimElement':
        return cls(
            id=str(data['id']),
            element=data.get('element', '') or '',
            evidence=data.get('evidence', '') or '',
            reasoning=data.get('reasoning', '') or '',
            confidence=clamp_confidence(data.get('confidence')),
            flags=normalize_flags(data.get('flags')),
            versions=tuple(ElementVersion.from_dict(v) for v in data.get('versions', [])),
            chat_history=tuple(ChatMessage.from_dict(m) for m in data.get('chatHistory', [])),
        )


@dataclass(frozen=True)
class ContextDoc:
    """Reference document text supplied by the analyst"""
    name: str
    text: str

    def to_dict(self) -> dict:
        return {'name': self.name, 'text': self.text}


@dataclass(frozen=True)
class Chart:
    """A claim chart: ordered elements plus the reference documents loaded for it"""
    id: str
    title: str
    elements: Tuple[ClaimElement, ...] = ()
    context_docs: Tuple[ContextDoc, ...] = ()
    created_at: str = field(default_factory=utc_timestamp)

    def __post_init__(self):
        object.__setattr__(self, 'elements', tuple(self.elements))
        object.__setattr__(self, 'context_docs', tuple(self.context_docs))

    def find_element(self, element_id: str) -> Optional[ClaimElement]:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'elements': [e.to_dict() for e in self.elements],
            'contextDocs': [d.to_dict() for d in self.context_docs],
            'createdAt': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Chart':
        return cls(
            id=str(data['id']),
            title=data.get('title', '') or '',
            elements=tuple(ClaimElement.from_dict(e) for e in data.get('elements', [])),
            context_docs=tuple(
                ContextDoc(name=d.get('name', ''), text=d.get('text', '') or '')
                for d in data.get('contextDocs', [])
            ),
            created_at=data.get('createdAt') or utc_timestamp(),
        )


def new_element_from_extraction(entry: dict, index: int) -> ClaimElement:
    """
    Build a fresh ClaimElement from one extracted {id, element, evidence, reasoning} entry.

    Args:
        entry: Extracted element dictionary (missing fields become empty strings)
        index: 0-based position in the extracted list, used when id is missing

    Returns:
        ClaimElement with confidence 100 and empty flags, versions and chat history
    """
    element_id = entry.get('id')
    if element_id is None or str(element_id).strip() == '':
        element_id = str(index + 1)
    return ClaimElement(
        id=str(element_id).strip(),
        element=str(entry.get('element') or ''),
        evidence=str(entry.get('evidence') or ''),
        reasoning=str(entry.get('reasoning') or ''),
        confidence=DEFAULT_CONFIDENCE,
    )


def elements_from_extraction(entries: List[Dict]) -> List[ClaimElement]:
    """
    Build elements for a new chart, skipping non-dict entries.

    Element ids must be unique within a chart. A repeated id gets a numeric
    suffix ("1.a", "1.a-2", "1.a-3") so every extracted row stays addressable.
    """
    elements = []
    seen = set()
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        element = new_element_from_extraction(entry, idx)
        if element.id in seen:
            suffix = 2
            while f"{element.id}-{suffix}" in seen:
                suffix += 1
            element = replace(element, id=f"{element.id}-{suffix}")
        seen.add(element.id)
        elements.append(element)
    return elements
