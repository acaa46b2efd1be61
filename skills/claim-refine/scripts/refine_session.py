#!/usr/bin/env python3
"""
ABOUTME: Drives one analyst session: chat request -> AI call -> parse -> review routing
ABOUTME: Serializes refinement calls; at most one may be in flight per session
"""

from typing import Awaitable, Callable, Optional, Tuple

from chart_store import ChartStore
from claim_model import ChatMessage, ChatRole, ClaimElement
from prompt import build_refine_system_prompt, build_refine_user_prompt
from response_parser import ParseFailure, RefinementResult, parse_refinement_response
from review import accept_proposal, add_restore_proposal, apply_result, reject_proposal
from version_store import build_restore_proposal, describe_version, resolve_restore_target

TextGenerator = Callable[[str, str], Awaitable[str]]


class RefinementInFlightError(RuntimeError):
    """Raised when a refinement is submitted while another is still running."""


class RefineSession:
    """
    Refinement workflow for one chart.

    Args:
        store: Open ChartStore holding the chart
        chart_id: Chart being worked on
        generate: async (system_prompt, user_prompt) -> raw response text
    """

    def __init__(self, store: ChartStore, chart_id: str, generate: Optional[TextGenerator] = None):
        self.store = store
        self.chart_id = chart_id
        self._generate = generate
        self._in_flight = False
        self.last_error: Optional[Exception] = None
        self.last_result: Optional[RefinementResult] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def build_prompts(self, element_id: str, query: str) -> Tuple[str, str]:
        """Prompts a refinement of element_id would send, without recording anything."""
        chart = self.store.get_chart(self.chart_id)
        element = self.store.get_element(self.chart_id, element_id)
        user_prompt = build_refine_user_prompt(element, query.strip(), chart.context_docs, element.chat_history)
        return build_refine_system_prompt(), user_prompt

    async def submit(self, element_id: str, query: str) -> ClaimElement:
        """
        Handle one analyst request for an element.

        The analyst message is recorded before anything else so it is kept
        even when the AI call fails. Restore/undo requests that the version
        log can satisfy become rollback proposals without an AI call.

        Returns:
            The element after the assistant reply has been recorded

        Raises:
            RefinementInFlightError: If another request is still running
            ValueError: If query is blank or no generator was configured
        """
        query = (query or '').strip()
        if not query:
            raise ValueError("Query must not be empty")
        if self._in_flight:
            raise RefinementInFlightError("A refinement request is already in progress")

        self._in_flight = True
        self.last_error = None
        self.last_result = None
        try:
            user_message = ChatMessage(role=ChatRole.USER, content=query)
            element = self.store.update_element(
                self.chart_id, element_id, lambda el: el.with_message(user_message)
            )

            target_idx = resolve_restore_target(element.versions, query)
            if target_idx is not None:
                target = element.versions[target_idx]
                label = describe_version(target_idx, target)
                return self.store.update_element(
                    self.chart_id,
                    element_id,
                    lambda el: add_restore_proposal(el, build_restore_proposal(el, target), label),
                )

            if self._generate is None:
                raise ValueError("No AI generator configured for this session")

            chart = self.store.get_chart(self.chart_id)
            prior_turns = element.chat_history[:-1]
            system_prompt = build_refine_system_prompt()
            user_prompt = build_refine_user_prompt(element, query, chart.context_docs, prior_turns)

            try:
                raw_text = await self._generate(system_prompt, user_prompt)
            except Exception as e:
                self.last_error = e
                result = ParseFailure(reason=f"AI call failed: {e}")
            else:
                result = parse_refinement_response(raw_text)

            self.last_result = result
            return self.store.update_element(self.chart_id, element_id, lambda el: apply_result(el, result))
        finally:
            self._in_flight = False

    def accept(self, element_id: str, message_index: int) -> Tuple[ClaimElement, bool]:
        """Accept a pending proposal. Returns (element, applied)."""
        outcome = {}

        def _accept(element):
            updated, applied = accept_proposal(element, message_index)
            outcome['applied'] = applied
            return updated

        element = self.store.update_element(self.chart_id, element_id, _accept)
        return element, outcome['applied']

    def reject(self, element_id: str, message_index: int) -> Tuple[ClaimElement, bool]:
        """Reject a pending proposal. Returns (element, applied)."""
        outcome = {}

        def _reject(element):
            updated, applied = reject_proposal(element, message_index)
            outcome['applied'] = applied
            return updated

        element = self.store.update_element(self.chart_id, element_id, _reject)
        return element, outcome['applied']
