#!/usr/bin/env python3
"""
ABOUTME: Centralized prompt management for claim chart LLM calls
ABOUTME: Contains system and user prompts for element refinement and element extraction
"""

import os

# Per-document character budget when reference documents are added to a prompt
REFERENCE_DOC_CHAR_LIMIT = 8000

# Character budget for chart text sent to element extraction
EXTRACTION_CHAR_LIMIT = 12000

NO_REFERENCE_DOCS_NOTICE = "(No reference documents uploaded. Do NOT fabricate any technical specifications.)"


# ============================================================
# Prompt Templates
# ============================================================

PROMPT_TEMPLATES = {
    # Refinement System Prompt
    "refine_system": """You are an expert patent litigation analyst assistant. Your role is to help strengthen patent infringement claim charts.

STRICT RULES (violating any of these is a critical error):
1. NEVER fabricate, invent, or assume any technical specifications not explicitly stated in the provided reference documents.
2. NEVER use hedging language in legal reasoning: forbidden words are "probably", "likely", "may", "might", "appears to", "suggests", "could", "seems".
3. If asked to find evidence but no relevant document is uploaded, say clearly "I cannot find this in the provided documents" and explain what document type is needed. Do NOT invent evidence.
4. Always cite specific section numbers (e.g., "§3.1") when referencing document content.
5. If asked to add a new claim element without being given the exact patent claim language, ask for it first.

Respond with a JSON object in this exact format:
{{
  "refinedReasoning": "the new/updated reasoning text, or empty string if no change",
  "refinedEvidence": "the new/updated evidence text, or empty string if no change",
  "confidence": <number 0-100>,
  "flags": ["list of weaknesses or concerns, empty array if none"],
  "explanation": "explanation to show the analyst in chat written in {output_language}, citing specific §sections if referencing docs",
  "proposedChange": <true if this response includes a rewrite of reasoning or evidence that needs analyst approval>,
  "noChangeNeeded": <true if the element is already strong and no rewrite is suggested>
}}

If the element is already well-evidenced and you are confirming its strength, set noChangeNeeded=true and do not rewrite any text.
Return ONLY the JSON object, no other text.""",

    # Refinement User Prompt
    "refine_user": """--- UPLOADED REFERENCE DOCUMENTS ---
{docs_section}

--- CLAIM ELEMENT BEING WORKED ON ---
Element ID: {element_id}
Claim Element Text: {element_text}
Current Evidence: {evidence}
Current Reasoning: {reasoning}
{history_section}
--- ANALYST REQUEST ---
{query}""",

    # Element Extraction Prompt
    "extract_system": """You are a patent data extraction assistant. Extract claim elements from claim chart text and return ONLY a valid JSON array.

Return a JSON array exactly like this (no markdown, no explanation, just the array):
[{{"id":"1.a","element":"<claim text>","evidence":"<evidence text>","reasoning":"<reasoning text>"}}]

Rules:
- Include ALL elements you find (1.a, 1.b, 1.c, 1.d, 1.e etc)
- If evidence says [NO EVIDENCE MAPPED] or similar, use empty string ""
- If reasoning says [NO REASONING] or similar, use empty string ""
- If evidence shows CONFLICTING SOURCES, include both sources in the evidence field
- Return ONLY the JSON array, starting with [ and ending with ]""",

    "extract_user": """Text to parse:
\"\"\"
{chart_text}
\"\"\"""",
}


# ============================================================
# Helper Functions
# ============================================================

def format_reference_docs(context_docs: list) -> str:
    """
    Format reference documents for the refinement prompt.

    Each document's text is cut to REFERENCE_DOC_CHAR_LIMIT characters.

    Args:
        context_docs: List of ContextDoc or {name, text} dicts

    Returns:
        Formatted string (a fixed notice when there are no documents)
    """
    if not context_docs:
        return NO_REFERENCE_DOCS_NOTICE
    sections = []
    for doc in context_docs:
        name = doc['name'] if isinstance(doc, dict) else doc.name
        text = doc['text'] if isinstance(doc, dict) else doc.text
        sections.append(f'=== DOCUMENT: "{name}" ===\n{(text or "")[:REFERENCE_DOC_CHAR_LIMIT]}\n')
    return "\n".join(sections)


def format_chat_history(turns: list) -> str:
    """Render prior turns as 'Analyst: ...' / 'AI: ...' lines."""
    lines = []
    for turn in turns:
        role = turn['role'] if isinstance(turn, dict) else turn.role.value
        content = turn['content'] if isinstance(turn, dict) else turn.content
        speaker = 'Analyst' if role == 'user' else 'AI'
        lines.append(f"{speaker}: {content}")
    return "\n".join(lines)


# ============================================================
# Refinement Prompts
# ============================================================

def build_refine_system_prompt() -> str:
    output_language = os.getenv("CLAIM_REFINE_LANGUAGE", "English")
    return PROMPT_TEMPLATES["refine_system"].format(output_language=output_language)


def build_refine_user_prompt(element, query: str, context_docs: list, prior_turns: list) -> str:
    """
    Build the user prompt for one refinement request.

    Args:
        element: ClaimElement being refined
        query: Analyst request text
        context_docs: Reference documents loaded for the chart
        prior_turns: Earlier chat turns, excluding the request itself

    Returns:
        User prompt string
    """
    history_text = format_chat_history(prior_turns)
    history_section = f"\n--- PRIOR CONVERSATION ---\n{history_text}\n" if history_text else ""
    return PROMPT_TEMPLATES["refine_user"].format(
        docs_section=format_reference_docs(context_docs),
        element_id=element.id,
        element_text=element.element,
        evidence=element.evidence or '(none)',
        reasoning=element.reasoning or '(none)',
        history_section=history_section,
        query=query,
    )


# ============================================================
# Extraction Prompts
# ============================================================

def build_extract_system_prompt() -> str:
    return PROMPT_TEMPLATES["extract_system"]


def build_extract_user_prompt(chart_text: str) -> str:
    return PROMPT_TEMPLATES["extract_user"].format(chart_text=(chart_text or "")[:EXTRACTION_CHAR_LIMIT])
