#!/usr/bin/env python3
"""
ABOUTME: Shared LLM client and provider utilities for claim chart scripts
ABOUTME: Control-character sanitization helpers for DOCX/XLSX output
"""

import os

try:
    from google import genai
    from google.genai import types
    HAS_GEMINI = True
except ImportError:  # pragma: no cover
    genai = None
    types = None
    HAS_GEMINI = False

try:
    import openai
    HAS_OPENAI = True
except ImportError:  # pragma: no cover
    openai = None
    HAS_OPENAI = False

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_OPENAI_MODEL = "gpt-5.2"
DEFAULT_VERTEX_LOCATION = "us-central1"

# Control characters XML 1.0 forbids (tab, LF and CR are allowed)
_XML_ILLEGAL_CHARS = str.maketrans('', '', ''.join(
    chr(code) for code in range(0x20) if code not in (0x09, 0x0A, 0x0D)
))

# Substrings of Gemini error messages that retrying will not fix
_GEMINI_PERMANENT_MARKERS = (
    'api_key', 'api key', 'authenticat', 'forbidden', '403', '404', 'billing',
)


def sanitize_xml_string(text: str) -> str:
    """
    Strip characters that would make a DOCX or XLSX part invalid XML.

    AI-written evidence and reasoning can carry stray control characters;
    python-docx and openpyxl both refuse them.

    Returns:
        Cleaned text; non-strings and empty strings are returned as-is
    """
    if not text or not isinstance(text, str):
        return text
    return text.translate(_XML_ILLEGAL_CHARS)


# ============================================================
# Client creation
# ============================================================

def is_vertex_ai_mode() -> bool:
    return os.getenv("GOOGLE_GENAI_USE_VERTEXAI", "").strip().lower() == "true"


def create_gemini_client(use_async: bool = True):
    """
    Build a google-genai client from the environment.

    With GOOGLE_GENAI_USE_VERTEXAI=true the client talks to Vertex AI using
    application default credentials, GOOGLE_CLOUD_PROJECT (required),
    GOOGLE_CLOUD_LOCATION and an optional GOOGLE_VERTEX_BASE_URL gateway.
    Otherwise it uses AI Studio with GOOGLE_API_KEY.

    Returns:
        client.aio when use_async is True, else the sync client

    Raises:
        ValueError: If google-genai is missing or credentials are not configured
    """
    if not HAS_GEMINI:
        raise ValueError("google-genai is not installed; install it or use an OpenAI model.")

    if not is_vertex_ai_mode():
        key = os.getenv("GOOGLE_API_KEY")
        if not key:
            raise ValueError("GOOGLE_API_KEY is not set (or set GOOGLE_GENAI_USE_VERTEXAI=true for Vertex AI).")
        client = genai.Client(api_key=key)
        return client.aio if use_async else client

    project = os.getenv("GOOGLE_CLOUD_PROJECT")
    if not project:
        raise ValueError("Vertex AI mode needs GOOGLE_CLOUD_PROJECT.")
    base_url = os.getenv("GOOGLE_VERTEX_BASE_URL")
    client = genai.Client(
        vertexai=True,
        project=project,
        location=os.getenv("GOOGLE_CLOUD_LOCATION", DEFAULT_VERTEX_LOCATION),
        http_options={"base_url": base_url} if base_url else None,
    )
    return client.aio if use_async else client


def get_gemini_provider_name() -> str:
    if not is_vertex_ai_mode():
        return "Gemini via AI Studio"
    project = os.getenv("GOOGLE_CLOUD_PROJECT", "?")
    location = os.getenv("GOOGLE_CLOUD_LOCATION", DEFAULT_VERTEX_LOCATION)
    return f"Gemini via Vertex AI ({project}, {location})"


def create_openai_client(use_async: bool = True):
    """
    Build an OpenAI client. OPENAI_BASE_URL points it at a compatible proxy.

    Raises:
        ValueError: If openai is missing or OPENAI_API_KEY is not set
    """
    if not HAS_OPENAI:
        raise ValueError("openai is not installed; install it or use a Gemini model.")
    if not os.getenv("OPENAI_API_KEY"):
        raise ValueError("OPENAI_API_KEY is not set.")
    client_cls = openai.AsyncOpenAI if use_async else openai.OpenAI
    return client_cls(base_url=os.getenv("OPENAI_BASE_URL"))


def get_openai_provider_name() -> str:
    base_url = os.getenv("OPENAI_BASE_URL")
    return f"OpenAI-compatible ({base_url})" if base_url else "OpenAI"


def is_openai_reasoning_model(model_name: str) -> bool:
    """o-series and gpt-5 models, also behind router prefixes such as 'openrouter/o3-mini'."""
    bare_name = model_name.lower().split('/')[-1]
    return bare_name.startswith(('o1', 'o3', 'o4', 'gpt-5'))


def resolve_llm(model: str = "auto") -> tuple:
    """
    Pick provider, model name and async client.

    "auto" prefers Gemini when GOOGLE_API_KEY (or Vertex AI mode) is
    configured, otherwise OpenAI. Model names containing "gemini" use
    Gemini; anything else is treated as an OpenAI model.

    Args:
        model: "auto" or an explicit model name

    Returns:
        Tuple of (use_gemini, model_name, async client, provider display name)

    Raises:
        ValueError: If no usable provider is configured
    """
    if model == "auto":
        if HAS_GEMINI and (os.getenv("GOOGLE_API_KEY") or is_vertex_ai_mode()):
            model_name = os.getenv("CLAIM_REFINE_GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
            return True, model_name, create_gemini_client(use_async=True), get_gemini_provider_name()
        if HAS_OPENAI and os.getenv("OPENAI_API_KEY"):
            model_name = os.getenv("CLAIM_REFINE_OPENAI_MODEL", DEFAULT_OPENAI_MODEL)
            return False, model_name, create_openai_client(use_async=True), get_openai_provider_name()
        raise ValueError("No API key found. Set GOOGLE_API_KEY or OPENAI_API_KEY")

    if "gemini" in model.lower():
        return True, model, create_gemini_client(use_async=True), get_gemini_provider_name()
    return False, model, create_openai_client(use_async=True), get_openai_provider_name()


# ============================================================
# Error classification
# ============================================================

def is_openai_retryable(error: Exception) -> bool:
    """
    Whether asking the analyst to retry makes sense for an OpenAI error.

    Rate limits, connection drops and 5xx are transient. Auth, permission,
    bad-request and not-found errors need a configuration fix instead.
    """
    if not HAS_OPENAI:
        return True
    permanent = (openai.AuthenticationError, openai.PermissionDeniedError,
                 openai.BadRequestError, openai.NotFoundError)
    if isinstance(error, permanent):
        return False
    if isinstance(error, openai.APIStatusError):
        return error.status_code == 429 or error.status_code >= 500
    return True


def is_gemini_retryable(error: Exception) -> bool:
    """
    Whether asking the analyst to retry makes sense for a Gemini error.

    google-genai does not give every failure its own exception type, so the
    message text is inspected.
    """
    message = str(error).lower()
    if any(marker in message for marker in _GEMINI_PERMANENT_MARKERS):
        return False
    if 'permission' in message and 'denied' in message:
        return False
    if 'invalid' in message and ('request' in message or 'argument' in message):
        return False
    if 'model' in message and ('not found' in message or 'not exist' in message):
        return False
    return True


def is_retryable(error: Exception, use_gemini: bool) -> bool:
    if use_gemini:
        return is_gemini_retryable(error)
    return is_openai_retryable(error)


# ============================================================
# Response schemas
# ============================================================

REFINEMENT_RESULT_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "refinedReasoning": {
            "type": "string",
            "description": "New reasoning text, or empty string if no change"
        },
        "refinedEvidence": {
            "type": "string",
            "description": "New evidence text, or empty string if no change"
        },
        "confidence": {
            "type": "integer",
            "description": "Confidence in the element's infringement mapping, 0-100"
        },
        "flags": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Weaknesses or concerns; empty if none"
        },
        "explanation": {
            "type": "string",
            "description": "Explanation shown to the analyst"
        },
        "proposedChange": {
            "type": "boolean",
            "description": "True if reasoning or evidence was rewritten"
        },
        "noChangeNeeded": {
            "type": "boolean",
            "description": "True if the element is already strong"
        }
    },
    "required": [
        "refinedReasoning",
        "refinedEvidence",
        "confidence",
        "flags",
        "explanation",
        "proposedChange",
        "noChangeNeeded"
    ]
}


# ============================================================
# Raw text generation
# ============================================================

async def generate_text_gemini_async(
    user_prompt: str,
    system_prompt: str,
    model_name: str,
    client,
    response_schema: dict = None
) -> str:
    """
    Call Gemini and return the raw response text.

    The text is returned unparsed; callers run it through response_parser,
    which tolerates prose and code fences around the JSON payload.

    Args:
        user_prompt: Dynamic request content
        system_prompt: Static instructions
        model_name: Gemini model to use
        client: Gemini async client instance (client.aio)
        response_schema: Optional JSON schema for structured output

    Returns:
        Response text (may be empty)
    """
    config_params = {"system_instruction": system_prompt}
    if response_schema is not None:
        config_params["response_mime_type"] = "application/json"
        config_params["response_schema"] = response_schema

    response = await client.models.generate_content(
        model=model_name,
        contents=user_prompt,
        config=types.GenerateContentConfig(**config_params)
    )
    return response.text or ""


async def generate_text_openai_async(
    user_prompt: str,
    system_prompt: str,
    model_name: str,
    client,
    response_schema: dict = None,
    schema_name: str = "claim_refinement",
    reasoning_effort: str = None
) -> str:
    """
    Call OpenAI chat completions and return the raw message content.

    Args:
        user_prompt: Dynamic request content
        system_prompt: Static instructions
        model_name: OpenAI model to use
        client: AsyncOpenAI client instance
        response_schema: Optional JSON schema (object root) for strict output
        schema_name: Name reported with the schema
        reasoning_effort: Reasoning effort for reasoning models (low, medium, high)

    Returns:
        Message content (may be empty)
    """
    request_params = {
        "model": model_name,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ]
    }
    if response_schema is not None:
        request_params["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": schema_name,
                "strict": True,
                "schema": response_schema
            }
        }

    # Only reasoning models accept reasoning_effort
    if reasoning_effort and reasoning_effort.lower() in ("low", "medium", "high") \
            and is_openai_reasoning_model(model_name):
        request_params["reasoning_effort"] = reasoning_effort.lower()

    response = await client.chat.completions.create(**request_params)
    return response.choices[0].message.content or ""


def make_text_generator(
    use_gemini: bool,
    model_name: str,
    client,
    response_schema: dict = None,
    reasoning_effort: str = None
):
    """
    Bind provider settings into an async (system_prompt, user_prompt) -> str callable.

    reasoning_effort is only sent to OpenAI reasoning models; Gemini ignores it.
    """
    async def generate(system_prompt: str, user_prompt: str) -> str:
        if use_gemini:
            return await generate_text_gemini_async(
                user_prompt, system_prompt, model_name, client, response_schema
            )
        return await generate_text_openai_async(
            user_prompt, system_prompt, model_name, client, response_schema,
            reasoning_effort=reasoning_effort
        )

    return generate
