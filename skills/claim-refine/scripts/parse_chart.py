#!/usr/bin/env python3
"""
ABOUTME: Builds a new claim chart from chart text via LLM element extraction
ABOUTME: Also accepts a pre-extracted JSON element list (no LLM call)
"""

import argparse
import asyncio
import json
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from chart_store import JsonChartStore
from claim_model import Chart, ClaimElement, elements_from_extraction
from prompt import build_extract_system_prompt, build_extract_user_prompt
from response_parser import parse_extracted_elements
from utils import make_text_generator, resolve_llm

# Extracted chart text shorter than this is treated as an extraction failure
MIN_CHART_TEXT_LENGTH = 20

TEXT_SUFFIXES = {'.txt', '.md', '.markdown', '.text'}

EXIT_USAGE = 1
EXIT_EXTRACTION_FAILED = 2


def load_elements_json(file_path: str) -> List[ClaimElement]:
    """
    Load pre-extracted elements from a JSON file.

    Accepts a bare list or an object with an "elements" list.

    Raises:
        ValueError: If the file format is not recognized
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict) and isinstance(data.get('elements'), list):
        data = data['elements']
    if not isinstance(data, list):
        raise ValueError(f"Unknown elements format in {file_path}")
    return elements_from_extraction(data)


async def extract_elements_async(chart_text: str, generate) -> Optional[List[ClaimElement]]:
    """
    Ask the LLM to extract claim elements from chart text.

    Args:
        chart_text: Already-decoded chart text
        generate: async (system_prompt, user_prompt) -> raw response text

    Returns:
        List of new elements, or None if the text is too short or the
        response holds no recoverable element array
    """
    if not chart_text or len(chart_text.strip()) < MIN_CHART_TEXT_LENGTH:
        return None
    raw_text = await generate(build_extract_system_prompt(), build_extract_user_prompt(chart_text))
    entries = parse_extracted_elements(raw_text)
    if not entries:
        return None
    return elements_from_extraction(entries)


def new_chart_id() -> str:
    return f"chart_{int(time.time() * 1000)}"


def main():
    parser = argparse.ArgumentParser(
        description="Extract claim elements from a claim chart and store them as a new chart"
    )
    parser.add_argument(
        "--input", "-i",
        type=str,
        required=True,
        help="Chart text file (.txt/.md) or pre-extracted elements (.json)"
    )
    parser.add_argument(
        "--title", "-t",
        type=str,
        default=None,
        help="Chart title (default: input file name without extension)"
    )
    parser.add_argument(
        "--store", "-s",
        type=str,
        default=None,
        help="Chart store path (default: $CLAIM_REFINE_STORE or claim_charts.json)"
    )
    parser.add_argument(
        "--model",
        type=str,
        default="auto",
        help="LLM model to use: a gemini-* or OpenAI model name, or auto (default: auto)"
    )
    parser.add_argument(
        "--reasoning-effort",
        choices=["low", "medium", "high"],
        default=os.getenv("CLAIM_REFINE_REASONING_EFFORT"),
        help="Reasoning effort for OpenAI reasoning models (default: $CLAIM_REFINE_REASONING_EFFORT)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the extraction prompt without calling the LLM"
    )

    args = parser.parse_args()

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    suffix = input_path.suffix.lower()
    title = args.title or input_path.stem

    if suffix == '.json':
        try:
            elements = load_elements_json(str(input_path))
        except (ValueError, json.JSONDecodeError) as e:
            print(f"Error: Element extraction failed: {e}", file=sys.stderr)
            sys.exit(EXIT_EXTRACTION_FAILED)
    elif suffix in TEXT_SUFFIXES:
        chart_text = input_path.read_text(encoding='utf-8')
        print(f"Loaded chart text: {len(chart_text)} chars")

        if args.dry_run:
            print(f"\n--- System Prompt ---\n{build_extract_system_prompt()[:300]}...\n")
            print(f"--- User Prompt ---\n{build_extract_user_prompt(chart_text)[:300]}...")
            return

        try:
            use_gemini, model_name, client, provider = resolve_llm(args.model)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(EXIT_USAGE)
        print(f"Using LLM: {provider} ({model_name})")

        generate = make_text_generator(use_gemini, model_name, client, reasoning_effort=args.reasoning_effort)
        try:
            elements = asyncio.run(extract_elements_async(chart_text, generate))
        except Exception as e:
            print(f"Error: Element extraction failed: {e}", file=sys.stderr)
            sys.exit(EXIT_EXTRACTION_FAILED)
        if elements is None:
            print("Error: Element extraction failed: no claim elements could be read from the chart text",
                  file=sys.stderr)
            sys.exit(EXIT_EXTRACTION_FAILED)
    else:
        print(f"Error: Unsupported input type '{suffix}'. Convert the chart to plain text first.",
              file=sys.stderr)
        sys.exit(EXIT_USAGE)

    chart = Chart(id=new_chart_id(), title=title, elements=tuple(elements))
    with JsonChartStore(args.store) as store:
        store.save_chart(chart)
        store_path = store.path

    print("-" * 50)
    print(f"Chart created: {chart.id} ({chart.title})")
    print(f"Elements: {len(chart.elements)}")
    for element in chart.elements:
        print(f"  [{element.id}] {element.element[:60]}")
    print(f"Saved to: {store_path}")


if __name__ == "__main__":
    main()
