#!/usr/bin/env python3
"""
ABOUTME: Command-line front end for refining claim chart elements with an LLM
ABOUTME: Sends analyst requests, shows proposed diffs, accepts/rejects, manages versions and references
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from chart_store import ChartNotFoundError, ElementNotFoundError, JsonChartStore
from claim_model import ChatRole, ClaimElement, ContextDoc, MessageStatus
from refine_session import RefineSession
from response_parser import ParseFailure
from review import pending_message_indices
from utils import is_retryable, make_text_generator, resolve_llm, REFINEMENT_RESULT_SCHEMA
from version_store import describe_version
from word_diff import render_diff

EXIT_USAGE = 1


# ============================================================
# Display helpers
# ============================================================

def print_proposal(message_index: int, message) -> None:
    change = message.proposed_change
    print(f"  Proposal #{message_index} [{message.status.value}]")
    print(f"    Reasoning: {render_diff(change.old_reasoning, change.new_reasoning)}")
    print(f"    Evidence:  {render_diff(change.old_evidence, change.new_evidence)}")
    if change.new_confidence is not None:
        print(f"    Confidence on accept: {change.new_confidence}%")
    if change.new_flags is not None:
        print(f"    Flags on accept: {'; '.join(change.new_flags) or '(none)'}")


def print_element(element: ClaimElement, show_chat: bool = False) -> None:
    print(f"[{element.id}] {element.element}")
    print(f"  Evidence:   {element.evidence or '(none)'}")
    print(f"  Reasoning:  {element.reasoning or '(none)'}")
    print(f"  Confidence: {element.confidence}%")
    if element.flags:
        print(f"  Flags:      {'; '.join(element.flags)}")
    if element.versions:
        print(f"  Versions:   {len(element.versions)} saved")

    if show_chat:
        for idx, message in enumerate(element.chat_history):
            speaker = 'Analyst' if message.role is ChatRole.USER else 'AI'
            status = '' if message.status is MessageStatus.NONE else f" ({message.status.value})"
            print(f"  #{idx} {speaker}{status}: {message.content}")

    for idx in pending_message_indices(element):
        print_proposal(idx, element.chat_history[idx])


# ============================================================
# Sub-commands
# ============================================================

def cmd_list(store, args) -> int:
    charts = store.list_charts()
    if not charts:
        print("No charts stored.")
        return 0
    for chart in charts:
        print(f"{chart.id}  {chart.title}  ({len(chart.elements)} elements, "
              f"{len(chart.context_docs)} reference docs, created {chart.created_at})")
    return 0


def cmd_show(store, args) -> int:
    chart = store.get_chart(args.chart)
    print(f"Chart: {chart.title} ({chart.id})")
    if chart.context_docs:
        print(f"Reference docs: {', '.join(d.name for d in chart.context_docs)}")
    print("-" * 50)
    if args.element:
        print_element(store.get_element(args.chart, args.element), show_chat=True)
    else:
        for element in chart.elements:
            print_element(element)
    return 0


def cmd_refine(store, args) -> int:
    if args.dry_run:
        system_prompt, user_prompt = RefineSession(store, args.chart).build_prompts(args.element, args.query)
        print(f"\n--- System Prompt ---\n{system_prompt[:300]}...\n")
        print(f"--- User Prompt ---\n{user_prompt}")
        return 0

    try:
        use_gemini, model_name, client, provider = resolve_llm(args.model)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    print(f"Using LLM: {provider} ({model_name})")

    generate = make_text_generator(
        use_gemini, model_name, client, REFINEMENT_RESULT_SCHEMA, reasoning_effort=args.reasoning_effort
    )
    session = RefineSession(store, args.chart, generate)
    element = asyncio.run(session.submit(args.element, args.query))

    if isinstance(session.last_result, ParseFailure):
        if session.last_error is not None:
            hint = "retry later" if is_retryable(session.last_error, use_gemini) else "check LLM configuration"
            print(f"Warning: LLM call failed ({hint}): {session.last_error}", file=sys.stderr)
        else:
            print(f"Warning: {session.last_result.reason}", file=sys.stderr)

    print(f"AI: {element.chat_history[-1].content}")
    last_idx = len(element.chat_history) - 1
    if element.chat_history[-1].status is MessageStatus.PENDING:
        print_proposal(last_idx, element.chat_history[-1])
        print(f"Accept with: accept --chart {args.chart} --element {args.element} --message {last_idx}")
    else:
        print(f"Confidence: {element.confidence}%")
        if element.flags:
            print(f"Flags: {'; '.join(element.flags)}")
    return 0


def cmd_review(store, args) -> int:
    session = RefineSession(store, args.chart)
    if args.command == 'accept':
        element, applied = session.accept(args.element, args.message)
    else:
        element, applied = session.reject(args.element, args.message)

    status = element.chat_history[args.message].status.value
    if not applied:
        print(f"Warning: Message #{args.message} is not pending (status: {status}); nothing changed",
              file=sys.stderr)
        return 0
    print(f"Message #{args.message} {status}")
    print_element(element)
    return 0


def cmd_history(store, args) -> int:
    element = store.get_element(args.chart, args.element)
    if not element.versions:
        print(f"No saved versions for element {element.id}")
        return 0
    print(f"Version history for element {element.id} ({len(element.versions)} saved)")
    for idx, version in enumerate(element.versions):
        print(f"  {describe_version(idx, version)}: confidence {version.confidence}%"
              + (f", flags: {'; '.join(version.flags)}" if version.flags else ""))
        if args.verbose:
            print(f"    Evidence:  {version.evidence or '(none)'}")
            print(f"    Reasoning: {version.reasoning or '(none)'}")
    print(f'Roll back with: refine --chart {args.chart} --element {element.id} --query "restore version v1"')
    return 0


def cmd_add_reference(store, args) -> int:
    path = Path(args.file)
    if not path.exists():
        print(f"Error: Reference file not found: {args.file}", file=sys.stderr)
        return EXIT_USAGE
    text = path.read_text(encoding='utf-8')
    doc = ContextDoc(name=args.name or path.name, text=text)
    chart = store.upsert_context_doc(args.chart, doc)
    print(f"Reference document '{doc.name}' stored ({len(text)} chars); "
          f"{len(chart.context_docs)} reference docs on chart")
    return 0


def cmd_remove_reference(store, args) -> int:
    if store.remove_context_doc(args.chart, args.name):
        print(f"Reference document '{args.name}' removed")
    else:
        print(f"Warning: No reference document named '{args.name}'", file=sys.stderr)
    return 0


def cmd_delete(store, args) -> int:
    store.delete_chart(args.chart)
    print(f"Chart {args.chart} deleted")
    return 0


def cmd_export_state(store, args) -> int:
    count = store.export_state(args.output)
    print(f"Exported {count} chart(s) to {args.output}")
    return 0


def cmd_import_state(store, args) -> int:
    count = store.import_state(args.input)
    print(f"Imported {count} chart(s) from {args.input}")
    return 0


COMMANDS = {
    'list': cmd_list,
    'show': cmd_show,
    'refine': cmd_refine,
    'accept': cmd_review,
    'reject': cmd_review,
    'history': cmd_history,
    'add-reference': cmd_add_reference,
    'remove-reference': cmd_remove_reference,
    'delete': cmd_delete,
    'export-state': cmd_export_state,
    'import-state': cmd_import_state,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Refine claim chart evidence and reasoning with an LLM"
    )
    parser.add_argument(
        "--store", "-s",
        type=str,
        default=None,
        help="Chart store path (default: $CLAIM_REFINE_STORE or claim_charts.json)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List stored charts")

    p = sub.add_parser("show", help="Show a chart or a single element with its chat")
    p.add_argument("--chart", "-c", required=True)
    p.add_argument("--element", "-e", default=None)

    p = sub.add_parser("refine", help="Send an analyst request for one element")
    p.add_argument("--chart", "-c", required=True)
    p.add_argument("--element", "-e", required=True)
    p.add_argument("--query", "-q", required=True, help="Analyst request text")
    p.add_argument("--model", default="auto",
                   help="LLM model to use: a gemini-* or OpenAI model name, or auto (default: auto)")
    p.add_argument("--reasoning-effort", choices=["low", "medium", "high"],
                   default=os.getenv("CLAIM_REFINE_REASONING_EFFORT"),
                   help="Reasoning effort for OpenAI reasoning models (default: $CLAIM_REFINE_REASONING_EFFORT)")
    p.add_argument("--dry-run", action="store_true", help="Print prompts without calling the LLM")

    for name in ("accept", "reject"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a pending proposal")
        p.add_argument("--chart", "-c", required=True)
        p.add_argument("--element", "-e", required=True)
        p.add_argument("--message", "-m", type=int, required=True, help="Chat message index of the proposal")

    p = sub.add_parser("history", help="List an element's saved versions")
    p.add_argument("--chart", "-c", required=True)
    p.add_argument("--element", "-e", required=True)
    p.add_argument("--verbose", "-v", action="store_true", help="Include field text for each version")

    p = sub.add_parser("add-reference", help="Attach a plain-text reference document to a chart")
    p.add_argument("--chart", "-c", required=True)
    p.add_argument("--file", "-f", required=True)
    p.add_argument("--name", default=None, help="Document name (default: file name)")

    p = sub.add_parser("remove-reference", help="Remove a reference document from a chart")
    p.add_argument("--chart", "-c", required=True)
    p.add_argument("--name", required=True)

    p = sub.add_parser("delete", help="Delete a chart and all of its elements")
    p.add_argument("--chart", "-c", required=True)

    p = sub.add_parser("export-state", help="Write all charts to a JSON state file")
    p.add_argument("--output", "-o", required=True)

    p = sub.add_parser("import-state", help="Load charts from a JSON state file")
    p.add_argument("--input", "-i", required=True)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    handler = COMMANDS[args.command]

    try:
        with JsonChartStore(args.store) as store:
            return handler(store, args)
    except (ChartNotFoundError, ElementNotFoundError) as e:
        print(f"Error: {e.args[0] if e.args else e}", file=sys.stderr)
        return EXIT_USAGE
    except IndexError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except (ValueError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
