#!/usr/bin/env python3
"""
ABOUTME: Exports a finalized claim chart as a fixed-layout DOCX table
ABOUTME: Checks elements for weaknesses first; exporting with issues needs --force
"""

import argparse
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from docx import Document
from docx.enum.section import WD_ORIENT
from docx.shared import Cm, Pt

from chart_store import ChartNotFoundError, JsonChartStore
from claim_model import Chart, ClaimElement
from utils import sanitize_xml_string

LOW_CONFIDENCE_THRESHOLD = 50

EXIT_USAGE = 1
EXIT_EXPORT_ISSUES = 3

# Column header, width in cm
TABLE_COLUMNS = [
    ("ID", 1.6),
    ("Claim Element", 6.0),
    ("Evidence", 7.0),
    ("Reasoning", 7.0),
    ("Confidence", 2.2),
]


def get_export_issues(elements: List[ClaimElement]) -> List[Dict[str, str]]:
    """
    List elements that would weaken the exported chart.

    One issue per element at most, checked in order: missing evidence,
    flagged weaknesses, low confidence.

    Returns:
        List of {'id', 'issue'} dictionaries
    """
    issues = []
    for element in elements:
        if not element.evidence or element.evidence.strip() == '':
            issues.append({'id': element.id, 'issue': 'No evidence mapped; this element has no supporting evidence.'})
        elif element.flags:
            issues.append({'id': element.id, 'issue': f"Flagged weakness: {'; '.join(element.flags)}"})
        elif element.confidence < LOW_CONFIDENCE_THRESHOLD:
            issues.append({'id': element.id, 'issue': f"Low confidence score ({element.confidence}%)."})
    return issues


def safe_file_stem(title: str) -> str:
    stem = re.sub(r'\.[^/.]+$', '', title or 'claim_chart')
    return re.sub(r'[^a-zA-Z0-9_\- ]', '_', stem) or 'claim_chart'


def build_chart_document(chart: Chart):
    """
    Render the chart as a landscape DOCX with one table row per element.

    Args:
        chart: Chart to render

    Returns:
        python-docx Document (not yet saved)
    """
    document = Document()

    section = document.sections[0]
    section.orientation = WD_ORIENT.LANDSCAPE
    section.page_width, section.page_height = section.page_height, section.page_width
    section.left_margin = section.right_margin = Cm(1.5)

    document.add_heading(sanitize_xml_string(chart.title) or 'Claim Chart', level=1)
    document.add_paragraph(f"Exported {datetime.now().strftime('%Y-%m-%d %H:%M')}")

    table = document.add_table(rows=1, cols=len(TABLE_COLUMNS))
    table.style = 'Table Grid'
    table.autofit = False

    header_cells = table.rows[0].cells
    for idx, (label, width) in enumerate(TABLE_COLUMNS):
        header_cells[idx].width = Cm(width)
        run = header_cells[idx].paragraphs[0].add_run(label)
        run.bold = True
        run.font.size = Pt(10)

    for element in chart.elements:
        values = [
            element.id,
            element.element,
            element.evidence or '[NO EVIDENCE MAPPED]',
            element.reasoning or '[NO REASONING]',
            f"{element.confidence}%",
        ]
        row_cells = table.add_row().cells
        for idx, value in enumerate(values):
            row_cells[idx].width = Cm(TABLE_COLUMNS[idx][1])
            run = row_cells[idx].paragraphs[0].add_run(sanitize_xml_string(value))
            run.font.size = Pt(9)

    return document


def export_chart_docx(chart: Chart, output_path: str) -> Path:
    path = Path(output_path)
    build_chart_document(chart).save(str(path))
    return path


def main():
    parser = argparse.ArgumentParser(
        description="Export a claim chart as a DOCX table"
    )
    parser.add_argument("--chart", "-c", type=str, required=True, help="Chart id to export")
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output DOCX path (default: <chart title>.docx)"
    )
    parser.add_argument(
        "--store", "-s",
        type=str,
        default=None,
        help="Chart store path (default: $CLAIM_REFINE_STORE or claim_charts.json)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Export even when elements have open issues"
    )

    args = parser.parse_args()

    try:
        with JsonChartStore(args.store) as store:
            chart = store.get_chart(args.chart)
    except ChartNotFoundError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    issues = get_export_issues(list(chart.elements))
    if issues:
        noun = "elements have" if len(issues) > 1 else "element has"
        stream = sys.stdout if args.force else sys.stderr
        print(f"Warning: {len(issues)} {noun} issues that may weaken the claim chart:", file=stream)
        for issue in issues:
            print(f"  [{issue['id']}] {issue['issue']}", file=stream)
        if not args.force:
            print("Fix the issues first, or re-run with --force to export anyway.", file=sys.stderr)
            sys.exit(EXIT_EXPORT_ISSUES)

    output_path = args.output or f"{safe_file_stem(chart.title)}.docx"
    try:
        path = export_chart_docx(chart, output_path)
    except OSError as e:
        print(f"Error: Export failed, please retry: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    print(f"Exported {len(chart.elements)} elements to: {path}")


if __name__ == "__main__":
    main()
