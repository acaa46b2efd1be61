#!/usr/bin/env python3
"""
ABOUTME: Generates HTML and Excel review reports for a claim chart
ABOUTME: Summarizes confidence, flags, version history and proposal review outcomes per element
"""

import argparse
import json
import sys
from collections import Counter
from datetime import datetime
from pathlib import Path

from jinja2 import Environment
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from chart_store import ChartNotFoundError, JsonChartStore
from claim_model import Chart, MessageStatus
from export_chart import get_export_issues
from utils import sanitize_xml_string

DEFAULT_TEMPLATE = Path(__file__).parent.parent / "assets" / "report_template.html"


def generate_report_data(chart: Chart) -> dict:
    """
    Generate report data for a chart.

    Args:
        chart: Chart to summarize

    Returns:
        Dictionary with report data
    """
    issues = {issue['id']: issue['issue'] for issue in get_export_issues(list(chart.elements))}
    review_counts = Counter()
    flag_counts = Counter()
    elements = []

    for element in chart.elements:
        statuses = Counter(
            message.status for message in element.chat_history
            if message.proposed_change is not None
        )
        review_counts.update({status.value: count for status, count in statuses.items()})
        flag_counts.update(element.flags)

        elements.append({
            'id': element.id,
            'element': element.element,
            'evidence': element.evidence,
            'reasoning': element.reasoning,
            'confidence': element.confidence,
            'flags': list(element.flags),
            'version_count': len(element.versions),
            'message_count': len(element.chat_history),
            'pending': statuses.get(MessageStatus.PENDING, 0),
            'accepted': statuses.get(MessageStatus.ACCEPTED, 0),
            'rejected': statuses.get(MessageStatus.REJECTED, 0),
            'issue': issues.get(element.id, ''),
        })

    confidences = [e['confidence'] for e in elements]
    return {
        'generated_at': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        'chart_id': chart.id,
        'title': chart.title,
        'created_at': chart.created_at,
        'reference_docs': [doc.name for doc in chart.context_docs],
        'element_count': len(elements),
        'issue_count': len(issues),
        'average_confidence': round(sum(confidences) / len(confidences)) if confidences else 0,
        'elements': elements,
        'review_counts': {
            'pending': review_counts.get('pending', 0),
            'accepted': review_counts.get('accepted', 0),
            'rejected': review_counts.get('rejected', 0),
        },
        'flag_counts': dict(flag_counts),
    }


def render_report(data: dict, template_path: str, trusted_html: bool = False) -> str:
    """
    Render the HTML review report.

    Element text comes from the AI and from analysts, so autoescaping stays
    on unless trusted_html is set.

    Raises:
        FileNotFoundError: If the template does not exist
    """
    if not template_path or not Path(template_path).is_file():
        raise FileNotFoundError(f"Template file not found: {template_path}")
    env = Environment(autoescape=not trusted_html)
    return env.from_string(Path(template_path).read_text(encoding='utf-8')).render(**data)


EXCEL_COLUMNS = [
    # header, width, report key
    ("Element ID", 10, 'id'),
    ("Claim Element", 40, 'element'),
    ("Evidence", 45, 'evidence'),
    ("Reasoning", 45, 'reasoning'),
    ("Confidence", 12, 'confidence'),
    ("Flags", 30, 'flags'),
    ("Versions", 10, 'version_count'),
    ("Pending", 10, 'pending'),
    ("Accepted", 10, 'accepted'),
    ("Rejected", 10, 'rejected'),
    ("Export Issue", 35, 'issue'),
]


def generate_excel_report(data: dict, output_path: str) -> None:
    """Write one worksheet row per element, with a frozen styled header row."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Claim Chart Review"

    side = Side(style='thin')
    border = Border(left=side, right=side, top=side, bottom=side)
    header_style = {
        'font': Font(bold=True, color="FFFFFF"),
        'fill': PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid"),
        'alignment': Alignment(horizontal="center", vertical="center", wrap_text=True),
    }
    body_alignment = Alignment(vertical="top", wrap_text=True)

    for col, (header, width, _) in enumerate(EXCEL_COLUMNS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        for attr, value in header_style.items():
            setattr(cell, attr, value)
        cell.border = border
        ws.column_dimensions[get_column_letter(col)].width = width

    for row, element in enumerate(data['elements'], 2):
        for col, (_, _, key) in enumerate(EXCEL_COLUMNS, 1):
            value = element[key]
            if isinstance(value, list):
                value = "; ".join(value)
            if isinstance(value, str):
                value = sanitize_xml_string(value)
            cell = ws.cell(row=row, column=col, value=value)
            cell.alignment = body_alignment
            cell.border = border

    ws.freeze_panes = "A2"
    wb.save(output_path)


def main():
    parser = argparse.ArgumentParser(
        description="Generate an HTML review report for a claim chart"
    )
    parser.add_argument("--chart", "-c", type=str, required=True, help="Chart id to report on")
    parser.add_argument(
        "--output", "-o",
        type=str,
        default="claim_chart_report.html",
        help="Output HTML file path (default: claim_chart_report.html)"
    )
    parser.add_argument(
        "--template", "-t",
        type=str,
        default=str(DEFAULT_TEMPLATE),
        help="Path to Jinja2 HTML template (default: bundled template)"
    )
    parser.add_argument(
        "--store", "-s",
        type=str,
        default=None,
        help="Chart store path (default: $CLAIM_REFINE_STORE or claim_charts.json)"
    )
    parser.add_argument(
        "--trusted-html",
        action="store_true",
        help="Render report without HTML escaping (only for trusted inputs)"
    )
    parser.add_argument("--json", action="store_true", help="Also output report data as JSON")
    parser.add_argument("--excel", action="store_true", help="Also output report as Excel file (.xlsx)")

    args = parser.parse_args()

    if not Path(args.template).is_file():
        print(f"Error: Report template missing: {args.template}", file=sys.stderr)
        sys.exit(1)

    try:
        with JsonChartStore(args.store) as store:
            chart = store.get_chart(args.chart)
    except ChartNotFoundError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        sys.exit(1)

    print(f"Loaded chart: {chart.title} ({len(chart.elements)} elements)")
    data = generate_report_data(chart)

    html_path = Path(args.output)
    html_path.write_text(render_report(data, args.template, trusted_html=args.trusted_html), encoding='utf-8')
    written = [html_path]

    if args.json:
        written.append(html_path.with_suffix('.json'))
        written[-1].write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding='utf-8')
    if args.excel:
        written.append(html_path.with_suffix('.xlsx'))
        generate_excel_report(data, str(written[-1]))

    for path in written:
        print(f"Wrote {path}")

    counts = data['review_counts']
    print("-" * 50)
    print(f"{data['element_count']} elements, average confidence {data['average_confidence']}%, "
          f"{data['issue_count']} with export issues")
    print(f"Proposals: {counts['pending']} pending, {counts['accepted']} accepted, {counts['rejected']} rejected")


if __name__ == "__main__":
    main()
