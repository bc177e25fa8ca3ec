"""
Import report generator.

Turns an ImportResult (or a dry-run ImportPlan) into a report dictionary, a
console summary and a JSON file.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from importers.ordering_manager import sibling_sort_key
from logger import format_elapsed
from models import ImportResult, ImportWarning

MAX_WARNINGS_PER_CODE = 5


def group_warnings(warnings: List[ImportWarning]) -> Dict[str, List[ImportWarning]]:
    """Warnings keyed by code, codes sorted."""
    grouped: Dict[str, List[ImportWarning]] = {}
    for warning in warnings:
        grouped.setdefault(warning.code, []).append(warning)
    return dict(sorted(grouped.items()))


class ImportReport:
    """Builds and renders reports for import runs."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('confluence_space_importer.orchestrator.import_report')

    def generate_report(self, result: ImportResult) -> Dict[str, Any]:
        """
        Build the report dictionary for a committed run.

        Args:
            result: ImportResult returned by the orchestrator

        Returns:
            Report dictionary with summary, warnings and stats sections
        """
        grouped = group_warnings(result.warnings)
        report = {
            'summary': {
                'space_id': result.collection_id,
                'space_name': result.collection_name,
                'pages': result.page_count,
                'backlinks': result.backlink_count,
                'total_warnings': len(result.warnings),
                'duration_seconds': result.duration_seconds,
                'duration_formatted': format_elapsed(result.duration_seconds)
            },
            'warnings': {
                code: [w.to_dict() for w in items]
                for code, items in grouped.items()
            },
            'stats': result.stats,
            'committed_page_ids': list(result.committed_page_ids),
            'timestamp': result.timestamp or datetime.utcnow().isoformat()
        }

        self.logger.debug(
            f"Report generated: {result.page_count} pages, {len(result.warnings)} warnings"
        )
        return report

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """
        Format report for console display.

        Args:
            report: Dictionary from ``generate_report``

        Returns:
            Formatted console string
        """
        summary = report.get('summary', {})
        sections = [
            "=" * 60,
            "IMPORT REPORT",
            "=" * 60,
            "",
            "Summary:",
            "-" * 60,
            f"  Space:       {summary.get('space_name') or '-'} ({summary.get('space_id') or '-'})",
            f"  Pages:       {summary.get('pages', 0)}",
            f"  Backlinks:   {summary.get('backlinks', 0)}",
            f"  Warnings:    {summary.get('total_warnings', 0)}",
            f"  Duration:    {summary.get('duration_formatted', '0.0s')}",
            ""
        ]

        attachments = report.get('stats', {}).get('attachments', {})
        if attachments.get('references'):
            sections.append("Attachments:")
            sections.append("-" * 60)
            sections.append(f"  References:  {attachments.get('references', 0)}")
            sections.append(f"  Stored:      {attachments.get('stored', 0)}")
            sections.append(f"  Deduped:     {attachments.get('deduplicated', 0)}")
            if attachments.get('skipped'):
                sections.append(f"  Skipped:     {attachments['skipped']}")
            if attachments.get('unresolved'):
                sections.append(f"  Unresolved:  {attachments['unresolved']}")
            sections.append("")

        warnings = report.get('warnings', {})
        if warnings:
            sections.append("Warnings by Code:")
            sections.append("-" * 60)
            for code, items in warnings.items():
                sections.append(f"  {code}: {len(items)}")
                for item in items[:MAX_WARNINGS_PER_CODE]:
                    sections.append(f"    - {item.get('message')}")
                if len(items) > MAX_WARNINGS_PER_CODE:
                    sections.append(f"    ... and {len(items) - MAX_WARNINGS_PER_CODE} more")
            sections.append("")

        sections.append("=" * 60)
        return "\n".join(sections)

    def format_plan_preview(self, plan) -> str:
        """
        Render the page tree an import would create, for dry runs.

        Args:
            plan: ImportPlan from ``ImportOrchestrator.plan``

        Returns:
            Indented tree with one page per line
        """
        nodes = plan.hierarchy.leveled_nodes()
        children: Dict[Optional[str], List] = {}
        for node in nodes:
            children.setdefault(node.parent_id, []).append(node)
        for siblings in children.values():
            siblings.sort(key=sibling_sort_key)

        lines = [
            f"Dry run ({plan.mode.value} mode): {plan.page_count} pages would be imported",
        ]
        space_info = plan.parse_result.space_info
        if space_info is not None:
            lines.append(f"Space: {space_info.name} [{space_info.key}]")
        lines.append("")

        def walk(parent_id: Optional[str], depth: int) -> None:
            for node in children.get(parent_id, []):
                lines.append(f"{'  ' * depth}- {node.title}")
                walk(node.new_id, depth + 1)

        walk(None, 0)

        if plan.hierarchy.anomalies:
            lines.append("")
            lines.append(f"Not imported ({len(plan.hierarchy.anomalies)}):")
            for node in plan.hierarchy.anomalies:
                lines.append(f"  - {node.title}")

        grouped = group_warnings(plan.warnings)
        if grouped:
            lines.append("")
            lines.append("Warnings:")
            for code, items in grouped.items():
                lines.append(f"  {code}: {len(items)}")

        return "\n".join(lines)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Report dictionary
            filepath: Output file path

        Raises:
            OSError: If the file cannot be written
        """
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, ensure_ascii=False, default=str)

        self.logger.info(f"JSON report exported to {filepath}")


__all__ = ['ImportReport', 'group_warnings']
