"""
Orchestration package for coordinating the import pipeline phases.

This package sequences the phases Parse → Hierarchy → Ordering → Conversion →
Commit → Report for one extracted Confluence space export.
"""

from .import_orchestrator import ImportOrchestrator, ImportPlan
from .import_report import ImportReport

__all__ = [
    'ImportOrchestrator',
    'ImportPlan',
    'ImportReport'
]
