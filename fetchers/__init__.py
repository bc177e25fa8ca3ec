"""Fetchers package for reading Confluence space-export archives."""

from .archive import extract_archive
from .attachment_index import build_attachment_candidates
from .export_parser import ExportParser, parse_export, MANIFEST_FILENAME

__all__ = [
    'ExportParser',
    'parse_export',
    'build_attachment_candidates',
    'extract_archive',
    'MANIFEST_FILENAME'
]
