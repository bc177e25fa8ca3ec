"""Index of attachment files shipped inside an extracted export.

Exports lay attachments out as ``attachments/{pageId}/{attachmentId}/{version}``
(older exports: ``attachments/{pageId}/{attachmentId}.{ext}``). The index maps
the archive-relative path, always with forward slashes, to the absolute path on
disk; the helpers below pick the files that belong to one page.
"""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, Mapping, Optional, Union

from models import ExportAttachment

logger = logging.getLogger('confluence_space_importer.fetchers.attachment_index')

ATTACHMENTS_DIRNAME = 'attachments'


def build_attachment_candidates(extract_dir: Union[str, Path]) -> Dict[str, str]:
    """
    Walk the export's attachments directory.

    Args:
        extract_dir: Root of the extracted export

    Returns:
        Mapping of relative archive path -> absolute path; empty if the export
        has no attachments directory
    """
    root = Path(extract_dir)
    attachments_dir = root / ATTACHMENTS_DIRNAME
    candidates: Dict[str, str] = {}

    if not attachments_dir.is_dir():
        logger.debug(f"No {ATTACHMENTS_DIRNAME}/ directory in {root}")
        return candidates

    for dirpath, dirnames, filenames in os.walk(attachments_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            full_path = Path(dirpath) / filename
            rel_path = full_path.relative_to(root).as_posix()
            candidates[rel_path] = str(full_path.resolve())

    logger.debug(f"Indexed {len(candidates)} attachment files under {attachments_dir}")
    return candidates


def attachment_path(
    record: ExportAttachment,
    candidates: Mapping[str, str],
    page_id: Optional[str] = None
) -> Optional[str]:
    """
    Locate the file of one attachment record.

    Files under a directory named after the attachment id, or named after it,
    match first; among those the file named after the version wins. Failing
    that, a file with the attachment's name inside the owning page's directory.

    Args:
        record: Attachment record from the manifest
        candidates: Relative archive path -> absolute path
        page_id: Archive id of the owning page (defaults to the record's container)

    Returns:
        Relative archive path, or None
    """
    matches = []
    for rel_path in candidates:
        parts = PurePosixPath(rel_path).parts
        if record.id in parts[1:-1] or PurePosixPath(parts[-1]).stem == record.id:
            matches.append(rel_path)

    if matches:
        for rel_path in matches:
            if PurePosixPath(rel_path).name == str(record.version):
                return rel_path
        return sorted(matches)[-1]

    return page_file(page_id or record.container_id, record.file_name, candidates)


def page_file(page_id: Optional[str], file_name: str, candidates: Mapping[str, str]) -> Optional[str]:
    """File called ``file_name`` anywhere under ``attachments/<page_id>/``."""
    if not page_id or not file_name:
        return None
    prefix = f'{ATTACHMENTS_DIRNAME}/{page_id}/'
    for rel_path in candidates:
        if rel_path.startswith(prefix) and PurePosixPath(rel_path).name == file_name:
            return rel_path
    return None


def page_attachment_paths(
    page_id: str,
    attachments: Iterable[ExportAttachment],
    candidates: Mapping[str, str]
) -> Dict[str, str]:
    """File name -> relative archive path for the attachments of one page."""
    paths: Dict[str, str] = {}
    for record in attachments:
        rel_path = attachment_path(record, candidates, page_id)
        if rel_path is not None:
            paths[record.file_name] = rel_path
    return paths


__all__ = [
    'ATTACHMENTS_DIRNAME',
    'attachment_path',
    'build_attachment_candidates',
    'page_attachment_paths',
    'page_file'
]
