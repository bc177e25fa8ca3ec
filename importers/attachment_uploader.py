"""
Attachment storage for imported pages.

Copies the attachment files a page references out of the extracted export
into the destination storage directory and rewrites the references to their
public ``/files/...`` URLs. Whatever cannot be matched is degraded so no
placeholder survives in committed content.
"""

import hashlib
import logging
import mimetypes
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bs4 import NavigableString

from converters.html_cleaner import parse_fragment, serialize
from converters.link_processor import ATTACHMENT_REF_PREFIX
from fetchers.attachment_index import ATTACHMENTS_DIRNAME, attachment_path, page_file
from models import ExportAttachment, ImportNode, ImportWarning

FILES_URL_PREFIX = '/files'
HASH_CHUNK_SIZE = 1024 * 1024


@dataclass
class StoredAttachment:
    """An attachment file copied into destination storage."""

    id: str
    page_id: str
    file_name: str
    mime_type: str
    file_size: int
    sha256: str
    storage_path: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'page_id': self.page_id,
            'file_name': self.file_name,
            'mime_type': self.mime_type,
            'file_size': self.file_size,
            'sha256': self.sha256,
            'storage_path': self.storage_path,
            'url': self.url
        }


@dataclass
class AttachmentOutcome:
    """Rewritten page HTML and what happened to each reference."""

    html: str
    stored: List[StoredAttachment] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


class AttachmentUploader:
    """Matches references to export files and stores them for the destination."""

    def __init__(
        self,
        storage_dir: str,
        max_file_size: Optional[int] = None,
        skip_file_types: Optional[Iterable[str]] = None,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the attachment uploader.

        Args:
            storage_dir: Root directory for stored attachment files
            max_file_size: Files larger than this many bytes are skipped
            skip_file_types: File extensions (``.exe`` or ``exe``) to skip
            dry_run: Match and rewrite without copying files
            logger: Optional logger instance
        """
        self.storage_dir = Path(storage_dir)
        self.max_file_size = max_file_size
        self.skip_file_types = {
            ext.lower() if ext.startswith('.') else f'.{ext.lower()}'
            for ext in (skip_file_types or [])
        }
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.attachment_uploader')

        # sha256 -> stored attachment, shared across pages of one run
        self._by_hash: Dict[str, StoredAttachment] = {}
        self._created_files: List[Path] = []

        self.stats = {
            'references': 0,
            'stored': 0,
            'deduplicated': 0,
            'skipped': 0,
            'unresolved': 0
        }

    @classmethod
    def from_config(cls, config: Dict[str, Any], dry_run: bool = False,
                    logger: Optional[logging.Logger] = None) -> 'AttachmentUploader':
        attachments = config.get('attachments', {})
        return cls(
            storage_dir=attachments.get('storage_dir', './storage'),
            max_file_size=attachments.get('max_file_size'),
            skip_file_types=attachments.get('skip_file_types', []),
            dry_run=dry_run,
            logger=logger
        )

    def process(
        self,
        html: str,
        page_node: ImportNode,
        page_attachments: List[ExportAttachment],
        candidates: Mapping[str, str]
    ) -> AttachmentOutcome:
        """
        Store referenced files and rewrite references for one page.

        Args:
            html: Page HTML after reference resolution
            page_node: The page being committed
            page_attachments: Attachment records the parser found for the page
            candidates: Relative archive path -> absolute extracted path

        Returns:
            AttachmentOutcome
        """
        if not html:
            return AttachmentOutcome(html='')

        soup = parse_fragment(html)
        outcome = AttachmentOutcome(html='')
        page_cache: Dict[str, Optional[StoredAttachment]] = {}

        references = [(a, 'href') for a in soup.find_all('a', href=self._is_reference)]
        references += [(img, 'src') for img in soup.find_all('img', src=self._is_reference)]

        for element, attr in references:
            self.stats['references'] += 1
            reference = element[attr]

            if reference not in page_cache:
                page_cache[reference] = self._store_reference(
                    reference, page_node, page_attachments, candidates, outcome
                )
            stored = page_cache[reference]

            if stored is not None:
                element[attr] = stored.url
                if element.name == 'a':
                    element['data-attachment-id'] = stored.id
                continue

            self.stats['unresolved'] += 1
            outcome.warnings.append(ImportWarning(
                code='unresolved-attachment',
                message=f"Attachment reference '{reference}' could not be resolved; reference dropped",
                page_id=page_node.archive_local_path,
                detail=reference
            ))
            if element.name == 'img':
                element.decompose()
            else:
                element.replace_with(NavigableString(element.get_text()))

        outcome.html = serialize(soup)
        return outcome

    def discard(self) -> int:
        """Remove files stored by this run (used when the commit rolls back)."""
        removed = 0
        for path in reversed(self._created_files):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        self._created_files.clear()
        self._by_hash.clear()
        if removed:
            self.logger.info(f"Removed {removed} stored attachment files")
        return removed

    @staticmethod
    def _is_reference(value: Optional[str]) -> bool:
        return bool(value) and (
            value.startswith(ATTACHMENT_REF_PREFIX) or value.startswith(f'{ATTACHMENTS_DIRNAME}/')
        )

    def _store_reference(
        self,
        reference: str,
        page_node: ImportNode,
        page_attachments: List[ExportAttachment],
        candidates: Mapping[str, str],
        outcome: AttachmentOutcome
    ) -> Optional[StoredAttachment]:
        match = self._match(reference, page_node, page_attachments, candidates)
        if match is None:
            return None

        source, file_name, record = match
        source_path = Path(source)
        if not source_path.is_file():
            return None

        reason = self._skip_reason(source_path, file_name)
        if reason:
            self.stats['skipped'] += 1
            outcome.warnings.append(ImportWarning(
                code='attachment-skipped',
                message=f"Attachment '{file_name}' skipped: {reason}",
                page_id=page_node.archive_local_path,
                detail=file_name
            ))
            return None

        digest = file_sha256(source_path)
        existing = self._by_hash.get(digest)
        if existing is not None:
            self.stats['deduplicated'] += 1
            return existing

        stored = self._copy(source_path, file_name, record, digest, page_node)
        self._by_hash[digest] = stored
        outcome.stored.append(stored)
        self.stats['stored'] += 1
        return stored

    def _match(
        self,
        reference: str,
        page_node: ImportNode,
        page_attachments: List[ExportAttachment],
        candidates: Mapping[str, str]
    ) -> Optional[Tuple[str, str, Optional[ExportAttachment]]]:
        """Match within the page's own attachments: relative path, then attachment id, then file name."""
        page_id = page_node.archive_local_path
        if reference.startswith(ATTACHMENT_REF_PREFIX):
            file_name = reference[len(ATTACHMENT_REF_PREFIX):]
        else:
            rel_path = reference
            if rel_path in candidates:
                record = self._record_for_path(rel_path, page_attachments)
                name = record.file_name if record else PurePosixPath(rel_path).name
                return candidates[rel_path], name, record
            file_name = PurePosixPath(rel_path).name

        for record in page_attachments:
            if record.file_name != file_name:
                continue
            rel_path = attachment_path(record, candidates, page_id)
            if rel_path is not None:
                return candidates[rel_path], record.file_name, record

        rel_path = page_file(page_id, file_name, candidates)
        if rel_path is not None:
            return candidates[rel_path], file_name, None

        return None

    @staticmethod
    def _record_for_path(rel_path: str, page_attachments: List[ExportAttachment]) -> Optional[ExportAttachment]:
        segments = PurePosixPath(rel_path).parts
        for record in page_attachments:
            if record.id in segments:
                return record
        return None

    def _skip_reason(self, source_path: Path, file_name: str) -> Optional[str]:
        suffix = PurePosixPath(file_name).suffix.lower()
        if suffix and suffix in self.skip_file_types:
            return f"file type {suffix} is excluded"

        if self.max_file_size is not None:
            size = source_path.stat().st_size
            if size > self.max_file_size:
                return f"{size} bytes exceeds limit of {self.max_file_size}"
        return None

    def _copy(
        self,
        source_path: Path,
        file_name: str,
        record: Optional[ExportAttachment],
        digest: str,
        page_node: ImportNode
    ) -> StoredAttachment:
        attachment_id = str(uuid.uuid4())
        safe_name = PurePosixPath(file_name.replace('\\', '/')).name or attachment_id
        target = self.storage_dir / page_node.new_id / attachment_id / safe_name

        if not self.dry_run:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source_path, target)
            self._created_files.append(target)

        mime_type = (record.mime_type if record else None) or mimetypes.guess_type(safe_name)[0]
        self.logger.debug(f"Stored attachment {safe_name} for page {page_node.new_id}")

        return StoredAttachment(
            id=attachment_id,
            page_id=page_node.new_id,
            file_name=safe_name,
            mime_type=mime_type or 'application/octet-stream',
            file_size=source_path.stat().st_size,
            sha256=digest,
            storage_path=str(target),
            url=f'{FILES_URL_PREFIX}/{attachment_id}/{safe_name}'
        )


__all__ = ['AttachmentOutcome', 'AttachmentUploader', 'StoredAttachment', 'FILES_URL_PREFIX']
