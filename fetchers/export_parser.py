"""Parser for Confluence space-export manifests (entities.xml).

The manifest is a Hibernate object dump: a flat list of ``<object class="...">``
records whose properties reference each other by id. Only four record classes
matter for an import (Space, BodyContent, Attachment, Page) plus the
ContentProperty records newer exports use for attachment metadata and page emojis.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from bs4 import BeautifulSoup, Tag
from lxml import etree

from cancellation import check_cancelled
from errors import MalformedArchiveError
from models import (
    BodyContent,
    BodyFormat,
    ContentStatus,
    ExportAttachment,
    ExportPage,
    ImportWarning,
    ParsedPage,
    ParseResult,
    SpaceInfo,
)

MANIFEST_FILENAME = 'entities.xml'
DEFAULT_MIME_TYPE = 'application/octet-stream'
UNTITLED_PAGE = 'Untitled'
PAGE_ICON_PROPERTY = 'emoji-title-published'


class ExportParser:
    """Reads an extracted export directory into typed, filtered records."""

    def __init__(self, logger: Optional[logging.Logger] = None, cancel_token=None):
        """
        Initialize the parser.

        Args:
            logger: Optional logger instance
            cancel_token: Optional CancellationToken checked between record classes
        """
        self.logger = logger or logging.getLogger('confluence_space_importer.fetchers.export_parser')
        self.cancel_token = cancel_token

        # Record readers, one per object class we understand
        self.record_readers = {
            'Space': self._read_space,
            'SpaceDescription': self._read_space_description,
            'BodyContent': self._read_body_content,
            'Attachment': self._read_attachment,
            'ContentProperty': self._read_content_property,
            'Page': self._read_page,
        }

    def parse(self, extract_dir: Union[str, Path]) -> ParseResult:
        """
        Parse the manifest of an extracted export.

        Args:
            extract_dir: Directory containing entities.xml

        Returns:
            ParseResult with surviving pages, title index and space info

        Raises:
            MalformedArchiveError: If the manifest is missing, unparsable, or
                a record lacks its identifier
        """
        manifest_path = Path(extract_dir) / MANIFEST_FILENAME
        xml_content = self._read_manifest(manifest_path)
        return self.parse_manifest(xml_content)

    def parse_manifest(self, xml_content: bytes) -> ParseResult:
        """Parse manifest bytes already read from disk."""
        self._validate_xml(xml_content)
        soup = BeautifulSoup(xml_content, 'xml')

        records: Dict[str, List[Dict[str, Any]]] = {name: [] for name in self.record_readers}
        for obj in soup.find_all('object'):
            class_name = obj.get('class')
            reader = self.record_readers.get(class_name)
            if reader is None:
                continue
            records[class_name].append(reader(obj))

        check_cancelled(self.cancel_token, 'manifest parsing')

        result = ParseResult()
        stats = {
            'pages_seen': len(records['Page']),
            'pages_dropped_status': 0,
            'pages_dropped_historical': 0,
            'pages_missing_body': 0,
            'body_contents': 0,
            'attachments': 0,
            'attachments_dropped_historical': 0,
        }

        # Body contents are declared independently of the pages referencing them
        bodies: Dict[str, BodyContent] = {}
        for record in records['BodyContent']:
            body = record['body']
            if body.body_format == BodyFormat.STORAGE:
                bodies[body.id] = body
        stats['body_contents'] = len(bodies)

        result.space_info = self._build_space_info(records, bodies)
        if result.space_info:
            self.logger.debug(
                f"Found Confluence space: {result.space_info.name} ({result.space_info.key})"
            )

        check_cancelled(self.cancel_token, 'attachment indexing')
        attachments = self._build_attachments(records, stats)

        icons = self._build_page_icons(records)

        check_cancelled(self.cancel_token, 'page assembly')
        for record in records['Page']:
            page: ExportPage = record['page']

            if page.status != ContentStatus.CURRENT:
                stats['pages_dropped_status'] += 1
                continue

            if page.original_version_id:
                stats['pages_dropped_historical'] += 1
                continue

            content = self._resolve_markup(page, bodies)
            if content is None:
                stats['pages_missing_body'] += 1
                result.warnings.append(ImportWarning(
                    code='missing-body',
                    message=f"Page '{page.title}' has no storage-format body; importing it empty",
                    page_id=page.id
                ))
                content = ''

            parsed = ParsedPage(
                id=page.id,
                title=page.title,
                parent_id=page.parent_id,
                position=page.position,
                content=content,
                attachments=self._collect_page_attachments(page, attachments),
                icon=icons.get(page.id)
            )

            if page.title in result.title_to_id and result.title_to_id[page.title] != page.id:
                result.warnings.append(ImportWarning(
                    code='duplicate-title',
                    message=f"Several pages are titled '{page.title}'; links resolve to the last one",
                    page_id=page.id
                ))

            result.pages[page.id] = parsed
            result.title_to_id[page.title] = page.id

        stats['pages'] = len(result.pages)
        result.stats = stats

        self.logger.info(
            f"Parsed {len(result.pages)} pages and {len(attachments)} attachments "
            f"({stats['pages_dropped_status']} non-current, "
            f"{stats['pages_dropped_historical']} historical versions dropped)"
        )
        return result

    def _read_manifest(self, manifest_path: Path) -> bytes:
        """Read the manifest file as raw bytes."""
        if not manifest_path.is_file():
            raise MalformedArchiveError(
                f"Confluence export must contain an {MANIFEST_FILENAME} file: {manifest_path} not found"
            )

        try:
            return manifest_path.read_bytes()
        except OSError as e:
            self.logger.error(f"Failed to read {manifest_path}: {str(e)}")
            raise MalformedArchiveError(f"Cannot read {manifest_path}: {str(e)}") from e

    def _validate_xml(self, xml_content: bytes) -> None:
        """Reject manifests that are not well-formed XML."""
        if not xml_content or not xml_content.strip():
            raise MalformedArchiveError(f"{MANIFEST_FILENAME} is empty")

        parser = etree.XMLParser(recover=False, huge_tree=True, resolve_entities=False)
        try:
            etree.fromstring(xml_content, parser)
        except etree.XMLSyntaxError as e:
            raise MalformedArchiveError(f"{MANIFEST_FILENAME} is not well-formed XML: {str(e)}") from e

    # ------------------------------------------------------------------
    # Record readers
    # ------------------------------------------------------------------

    def _read_space(self, obj: Tag) -> Dict[str, Any]:
        return {
            'id': self._require_id(obj),
            'name': self._property_text(obj, 'name'),
            'key': self._property_text(obj, 'key') or '',
            'home_page_id': self._property_ref(obj, 'homePage'),
            'description_id': self._property_ref(obj, 'description'),
        }

    def _read_space_description(self, obj: Tag) -> Dict[str, Any]:
        return {'id': self._require_id(obj)}

    def _read_body_content(self, obj: Tag) -> Dict[str, Any]:
        body = BodyContent(
            id=self._require_id(obj),
            body_format=BodyFormat.from_body_type(self._property_text(obj, 'bodyType')),
            raw_markup=self._property_text(obj, 'body') or '',
            content_id=self._property_ref(obj, 'content')
        )
        return {'body': body}

    def _read_attachment(self, obj: Tag) -> Dict[str, Any]:
        return {
            'id': self._require_id(obj),
            'title': self._property_text(obj, 'title'),
            'content_type': self._property_text(obj, 'contentType'),
            'container_id': self._property_ref(obj, 'containerContent'),
            'file_size': self._parse_int(self._property_text(obj, 'fileSize')),
            'version': self._parse_int(self._property_text(obj, 'version')) or 1,
            'status': ContentStatus.from_value(self._property_text(obj, 'contentStatus')),
            'original_version_id': self._property_ref(obj, 'originalVersion'),
        }

    def _read_content_property(self, obj: Tag) -> Dict[str, Any]:
        return {
            'id': self._require_id(obj),
            'name': self._property_text(obj, 'name'),
            'string_value': self._property_text(obj, 'stringValue'),
            'long_value': self._parse_int(self._property_text(obj, 'longValue')),
            'content_id': self._property_ref(obj, 'content'),
        }

    def _read_page(self, obj: Tag) -> Dict[str, Any]:
        page = ExportPage(
            id=self._require_id(obj),
            title=self._property_text(obj, 'title') or UNTITLED_PAGE,
            parent_id=self._property_ref(obj, 'parent'),
            position=self._parse_int(self._property_text(obj, 'position')) or 0,
            body_content_ids=tuple(self._collection_ids(obj, 'bodyContents')),
            attachment_ids=tuple(self._collection_ids(obj, 'attachments')),
            status=ContentStatus.from_value(self._property_text(obj, 'contentStatus')),
            original_version_id=self._property_ref(obj, 'originalVersion')
        )
        return {'page': page}

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _build_space_info(
        self,
        records: Dict[str, List[Dict[str, Any]]],
        bodies: Dict[str, BodyContent]
    ) -> Optional[SpaceInfo]:
        """Build SpaceInfo from the first complete Space record."""
        for record in records['Space']:
            if not record['name']:
                continue

            description = ''
            if record['description_id']:
                for body in bodies.values():
                    if body.content_id == record['description_id']:
                        description = BeautifulSoup(body.raw_markup, 'html.parser').get_text(' ', strip=True)
                        break

            return SpaceInfo(
                id=record['id'],
                name=record['name'],
                key=record['key'],
                home_page_id=record['home_page_id'],
                description=description
            )
        return None

    def _build_attachments(
        self,
        records: Dict[str, List[Dict[str, Any]]],
        stats: Dict[str, int]
    ) -> Dict[str, ExportAttachment]:
        """Index current attachments by id, folding in ContentProperty metadata."""
        media_types: Dict[str, str] = {}
        file_sizes: Dict[str, int] = {}
        for record in records['ContentProperty']:
            if not record['content_id']:
                continue
            if record['name'] == 'MEDIA_TYPE' and record['string_value']:
                media_types[record['content_id']] = record['string_value']
            elif record['name'] == 'FILESIZE' and record['long_value'] is not None:
                file_sizes[record['content_id']] = record['long_value']

        attachments: Dict[str, ExportAttachment] = {}
        for record in records['Attachment']:
            if not record['title']:
                continue
            if record['original_version_id'] or record['status'] != ContentStatus.CURRENT:
                stats['attachments_dropped_historical'] += 1
                continue

            attachment_id = record['id']
            attachments[attachment_id] = ExportAttachment(
                id=attachment_id,
                file_name=record['title'],
                mime_type=record['content_type'] or media_types.get(attachment_id) or DEFAULT_MIME_TYPE,
                container_id=record['container_id'],
                file_size=record['file_size'] if record['file_size'] is not None else file_sizes.get(attachment_id),
                version=record['version']
            )

        stats['attachments'] = len(attachments)
        return attachments

    def _build_page_icons(self, records: Dict[str, List[Dict[str, Any]]]) -> Dict[str, str]:
        """Page id -> emoji, decoded from the hex code points Confluence stores for title emojis."""
        icons: Dict[str, str] = {}
        for record in records['ContentProperty']:
            value = record['string_value']
            if record['name'] != PAGE_ICON_PROPERTY or not record['content_id'] or not value:
                continue
            try:
                icons[record['content_id']] = ''.join(chr(int(point, 16)) for point in value.split('-'))
            except (ValueError, OverflowError):
                self.logger.warning(f"Ignoring unreadable page emoji '{value}' on {record['content_id']}")
        return icons

    def _resolve_markup(self, page: ExportPage, bodies: Dict[str, BodyContent]) -> Optional[str]:
        """Follow the page's body-content reference to its storage markup."""
        for body_id in page.body_content_ids:
            body = bodies.get(body_id)
            if body is not None:
                return body.raw_markup

        # Some exports only link the body back to the page
        for body in bodies.values():
            if body.content_id == page.id:
                return body.raw_markup

        return None

    def _collect_page_attachments(
        self,
        page: ExportPage,
        attachments: Dict[str, ExportAttachment]
    ) -> List[ExportAttachment]:
        """Union of the page's own collection and container back-references."""
        collected: Dict[str, ExportAttachment] = {}

        for attachment_id in page.attachment_ids:
            attachment = attachments.get(attachment_id)
            if attachment is not None:
                collected[attachment_id] = attachment

        for attachment_id, attachment in attachments.items():
            if attachment.container_id == page.id and attachment_id not in collected:
                collected[attachment_id] = attachment

        return list(collected.values())

    # ------------------------------------------------------------------
    # Property helpers
    # ------------------------------------------------------------------

    def _require_id(self, obj: Tag) -> str:
        """Return the record id or fail: every record shape declares one."""
        id_tag = obj.find('id', attrs={'name': 'id'}, recursive=False)
        value = id_tag.get_text(strip=True) if id_tag else ''
        if not value:
            raise MalformedArchiveError(
                f"{obj.get('class', 'object')} record without an id in {MANIFEST_FILENAME}"
            )
        return value

    @staticmethod
    def _property_text(obj: Tag, name: str) -> Optional[str]:
        prop = obj.find('property', attrs={'name': name}, recursive=False)
        if prop is None:
            return None
        value = prop.get_text().strip()
        return value or None

    @staticmethod
    def _property_ref(obj: Tag, name: str) -> Optional[str]:
        """Return the id a reference property points at."""
        prop = obj.find('property', attrs={'name': name}, recursive=False)
        if prop is None:
            return None
        id_tag = prop.find('id')
        if id_tag is None:
            return None
        return id_tag.get_text(strip=True) or None

    @staticmethod
    def _collection_ids(obj: Tag, name: str) -> List[str]:
        collection = obj.find('collection', attrs={'name': name}, recursive=False)
        if collection is None:
            return []
        ids = []
        for element in collection.find_all('element', recursive=False):
            id_tag = element.find('id')
            if id_tag is not None and id_tag.get_text(strip=True):
                ids.append(id_tag.get_text(strip=True))
        return ids

    @staticmethod
    def _parse_int(value: Optional[str]) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None


def parse_export(extract_dir: Union[str, Path], logger: Optional[logging.Logger] = None) -> ParseResult:
    """Convenience wrapper around ExportParser.parse."""
    return ExportParser(logger=logger).parse(extract_dir)


__all__ = ['ExportParser', 'parse_export', 'MANIFEST_FILENAME']
