"""Data models for the Confluence space-export import pipeline."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime

logger = logging.getLogger('confluence_space_importer')


class ContentStatus(Enum):
    """Lifecycle status of a record in the export manifest."""
    CURRENT = "current"
    HISTORICAL = "historical"
    DRAFT = "draft"
    DELETED = "deleted"

    @classmethod
    def from_value(cls, value: Optional[str]) -> 'ContentStatus':
        """Map a raw ``contentStatus`` value, treating absence as current."""
        if not value:
            return cls.CURRENT
        try:
            return cls(value.strip().lower())
        except ValueError:
            # Anything the archive invents that is not "current" is not importable
            return cls.HISTORICAL


class BodyFormat(Enum):
    """Body encoding of a BodyContent record (bodyType 2 is storage format)."""
    STORAGE = "storage"
    OTHER = "other"

    @classmethod
    def from_body_type(cls, body_type: Optional[str]) -> 'BodyFormat':
        return cls.STORAGE if (body_type or '').strip() == '2' else cls.OTHER


class ImportMode(Enum):
    """How the archive is mapped onto the destination."""
    SPACE = "space"
    PAGES = "pages"


class OrphanPolicy(Enum):
    """What to do with a page whose archive parent did not survive parsing."""
    SKIP = "skip"
    PROMOTE = "promote"
    FAIL = "fail"


@dataclass(frozen=True)
class ExportAttachment:
    """Attachment record from the export manifest."""

    id: str
    file_name: str
    mime_type: str = 'application/octet-stream'
    container_id: Optional[str] = None
    file_size: Optional[int] = None
    version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        """Serialize attachment to dictionary."""
        return {
            'id': self.id,
            'file_name': self.file_name,
            'mime_type': self.mime_type,
            'container_id': self.container_id,
            'file_size': self.file_size,
            'version': self.version
        }


@dataclass(frozen=True)
class BodyContent:
    """Body of a page, declared independently of the page that owns it."""

    id: str
    body_format: BodyFormat
    raw_markup: str
    content_id: Optional[str] = None


@dataclass(frozen=True)
class SpaceInfo:
    """Space metadata from the export manifest."""

    id: str
    name: str
    key: str
    home_page_id: Optional[str] = None
    description: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'key': self.key,
            'home_page_id': self.home_page_id,
            'description': self.description
        }


@dataclass(frozen=True)
class ExportPage:
    """Raw Page record as declared in the manifest."""

    id: str
    title: str
    parent_id: Optional[str] = None
    position: int = 0
    body_content_ids: tuple = ()
    attachment_ids: tuple = ()
    status: ContentStatus = ContentStatus.CURRENT
    original_version_id: Optional[str] = None


@dataclass
class ParsedPage:
    """A surviving page with its markup and attachments resolved."""

    id: str
    title: str
    parent_id: Optional[str]
    position: int
    content: str
    attachments: List[ExportAttachment] = field(default_factory=list)
    icon: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize page to dictionary."""
        return {
            'id': self.id,
            'title': self.title,
            'parent_id': self.parent_id,
            'position': self.position,
            'content': self.content,
            'attachments': [att.to_dict() for att in self.attachments],
            'icon': self.icon
        }


@dataclass(frozen=True)
class ImportWarning:
    """A per-item degradation that did not stop the import."""

    code: str
    message: str
    page_id: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'page_id': self.page_id,
            'detail': self.detail
        }


@dataclass
class ParseResult:
    """Everything the export parser extracted from one manifest."""

    pages: Dict[str, ParsedPage] = field(default_factory=dict)
    title_to_id: Dict[str, str] = field(default_factory=dict)
    space_info: Optional[SpaceInfo] = None
    warnings: List[ImportWarning] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)


@dataclass
class ImportNode:
    """Working representation of one page for the duration of an import run."""

    new_id: str
    slug_id: str
    title: str
    raw_markup: str
    archive_local_path: str
    position: int = 0
    parent_id: Optional[str] = None
    order_key: Optional[str] = None
    level: Optional[int] = None
    icon: Optional[str] = None


@dataclass(frozen=True)
class Backlink:
    """Directed edge: ``source_page_id`` references ``target_page_id``."""

    source_page_id: str
    target_page_id: str


@dataclass
class ImportResult:
    """Outcome of a successful import run."""

    page_count: int
    committed_page_ids: List[str]
    collection_id: Optional[str] = None
    collection_name: Optional[str] = None
    backlink_count: int = 0
    warnings: List[ImportWarning] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0
    timestamp: Optional[str] = None

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = datetime.utcnow().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize result to dictionary."""
        return {
            'collection_id': self.collection_id,
            'collection_name': self.collection_name,
            'page_count': self.page_count,
            'committed_page_ids': list(self.committed_page_ids),
            'backlink_count': self.backlink_count,
            'warnings': [w.to_dict() for w in self.warnings],
            'stats': self.stats,
            'duration_seconds': self.duration_seconds,
            'timestamp': self.timestamp
        }


__all__ = [
    'BodyContent',
    'BodyFormat',
    'Backlink',
    'ContentStatus',
    'ExportAttachment',
    'ExportPage',
    'ImportMode',
    'ImportNode',
    'ImportResult',
    'ImportWarning',
    'OrphanPolicy',
    'ParsedPage',
    'ParseResult',
    'SpaceInfo'
]
