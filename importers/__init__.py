"""Import package for writing a parsed Confluence export into the document store.

Package Structure:
- id_mapping_tracker: Archive-local id to new id map, frozen after the hierarchy is built
- hierarchy_mapper: Builds the page tree and its breadth-first levels
- ordering_manager: Fractional-index order keys per sibling group
- document_store: SQLite store for spaces, members, pages and backlinks
- space_service: Space creation with unique slugs and admin grants
- event_bus: In-process notification of committed pages
- document_builder: Converted HTML to the editor's JSON block tree
- attachment_uploader: Copies referenced attachment files into storage
- page_committer: Writes one run's pages and backlinks in a single transaction
"""

from .attachment_uploader import AttachmentUploader
from .document_builder import BuiltDocument, DocumentBuilder
from .document_store import DocumentStore, PageRecord
from .event_bus import PAGES_CREATED, EventBus
from .hierarchy_mapper import ConfluenceHierarchyMapper, HierarchyResult
from .id_mapping_tracker import IdentifierMap
from .ordering_manager import OrderingManager, key_between
from .page_committer import CommitContext, CommitOutcome, PageCommitter, RenderedPage
from .space_service import MembershipService, SpaceService

__all__ = [
    'AttachmentUploader',
    'BuiltDocument',
    'CommitContext',
    'CommitOutcome',
    'ConfluenceHierarchyMapper',
    'DocumentBuilder',
    'DocumentStore',
    'EventBus',
    'HierarchyResult',
    'IdentifierMap',
    'MembershipService',
    'OrderingManager',
    'PageCommitter',
    'PageRecord',
    'PAGES_CREATED',
    'RenderedPage',
    'SpaceService',
    'key_between'
]
