"""
Transactional page committer.

Writes every page of an import run, level by level, inside one store
transaction, then the backlinks between committed pages. Either the whole run
lands or none of it does; the created-pages event is only emitted after the
transaction has committed.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from errors import TransactionFailureError
from importers.document_builder import BuiltDocument
from importers.document_store import DocumentStore, PageRecord
from importers.event_bus import PAGES_CREATED, EventBus
from models import Backlink, ImportNode, ImportWarning

DEFAULT_BACKLINK_BATCH_SIZE = 100


@dataclass
class CommitContext:
    """Where the pages go and who they belong to."""

    space_id: str
    workspace_id: str
    creator_id: str


@dataclass
class RenderedPage:
    """Final form of one page, produced right before it is inserted."""

    document: BuiltDocument
    backlinks: List[Backlink] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)


@dataclass
class CommitOutcome:
    committed_page_ids: List[str]
    backlinks: List[Backlink]
    warnings: List[ImportWarning] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.committed_page_ids)


def filter_backlinks(backlinks: List[Backlink], committed_ids) -> List[Backlink]:
    """Backlinks whose both ends were committed, without duplicates or self-links."""
    valid = set(committed_ids)
    seen = set()
    result = []
    for backlink in backlinks:
        key = (backlink.source_page_id, backlink.target_page_id)
        if key in seen or key[0] == key[1]:
            continue
        if key[0] in valid and key[1] in valid:
            seen.add(key)
            result.append(backlink)
    return result


class PageCommitter:
    """Inserts rendered pages and their backlinks atomically."""

    def __init__(
        self,
        store: DocumentStore,
        event_bus: Optional[EventBus] = None,
        backlink_batch_size: int = DEFAULT_BACKLINK_BATCH_SIZE,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the committer.

        Args:
            store: Destination document store
            event_bus: Bus notified after a successful commit
            backlink_batch_size: Backlink rows per insert statement
            logger: Optional logger instance
        """
        if backlink_batch_size < 1:
            raise ValueError("backlink_batch_size must be at least 1")

        self.store = store
        self.event_bus = event_bus
        self.backlink_batch_size = backlink_batch_size
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.page_committer')

    def commit(
        self,
        levels: Dict[int, List[ImportNode]],
        render_page: Callable[[ImportNode], RenderedPage],
        context: CommitContext
    ) -> CommitOutcome:
        """
        Commit all pages of a run.

        Args:
            levels: Level index from the hierarchy builder
            render_page: Produces the final document for a node
            context: Target space, workspace and creator

        Returns:
            CommitOutcome listing committed page ids in insertion order

        Raises:
            TransactionFailureError: If any page fails; nothing is kept
        """
        committed: List[str] = []
        collected: List[Backlink] = []
        warnings: List[ImportWarning] = []
        inserted_backlinks: List[Backlink] = []

        try:
            with self.store.transaction():
                for level in sorted(levels):
                    for node in levels[level]:
                        rendered = render_page(node)
                        self.store.insert_page(self._record(node, rendered.document, context))
                        committed.append(node.new_id)
                        collected.extend(rendered.backlinks)
                        warnings.extend(rendered.warnings)

                    self.logger.debug(f"Inserted level {level}: {len(levels[level])} pages")

                inserted_backlinks = filter_backlinks(collected, committed)
                for start in range(0, len(inserted_backlinks), self.backlink_batch_size):
                    batch = inserted_backlinks[start:start + self.backlink_batch_size]
                    self.store.insert_backlinks(batch, context.workspace_id)
        except Exception as e:
            self.logger.error(f"Commit failed after {len(committed)} pages, rolled back: {str(e)}")
            raise TransactionFailureError(f"Import transaction failed: {str(e)}", cause=e) from e

        self.logger.info(
            f"Committed {len(committed)} pages and {len(inserted_backlinks)} backlinks "
            f"to space {context.space_id}"
        )

        if self.event_bus is not None and committed:
            self.event_bus.emit(PAGES_CREATED, {
                'page_ids': list(committed),
                'workspace_id': context.workspace_id,
                'space_id': context.space_id
            })

        return CommitOutcome(committed_page_ids=committed, backlinks=inserted_backlinks, warnings=warnings)

    @staticmethod
    def _record(node: ImportNode, document: BuiltDocument, context: CommitContext) -> PageRecord:
        if node.order_key is None:
            raise ValueError(f"Page '{node.title}' has no order key")

        return PageRecord(
            id=node.new_id,
            slug_id=node.slug_id,
            title=document.title,
            content_json=document.content_json_text(),
            text_content=document.text_content,
            native_doc=document.native_doc,
            icon=node.icon,
            position=node.order_key,
            parent_page_id=node.parent_id,
            space_id=context.space_id,
            workspace_id=context.workspace_id,
            creator_id=context.creator_id
        )


__all__ = [
    'CommitContext',
    'CommitOutcome',
    'DEFAULT_BACKLINK_BATCH_SIZE',
    'PageCommitter',
    'RenderedPage',
    'filter_backlinks'
]
