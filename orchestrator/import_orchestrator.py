"""
Import orchestrator for sequencing the space-export import pipeline.

This module coordinates the import phases: Parse → Hierarchy → Ordering →
Content Conversion → Commit. Everything before the commit is read-only with
respect to the destination store (apart from creating the target space in
space-import mode), so a failure or cancellation there leaves nothing behind.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from tqdm import tqdm

from cancellation import check_cancelled
from config_loader import ConfigLoader, get_nested
from converters.reference_resolver import ReferenceResolver, build_title_map
from converters.storage_converter import ConversionOutput, StorageFormatConverter
from errors import (
    ConfluenceImportError,
    NoPagesFoundError,
    NoSpaceInfoFoundError,
    TransactionFailureError
)
from fetchers.attachment_index import build_attachment_candidates, page_attachment_paths
from fetchers.export_parser import ExportParser
from importers.attachment_uploader import AttachmentUploader
from importers.document_builder import DocumentBuilder
from importers.document_store import DocumentStore
from importers.event_bus import EventBus
from importers.hierarchy_mapper import ConfluenceHierarchyMapper, HierarchyResult
from importers.ordering_manager import OrderingManager
from importers.page_committer import CommitContext, PageCommitter, RenderedPage
from importers.space_service import MembershipService, SpaceService
from logger import ProgressTracker, log_section
from models import ImportMode, ImportNode, ImportResult, ImportWarning, OrphanPolicy, ParseResult


@dataclass
class ImportPlan:
    """Everything known about an archive before anything is written."""

    mode: ImportMode
    parse_result: ParseResult
    hierarchy: HierarchyResult
    attachment_candidates: Dict[str, str] = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        return sum(len(nodes) for nodes in self.hierarchy.levels.values())

    @property
    def warnings(self) -> List[ImportWarning]:
        return list(self.parse_result.warnings) + list(self.hierarchy.warnings)


class ImportOrchestrator:
    """Orchestrates the complete import of one extracted export."""

    def __init__(
        self,
        config: Dict[str, Any],
        store: Optional[DocumentStore] = None,
        event_bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize import orchestrator.

        Args:
            config: Configuration dictionary; missing keys take their defaults
            store: Destination store (opened from ``database.path`` if omitted)
            event_bus: Bus notified after a successful commit
            logger: Optional logger instance
        """
        self.config = ConfigLoader.with_defaults(config)
        self.logger = logger or logging.getLogger('confluence_space_importer.orchestrator')

        self.store = store if store is not None else DocumentStore(get_nested(self.config, 'database.path'))
        self.event_bus = event_bus if event_bus is not None else EventBus()

        self.max_workers = get_nested(self.config, 'import.max_workers', 4)
        self.workspace_id = get_nested(self.config, 'import.workspace_id')
        self.creator_id = get_nested(self.config, 'import.creator_id')
        self.orphan_policy = OrphanPolicy(get_nested(self.config, 'import.orphan_policy', 'skip'))
        self.compensate_on_failure = get_nested(self.config, 'import.compensate_on_failure', True)
        self.show_progress = get_nested(self.config, 'import.progress_bars', True)

        self.hierarchy_mapper = ConfluenceHierarchyMapper(orphan_policy=self.orphan_policy)
        self.ordering_manager = OrderingManager()
        self.converter = StorageFormatConverter()
        self.resolver = ReferenceResolver()
        self.document_builder = DocumentBuilder()
        self.space_service = SpaceService(self.store)
        self.membership_service = MembershipService(self.store)

    def plan(
        self,
        extract_dir: Union[str, Path],
        mode: Optional[Union[str, ImportMode]] = None,
        cancel_token=None
    ) -> ImportPlan:
        """
        Parse the export and build its hierarchy without touching the store.

        Args:
            extract_dir: Root of the extracted export
            mode: Import mode; defaults to ``import.mode`` from config
            cancel_token: Optional CancellationToken

        Returns:
            ImportPlan

        Raises:
            MalformedArchiveError: If the manifest cannot be read
            NoPagesFoundError: If no current page survived parsing
            NoSpaceInfoFoundError: If space mode is requested without a Space record
            HierarchyAnomalyError: If the orphan policy is ``fail`` and a page cannot be placed
        """
        import_mode = self._resolve_mode(mode)

        log_section("Phase 1: Export Parsing")
        parser = ExportParser(cancel_token=cancel_token)
        parse_result = parser.parse(extract_dir)

        if not parse_result.pages:
            raise NoPagesFoundError(f"No current pages found in export at {extract_dir}")

        if import_mode == ImportMode.SPACE and parse_result.space_info is None:
            raise NoSpaceInfoFoundError("Space import requested but the export contains no Space record")

        candidates = build_attachment_candidates(extract_dir)
        check_cancelled(cancel_token, 'export parsing')

        log_section("Phase 2: Page Hierarchy")
        space_import = import_mode == ImportMode.SPACE
        hierarchy = self.hierarchy_mapper.build(
            parse_result,
            space_import=space_import,
            home_page_id=parse_result.space_info.home_page_id if space_import else None,
            orphan_policy=self.orphan_policy
        )
        check_cancelled(cancel_token, 'hierarchy building')

        return ImportPlan(
            mode=import_mode,
            parse_result=parse_result,
            hierarchy=hierarchy,
            attachment_candidates=candidates
        )

    def run(
        self,
        extract_dir: Union[str, Path],
        mode: Optional[Union[str, ImportMode]] = None,
        target_space_id: Optional[str] = None,
        cancel_token=None
    ) -> ImportResult:
        """
        Import an extracted export into the destination store.

        Args:
            extract_dir: Root of the extracted export
            mode: ``space`` creates a new space; ``pages`` adds to an existing one
            target_space_id: Existing space for pages mode (falls back to ``import.space_id``)
            cancel_token: Optional CancellationToken honoured until the commit starts

        Returns:
            ImportResult for the committed run

        Raises:
            ConfluenceImportError: Structural failures before any write, a
                missing target space, cancellation, or TransactionFailureError
                after the commit rolled back
        """
        self.logger.info(f"Starting import of {extract_dir}")
        start_time = time.time()

        plan = self.plan(extract_dir, mode, cancel_token)
        hierarchy = plan.hierarchy
        nodes = hierarchy.leveled_nodes()

        space_id = None
        if plan.mode == ImportMode.PAGES:
            space_id = target_space_id or get_nested(self.config, 'import.space_id')
            space = self.store.get_space(space_id) if space_id else None
            if space is None or space.get('deleted_at'):
                raise ConfluenceImportError(f"Target space '{space_id}' does not exist")

        log_section("Phase 3: Sibling Ordering")
        root_anchor = self.store.next_page_position(space_id) if space_id else None
        self.ordering_manager.allocate(nodes, root_anchor=root_anchor)

        conversions = self._convert_pages(nodes, plan.parse_result)
        check_cancelled(cancel_token, 'content conversion')

        space = self._prepare_space(plan, space_id)
        space_id = space['id']

        log_section("Phase 5: Commit")
        uploader = AttachmentUploader.from_config(self.config)
        committer = PageCommitter(
            self.store,
            event_bus=self.event_bus,
            backlink_batch_size=get_nested(self.config, 'import.backlink_batch_size', 100)
        )
        title_map = build_title_map(
            plan.parse_result.title_to_id,
            {node.archive_local_path: node for node in nodes}
        )
        context = CommitContext(space_id=space_id, workspace_id=self.workspace_id, creator_id=self.creator_id)

        def render_page(node: ImportNode) -> RenderedPage:
            converted = conversions[node.archive_local_path]
            parsed_page = plan.parse_result.pages[node.archive_local_path]
            attachment_paths = page_attachment_paths(
                node.archive_local_path, parsed_page.attachments, plan.attachment_candidates
            )
            resolved = self.resolver.resolve(converted.html, node.new_id, title_map, attachment_paths)
            attachments = uploader.process(
                resolved.html, node, parsed_page.attachments, plan.attachment_candidates
            )
            document = self.document_builder.build(attachments.html, node.title)
            return RenderedPage(
                document=document,
                backlinks=resolved.backlinks,
                warnings=resolved.warnings + attachments.warnings
            )

        try:
            outcome = committer.commit(hierarchy.levels, render_page, context)
        except TransactionFailureError:
            uploader.discard()
            if plan.mode == ImportMode.SPACE and self.compensate_on_failure:
                self._compensate(space_id)
            raise

        duration = time.time() - start_time

        warnings = plan.warnings
        for node in nodes:
            warnings.extend(conversions[node.archive_local_path].warnings)
        warnings.extend(outcome.warnings)

        result = ImportResult(
            page_count=outcome.page_count,
            committed_page_ids=outcome.committed_page_ids,
            collection_id=space_id,
            collection_name=space.get('name'),
            backlink_count=len(outcome.backlinks),
            warnings=warnings,
            stats={
                'mode': plan.mode.value,
                'parsing': dict(plan.parse_result.stats),
                'hierarchy': {
                    'nodes': len(hierarchy.nodes),
                    'levels': len(hierarchy.levels),
                    'anomalies': len(hierarchy.anomalies)
                },
                'conversion': self._aggregate_conversion_stats(conversions.values()),
                'attachments': dict(uploader.stats)
            },
            duration_seconds=duration
        )

        self.logger.info(
            f"Import complete in {duration:.2f}s: {result.page_count} pages, "
            f"{result.backlink_count} backlinks, {len(result.warnings)} warnings"
        )
        return result

    def _resolve_mode(self, mode: Optional[Union[str, ImportMode]]) -> ImportMode:
        if isinstance(mode, ImportMode):
            return mode
        return ImportMode(mode or get_nested(self.config, 'import.mode', ImportMode.SPACE.value))

    def _convert_pages(self, nodes: List[ImportNode], parse_result: ParseResult) -> Dict[str, ConversionOutput]:
        """
        Phase 4: convert every page body, fanned out over a thread pool.

        Returns:
            Archive page id -> ConversionOutput
        """
        log_section("Phase 4: Content Conversion")
        conversions: Dict[str, ConversionOutput] = {}

        with ProgressTracker(total_items=len(nodes), item_type='pages', logger=self.logger) as tracker:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                future_to_node = {
                    executor.submit(
                        self.converter.convert,
                        node.raw_markup,
                        parse_result.title_to_id,
                        node.archive_local_path
                    ): node
                    for node in nodes
                }

                futures = list(future_to_node.keys())
                if self.show_progress:
                    futures = tqdm(futures, desc="Converting pages", total=len(nodes), unit="page")

                for future in futures:
                    node = future_to_node[future]
                    try:
                        conversions[node.archive_local_path] = future.result()
                        tracker.increment(success=True)
                    except Exception as e:
                        self.logger.error(f"Failed to convert page '{node.title}': {str(e)}", exc_info=True)
                        conversions[node.archive_local_path] = ConversionOutput(
                            html='',
                            warnings=[ImportWarning(
                                code='conversion-failed',
                                message=f"Content of '{node.title}' could not be converted and was dropped",
                                page_id=node.archive_local_path,
                                detail=str(e)
                            )]
                        )
                        tracker.increment(success=False)

        return conversions

    def _prepare_space(self, plan: ImportPlan, space_id: Optional[str]) -> Dict[str, Any]:
        """Existing space for pages mode; a new space with its admins for space mode."""
        if plan.mode == ImportMode.PAGES:
            return self.store.get_space(space_id)

        space_info = plan.parse_result.space_info
        space = self.space_service.create_space(
            name=space_info.name,
            key=space_info.key,
            description=space_info.description,
            workspace_id=self.workspace_id,
            creator_id=self.creator_id
        )
        admins = [self.creator_id] + list(get_nested(self.config, 'import.admin_user_ids', []) or [])
        self.membership_service.grant_admins(space['id'], admins, added_by_id=self.creator_id)
        return space

    def _compensate(self, space_id: str) -> None:
        """Soft-delete the space created for a run whose commit rolled back."""
        try:
            self.store.soft_delete_space(space_id)
            self.logger.warning(f"Soft-deleted space {space_id} after failed import")
        except Exception as e:
            self.logger.error(f"Failed to soft-delete space {space_id}: {str(e)}")

    @staticmethod
    def _aggregate_conversion_stats(outputs) -> Dict[str, Any]:
        totals: Dict[str, Any] = {'pages': 0, 'empty_pages': 0, 'macros_by_type': {}}
        for output in outputs:
            totals['pages'] += 1
            for key, value in output.stats.items():
                if key == 'empty':
                    totals['empty_pages'] += 1
                elif key == 'macros_by_type':
                    for name, count in value.items():
                        totals['macros_by_type'][name] = totals['macros_by_type'].get(name, 0) + count
                elif isinstance(value, int) and not isinstance(value, bool):
                    totals[key] = totals.get(key, 0) + value
        return totals


__all__ = ['ImportOrchestrator', 'ImportPlan']
