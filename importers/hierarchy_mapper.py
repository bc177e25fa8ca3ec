"""
Hierarchy builder for Confluence export import.

Turns the flat list of parsed pages into a rooted tree of ImportNodes with
freshly generated identifiers, then groups the nodes into breadth-first levels
so parents are always written before their children.
"""

import logging
import secrets
import string
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from errors import HierarchyAnomalyError
from importers.id_mapping_tracker import IdentifierMap
from models import ImportNode, ImportWarning, OrphanPolicy, ParseResult

SLUG_ALPHABET = string.ascii_letters + string.digits
SLUG_LENGTH = 12


def generate_page_id() -> str:
    return str(uuid.uuid4())


def generate_slug_id(length: int = SLUG_LENGTH) -> str:
    """Short URL-safe identifier for a page."""
    return ''.join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


@dataclass
class HierarchyResult:
    """Nodes keyed by archive id, the frozen id map and the level index."""

    nodes: Dict[str, ImportNode]
    id_map: IdentifierMap
    levels: Dict[int, List[ImportNode]] = field(default_factory=dict)
    anomalies: List[ImportNode] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)

    def ordered_levels(self) -> List[int]:
        return sorted(self.levels)

    def leveled_nodes(self) -> List[ImportNode]:
        """All nodes that will be committed, in commit order."""
        return [node for level in self.ordered_levels() for node in self.levels[level]]


class ConfluenceHierarchyMapper:
    """
    Builds the import tree from parsed export pages.

    In space-import mode the space's home page is dropped and its children
    become roots of the new space. In full-import mode every page keeps its
    original position; pages whose parent did not survive parsing are handled
    according to the orphan policy.
    """

    def __init__(
        self,
        orphan_policy: OrphanPolicy = OrphanPolicy.SKIP,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the hierarchy mapper.

        Args:
            orphan_policy: Full-import handling of pages with a missing parent
            logger: Optional logger instance
        """
        self.orphan_policy = orphan_policy
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.hierarchy_mapper')

    def build(
        self,
        parse_result: ParseResult,
        space_import: bool = False,
        home_page_id: Optional[str] = None,
        orphan_policy: Optional[OrphanPolicy] = None
    ) -> HierarchyResult:
        """
        Build nodes, identifier map and level index.

        Args:
            parse_result: Output of the export parser
            space_import: Whether the archive becomes a new space
            home_page_id: The space's designated home page (space-import only)
            orphan_policy: Overrides the policy given at construction

        Returns:
            HierarchyResult

        Raises:
            HierarchyAnomalyError: If a page cannot be placed and the policy is FAIL
        """
        policy = orphan_policy or self.orphan_policy
        excluded_id = home_page_id if space_import else None
        id_map = IdentifierMap(self.logger)
        nodes: Dict[str, ImportNode] = {}
        warnings: List[ImportWarning] = []

        for archive_id, page in parse_result.pages.items():
            if archive_id == excluded_id:
                self.logger.debug(f"Excluding home page '{page.title}' from space import")
                continue

            new_id = generate_page_id()
            id_map.add(archive_id, new_id)
            nodes[archive_id] = ImportNode(
                new_id=new_id,
                slug_id=generate_slug_id(),
                title=page.title,
                raw_markup=page.content,
                archive_local_path=archive_id,
                position=page.position,
                icon=page.icon
            )

        id_map.freeze()

        # Parent resolution through the identifier map
        orphans: Set[str] = set()
        for archive_id, node in nodes.items():
            archive_parent = parse_result.pages[archive_id].parent_id
            if archive_parent is None:
                continue

            if space_import and archive_parent == excluded_id:
                continue

            new_parent = id_map.get_new_id(archive_parent)
            if new_parent is not None:
                node.parent_id = new_parent
                continue

            if space_import or policy == OrphanPolicy.PROMOTE:
                warnings.append(ImportWarning(
                    code='orphan-promoted',
                    message=f"Parent {archive_parent} of '{node.title}' was not imported; page moved to root",
                    page_id=archive_id
                ))
            elif policy == OrphanPolicy.FAIL:
                raise HierarchyAnomalyError(
                    f"Page '{node.title}' ({archive_id}) references parent {archive_parent} "
                    f"which is not part of the export"
                )
            else:
                orphans.add(archive_id)

        levels, unreached = self._compute_levels(nodes, orphans)
        anomalies = self._report_unreached(nodes, unreached, orphans, warnings, policy)

        result = HierarchyResult(
            nodes=nodes,
            id_map=id_map,
            levels=levels,
            anomalies=anomalies,
            warnings=warnings
        )

        self.logger.info(
            f"Built hierarchy: {len(nodes)} nodes over {len(levels)} levels, "
            f"{len(anomalies)} anomalies"
        )
        return result

    def _compute_levels(
        self,
        nodes: Dict[str, ImportNode],
        orphans: Set[str]
    ) -> Tuple[Dict[int, List[ImportNode]], List[str]]:
        """Breadth-first level assignment starting from every root."""
        children: Dict[str, List[str]] = {}
        for archive_id, node in nodes.items():
            if node.parent_id is not None:
                children.setdefault(node.parent_id, []).append(archive_id)

        levels: Dict[int, List[ImportNode]] = {}
        queue = deque()
        for archive_id, node in nodes.items():
            if node.parent_id is None and archive_id not in orphans:
                node.level = 0
                queue.append(archive_id)

        while queue:
            archive_id = queue.popleft()
            node = nodes[archive_id]
            levels.setdefault(node.level, []).append(node)

            for child_id in children.get(node.new_id, []):
                child = nodes[child_id]
                if child.level is None:
                    child.level = node.level + 1
                    queue.append(child_id)

        unreached = [archive_id for archive_id, node in nodes.items() if node.level is None]
        return levels, unreached

    def _report_unreached(
        self,
        nodes: Dict[str, ImportNode],
        unreached: List[str],
        orphans: Set[str],
        warnings: List[ImportWarning],
        policy: OrphanPolicy
    ) -> List[ImportNode]:
        """Classify nodes BFS never reached and record a warning for each."""
        by_new_id = {node.new_id: archive_id for archive_id, node in nodes.items()}
        anomalies = []
        cycles = []

        for archive_id in unreached:
            node = nodes[archive_id]
            anomalies.append(node)

            if archive_id in orphans:
                code = 'orphaned-page'
                message = f"Parent of '{node.title}' is not part of the export; page skipped"
            elif self._in_cycle(archive_id, nodes, by_new_id):
                code = 'cycle-detected'
                message = f"'{node.title}' is part of a parent cycle; page skipped"
                cycles.append(node)
            else:
                code = 'orphaned-page'
                message = f"'{node.title}' descends from a skipped page; page skipped"

            self.logger.warning(message)
            warnings.append(ImportWarning(code=code, message=message, page_id=archive_id))

        if cycles and policy == OrphanPolicy.FAIL:
            titles = ', '.join(f"'{node.title}'" for node in cycles)
            raise HierarchyAnomalyError(f"Parent cycle detected between pages: {titles}")

        return anomalies

    @staticmethod
    def _in_cycle(archive_id: str, nodes: Dict[str, ImportNode], by_new_id: Dict[str, str]) -> bool:
        """Walk up the parent chain and report whether it leads back to ``archive_id``."""
        seen = set()
        parent_new_id = nodes[archive_id].parent_id
        current = by_new_id.get(parent_new_id) if parent_new_id else None
        while current is not None and current not in seen:
            if current == archive_id:
                return True
            seen.add(current)
            parent_new_id = nodes[current].parent_id
            current = by_new_id.get(parent_new_id) if parent_new_id else None
        return False


__all__ = ['ConfluenceHierarchyMapper', 'HierarchyResult', 'generate_page_id', 'generate_slug_id']
