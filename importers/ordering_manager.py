"""
Ordering manager for imported pages.

This module assigns fractional-index order keys to sibling pages so the
original Confluence page sequence is preserved and new pages can later be
inserted between any two siblings without renumbering.
"""

import logging
from typing import Dict, Iterable, List, Optional

from fractional_indexing import generate_key_between

from models import ImportNode

logger = logging.getLogger('confluence_space_importer.importers.ordering_manager')


def key_between(before: Optional[str], after: Optional[str]) -> str:
    """
    Order key strictly between two keys.

    Args:
        before: Lower bound, or None for "no lower bound"
        after: Upper bound, or None for "no upper bound"

    Returns:
        A key k with before < k < after
    """
    return generate_key_between(before, after)


def sibling_sort_key(node: ImportNode):
    # Python string comparison is case-sensitive, matching title tie-breaks
    return (node.position, node.title)


class OrderingManager:
    """Allocates order keys per sibling group."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize ordering manager.

        Args:
            logger: Optional logger instance (defaults to module logger)
        """
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.ordering_manager')

    def group_siblings(self, nodes: Iterable[ImportNode]) -> Dict[Optional[str], List[ImportNode]]:
        """Group nodes by resolved parent id, each group sorted for allocation."""
        groups: Dict[Optional[str], List[ImportNode]] = {}
        for node in nodes:
            groups.setdefault(node.parent_id, []).append(node)

        for siblings in groups.values():
            siblings.sort(key=sibling_sort_key)

        return groups

    def allocate(self, nodes: Iterable[ImportNode], root_anchor: Optional[str] = None) -> None:
        """
        Assign an order key to every node.

        Root siblings continue after the destination's existing pages: the
        first root gets ``root_anchor`` (the next free position in the target
        space) and every following root a key after its predecessor. Other
        sibling groups start from scratch.

        Args:
            nodes: Nodes with resolved parent ids
            root_anchor: Next available root position, or None for an empty space
        """
        groups = self.group_siblings(nodes)

        for parent_id, siblings in groups.items():
            previous: Optional[str] = None
            for index, node in enumerate(siblings):
                if index == 0 and parent_id is None and root_anchor is not None:
                    node.order_key = root_anchor
                else:
                    node.order_key = key_between(previous, None)
                previous = node.order_key

            self.logger.debug(
                f"Allocated {len(siblings)} order keys under "
                f"{parent_id if parent_id else 'root'}"
            )

        self.logger.info(f"Allocated order keys for {len(groups)} sibling groups")


__all__ = ['OrderingManager', 'key_between', 'sibling_sort_key']
