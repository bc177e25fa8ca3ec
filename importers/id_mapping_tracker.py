"""
ID mapping tracker for Confluence export import.

This module tracks the mapping between archive-local Confluence ids and the
freshly generated destination ids for one import run. Once the hierarchy has
been built the map is frozen; everything downstream refers to pages by their
new id only.
"""

import logging
from typing import Dict, Iterator, Optional, Tuple


class IdentifierMap:
    """Archive-local id -> new id, read-only after freeze()."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize an empty identifier map.

        Args:
            logger: Optional logger instance (defaults to module logger)
        """
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.id_mapping_tracker')

        # Confluence page ID -> new page ID
        self._archive_to_new: Dict[str, str] = {}

        # Reverse mapping: new page ID -> Confluence page ID
        self._new_to_archive: Dict[str, str] = {}

        self._frozen = False

    def add(self, archive_id: str, new_id: str) -> None:
        """
        Record the new id assigned to an archive page.

        Args:
            archive_id: Confluence page ID from the manifest
            new_id: Generated destination page ID

        Raises:
            RuntimeError: If the map is frozen
            ValueError: If either id is already mapped
        """
        if self._frozen:
            raise RuntimeError("IdentifierMap is frozen; ids cannot be added after the hierarchy is built")
        if archive_id in self._archive_to_new:
            raise ValueError(f"Archive id {archive_id} is already mapped")
        if new_id in self._new_to_archive:
            raise ValueError(f"New id {new_id} is already assigned")

        self._archive_to_new[archive_id] = new_id
        self._new_to_archive[new_id] = archive_id

        self.logger.debug(f"Page mapping added: {archive_id} -> {new_id}")

    def freeze(self) -> None:
        """Make the map read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get_new_id(self, archive_id: Optional[str]) -> Optional[str]:
        """New id for an archive id, or None if it was never mapped."""
        if archive_id is None:
            return None
        return self._archive_to_new.get(archive_id)

    def get_archive_id(self, new_id: str) -> Optional[str]:
        return self._new_to_archive.get(new_id)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._archive_to_new.items())

    def __contains__(self, archive_id: object) -> bool:
        return archive_id in self._archive_to_new

    def __len__(self) -> int:
        return len(self._archive_to_new)


__all__ = ['IdentifierMap']
