"""Space creation and membership for space-import mode."""

import logging
import re
import uuid
from typing import Any, Dict, Iterable, List, Optional

from importers.document_store import SPACE_ROLE_ADMIN, DocumentStore

MAX_SLUG_LENGTH = 64


def slugify(value: str) -> str:
    """Lowercase, ASCII, dash-separated slug; empty input yields 'space'."""
    slug = re.sub(r'[^a-z0-9]+', '-', (value or '').lower()).strip('-')
    return slug[:MAX_SLUG_LENGTH].rstrip('-') or 'space'


class SpaceService:
    """Creates destination spaces with workspace-unique slugs."""

    def __init__(self, store: DocumentStore, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.space_service')

    def unique_slug(self, base: str, workspace_id: str) -> str:
        """``base``, or ``base-2``, ``base-3`` ... whichever is free first."""
        taken = self.store.list_space_slugs(workspace_id)
        if base not in taken:
            return base

        suffix = 2
        while f'{base}-{suffix}' in taken:
            suffix += 1
        return f'{base}-{suffix}'

    def create_space(
        self,
        name: str,
        key: Optional[str],
        description: str,
        workspace_id: str,
        creator_id: str
    ) -> Dict[str, Any]:
        """
        Create a space for an imported archive.

        Args:
            name: Space name from the export
            key: Confluence space key; preferred slug source
            description: Plain-text description
            workspace_id: Workspace the space belongs to
            creator_id: User recorded as creator

        Returns:
            The created space row as a dictionary
        """
        slug = self.unique_slug(slugify(key or name), workspace_id)
        space = self.store.create_space(
            space_id=str(uuid.uuid4()),
            name=name or key or 'Imported space',
            slug=slug,
            workspace_id=workspace_id,
            creator_id=creator_id,
            key=key,
            description=description
        )
        self.logger.info(f"Created space '{space['name']}' with slug '{slug}'")
        return space


class MembershipService:
    """Grants space roles."""

    def __init__(self, store: DocumentStore, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.space_service')

    def grant_admins(self, space_id: str, user_ids: Iterable[str], added_by_id: Optional[str] = None) -> List[str]:
        """Make each user an admin of the space. Returns the distinct ids granted."""
        granted: List[str] = []
        for user_id in user_ids:
            if not user_id or user_id in granted:
                continue
            self.store.add_space_member(space_id, user_id, role=SPACE_ROLE_ADMIN, added_by_id=added_by_id)
            granted.append(user_id)

        self.logger.debug(f"Granted admin on {space_id} to {len(granted)} users")
        return granted


__all__ = ['MembershipService', 'SpaceService', 'slugify']
