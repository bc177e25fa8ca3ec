"""Resolves page and attachment placeholders once every page has its new id."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from bs4 import NavigableString

from converters.html_cleaner import parse_fragment, serialize
from converters.link_processor import ATTACHMENT_REF_PREFIX, PAGE_REF_PREFIX
from models import Backlink, ImportWarning

logger = logging.getLogger('confluence_space_importer.converters.reference_resolver')

PAGE_LINK_PREFIX = 'page:'


@dataclass
class ResolvedContent:
    """Markup with page references resolved and the backlinks it produced."""

    html: str
    backlinks: List[Backlink] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)


class ReferenceResolver:
    """Rewrites ``page-ref:`` and ``attachment-ref:`` placeholders."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('confluence_space_importer.converters.reference_resolver')

    def resolve(
        self,
        html: str,
        source_page_id: str,
        title_map: Mapping[str, Any],
        attachment_paths: Mapping[str, Any]
    ) -> ResolvedContent:
        """
        Resolve the placeholders in one converted page.

        Args:
            html: Output of the storage-format converter
            source_page_id: New id of the page being resolved
            title_map: Title -> committed node (anything with ``new_id`` and ``slug_id``)
            attachment_paths: File name -> relative archive path for this page's own
                attachments

        Returns:
            ResolvedContent; unresolved attachment placeholders are left in
            place for the attachment pipeline
        """
        if not html:
            return ResolvedContent(html='')

        soup = parse_fragment(html)
        backlinks: List[Backlink] = []
        seen_targets: Set[str] = set()
        warnings: List[ImportWarning] = []

        for anchor in soup.find_all('a', href=lambda h: h and h.startswith(PAGE_REF_PREFIX)):
            title = anchor['href'][len(PAGE_REF_PREFIX):]
            target = title_map.get(title)

            if target is None:
                warnings.append(ImportWarning(
                    code='broken-link',
                    message=f"Link to unknown page '{title}' replaced with text",
                    page_id=source_page_id,
                    detail=title
                ))
                anchor.replace_with(NavigableString(anchor.get_text()))
                continue

            anchor['href'] = f'{PAGE_LINK_PREFIX}{target.new_id}'
            anchor['data-page-id'] = target.new_id
            anchor['data-slug-id'] = target.slug_id

            if target.new_id != source_page_id and target.new_id not in seen_targets:
                seen_targets.add(target.new_id)
                backlinks.append(Backlink(source_page_id=source_page_id, target_page_id=target.new_id))

        for element, attr in self._attachment_references(soup):
            file_name = element[attr][len(ATTACHMENT_REF_PREFIX):]
            rel_path = attachment_paths.get(file_name) if file_name else None
            if rel_path is not None:
                element[attr] = rel_path

        if warnings:
            self.logger.debug(f"Page {source_page_id}: {len(warnings)} broken page links")

        return ResolvedContent(html=serialize(soup), backlinks=backlinks, warnings=warnings)

    @staticmethod
    def _attachment_references(soup) -> List[tuple]:
        def is_placeholder(value):
            return value and value.startswith(ATTACHMENT_REF_PREFIX)

        references = [(a, 'href') for a in soup.find_all('a', href=is_placeholder)]
        references += [(img, 'src') for img in soup.find_all('img', src=is_placeholder)]
        return references


def build_title_map(title_to_id: Mapping[str, str], nodes: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Title -> node, restricted to nodes that will be committed.

    Args:
        title_to_id: Title -> archive page id from the parser
        nodes: Archive page id -> node for every page being committed
    """
    return {
        title: nodes[archive_id]
        for title, archive_id in title_to_id.items()
        if archive_id in nodes
    }


__all__ = ['PAGE_LINK_PREFIX', 'ReferenceResolver', 'ResolvedContent', 'build_title_map']
