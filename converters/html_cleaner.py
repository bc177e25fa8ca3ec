"""HTML cleaner for parsing storage-format markup and removing leftover Confluence markup."""

import html
import logging
import re
from typing import Dict, Optional

from bs4 import BeautifulSoup, NavigableString, Tag

logger = logging.getLogger('confluence_space_importer.converters.htmlcleaner')

CDATA_PATTERN = re.compile(r'<!\[CDATA\[(.*?)\]\]>', re.DOTALL)

# Confluence-only elements whose content has no meaning outside the editor
DROPPED_ELEMENTS = ['ac:placeholder', 'ac:parameter', 'ac:task-id', 'ac:task-uuid']


def parse_fragment(markup: str) -> BeautifulSoup:
    """
    Parse a storage-format fragment.

    CDATA sections are turned into escaped text up front so code bodies survive
    whatever the HTML parser does with marked sections.

    Args:
        markup: Storage-format XHTML (``ac:``/``ri:`` elements allowed)

    Returns:
        BeautifulSoup tree of the fragment
    """
    escaped = CDATA_PATTERN.sub(lambda m: html.escape(m.group(1), quote=False), markup)
    # lxml's HTML parser ignores '/>' on ac:/ri: elements and nests their siblings inside them
    return BeautifulSoup(escaped, 'html.parser')


def serialize(soup: BeautifulSoup) -> str:
    return soup.decode(formatter='minimal')


def move_children(source: Optional[Tag], target: Tag) -> Tag:
    """Move every child of ``source`` into ``target`` (no-op if source is None)."""
    if source is not None:
        for child in list(source.contents):
            target.append(child.extract())
    return target


def replace_with_children(element: Tag, body: Optional[Tag]) -> None:
    """Replace ``element`` with the children of ``body`` (or nothing)."""
    if body is not None:
        for child in list(body.contents):
            element.insert_before(child.extract())
    element.decompose()


def replace_with_text(element: Tag, text: str) -> None:
    element.replace_with(NavigableString(text))


class HtmlCleaner:
    """Removes Confluence-specific markup the conversion rules left behind."""

    def __init__(self, logger: logging.Logger = None):
        """Initialize HTML cleaner with optional logger."""
        self.logger = logger or logging.getLogger('confluence_space_importer.converters.htmlcleaner')

    def clean(self, soup: BeautifulSoup) -> Dict[str, int]:
        """
        Strip remaining ``ac:``/``ri:`` elements.

        Elements listed in DROPPED_ELEMENTS and stray resource identifiers are
        removed; any other Confluence element (inline comment markers, unknown
        wrappers) is unwrapped so its text survives.

        Args:
            soup: Tree after all conversion rules ran

        Returns:
            Counts of removed and unwrapped elements
        """
        stats = {'removed': 0, 'unwrapped': 0}

        for element in soup.find_all(DROPPED_ELEMENTS):
            if not element.decomposed:
                element.decompose()
                stats['removed'] += 1

        for element in soup.find_all(self._is_resource_identifier):
            if not element.decomposed:
                element.decompose()
                stats['removed'] += 1

        # Innermost first so nested wrappers unwrap cleanly
        for element in reversed(soup.find_all(self._is_confluence_element)):
            element.unwrap()
            stats['unwrapped'] += 1

        self._remove_empty_elements(soup)

        if stats['removed'] or stats['unwrapped']:
            self.logger.debug(
                f"Cleaned leftover markup: {stats['removed']} removed, {stats['unwrapped']} unwrapped"
            )
        return stats

    @staticmethod
    def _is_resource_identifier(tag: Tag) -> bool:
        return tag.name.startswith('ri:')

    @staticmethod
    def _is_confluence_element(tag: Tag) -> bool:
        return tag.name.startswith('ac:')

    def _remove_empty_elements(self, soup: BeautifulSoup) -> None:
        """Remove attribute-less spans that lost all their content."""
        removed_count = 0

        for element in soup.find_all('span'):
            if element.find() or element.attrs:
                continue
            if not element.get_text():
                element.decompose()
                removed_count += 1

        if removed_count > 0:
            self.logger.debug(f"Removed {removed_count} empty elements")


__all__ = [
    'HtmlCleaner',
    'move_children',
    'parse_fragment',
    'replace_with_children',
    'replace_with_text',
    'serialize'
]
