"""Converters package for Confluence storage-format to editor HTML conversion."""

import logging

from .html_cleaner import HtmlCleaner
from .link_processor import LinkProcessor
from .macro_handler import MacroHandler
from .reference_resolver import ReferenceResolver, ResolvedContent, build_title_map
from .storage_converter import ConversionOutput, StorageFormatConverter

logger = logging.getLogger('confluence_space_importer.converters')


def convert_page_markup(raw_markup, title_to_id, page_id=None, logger=None):
    """
    Convenience function to convert one page body.

    This runs the full rule pipeline:
    1. Macros (code, callouts, panels, expand, toc)
    2. Page links, attachment references, URLs and mentions
    3. Emoticons, task lists, status lozenges, noformat and layouts
    4. Unknown macro unwrapping and leftover markup cleanup

    Args:
        raw_markup: Storage-format markup
        title_to_id: Title -> archive page id
        page_id: Optional page id attached to warnings
        logger: Optional logger instance (uses module logger if not provided)

    Returns:
        ConversionOutput

    Example:
        >>> from converters import convert_page_markup
        >>> convert_page_markup('<p>Hi <ac:emoticon ac:name="smile"/></p>', {}).html
        '<p>Hi \U0001F642</p>'
    """
    if logger is None:
        logger = logging.getLogger('confluence_space_importer.converters')

    converter = StorageFormatConverter(logger=logger)
    return converter.convert(raw_markup, title_to_id, page_id=page_id)


__all__ = [
    'convert_page_markup',
    'ConversionOutput',
    'HtmlCleaner',
    'LinkProcessor',
    'MacroHandler',
    'ReferenceResolver',
    'ResolvedContent',
    'StorageFormatConverter',
    'build_title_map'
]
