"""
Storage-format converter.

Converts the Confluence storage format (XHTML with ``ac:``/``ri:`` elements)
into the HTML dialect the destination editor understands. Conversion is a
fixed sequence of rules; later rules rely on earlier ones having run, e.g.
callout bodies are moved only after code macros inside them became <pre>.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup

from converters.html_cleaner import HtmlCleaner, parse_fragment, serialize
from converters.link_processor import LinkProcessor
from converters.macro_handler import MacroHandler
from models import ImportWarning


@dataclass
class ConversionContext:
    """Mutable state shared by the rules of one conversion."""

    title_to_id: Mapping[str, str]
    page_id: Optional[str] = None
    stats: Counter = field(default_factory=Counter)
    macros_by_type: Counter = field(default_factory=Counter)
    warnings: List[ImportWarning] = field(default_factory=list)

    def count(self, key: str, amount: int = 1) -> None:
        self.stats[key] += amount

    def count_macro(self, name: str) -> None:
        self.stats['macros_converted'] += 1
        self.macros_by_type[name] += 1

    def warn(self, code: str, message: str, detail: Optional[str] = None) -> None:
        self.warnings.append(ImportWarning(code=code, message=message, page_id=self.page_id, detail=detail))


@dataclass
class ConversionOutput:
    """Converted HTML plus what the rules counted and complained about."""

    html: str
    stats: Dict[str, Any] = field(default_factory=dict)
    warnings: List[ImportWarning] = field(default_factory=list)


Rule = Callable[[BeautifulSoup, ConversionContext], None]


class StorageFormatConverter:
    """Runs the ordered conversion rules over one page body."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize converter and its rule handlers.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger('confluence_space_importer.converters.storage_converter')

        self.macro_handler = MacroHandler(logger=self.logger)
        self.link_processor = LinkProcessor(logger=self.logger)
        self.html_cleaner = HtmlCleaner(logger=self.logger)

        self.rules: List[Tuple[str, Rule]] = [
            ('code', self.macro_handler.convert_code),
            ('callouts', self.macro_handler.convert_callouts),
            ('panels', self.macro_handler.convert_panels),
            ('expand', self.macro_handler.convert_expands),
            ('toc', self.macro_handler.convert_toc),
            ('page_links', self.link_processor.convert_page_links),
            ('attachments', self.link_processor.convert_attachments),
            ('urls', self.link_processor.convert_urls),
            ('user_mentions', self.link_processor.convert_user_mentions),
            ('emoticons', self.macro_handler.convert_emoticons),
            ('tasks', self.macro_handler.convert_tasks),
            ('status', self.macro_handler.convert_status),
            ('noformat', self.macro_handler.convert_noformat),
            ('layouts', self.macro_handler.convert_layouts),
            ('unknown_macros', self.macro_handler.convert_unknown),
        ]

    def convert(
        self,
        raw_markup: str,
        title_to_id: Mapping[str, str],
        page_id: Optional[str] = None
    ) -> ConversionOutput:
        """
        Convert one page body.

        Page and attachment references become ``page-ref:<title>`` and
        ``attachment-ref:<file name>`` placeholders; nothing outside the
        returned value is touched.

        Args:
            raw_markup: Storage-format markup of the page
            title_to_id: Title -> archive page id, used for link statistics only
            page_id: Page the markup belongs to, attached to warnings

        Returns:
            ConversionOutput with html, stats and warnings
        """
        if not raw_markup or not raw_markup.strip():
            return ConversionOutput(html='', stats={'empty': True})

        ctx = ConversionContext(title_to_id=title_to_id, page_id=page_id)
        soup = parse_fragment(raw_markup)

        for _, rule in self.rules:
            rule(soup, ctx)

        cleanup = self.html_cleaner.clean(soup)

        stats: Dict[str, Any] = dict(ctx.stats)
        stats['macros_by_type'] = dict(ctx.macros_by_type)
        stats['leftover_removed'] = cleanup['removed']
        stats['leftover_unwrapped'] = cleanup['unwrapped']

        self.logger.debug(
            f"Converted page {page_id or '?'}: {stats.get('macros_converted', 0)} macros, "
            f"{len(ctx.warnings)} warnings"
        )
        return ConversionOutput(html=serialize(soup).strip(), stats=stats, warnings=ctx.warnings)


def convert_storage_format(raw_markup: str, title_to_id: Mapping[str, str]) -> str:
    """Convenience wrapper returning only the converted HTML."""
    return StorageFormatConverter().convert(raw_markup, title_to_id).html


__all__ = ['ConversionContext', 'ConversionOutput', 'StorageFormatConverter', 'convert_storage_format']
