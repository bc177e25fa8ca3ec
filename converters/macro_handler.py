"""Confluence macro handler for converting storage-format macros to editor HTML."""

import logging
from typing import TYPE_CHECKING, List, Optional

from bs4 import BeautifulSoup, Tag

from converters.html_cleaner import move_children, replace_with_children, replace_with_text

if TYPE_CHECKING:
    from converters.storage_converter import ConversionContext

logger = logging.getLogger('confluence_space_importer.converters.macrohandler')

MACRO_TAG = 'ac:structured-macro'

# Confluence macro name -> callout type understood by the editor
CALLOUT_TYPES = {
    'info': 'info',
    'note': 'info',
    'tip': 'success',
    'warning': 'warning',
    'error': 'danger',
}

EXPAND_DEFAULT_TITLE = 'Click to expand...'
STATUS_DEFAULT_TITLE = 'Status'

DEFAULT_EMOTICON = '\U0001F642'

EMOTICON_MAP = {
    'smile': '\U0001F642',
    'sad': '\U0001F641',
    'cheeky': '\U0001F61B',
    'laugh': '\U0001F604',
    'wink': '\U0001F609',
    'thumbs-up': '\U0001F44D',
    'thumbs_up': '\U0001F44D',
    'thumbs-down': '\U0001F44E',
    'thumbs_down': '\U0001F44E',
    'information': 'ℹ',
    'tick': '✔',
    'cross': '❌',
    'warning': '⚠',
    'plus': '➕',
    'minus': '➖',
    'question': '❓',
    'light-on': '\U0001F4A1',
    'light_on': '\U0001F4A1',
    'light-off': '\U0001F4A1',
    'light_off': '\U0001F4A1',
    'yellow-star': '⭐',
    'yellow_star': '⭐',
    'red-star': '⭐',
    'red_star': '⭐',
    'green-star': '⭐',
    'green_star': '⭐',
    'blue-star': '⭐',
    'blue_star': '⭐',
    'heart': '❤',
    'broken-heart': '\U0001F494',
    'broken_heart': '\U0001F494',
}


def find_macros(soup: BeautifulSoup, name: str) -> List[Tag]:
    return soup.find_all(MACRO_TAG, attrs={'ac:name': name})


def macro_parameter(macro: Tag, name: str) -> str:
    """Value of a macro's own parameter, stripped; empty if absent."""
    param = macro.find('ac:parameter', attrs={'ac:name': name}, recursive=False)
    return param.get_text().strip() if param is not None else ''


def rich_body(macro: Tag) -> Optional[Tag]:
    return macro.find('ac:rich-text-body', recursive=False)


def plain_body_text(macro: Tag) -> str:
    """Text of the plain-text body, falling back to the rich body's text."""
    body = macro.find('ac:plain-text-body', recursive=False)
    if body is not None:
        return body.get_text()
    body = rich_body(macro)
    return body.get_text() if body is not None else ''


class MacroHandler:
    """Converts Confluence macros and ``ac:`` structures to editor-friendly HTML."""

    def __init__(self, logger: logging.Logger = None):
        """Initialize macro handler with optional logger."""
        self.logger = logger or logging.getLogger('confluence_space_importer.converters.macrohandler')

    def convert_code(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """code -> <pre><code class="language-x">, title kept as data-title."""
        for macro in find_macros(soup, 'code'):
            language = macro_parameter(macro, 'language')
            title = macro_parameter(macro, 'title')

            pre = soup.new_tag('pre')
            if title:
                pre['data-title'] = title
            code = soup.new_tag('code')
            if language:
                code['class'] = f'language-{language.lower()}'
            code.string = plain_body_text(macro)
            pre.append(code)

            macro.replace_with(pre)
            ctx.count_macro('code')

    def convert_callouts(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        for macro_name, callout_type in CALLOUT_TYPES.items():
            for macro in find_macros(soup, macro_name):
                self._replace_with_callout(soup, macro, callout_type)
                ctx.count_macro(macro_name)

    def convert_panels(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        for macro in find_macros(soup, 'panel'):
            self._replace_with_callout(soup, macro, 'info')
            ctx.count_macro('panel')

    def convert_expands(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """expand -> <details><summary>title</summary>body</details>."""
        for macro in find_macros(soup, 'expand'):
            details = soup.new_tag('details')
            summary = soup.new_tag('summary')
            summary.string = macro_parameter(macro, 'title') or EXPAND_DEFAULT_TITLE
            details.append(summary)
            move_children(rich_body(macro), details)

            macro.replace_with(details)
            ctx.count_macro('expand')

    def convert_toc(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """The editor renders its own outline: toc goes, toc-zone keeps its body."""
        for macro in find_macros(soup, 'toc'):
            macro.decompose()
            ctx.count_macro('toc')

        for macro in find_macros(soup, 'toc-zone'):
            replace_with_children(macro, rich_body(macro))
            ctx.count_macro('toc-zone')

    def convert_emoticons(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        for emoticon in soup.find_all('ac:emoticon'):
            name = (emoticon.get('ac:name') or '').strip()
            glyph = EMOTICON_MAP.get(name)
            if glyph is None:
                glyph = DEFAULT_EMOTICON
                ctx.warn('unknown-emoticon', f"Unknown emoticon '{name}' replaced with default", detail=name)

            replace_with_text(emoticon, glyph)
            ctx.count('emoticons')

    def convert_tasks(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """
        ac:task-list -> <ul data-type="taskList"> with one taskItem per task.

        Each item carries a checkbox label and the task
        body in a div, which is the shape the editor's task extension parses.
        """
        # Innermost lists first so nested task lists are already converted
        for task_list in reversed(soup.find_all('ac:task-list')):
            ul = soup.new_tag('ul', attrs={'data-type': 'taskList'})

            for task in task_list.find_all('ac:task', recursive=False):
                status = task.find('ac:task-status', recursive=False)
                checked = status is not None and status.get_text().strip() == 'complete'

                li = soup.new_tag('li', attrs={
                    'data-type': 'taskItem',
                    'data-checked': 'true' if checked else 'false'
                })
                label = soup.new_tag('label')
                checkbox = soup.new_tag('input', attrs={'type': 'checkbox'})
                if checked:
                    checkbox['checked'] = ''
                label.append(checkbox)
                li.append(label)

                li.append(move_children(task.find('ac:task-body', recursive=False), soup.new_tag('div')))
                ul.append(li)
                ctx.count('tasks')

            task_list.replace_with(ul)

    def convert_status(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        for macro in find_macros(soup, 'status'):
            span = soup.new_tag('span', attrs={'data-type': 'status'})
            colour = macro_parameter(macro, 'colour') or macro_parameter(macro, 'color')
            if colour:
                span['data-color'] = colour.lower()
            span.string = macro_parameter(macro, 'title') or STATUS_DEFAULT_TITLE

            macro.replace_with(span)
            ctx.count_macro('status')

    def convert_noformat(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        for macro in find_macros(soup, 'noformat'):
            pre = soup.new_tag('pre')
            code = soup.new_tag('code')
            code.string = plain_body_text(macro)
            pre.append(code)

            macro.replace_with(pre)
            ctx.count_macro('noformat')

    def convert_layouts(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """Flatten page layouts: cells are concatenated in column order."""
        for section in soup.find_all('ac:layout-section'):
            for cell in section.find_all('ac:layout-cell', recursive=False):
                replace_with_children(cell, cell)
            section.unwrap()
            ctx.count('layout_sections')

        for layout in soup.find_all('ac:layout'):
            layout.unwrap()

    def convert_unknown(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """Unwrap the rich body of any macro no rule claimed."""
        for macro in reversed(soup.find_all(MACRO_TAG)):
            name = macro.get('ac:name') or 'unnamed'
            ctx.warn('unsupported-macro', f"Unsupported macro type: {name}", detail=name)
            ctx.count('unsupported_macros')
            self.logger.debug(f"Unwrapping unsupported macro: {name}")
            replace_with_children(macro, rich_body(macro))

    def _replace_with_callout(self, soup: BeautifulSoup, macro: Tag, callout_type: str) -> None:
        callout = soup.new_tag('div', attrs={
            'data-type': 'callout',
            'data-callout-type': callout_type
        })
        move_children(rich_body(macro), callout)
        macro.replace_with(callout)


__all__ = [
    'CALLOUT_TYPES',
    'DEFAULT_EMOTICON',
    'EMOTICON_MAP',
    'MacroHandler',
    'find_macros',
    'macro_parameter'
]
