"""
Rich-document builder.

Turns converted page HTML into the editor's JSON block tree, a plain-text
rendition for search, and a serialized native document.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment

from converters.html_cleaner import parse_fragment

logger = logging.getLogger('confluence_space_importer.importers.document_builder')

HEADINGS = {'h1': 1, 'h2': 2, 'h3': 3, 'h4': 4, 'h5': 5, 'h6': 6}

MARK_TAGS = {
    'strong': 'bold',
    'b': 'bold',
    'em': 'italic',
    'i': 'italic',
    'u': 'underline',
    's': 'strike',
    'del': 'strike',
    'strike': 'strike',
    'code': 'code',
    'sub': 'subscript',
    'sup': 'superscript',
}

BLOCK_TAGS = {
    'p', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'ul', 'ol', 'pre', 'blockquote',
    'table', 'hr', 'div', 'details', 'section', 'article'
}


@dataclass
class BuiltDocument:
    """Everything the store needs for one page body."""

    title: str
    content_json: Dict[str, Any]
    text_content: str
    native_doc: bytes

    def content_json_text(self) -> str:
        return json.dumps(self.content_json, ensure_ascii=False, sort_keys=True)


def text_node(text: str, marks: List[Dict[str, Any]]) -> Dict[str, Any]:
    node: Dict[str, Any] = {'type': 'text', 'text': text}
    if marks:
        node['marks'] = [dict(mark) for mark in marks]
    return node


class DocumentBuilder:
    """Walks normalized HTML into a doc/paragraph/heading/... JSON tree."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.document_builder')

    def build(self, html: str, fallback_title: str) -> BuiltDocument:
        """
        Build the stored representation of a page.

        A leading ``<h1>`` becomes the title and is dropped from the body.

        Args:
            html: Page HTML after reference resolution and attachment rewrite
            fallback_title: Title used when the body has no leading h1

        Returns:
            BuiltDocument
        """
        soup = parse_fragment(html or '')
        title = fallback_title

        first = self._first_element(soup)
        if first is not None and first.name == 'h1':
            heading_text = first.get_text().strip()
            if heading_text:
                title = heading_text
                first.decompose()

        content = self._blocks(soup)
        doc = {'type': 'doc', 'content': content or [{'type': 'paragraph'}]}
        text = self._plain_text(doc).strip()

        native = json.dumps(
            {'title': title, 'doc': doc},
            ensure_ascii=False,
            separators=(',', ':'),
            sort_keys=True
        ).encode('utf-8')

        return BuiltDocument(title=title, content_json=doc, text_content=text, native_doc=native)

    @staticmethod
    def _first_element(soup: BeautifulSoup) -> Optional[Tag]:
        for child in soup.contents:
            if isinstance(child, Tag):
                return child
            if isinstance(child, NavigableString) and not isinstance(child, Comment) and child.strip():
                return None
        return None

    # Block level

    def _blocks(self, parent: Tag) -> List[Dict[str, Any]]:
        """Block nodes for the children of ``parent``; stray inline runs become paragraphs."""
        blocks: List[Dict[str, Any]] = []
        inline_run: List[Any] = []

        def flush():
            inline = self._inlines(inline_run, [])
            if any(node.get('type') != 'text' or node['text'].strip() for node in inline):
                blocks.append({'type': 'paragraph', 'content': inline})
            inline_run.clear()

        for child in parent.children:
            if isinstance(child, Comment):
                continue
            if isinstance(child, Tag) and (child.name in BLOCK_TAGS or self._is_block_image(child, parent)):
                flush()
                blocks.extend(self._block(child))
            else:
                inline_run.append(child)
        flush()

        return blocks

    def _is_block_image(self, child: Tag, parent: Tag) -> bool:
        return child.name == 'img' and parent.name in (None, '[document]', 'div', 'details', 'blockquote', 'li')

    def _block(self, element: Tag) -> List[Dict[str, Any]]:
        name = element.name

        if name == 'p':
            return [self._with_content({'type': 'paragraph'}, self._inlines(element.children, []))]

        if name in HEADINGS:
            node = {'type': 'heading', 'attrs': {'level': HEADINGS[name]}}
            return [self._with_content(node, self._inlines(element.children, []))]

        if name == 'ul' and element.get('data-type') == 'taskList':
            return [{'type': 'taskList', 'content': self._task_items(element)}]

        if name in ('ul', 'ol'):
            node = {'type': 'bulletList' if name == 'ul' else 'orderedList'}
            if name == 'ol' and element.get('start'):
                node['attrs'] = {'start': self._int_attr(element.get('start'), 1)}
            items = [
                {'type': 'listItem', 'content': self._blocks(li) or [{'type': 'paragraph'}]}
                for li in element.find_all('li', recursive=False)
            ]
            return [self._with_content(node, items)]

        if name == 'pre':
            return [self._code_block(element)]

        if name == 'blockquote':
            return [self._with_content({'type': 'blockquote'}, self._blocks(element))]

        if name == 'hr':
            return [{'type': 'horizontalRule'}]

        if name == 'img':
            return [self._image(element)]

        if name == 'table':
            return [self._table(element)]

        if name == 'details':
            return [self._details(element)]

        if name == 'div' and element.get('data-type') == 'callout':
            node = {'type': 'callout', 'attrs': {'type': element.get('data-callout-type', 'info')}}
            return [self._with_content(node, self._blocks(element) or [{'type': 'paragraph'}])]

        # Plain wrappers contribute their children
        return self._blocks(element)

    def _task_items(self, element: Tag) -> List[Dict[str, Any]]:
        items = []
        for li in element.find_all('li', recursive=False):
            body = li.find('div', recursive=False)
            content = self._blocks(body) if body is not None else []
            items.append({
                'type': 'taskItem',
                'attrs': {'checked': li.get('data-checked') == 'true'},
                'content': content or [{'type': 'paragraph'}]
            })
        return items

    def _code_block(self, element: Tag) -> Dict[str, Any]:
        code = element.find('code')
        language = None
        if code is not None:
            classes = code.get('class') or []
            if isinstance(classes, str):
                classes = classes.split()
            for cls in classes:
                if cls.startswith('language-'):
                    language = cls[len('language-'):]
                    break

        attrs: Dict[str, Any] = {'language': language}
        if element.get('data-title'):
            attrs['title'] = element['data-title']

        text = (code if code is not None else element).get_text()
        node: Dict[str, Any] = {'type': 'codeBlock', 'attrs': attrs}
        if text:
            node['content'] = [{'type': 'text', 'text': text}]
        return node

    def _details(self, element: Tag) -> Dict[str, Any]:
        summary = element.find('summary', recursive=False)
        summary_inline = self._inlines(summary.children, []) if summary is not None else []
        if summary is not None:
            summary.extract()

        return {
            'type': 'details',
            'content': [
                self._with_content({'type': 'detailsSummary'}, summary_inline),
                {'type': 'detailsContent', 'content': self._blocks(element) or [{'type': 'paragraph'}]}
            ]
        }

    def _table(self, element: Tag) -> Dict[str, Any]:
        rows = []
        for tr in element.find_all('tr'):
            if tr.find_parent('table') is not element:
                continue
            cells = []
            for cell in tr.find_all(['td', 'th'], recursive=False):
                attrs = {
                    'colspan': self._int_attr(cell.get('colspan'), 1),
                    'rowspan': self._int_attr(cell.get('rowspan'), 1)
                }
                cells.append({
                    'type': 'tableHeader' if cell.name == 'th' else 'tableCell',
                    'attrs': attrs,
                    'content': self._blocks(cell) or [{'type': 'paragraph'}]
                })
            rows.append({'type': 'tableRow', 'content': cells})
        return {'type': 'table', 'content': rows}

    @staticmethod
    def _image(element: Tag) -> Dict[str, Any]:
        attrs = {'src': element.get('src', ''), 'alt': element.get('alt')}
        for dimension in ('width', 'height'):
            if element.get(dimension):
                attrs[dimension] = element[dimension]
        return {'type': 'image', 'attrs': attrs}

    # Inline level

    def _inlines(self, children, marks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        nodes: List[Dict[str, Any]] = []
        for child in list(children):
            if isinstance(child, Comment):
                continue
            if isinstance(child, NavigableString):
                text = str(child)
                if text:
                    nodes.append(text_node(text, marks))
                continue
            if not isinstance(child, Tag):
                continue

            name = child.name
            if name == 'br':
                nodes.append({'type': 'hardBreak'})
            elif name == 'img':
                nodes.append(self._image(child))
            elif name == 'a' and child.get('data-page-id'):
                nodes.append({
                    'type': 'mention',
                    'attrs': {
                        'entityType': 'page',
                        'entityId': child['data-page-id'],
                        'slugId': child.get('data-slug-id'),
                        'label': child.get_text()
                    }
                })
            elif name == 'a' and child.get('href'):
                link = {'type': 'link', 'attrs': {'href': child['href']}}
                nodes.extend(self._inlines(child.children, marks + [link]))
            elif name == 'span' and child.get('data-type') == 'status':
                nodes.append({
                    'type': 'status',
                    'attrs': {'text': child.get_text(), 'color': child.get('data-color')}
                })
            elif name in MARK_TAGS:
                nodes.extend(self._inlines(child.children, marks + [{'type': MARK_TAGS[name]}]))
            else:
                nodes.extend(self._inlines(child.children, marks))

        return self._merge_text(nodes)

    @staticmethod
    def _merge_text(nodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        merged: List[Dict[str, Any]] = []
        for node in nodes:
            previous = merged[-1] if merged else None
            if (previous is not None and node['type'] == 'text' and previous['type'] == 'text'
                    and previous.get('marks') == node.get('marks')):
                previous['text'] += node['text']
            else:
                merged.append(node)
        return merged

    @staticmethod
    def _with_content(node: Dict[str, Any], content: List[Dict[str, Any]]) -> Dict[str, Any]:
        if content:
            node['content'] = content
        return node

    @staticmethod
    def _int_attr(value: Any, default: int) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _plain_text(self, node: Dict[str, Any]) -> str:
        node_type = node.get('type')
        if node_type == 'text':
            return node['text']
        if node_type == 'hardBreak':
            return '\n'
        if node_type == 'mention':
            return node['attrs'].get('label') or ''
        if node_type == 'status':
            return node['attrs'].get('text') or ''

        parts = [self._plain_text(child) for child in node.get('content', [])]
        if node_type in ('paragraph', 'heading', 'codeBlock', 'detailsSummary', 'tableCell', 'tableHeader'):
            return ''.join(parts)
        return '\n'.join(part for part in parts if part)


__all__ = ['BuiltDocument', 'DocumentBuilder']
