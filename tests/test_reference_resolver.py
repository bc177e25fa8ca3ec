"""Tests for placeholder resolution and backlink collection."""

import unittest

from bs4 import BeautifulSoup

from converters.reference_resolver import ReferenceResolver, build_title_map
from models import Backlink, ImportNode


def node(archive_id, title):
    return ImportNode(
        new_id=f'new-{archive_id}', slug_id=f'slug-{archive_id}', title=title,
        raw_markup='', archive_local_path=archive_id
    )


class TestReferenceResolver(unittest.TestCase):
    def setUp(self):
        self.resolver = ReferenceResolver()
        self.target = node('2', 'Target')
        self.title_map = {'Target': self.target}

    def test_page_link_resolved_with_backlink(self):
        html = '<p><a href="page-ref:Target">go</a> and <a href="page-ref:Target">again</a></p>'
        resolved = self.resolver.resolve(html, 'new-1', self.title_map, {})

        anchors = BeautifulSoup(resolved.html, 'html.parser').find_all('a')
        self.assertEqual([a['href'] for a in anchors], ['page:new-2', 'page:new-2'])
        self.assertEqual(anchors[0]['data-page-id'], 'new-2')
        self.assertEqual(anchors[0]['data-slug-id'], 'slug-2')
        self.assertEqual(resolved.backlinks, [Backlink('new-1', 'new-2')])
        self.assertEqual(resolved.warnings, [])

    def test_unknown_title_degrades_to_text(self):
        html = '<p>See <a href="page-ref:Missing">the missing page</a>.</p>'
        resolved = self.resolver.resolve(html, 'new-1', self.title_map, {})

        self.assertEqual(resolved.html, '<p>See the missing page.</p>')
        self.assertEqual(resolved.backlinks, [])
        self.assertEqual([w.code for w in resolved.warnings], ['broken-link'])
        self.assertEqual(resolved.warnings[0].detail, 'Missing')

    def test_self_link_produces_no_backlink(self):
        html = '<a href="page-ref:Target">me</a>'
        resolved = self.resolver.resolve(html, 'new-2', self.title_map, {})

        self.assertIn('page:new-2', resolved.html)
        self.assertEqual(resolved.backlinks, [])

    def test_attachment_placeholder_rewritten_to_archive_path(self):
        html = '<img src="attachment-ref:diagram.png"/><a href="attachment-ref:absent.pdf">absent</a>'
        paths = {'diagram.png': 'attachments/1/55/1'}
        resolved = self.resolver.resolve(html, 'new-1', self.title_map, paths)

        soup = BeautifulSoup(resolved.html, 'html.parser')
        self.assertEqual(soup.img['src'], 'attachments/1/55/1')
        self.assertEqual(soup.a['href'], 'attachment-ref:absent.pdf')

    def test_attachment_paths_are_per_page(self):
        html = '<img src="attachment-ref:image.png"/>'
        own = self.resolver.resolve(html, 'new-2', self.title_map, {'image.png': 'attachments/12/image.png'})
        unrelated = self.resolver.resolve(html, 'new-3', self.title_map, {'other.png': 'attachments/13/other.png'})

        self.assertIn('attachments/12/image.png', own.html)
        self.assertIn('attachment-ref:image.png', unrelated.html)

    def test_empty_html(self):
        resolved = self.resolver.resolve('', 'new-1', self.title_map, {})
        self.assertEqual(resolved.html, '')
        self.assertEqual(resolved.backlinks, [])


class TestHelpers(unittest.TestCase):
    def test_title_map_only_contains_committed_nodes(self):
        committed = {'1': node('1', 'Kept')}
        title_map = build_title_map({'Kept': '1', 'Skipped': '9'}, committed)

        self.assertEqual(list(title_map), ['Kept'])
        self.assertEqual(title_map['Kept'].new_id, 'new-1')


if __name__ == '__main__':
    unittest.main()
