"""Tests for the HTML to JSON document builder."""

import json
import unittest

from importers.document_builder import DocumentBuilder


class TestDocumentBuilder(unittest.TestCase):
    def setUp(self):
        self.builder = DocumentBuilder()

    def content(self, html):
        return self.builder.build(html, 'Fallback').content_json['content']

    def test_empty_document_has_one_paragraph(self):
        document = self.builder.build('', 'Untitled')

        self.assertEqual(document.title, 'Untitled')
        self.assertEqual(document.content_json, {'type': 'doc', 'content': [{'type': 'paragraph'}]})
        self.assertEqual(document.text_content, '')

    def test_leading_h1_becomes_title(self):
        document = self.builder.build('<h1>Real Title</h1><p>Body</p>', 'Fallback')

        self.assertEqual(document.title, 'Real Title')
        self.assertEqual(document.content_json['content'], [
            {'type': 'paragraph', 'content': [{'type': 'text', 'text': 'Body'}]}
        ])

    def test_later_h1_stays_in_body(self):
        document = self.builder.build('<p>Intro</p><h1>Section</h1>', 'Fallback')

        self.assertEqual(document.title, 'Fallback')
        self.assertEqual(document.content_json['content'][1]['type'], 'heading')
        self.assertEqual(document.content_json['content'][1]['attrs'], {'level': 1})

    def test_marks_and_links(self):
        content = self.content('<p><strong>bold <em>both</em></strong> <a href="https://x.org">link</a></p>')

        self.assertEqual(content[0]['content'], [
            {'type': 'text', 'text': 'bold ', 'marks': [{'type': 'bold'}]},
            {'type': 'text', 'text': 'both', 'marks': [{'type': 'bold'}, {'type': 'italic'}]},
            {'type': 'text', 'text': ' '},
            {'type': 'text', 'text': 'link', 'marks': [{'type': 'link', 'attrs': {'href': 'https://x.org'}}]},
        ])

    def test_page_mention(self):
        content = self.content('<p><a href="page:n2" data-page-id="n2" data-slug-id="s2">Target</a></p>')

        self.assertEqual(content[0]['content'][0], {
            'type': 'mention',
            'attrs': {'entityType': 'page', 'entityId': 'n2', 'slugId': 's2', 'label': 'Target'}
        })

    def test_code_block(self):
        content = self.content('<pre data-title="run.sh"><code class="language-bash">echo hi</code></pre>')

        self.assertEqual(content[0], {
            'type': 'codeBlock',
            'attrs': {'language': 'bash', 'title': 'run.sh'},
            'content': [{'type': 'text', 'text': 'echo hi'}]
        })

    def test_lists(self):
        content = self.content('<ul><li><p>one</p></li><li>two</li></ul><ol start="3"><li>three</li></ol>')

        self.assertEqual(content[0]['type'], 'bulletList')
        self.assertEqual(len(content[0]['content']), 2)
        self.assertEqual(content[0]['content'][1]['content'][0]['content'][0]['text'], 'two')
        self.assertEqual(content[1]['type'], 'orderedList')
        self.assertEqual(content[1]['attrs'], {'start': 3})

    def test_task_list(self):
        html = (
            '<ul data-type="taskList">'
            '<li data-type="taskItem" data-checked="true"><label><input type="checkbox" checked=""/></label>'
            '<div>Done</div></li></ul>'
        )
        content = self.content(html)

        item = content[0]['content'][0]
        self.assertEqual(content[0]['type'], 'taskList')
        self.assertEqual(item['type'], 'taskItem')
        self.assertEqual(item['attrs'], {'checked': True})
        self.assertEqual(item['content'][0]['content'][0]['text'], 'Done')

    def test_callout_and_details(self):
        html = (
            '<div data-type="callout" data-callout-type="warning"><p>Careful</p></div>'
            '<details><summary>More</summary><p>Hidden</p></details>'
        )
        content = self.content(html)

        self.assertEqual(content[0]['type'], 'callout')
        self.assertEqual(content[0]['attrs'], {'type': 'warning'})
        self.assertEqual(content[1]['type'], 'details')
        self.assertEqual([c['type'] for c in content[1]['content']], ['detailsSummary', 'detailsContent'])

    def test_table(self):
        content = self.content('<table><tr><th>H</th></tr><tr><td colspan="2">V</td></tr></table>')

        rows = content[0]['content']
        self.assertEqual(rows[0]['content'][0]['type'], 'tableHeader')
        self.assertEqual(rows[1]['content'][0]['attrs'], {'colspan': 2, 'rowspan': 1})

    def test_text_content_and_native_doc(self):
        document = self.builder.build('<p>First</p><p>Second <span data-type="status">OK</span></p>', 'T')

        self.assertEqual(document.text_content, 'First\nSecond OK')
        native = json.loads(document.native_doc.decode('utf-8'))
        self.assertEqual(native['title'], 'T')
        self.assertEqual(native['doc'], document.content_json)
        self.assertEqual(json.loads(document.content_json_text()), document.content_json)


if __name__ == '__main__':
    unittest.main()
