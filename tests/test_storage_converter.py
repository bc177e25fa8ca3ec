"""Tests for storage-format to editor HTML conversion."""

import unittest

from bs4 import BeautifulSoup

from converters import convert_page_markup
from converters.html_cleaner import HtmlCleaner, parse_fragment
from converters.storage_converter import StorageFormatConverter, convert_storage_format


class TestStorageFormatConverter(unittest.TestCase):
    def setUp(self):
        self.converter = StorageFormatConverter()

    def convert(self, markup, titles=None):
        return self.converter.convert(markup, titles or {}, page_id='p1')

    def soup(self, markup, titles=None):
        return BeautifulSoup(self.convert(markup, titles).html, 'html.parser')

    def test_empty_body(self):
        output = self.convert('   ')
        self.assertEqual(output.html, '')
        self.assertEqual(output.stats, {'empty': True})

    def test_code_macro(self):
        markup = (
            '<ac:structured-macro ac:name="code">'
            '<ac:parameter ac:name="language">Python</ac:parameter>'
            '<ac:parameter ac:name="title">example.py</ac:parameter>'
            '<ac:plain-text-body><![CDATA[if a < b:\n    print("<ok>")]]></ac:plain-text-body>'
            '</ac:structured-macro>'
        )
        soup = self.soup(markup)

        pre = soup.find('pre')
        self.assertEqual(pre['data-title'], 'example.py')
        self.assertEqual(pre.code['class'], ['language-python'])
        self.assertEqual(pre.code.get_text(), 'if a < b:\n    print("<ok>")')

    def test_callout_types(self):
        cases = {'info': 'info', 'note': 'info', 'tip': 'success', 'warning': 'warning', 'error': 'danger'}
        for macro_name, callout_type in cases.items():
            markup = (
                f'<ac:structured-macro ac:name="{macro_name}">'
                f'<ac:rich-text-body><p>Careful</p></ac:rich-text-body></ac:structured-macro>'
            )
            div = self.soup(markup).find('div')
            self.assertEqual(div['data-type'], 'callout')
            self.assertEqual(div['data-callout-type'], callout_type, macro_name)
            self.assertEqual(div.p.get_text(), 'Careful')

    def test_panel_becomes_info_callout(self):
        markup = '<ac:structured-macro ac:name="panel"><ac:rich-text-body><p>x</p></ac:rich-text-body></ac:structured-macro>'
        self.assertEqual(self.soup(markup).find('div')['data-callout-type'], 'info')

    def test_expand_with_and_without_title(self):
        markup = (
            '<ac:structured-macro ac:name="expand"><ac:parameter ac:name="title">More</ac:parameter>'
            '<ac:rich-text-body><p>Hidden</p></ac:rich-text-body></ac:structured-macro>'
            '<ac:structured-macro ac:name="expand"><ac:rich-text-body><p>Also</p></ac:rich-text-body>'
            '</ac:structured-macro>'
        )
        summaries = [s.get_text() for s in self.soup(markup).find_all('summary')]
        self.assertEqual(summaries, ['More', 'Click to expand...'])

    def test_toc_removed(self):
        markup = '<ac:structured-macro ac:name="toc" /><p>Body</p>'
        html = self.convert(markup).html
        self.assertEqual(html, '<p>Body</p>')

    def test_page_link_placeholder(self):
        markup = (
            '<p><ac:link><ri:page ri:content-title="Target Page" />'
            '<ac:plain-text-link-body><![CDATA[click here]]></ac:plain-text-link-body></ac:link></p>'
        )
        output = self.convert(markup, {'Target Page': '42'})
        anchor = BeautifulSoup(output.html, 'html.parser').a

        self.assertEqual(anchor['href'], 'page-ref:Target Page')
        self.assertEqual(anchor.get_text(), 'click here')
        self.assertEqual(output.stats['links_internal'], 1)

    def test_page_link_text_defaults_to_title(self):
        markup = '<p><ac:link><ri:page ri:content-title="Unknown" /></ac:link></p>'
        output = self.convert(markup)

        self.assertEqual(BeautifulSoup(output.html, 'html.parser').a.get_text(), 'Unknown')
        self.assertEqual(output.stats['links_unknown_title'], 1)

    def test_attachment_link_and_image(self):
        markup = (
            '<p><ac:link><ri:attachment ri:filename="report.pdf" /></ac:link></p>'
            '<ac:image ac:width="300"><ri:attachment ri:filename="diagram.png" /></ac:image>'
        )
        soup = self.soup(markup)

        self.assertEqual(soup.a['href'], 'attachment-ref:report.pdf')
        self.assertEqual(soup.a.get_text(), 'report.pdf')
        self.assertEqual(soup.img['src'], 'attachment-ref:diagram.png')
        self.assertEqual(soup.img['width'], '300')

    def test_link_to_other_pages_attachment(self):
        markup = (
            '<p><ac:link><ri:attachment ri:filename="design.pdf"><ri:page ri:content-title="Other" /></ri:attachment>'
            '<ac:plain-text-link-body><![CDATA[the design]]></ac:plain-text-link-body></ac:link></p>'
        )
        output = self.convert(markup, {'Other': '7'})
        anchor = BeautifulSoup(output.html, 'html.parser').a

        self.assertEqual(anchor['href'], 'attachment-ref:design.pdf')
        self.assertEqual(anchor.get_text(), 'the design')
        self.assertNotIn('page-ref:', output.html)
        self.assertNotIn('links_internal', output.stats)

    def test_external_link_and_image(self):
        markup = (
            '<p><ac:link><ri:url ri:value="https://example.com" />'
            '<ac:link-body>Example</ac:link-body></ac:link></p>'
            '<ac:image><ri:url ri:value="https://example.com/a.png" /></ac:image>'
        )
        soup = self.soup(markup)

        self.assertEqual(soup.a['href'], 'https://example.com')
        self.assertEqual(soup.a.get_text(), 'Example')
        self.assertEqual(soup.img['src'], 'https://example.com/a.png')

    def test_user_mention(self):
        markup = '<p>Ask <ac:link><ri:user ri:username="jdoe" /></ac:link></p>'
        self.assertEqual(self.convert(markup).html, '<p>Ask @jdoe</p>')

    def test_emoticons(self):
        output = self.convert('<p><ac:emoticon ac:name="thumbs-up" /><ac:emoticon ac:name="mystery" /></p>')

        self.assertEqual(output.html, '<p>\U0001F44D\U0001F642</p>')
        self.assertEqual([w.code for w in output.warnings], ['unknown-emoticon'])

    def test_task_list(self):
        markup = (
            '<ac:task-list>'
            '<ac:task><ac:task-id>1</ac:task-id><ac:task-status>complete</ac:task-status>'
            '<ac:task-body>Done thing</ac:task-body></ac:task>'
            '<ac:task><ac:task-id>2</ac:task-id><ac:task-status>incomplete</ac:task-status>'
            '<ac:task-body>Open thing</ac:task-body></ac:task>'
            '</ac:task-list>'
        )
        soup = self.soup(markup)

        ul = soup.find('ul')
        self.assertEqual(ul['data-type'], 'taskList')
        items = ul.find_all('li')
        self.assertEqual([li['data-checked'] for li in items], ['true', 'false'])
        self.assertTrue(items[0].input.has_attr('checked'))
        self.assertFalse(items[1].input.has_attr('checked'))
        self.assertEqual(items[0].div.get_text(), 'Done thing')
        self.assertNotIn('ac:', str(soup))

    def test_status_macro(self):
        markup = (
            '<p><ac:structured-macro ac:name="status"><ac:parameter ac:name="colour">Green</ac:parameter>'
            '<ac:parameter ac:name="title">DONE</ac:parameter></ac:structured-macro></p>'
        )
        span = self.soup(markup).find('span')

        self.assertEqual(span['data-type'], 'status')
        self.assertEqual(span['data-color'], 'green')
        self.assertEqual(span.get_text(), 'DONE')

    def test_noformat(self):
        markup = '<ac:structured-macro ac:name="noformat"><ac:plain-text-body><![CDATA[raw  text]]></ac:plain-text-body></ac:structured-macro>'
        self.assertEqual(self.convert(markup).html, '<pre><code>raw  text</code></pre>')

    def test_layout_cells_flattened(self):
        markup = (
            '<ac:layout><ac:layout-section ac:type="two_equal">'
            '<ac:layout-cell><p>Left</p></ac:layout-cell><ac:layout-cell><p>Right</p></ac:layout-cell>'
            '</ac:layout-section></ac:layout>'
        )
        self.assertEqual(self.convert(markup).html, '<p>Left</p><p>Right</p>')

    def test_unknown_macro_keeps_body_with_warning(self):
        markup = (
            '<ac:structured-macro ac:name="jira"><ac:parameter ac:name="key">X-1</ac:parameter>'
            '<ac:rich-text-body><p>Kept</p></ac:rich-text-body></ac:structured-macro>'
        )
        output = self.convert(markup)

        self.assertEqual(output.html, '<p>Kept</p>')
        self.assertEqual([w.code for w in output.warnings], ['unsupported-macro'])
        self.assertEqual(output.warnings[0].page_id, 'p1')
        self.assertEqual(output.stats['unsupported_macros'], 1)

    def test_nested_macros(self):
        markup = (
            '<ac:structured-macro ac:name="expand"><ac:rich-text-body>'
            '<ac:structured-macro ac:name="info"><ac:rich-text-body><p>Inner</p></ac:rich-text-body>'
            '</ac:structured-macro></ac:rich-text-body></ac:structured-macro>'
        )
        soup = self.soup(markup)

        self.assertEqual(soup.details.div['data-callout-type'], 'info')
        self.assertEqual(soup.details.div.p.get_text(), 'Inner')

    def test_no_confluence_markup_survives(self):
        markup = (
            '<p>Text <ac:inline-comment-marker ac:ref="abc">marked</ac:inline-comment-marker></p>'
            '<ac:placeholder>Type here</ac:placeholder>'
        )
        html = self.convert(markup).html

        self.assertEqual(html, '<p>Text marked</p>')

    def test_plain_html_untouched(self):
        markup = '<h2>Title</h2><table><tbody><tr><th>H</th></tr><tr><td>V</td></tr></tbody></table>'
        self.assertEqual(convert_storage_format(markup, {}), markup)

    def test_package_helper(self):
        output = convert_page_markup('<p>Hi <ac:emoticon ac:name="smile" /></p>', {}, page_id='p9')
        self.assertEqual(output.html, '<p>Hi \U0001F642</p>')


class TestHtmlCleaner(unittest.TestCase):
    def test_clean_counts(self):
        soup = parse_fragment('<p><ri:page ri:content-title="x" /><ac:unknown>keep</ac:unknown><span></span></p>')
        stats = HtmlCleaner().clean(soup)

        self.assertEqual(stats, {'removed': 1, 'unwrapped': 1})
        self.assertEqual(str(soup), '<p>keep</p>')


if __name__ == '__main__':
    unittest.main()
