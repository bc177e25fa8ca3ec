"""End-to-end tests for the import orchestrator and its reports."""

import json
import re
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from cancellation import CancellationToken
from errors import (
    ConfluenceImportError,
    ImportCancelledError,
    NoPagesFoundError,
    NoSpaceInfoFoundError,
    TransactionFailureError
)
from importers.document_store import DocumentStore, PageRecord
from importers.event_bus import PAGES_CREATED, EventBus
from models import Backlink
from orchestrator import ImportOrchestrator, ImportReport
from tests.export_fixtures import ExportBuilder, abc_export


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.store = DocumentStore()
        self.bus = EventBus()
        self.events = []
        self.bus.subscribe(PAGES_CREATED, self.events.append)
        self.config = {
            'import': {'progress_bars': False, 'max_workers': 2, 'workspace_id': 'ws', 'creator_id': 'user-1'},
            'attachments': {'storage_dir': str(self.tmp / 'storage')}
        }

    def tearDown(self):
        self.store.close()
        shutil.rmtree(self.tmp)

    def orchestrator(self, **overrides):
        config = dict(self.config)
        config['import'] = dict(self.config['import'], **overrides)
        return ImportOrchestrator(config, store=self.store, event_bus=self.bus)

    def write(self, builder, name='export'):
        return builder.write(self.tmp / name)

    def pages_by_title(self, space_id):
        return {page['title']: page for page in self.store.get_pages(space_id)}


class TestSpaceImport(OrchestratorTestCase):
    def test_abc_export(self):
        result = self.orchestrator().run(self.write(abc_export()), mode='space')

        self.assertEqual(result.page_count, 3)
        self.assertEqual(result.collection_name, 'Space S')
        space = self.store.get_space(result.collection_id)
        self.assertEqual(space['slug'], 's')
        self.assertEqual(space['workspace_id'], 'ws')

        pages = self.pages_by_title(result.collection_id)
        self.assertEqual(set(pages), {'A', 'B', 'C'})
        self.assertIsNone(pages['A']['parent_page_id'])
        self.assertIsNone(pages['C']['parent_page_id'])
        self.assertEqual(pages['B']['parent_page_id'], pages['A']['id'])
        self.assertLess(pages['A']['position'], pages['C']['position'])

        self.assertEqual(self.store.get_backlinks(), [Backlink(pages['C']['id'], pages['A']['id'])])
        self.assertEqual(result.backlink_count, 1)
        for page in pages.values():
            self.assertNotIn('page-ref:', page['content_json'])
            self.assertNotIn('attachment-ref:', page['content_json'])

        content = json.loads(pages['C']['content_json'])
        mention = content['content'][0]['content'][1]
        self.assertEqual(mention['type'], 'mention')
        self.assertEqual(mention['attrs']['entityId'], pages['A']['id'])

    def test_creator_is_space_admin(self):
        result = self.orchestrator(admin_user_ids=['user-2']).run(self.write(abc_export()), mode='space')

        members = self.store.get_space_members(result.collection_id)
        self.assertEqual([(m['user_id'], m['role']) for m in members], [('user-1', 'admin'), ('user-2', 'admin')])

    def test_siblings_without_position_ordered_by_title(self):
        builder = (
            ExportBuilder()
            .space('1', 'Space S', 'S', home_page_id='10')
            .page('10', 'Home')
            .page('11', 'Zeta', parent_id='10')
            .page('12', 'Alpha', parent_id='10')
        )
        result = self.orchestrator().run(self.write(builder), mode='space')

        pages = self.pages_by_title(result.collection_id)
        self.assertLess(pages['Alpha']['position'], pages['Zeta']['position'])

    def test_broken_link_reported(self):
        builder = (
            ExportBuilder()
            .space('1', 'Space S', 'S')
            .page('11', 'A', body='<p><ac:link><ri:page ri:content-title="Nowhere" /></ac:link></p>')
        )
        result = self.orchestrator().run(self.write(builder), mode='space')

        codes = [w.code for w in result.warnings]
        self.assertIn('broken-link', codes)
        self.assertEqual(self.store.get_backlinks(), [])
        page = self.pages_by_title(result.collection_id)['A']
        self.assertIn('Nowhere', page['text_content'])
        self.assertNotIn('page-ref:', page['content_json'])

    def test_orphan_promoted_in_space_mode(self):
        builder = (
            ExportBuilder()
            .space('1', 'Space S', 'S')
            .page('11', 'Kept')
            .page('12', 'Lost', parent_id='99')
        )
        result = self.orchestrator().run(self.write(builder), mode='space')

        pages = self.pages_by_title(result.collection_id)
        self.assertEqual(set(pages), {'Kept', 'Lost'})
        self.assertIsNone(pages['Lost']['parent_page_id'])
        self.assertIn('orphan-promoted', [w.code for w in result.warnings])

    def test_attachment_stored(self):
        builder = (
            ExportBuilder()
            .space('1', 'Space S', 'S')
            .page('11', 'A', body='<ac:image><ri:attachment ri:filename="diagram.png" /></ac:image>',
                  attachment_ids=['100'])
            .attachment('100', 'diagram.png', '11', data=b'png-bytes', content_type='image/png')
        )
        result = self.orchestrator().run(self.write(builder), mode='space')

        self.assertEqual(result.stats['attachments']['stored'], 1)
        page = self.pages_by_title(result.collection_id)['A']
        self.assertIn('/files/', page['content_json'])
        stored_files = [p for p in (self.tmp / 'storage').rglob('*') if p.is_file()]
        self.assertEqual([p.read_bytes() for p in stored_files], [b'png-bytes'])

    def test_same_file_name_on_two_pages(self):
        image = '<ac:image><ri:attachment ri:filename="image.png" /></ac:image>'
        builder = (
            ExportBuilder()
            .space('1', 'Space S', 'S')
            .page('11', 'A', position=0, body=image, attachment_ids=['100'])
            .page('12', 'B', position=1, body=image, attachment_ids=['200'])
            .attachment('100', 'image.png', '11', content_type='image/png', write_file=False)
            .attachment('200', 'image.png', '12', content_type='image/png', write_file=False)
        )
        builder.files['attachments/11/image.png'] = b'AAAA'
        builder.files['attachments/12/image.png'] = b'BBBB'
        result = self.orchestrator().run(self.write(builder), mode='space')

        pages = self.pages_by_title(result.collection_id)
        for title, data in (('A', b'AAAA'), ('B', b'BBBB')):
            with self.subTest(page=title):
                match = re.search(r'/files/([^/"]+)/image\.png', pages[title]['content_json'])
                stored = self.tmp / 'storage' / pages[title]['id'] / match.group(1) / 'image.png'
                self.assertEqual(stored.read_bytes(), data)

    def test_rerun_creates_second_space(self):
        export_dir = self.write(abc_export())
        first = self.orchestrator().run(export_dir, mode='space')
        second = self.orchestrator().run(export_dir, mode='space')

        self.assertNotEqual(first.collection_id, second.collection_id)
        self.assertEqual(self.store.get_space(second.collection_id)['slug'], 's-2')
        first_pages = self.pages_by_title(first.collection_id)
        second_pages = self.pages_by_title(second.collection_id)
        self.assertEqual(set(first_pages), set(second_pages))
        self.assertTrue(set(p['id'] for p in first_pages.values()).isdisjoint(p['id'] for p in second_pages.values()))
        self.assertEqual(self.page_shapes(first_pages), self.page_shapes(second_pages))

    def page_shapes(self, pages):
        """Parent title, position and content per title, with page ids replaced by titles."""
        titles = {page['id']: title for title, page in pages.items()}
        slugs = {page['slug_id']: title for title, page in pages.items()}

        def normalize(node):
            if isinstance(node, dict):
                node = {key: normalize(value) for key, value in node.items()}
                if node.get('type') == 'mention':
                    attrs = dict(node['attrs'])
                    attrs['entityId'] = titles.get(attrs['entityId'])
                    attrs['slugId'] = slugs.get(attrs['slugId'])
                    node['attrs'] = attrs
                return node
            if isinstance(node, list):
                return [normalize(item) for item in node]
            return node

        return {
            title: (titles.get(page['parent_page_id']), page['position'], normalize(json.loads(page['content_json'])))
            for title, page in pages.items()
        }

    def test_page_icon_stored(self):
        builder = abc_export().content_property('p1', 'emoji-title-published', '11', string_value='1f4d8')
        result = self.orchestrator().run(self.write(builder), mode='space')

        pages = self.pages_by_title(result.collection_id)
        self.assertEqual(pages['A']['icon'], '\U0001F4D8')
        self.assertIsNone(pages['C']['icon'])

    def test_event_emitted_after_commit(self):
        result = self.orchestrator().run(self.write(abc_export()), mode='space')

        self.assertEqual(len(self.events), 1)
        self.assertEqual(sorted(self.events[0]['page_ids']), sorted(result.committed_page_ids))
        self.assertEqual(self.events[0]['space_id'], result.collection_id)

    def test_commit_failure_rolls_back_and_soft_deletes_space(self):
        orchestrator = self.orchestrator()
        created = []
        create_space = orchestrator.space_service.create_space

        def record_space(**kwargs):
            space = create_space(**kwargs)
            created.append(space)
            return space

        original_build = orchestrator.document_builder.build
        calls = []

        def failing_build(html, title):
            calls.append(title)
            if len(calls) == 2:
                raise RuntimeError("builder exploded")
            return original_build(html, title)

        with mock.patch.object(orchestrator.space_service, 'create_space', side_effect=record_space), \
                mock.patch.object(orchestrator.document_builder, 'build', side_effect=failing_build):
            with self.assertRaises(TransactionFailureError):
                orchestrator.run(self.write(abc_export()), mode='space')

        self.assertEqual(self.store.count_pages(), 0)
        self.assertEqual(self.store.get_backlinks(), [])
        self.assertEqual(len(created), 1)
        self.assertIsNotNone(self.store.get_space(created[0]['id'])['deleted_at'])
        self.assertEqual(self.events, [])

    def test_commit_failure_without_compensation_keeps_space(self):
        orchestrator = self.orchestrator(compensate_on_failure=False)

        with mock.patch.object(orchestrator.document_builder, 'build', side_effect=RuntimeError("boom")):
            with self.assertRaises(TransactionFailureError):
                orchestrator.run(self.write(abc_export()), mode='space')

        self.assertEqual(self.store.list_space_slugs('ws'), {'s'})
        self.assertEqual(self.store.count_pages(), 0)


class TestPagesImport(OrchestratorTestCase):
    def setUp(self):
        super().setUp()
        self.store.create_space('target', 'Target', 'target', 'ws', 'user-1')
        with self.store.transaction():
            self.store.insert_page(PageRecord(
                id='existing', slug_id='existing-slug', title='Existing', content_json='{}', text_content='',
                native_doc=None, position='a0', parent_page_id=None, space_id='target',
                workspace_id='ws', creator_id='user-1'
            ))

    def test_pages_appended_after_existing_roots(self):
        result = self.orchestrator().run(self.write(abc_export()), mode='pages', target_space_id='target')

        self.assertEqual(result.page_count, 4)
        self.assertEqual(result.collection_id, 'target')
        pages = self.pages_by_title('target')
        self.assertEqual(set(pages), {'Existing', 'Home', 'A', 'B', 'C'})
        self.assertIsNone(pages['Home']['parent_page_id'])
        self.assertGreater(pages['Home']['position'], pages['Existing']['position'])
        self.assertEqual(pages['A']['parent_page_id'], pages['Home']['id'])
        self.assertEqual(self.store.list_space_slugs('ws'), {'target'})

    def test_space_id_from_config(self):
        result = self.orchestrator(space_id='target').run(self.write(abc_export()), mode='pages')
        self.assertEqual(result.collection_id, 'target')

    def test_pages_mode_without_space_record(self):
        builder = ExportBuilder().page('11', 'Loose')
        result = self.orchestrator().run(self.write(builder), mode='pages', target_space_id='target')

        self.assertEqual(result.page_count, 1)

    def test_orphan_skipped_by_default(self):
        builder = (
            ExportBuilder()
            .page('11', 'Kept')
            .page('12', 'Lost', parent_id='99')
            .page('13', 'Below Lost', parent_id='12')
        )
        result = self.orchestrator().run(self.write(builder), mode='pages', target_space_id='target')

        self.assertEqual(set(self.pages_by_title('target')), {'Existing', 'Kept'})
        self.assertEqual(result.stats['hierarchy']['anomalies'], 2)
        self.assertEqual([w.code for w in result.warnings].count('orphaned-page'), 2)

    def test_missing_target_space(self):
        with self.assertRaises(ConfluenceImportError):
            self.orchestrator().run(self.write(abc_export()), mode='pages', target_space_id='nope')
        self.assertEqual(self.store.count_pages(), 1)


class TestStructuralFailures(OrchestratorTestCase):
    def test_no_pages(self):
        builder = ExportBuilder().space('1', 'Space S', 'S')
        with self.assertRaises(NoPagesFoundError):
            self.orchestrator().run(self.write(builder), mode='space')
        self.assertEqual(self.store.list_space_slugs('ws'), set())

    def test_only_draft_pages(self):
        builder = (
            ExportBuilder()
            .space('1', 'Space S', 'S')
            .page('11', 'A', status='draft')
        )
        with self.assertRaises(NoPagesFoundError):
            self.orchestrator().run(self.write(builder), mode='space')

    def test_space_mode_needs_space_record(self):
        builder = ExportBuilder().page('11', 'A')
        with self.assertRaises(NoSpaceInfoFoundError):
            self.orchestrator().run(self.write(builder), mode='space')

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()

        with self.assertRaises(ImportCancelledError):
            self.orchestrator().run(self.write(abc_export()), mode='space', cancel_token=token)
        self.assertEqual(self.store.list_space_slugs('ws'), set())

    def test_cancelled_during_conversion(self):
        token = CancellationToken()
        orchestrator = self.orchestrator(max_workers=1)
        original_convert = orchestrator.converter.convert

        def convert_then_cancel(*args, **kwargs):
            token.cancel()
            return original_convert(*args, **kwargs)

        with mock.patch.object(orchestrator.converter, 'convert', side_effect=convert_then_cancel):
            with self.assertRaises(ImportCancelledError):
                orchestrator.run(self.write(abc_export()), mode='space', cancel_token=token)

        self.assertEqual(self.store.list_space_slugs('ws'), set())
        self.assertEqual(self.store.count_pages(), 0)

    def test_conversion_failure_becomes_warning(self):
        orchestrator = self.orchestrator()
        with mock.patch.object(orchestrator.converter, 'convert', side_effect=RuntimeError("bad markup")):
            result = orchestrator.run(self.write(abc_export()), mode='space')

        self.assertEqual(result.page_count, 3)
        self.assertEqual([w.code for w in result.warnings].count('conversion-failed'), 3)


class TestImportReport(OrchestratorTestCase):
    def test_report_sections(self):
        result = self.orchestrator().run(self.write(abc_export()), mode='space')
        report = ImportReport()
        data = report.generate_report(result)

        self.assertEqual(data['summary']['pages'], 3)
        self.assertEqual(data['summary']['backlinks'], 1)
        self.assertEqual(data['summary']['space_name'], 'Space S')
        self.assertEqual(data['stats']['mode'], 'space')
        self.assertIn('IMPORT REPORT', report.format_console_report(data))

        path = self.tmp / 'report.json'
        report.export_json_report(data, str(path))
        self.assertEqual(json.loads(path.read_text(encoding='utf-8'))['summary']['pages'], 3)

    def test_plan_preview(self):
        plan = self.orchestrator().plan(self.write(abc_export()), mode='space')
        preview = ImportReport().format_plan_preview(plan)

        lines = preview.splitlines()
        self.assertEqual(lines[0], 'Dry run (space mode): 3 pages would be imported')
        self.assertEqual(lines[1], 'Space: Space S [S]')
        self.assertEqual(lines[3:6], ['- A', '  - B', '- C'])
        self.assertEqual(self.store.list_space_slugs('ws'), set())


if __name__ == '__main__':
    unittest.main()
