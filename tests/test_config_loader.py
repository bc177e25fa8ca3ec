"""Tests for configuration loading and the command line entry point."""

import argparse
import contextlib
import io
import json
import os
import shutil
import sqlite3
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from config_loader import DEFAULT_CONFIG, ConfigLoader, get_nested
from import_space import main
from tests.export_fixtures import abc_export


class TestConfigLoader(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def write_config(self, text):
        path = self.tmp / 'config.yaml'
        path.write_text(text, encoding='utf-8')
        return str(path)

    def test_load_substitutes_environment(self):
        path = self.write_config(
            "import:\n"
            "  workspace_id: ${IMPORT_WORKSPACE}\n"
            "  creator_id: ${UNSET_IMPORT_CREATOR}\n"
        )
        with mock.patch.dict(os.environ, {'IMPORT_WORKSPACE': 'ws-9'}):
            config = ConfigLoader.load(path)

        self.assertEqual(config['import']['workspace_id'], 'ws-9')
        self.assertEqual(config['import']['creator_id'], '${UNSET_IMPORT_CREATOR}')

    def test_unsubstituted_variable_fails_validation(self):
        config = ConfigLoader.with_defaults({'import': {'creator_id': '${UNSET_IMPORT_CREATOR}'}})
        with self.assertRaises(ValueError) as ctx:
            ConfigLoader.validate(config)
        self.assertIn('UNSET_IMPORT_CREATOR', str(ctx.exception))

    def test_load_missing_and_empty_files(self):
        with self.assertRaises(FileNotFoundError):
            ConfigLoader.load(str(self.tmp / 'missing.yaml'))
        self.assertEqual(ConfigLoader.load(self.write_config('')), {})

    def test_load_rejects_non_mapping(self):
        with self.assertRaises(ValueError):
            ConfigLoader.load(self.write_config('- just\n- a list\n'))

    def test_with_defaults_does_not_mutate_defaults(self):
        config = ConfigLoader.with_defaults({'import': {'max_workers': 8}})

        self.assertEqual(config['import']['max_workers'], 8)
        self.assertEqual(config['import']['mode'], 'space')
        config['import']['admin_user_ids'].append('someone')
        self.assertEqual(DEFAULT_CONFIG['import']['admin_user_ids'], [])

    def test_defaults_validate(self):
        ConfigLoader.validate(ConfigLoader.with_defaults({}))

    def test_validate_rejects_bad_values(self):
        bad_values = [
            {'import': {'mode': 'merge'}},
            {'import': {'orphan_policy': 'ignore'}},
            {'import': {'mode': 'pages'}},
            {'import': {'max_workers': 0}},
            {'import': {'backlink_batch_size': True}},
            {'import': {'progress_bars': 'yes'}},
            {'import': {'admin_user_ids': 'user-1'}},
            {'attachments': {'max_file_size': -1}},
            {'attachments': {'skip_file_types': '.exe'}},
            {'logging': {'level': 'LOUD'}},
        ]
        for override in bad_values:
            with self.subTest(override=override):
                with self.assertRaises(ValueError):
                    ConfigLoader.validate(ConfigLoader.with_defaults(override))

    def test_merge_with_args(self):
        args = argparse.Namespace(
            mode='pages', space_id='target', orphan_policy='promote', database='db.sqlite',
            storage_dir='files', report_path='report.json', no_progress=True, verbose=2
        )
        merged = ConfigLoader.merge_with_args(ConfigLoader.with_defaults({}), args)

        self.assertEqual(get_nested(merged, 'import.mode'), 'pages')
        self.assertEqual(get_nested(merged, 'import.space_id'), 'target')
        self.assertEqual(get_nested(merged, 'import.orphan_policy'), 'promote')
        self.assertEqual(get_nested(merged, 'database.path'), 'db.sqlite')
        self.assertEqual(get_nested(merged, 'attachments.storage_dir'), 'files')
        self.assertEqual(get_nested(merged, 'report.path'), 'report.json')
        self.assertFalse(get_nested(merged, 'import.progress_bars'))
        self.assertEqual(get_nested(merged, 'logging.level'), 'DEBUG')

    def test_get_nested(self):
        config = {'a': {'b': {'c': 1}}}
        self.assertEqual(get_nested(config, 'a.b.c'), 1)
        self.assertEqual(get_nested(config, 'a.x', 'fallback'), 'fallback')
        self.assertIsNone(get_nested(config, 'a.b.c.d'))


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.archive = abc_export().write_zip(self.tmp / 'export.zip')

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def run_main(self, argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            code = main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_missing_config_file(self):
        code, _, stderr = self.run_main([str(self.archive), '--config', str(self.tmp / 'nope.yaml')])

        self.assertEqual(code, 2)
        self.assertIn('File not found', stderr)

    def test_pages_mode_requires_space_id(self):
        code, _, stderr = self.run_main([str(self.archive), '--mode', 'pages'])

        self.assertEqual(code, 2)
        self.assertIn('import.space_id', stderr)

    def test_dry_run_writes_nothing(self):
        database = self.tmp / 'import.db'
        code, stdout, _ = self.run_main([
            str(self.archive), '--dry-run', '--no-progress', '--database', str(database)
        ])

        self.assertEqual(code, 0)
        self.assertIn('3 pages would be imported', stdout)
        self.assertFalse(database.exists())

    def test_import_with_report(self):
        database = self.tmp / 'import.db'
        report_path = self.tmp / 'report.json'
        code, stdout, _ = self.run_main([
            str(self.archive), '--no-progress', '--database', str(database),
            '--storage-dir', str(self.tmp / 'storage'), '--report-path', str(report_path)
        ])

        self.assertEqual(code, 0)
        self.assertIn('IMPORT REPORT', stdout)
        self.assertEqual(json.loads(report_path.read_text(encoding='utf-8'))['summary']['pages'], 3)
        with contextlib.closing(sqlite3.connect(str(database))) as conn:
            self.assertEqual(conn.execute("SELECT COUNT(*) FROM pages").fetchone()[0], 3)

    def test_malformed_archive(self):
        not_a_zip = self.tmp / 'export.txt'
        not_a_zip.write_text('plain text', encoding='utf-8')
        code, _, stderr = self.run_main([str(not_a_zip), '--dry-run'])

        self.assertEqual(code, 1)
        self.assertIn('Import failed', stderr)


if __name__ == '__main__':
    unittest.main()
