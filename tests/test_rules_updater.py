import unittest
import os
import sys
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import requests

from mtg_rulings.rules_updater import RulesUpdater, RulesSourceError
from mtg_rulings.db_interface import DatabaseInterface
from supabase_fake import FakeSupabaseClient

RULES_TEXT = """Contents

1. Game Concepts

100. General

100.1. These Magic rules apply to any Magic game with two or more players.

100.2. To play, each player needs their own deck of traditional Magic cards.
"""


def fake_rules(n):
    return [{"rule_number": f"100.{i}", "text": f"Rule number {i} text"} for i in range(n)]


def mock_download(status_code=200, chunks=(RULES_TEXT.encode('utf-8'),)):
    response = MagicMock()
    response.status_code = status_code
    response.iter_content.return_value = list(chunks)
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


class RulesUpdaterTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.fallback_path = os.path.join(self.tmp_dir, 'MagicCompRules.txt')
        with open(self.fallback_path, 'w', encoding='utf-8') as f:
            f.write(RULES_TEXT)

        self.client = FakeSupabaseClient()
        self.db = DatabaseInterface(client=self.client)
        self.updater = RulesUpdater(
            self.db,
            source_url="https://example.invalid/MagicCompRules.txt",
            fallback_path=self.fallback_path,
            temp_dir=os.path.join(self.tmp_dir, 'temp')
        )

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def seed_rule(self, age):
        created_at = (datetime.now(timezone.utc) - age).isoformat()
        self.client.tables['rules'] = [{"id": 1, "rule_number": "100.1", "text": "Old", "created_at": created_at}]


class TestBatchInsert(RulesUpdaterTestCase):
    def test_250_rules_three_inserts(self):
        db = MagicMock()
        updater = RulesUpdater(db, batch_size=100)

        batches = updater.insert_rules_in_batches(fake_rules(250))

        self.assertEqual(batches, 3)
        self.assertEqual(db.insert_rules.call_count, 3)
        sizes = [len(call.args[0]) for call in db.insert_rules.call_args_list]
        self.assertEqual(sizes, [100, 100, 50])

    def test_no_rules_no_inserts(self):
        db = MagicMock()
        self.assertEqual(RulesUpdater(db).insert_rules_in_batches([]), 0)
        db.insert_rules.assert_not_called()

    def test_failed_batch_stops_remaining(self):
        db = MagicMock()
        db.insert_rules.side_effect = [None, RuntimeError("insert failed"), None]
        updater = RulesUpdater(db, batch_size=100)

        with self.assertRaises(RuntimeError):
            updater.insert_rules_in_batches(fake_rules(250))
        self.assertEqual(db.insert_rules.call_count, 2)


class TestUpdateRulesDatabase(RulesUpdaterTestCase):
    def test_replaces_existing_rules(self):
        self.seed_rule(timedelta(days=30))

        count = self.updater.update_rules_database(self.fallback_path)

        self.assertEqual(count, 2)
        rows = self.client.tables['rules']
        self.assertEqual([r['rule_number'] for r in rows], ['100.1', '100.2'])
        self.assertNotIn('Old', [r['text'] for r in rows])

    def test_delete_happens_before_insert(self):
        self.updater.update_rules_database(self.fallback_path)
        operations = [op for table, op, _ in self.client.calls if table == 'rules']
        self.assertEqual(operations, ['delete', 'insert'])

    def test_persistence_error_propagates(self):
        self.client.fail_on.add(('rules', 'insert'))
        with self.assertRaises(RuntimeError):
            self.updater.update_rules_database(self.fallback_path)

    def test_file_without_rules_keeps_stored_rules(self):
        self.seed_rule(timedelta(days=30))
        not_rules = os.path.join(self.tmp_dir, 'page.html')
        with open(not_rules, 'w', encoding='utf-8') as f:
            f.write("<html>Maintenance page</html>")

        with self.assertRaises(RulesSourceError):
            self.updater.update_rules_database(not_rules)

        self.assertEqual(self.client.calls_for('rules', 'delete'), [])
        self.assertEqual([r['text'] for r in self.client.tables['rules']], ['Old'])

    def test_missing_local_file(self):
        updater = RulesUpdater(self.db, fallback_path=os.path.join(self.tmp_dir, 'missing.txt'))
        with self.assertRaises(FileNotFoundError) as ctx:
            updater.update_rules_from_file()
        self.assertEqual(str(ctx.exception), 'Comprehensive rules file not found')


class TestUpdateRulesFromWotc(RulesUpdaterTestCase):
    def test_recent_rules_skip_without_network(self):
        self.seed_rule(timedelta(days=3))

        with patch('mtg_rulings.rules_updater.requests.get') as mock_get:
            result = self.updater.update_rules_from_wotc()

        mock_get.assert_not_called()
        self.assertTrue(result['success'])
        self.assertIn('Skipping update', result['message'])
        self.assertEqual(result['message'], 'Rules were updated 3 days ago. Skipping update.')

    def test_downloads_when_stale(self):
        self.seed_rule(timedelta(days=10))

        with patch('mtg_rulings.rules_updater.requests.get', return_value=mock_download()) as mock_get:
            result = self.updater.update_rules_from_wotc()

        mock_get.assert_called_once()
        self.assertTrue(result['success'])
        self.assertEqual(result['message'], 'Comprehensive rules updated successfully from official source')
        self.assertEqual(len(self.client.tables['rules']), 2)
        # Temp file is removed after ingestion
        self.assertEqual(os.listdir(os.path.join(self.tmp_dir, 'temp')), [])

    def test_downloads_when_empty(self):
        with patch('mtg_rulings.rules_updater.requests.get', return_value=mock_download()) as mock_get:
            result = self.updater.update_rules_from_wotc()

        mock_get.assert_called_once()
        self.assertTrue(result['success'])

    def test_network_error_uses_fallback(self):
        with patch('mtg_rulings.rules_updater.requests.get',
                   side_effect=requests.exceptions.ConnectionError("offline")):
            result = self.updater.update_rules_from_wotc()

        self.assertTrue(result['success'])
        self.assertEqual(result['message'], 'Used local comprehensive rules file as fallback')
        self.assertEqual(len(self.client.tables['rules']), 2)

    def test_bad_status_uses_fallback(self):
        with patch('mtg_rulings.rules_updater.requests.get', return_value=mock_download(status_code=404)):
            result = self.updater.update_rules_from_wotc()

        self.assertTrue(result['success'])
        self.assertEqual(result['message'], 'Used local comprehensive rules file as fallback')

    def test_fallback_failure_reported(self):
        os.remove(self.fallback_path)

        with patch('mtg_rulings.rules_updater.requests.get', return_value=mock_download(status_code=500)):
            result = self.updater.update_rules_from_wotc()

        self.assertFalse(result['success'])
        self.assertIn('HTTP status: 500', result['message'])
        self.assertIn('Fallback also failed', result['message'])

    def test_download_that_is_not_a_rulebook_uses_fallback(self):
        self.seed_rule(timedelta(days=10))

        with patch('mtg_rulings.rules_updater.requests.get',
                   return_value=mock_download(chunks=(b"<html>Maintenance page</html>",))):
            result = self.updater.update_rules_from_wotc()

        self.assertTrue(result['success'])
        self.assertEqual(result['message'], 'Used local comprehensive rules file as fallback')
        self.assertEqual([r['rule_number'] for r in self.client.tables['rules']], ['100.1', '100.2'])

    def test_download_that_is_not_a_rulebook_without_fallback(self):
        self.seed_rule(timedelta(days=10))
        os.remove(self.fallback_path)

        with patch('mtg_rulings.rules_updater.requests.get',
                   return_value=mock_download(chunks=(b"<html>Maintenance page</html>",))):
            result = self.updater.update_rules_from_wotc()

        self.assertFalse(result['success'])
        self.assertIn('No rules found', result['message'])
        self.assertEqual([r['text'] for r in self.client.tables['rules']], ['Old'])

    def test_never_raises_when_disconnected(self):
        updater = RulesUpdater(DatabaseInterface(client=FakeSupabaseClient()), fallback_path=self.fallback_path)
        updater.db.is_connected = False

        result = updater.update_rules_from_wotc()

        self.assertFalse(result['success'])


if __name__ == '__main__':
    unittest.main()
