import unittest
import os
import sys
import json
import shutil
import tempfile
from unittest.mock import MagicMock, patch
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from mtg_rulings import config
from mtg_rulings import db_config
from mtg_rulings.db_interface import DatabaseInterface
from supabase_fake import FakeSupabaseClient


class CredentialsTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.creds_path = os.path.join(self.tmp_dir, 'credentials.json')

        for name, value in (("CREDENTIALS_FILE", self.creds_path),
                            ("SUPABASE_URL", "https://env.supabase.co"),
                            ("SUPABASE_KEY", "env-key")):
            patcher = patch.object(config, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def write_credentials(self, content):
        with open(self.creds_path, 'w') as f:
            f.write(content)


class TestResolveCredentials(CredentialsTestCase):
    def test_environment_without_saved_file(self):
        self.assertEqual(db_config.resolve_credentials(), ("https://env.supabase.co", "env-key"))

    def test_saved_file_overrides_environment(self):
        self.write_credentials(json.dumps({"supabase_url": "https://saved.supabase.co", "supabase_key": "saved-key"}))
        self.assertEqual(db_config.resolve_credentials(), ("https://saved.supabase.co", "saved-key"))

    def test_explicit_values_win(self):
        self.write_credentials(json.dumps({"supabase_url": "https://saved.supabase.co", "supabase_key": "saved-key"}))
        self.assertEqual(db_config.resolve_credentials("https://new.supabase.co", "new-key"),
                         ("https://new.supabase.co", "new-key"))

    def test_unreadable_file_ignored(self):
        self.write_credentials("{not json")
        self.assertEqual(db_config.read_saved_credentials(), {})
        self.assertEqual(db_config.resolve_credentials(), ("https://env.supabase.co", "env-key"))

    def test_save_round_trip(self):
        self.assertTrue(db_config.save_credentials("https://new.supabase.co", "new-key"))
        self.assertEqual(db_config.read_saved_credentials(),
                         {"supabase_url": "https://new.supabase.co", "supabase_key": "new-key"})


class TestCreateClient(CredentialsTestCase):
    def test_missing_credentials(self):
        with patch.object(config, "SUPABASE_URL", ""), \
                patch('mtg_rulings.db_config.create_client') as create_client:
            self.assertIsNone(db_config.create_supabase_client())
        create_client.assert_not_called()

    def test_rejected_credentials(self):
        with patch('mtg_rulings.db_config.create_client', side_effect=Exception("Invalid API key")):
            self.assertIsNone(db_config.create_supabase_client())

    def test_client_from_environment(self):
        client = MagicMock()
        with patch('mtg_rulings.db_config.create_client', return_value=client) as create_client:
            self.assertIs(db_config.create_supabase_client(), client)
        create_client.assert_called_once_with("https://env.supabase.co", "env-key")


class TestSetCredentials(CredentialsTestCase):
    def setUp(self):
        super().setUp()
        self.old_client = FakeSupabaseClient()
        self.db = DatabaseInterface(client=self.old_client)

    def test_success_saves_and_reconnects(self):
        new_client = MagicMock()
        with patch('mtg_rulings.db_config.create_client', return_value=new_client):
            self.assertIs(self.db.set_credentials("https://new.supabase.co", "new-key"), new_client)

        self.assertIs(self.db.client, new_client)
        self.assertEqual(db_config.read_saved_credentials()["supabase_url"], "https://new.supabase.co")

    def test_failure_keeps_connection_and_file(self):
        with patch('mtg_rulings.db_config.create_client', side_effect=Exception("Invalid URL")):
            self.assertIsNone(self.db.set_credentials("not-a-url", "new-key"))

        self.assertIs(self.db.client, self.old_client)
        self.assertTrue(self.db.is_connected)
        self.assertFalse(os.path.exists(self.creds_path))


if __name__ == '__main__':
    unittest.main()
