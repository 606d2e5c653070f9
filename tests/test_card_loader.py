import unittest
import os
import sys
import json
import shutil
import tempfile
from unittest.mock import MagicMock, patch
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import requests

from mtg_rulings.card_loader import CardDataLoader, split_type_line

LIGHTNING_BOLT = {
    "id": "bolt-1",
    "name": "Lightning Bolt",
    "layout": "normal",
    "mana_cost": "{R}",
    "cmc": 1.0,
    "type_line": "Instant",
    "oracle_text": "Lightning Bolt deals 3 damage to any target.",
    "colors": ["R"],
    "color_identity": ["R"],
    "rarity": "common",
    "set": "m10",
    "set_name": "Magic 2010",
    "collector_number": "146",
    "image_uris": {"normal": "https://cards.scryfall.io/normal/bolt.jpg", "large": "https://cards.scryfall.io/large/bolt.jpg"},
    "legalities": {"modern": "legal"}
}

DELVER = {
    "id": "delver-1",
    "name": "Delver of Secrets // Insectile Aberration",
    "layout": "transform",
    "cmc": 1.0,
    "type_line": "Creature — Human Wizard // Creature — Human Insect",
    "color_identity": ["U"],
    "rarity": "common",
    "set": "isd",
    "card_faces": [
        {"name": "Delver of Secrets", "mana_cost": "{U}", "type_line": "Creature — Human Wizard",
         "oracle_text": "At the beginning of your upkeep, look at the top card of your library.",
         "colors": ["U"], "power": "1", "toughness": "1",
         "image_uris": {"large": "https://cards.scryfall.io/large/front/delver.jpg"}},
        {"name": "Insectile Aberration", "mana_cost": "", "type_line": "Creature — Human Insect",
         "oracle_text": "Flying", "colors": ["U"], "power": "3", "toughness": "2",
         "image_uris": {"large": "https://cards.scryfall.io/large/back/delver.jpg"}}
    ]
}

TOKEN = {"id": "token-1", "name": "Goblin", "layout": "token", "type_line": "Token Creature — Goblin"}


class TestSplitTypeLine(unittest.TestCase):
    def test_legendary_creature(self):
        self.assertEqual(
            split_type_line("Legendary Creature — Elf Druid"),
            (["Legendary"], ["Creature"], ["Elf", "Druid"])
        )

    def test_basic_land(self):
        self.assertEqual(split_type_line("Basic Land — Forest"), (["Basic"], ["Land"], ["Forest"]))

    def test_no_subtypes(self):
        self.assertEqual(split_type_line("Instant"), ([], ["Instant"], []))

    def test_empty(self):
        self.assertEqual(split_type_line(""), ([], [], []))


class TestTransformCard(unittest.TestCase):
    def setUp(self):
        self.loader = CardDataLoader(MagicMock())

    def test_normal_card(self):
        card = self.loader.transform_card(LIGHTNING_BOLT)
        self.assertEqual(card['id'], 'bolt-1')
        self.assertEqual(card['set'], 'M10')
        self.assertEqual(card['number'], '146')
        self.assertEqual(card['text'], 'Lightning Bolt deals 3 damage to any target.')
        self.assertEqual(card['image_url'], 'https://cards.scryfall.io/large/bolt.jpg')
        self.assertEqual(card['types'], ['Instant'])

    def test_double_faced_card(self):
        card = self.loader.transform_card(DELVER)
        self.assertEqual(card['image_url'], 'https://cards.scryfall.io/large/front/delver.jpg')
        self.assertEqual(
            card['text'],
            "At the beginning of your upkeep, look at the top card of your library.\n//\nFlying"
        )
        self.assertEqual(card['mana_cost'], '{U}')
        self.assertEqual(card['colors'], ['U'])
        self.assertEqual(card['subtypes'], ['Human', 'Wizard'])
        self.assertEqual(card['power'], '1')

    def test_token_skipped(self):
        self.assertIsNone(self.loader.transform_card(TOKEN))

    def test_missing_id_skipped(self):
        self.assertIsNone(self.loader.transform_card({"name": "Nameless"}))


class TestCompleteCardDatabaseUpdate(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.db = MagicMock()
        self.db.upsert_cards.side_effect = lambda cards, batch_size: len(cards)

        self.loader = CardDataLoader(self.db, batch_size=2)
        self.loader.raw_dir = self.tmp_dir
        self.loader.raw_data_path = os.path.join(self.tmp_dir, 'default_cards.json')

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def write_bulk_file(self, cards):
        with open(self.loader.raw_data_path, 'w', encoding='utf-8') as f:
            json.dump(cards, f)

    def test_imports_cards_from_recent_file(self):
        self.write_bulk_file([LIGHTNING_BOLT, DELVER, TOKEN])

        with patch('mtg_rulings.card_loader.requests.get') as mock_get:
            result = self.loader.complete_card_database_update()

        mock_get.assert_not_called()
        self.assertTrue(result['success'])
        self.assertEqual(result['message'], 'Updated 2 cards from Scryfall default_cards')
        cards, = self.db.upsert_cards.call_args.args
        self.assertEqual([c['id'] for c in cards], ['bolt-1', 'delver-1'])
        self.assertEqual(self.db.upsert_cards.call_args.kwargs['batch_size'], 2)

    def test_downloads_when_forced(self):
        self.write_bulk_file([])

        info = MagicMock()
        info.json.return_value = {"data": [
            {"type": "oracle_cards", "download_uri": "https://data.scryfall.io/oracle.json"},
            {"type": "default_cards", "download_uri": "https://data.scryfall.io/default.json"}
        ]}
        download = MagicMock()
        download.iter_content.return_value = [json.dumps([LIGHTNING_BOLT]).encode('utf-8')]
        download.__enter__.return_value = download
        download.__exit__.return_value = False

        with patch('mtg_rulings.card_loader.requests.get', side_effect=[info, download]) as mock_get:
            result = self.loader.complete_card_database_update(force_download=True)

        self.assertTrue(result['success'])
        self.assertEqual(mock_get.call_args_list[1].args[0], "https://data.scryfall.io/default.json")
        self.assertEqual(self.db.upsert_cards.call_count, 1)

    def test_network_error_returns_failure(self):
        with patch('mtg_rulings.card_loader.requests.get',
                   side_effect=requests.exceptions.ConnectionError("offline")):
            result = self.loader.complete_card_database_update()

        self.assertFalse(result['success'])
        self.assertIn('Network error', result['message'])
        self.db.upsert_cards.assert_not_called()

    def test_database_error_returns_failure(self):
        self.write_bulk_file([LIGHTNING_BOLT])
        self.db.upsert_cards.side_effect = RuntimeError("Not connected to database")

        result = self.loader.complete_card_database_update()

        self.assertFalse(result['success'])
        self.assertIn('Not connected to database', result['message'])

    def test_empty_bulk_file(self):
        self.write_bulk_file([TOKEN])

        result = self.loader.complete_card_database_update()

        self.assertFalse(result['success'])
        self.db.upsert_cards.assert_not_called()


if __name__ == '__main__':
    unittest.main()
