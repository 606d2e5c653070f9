# mtg_rulings/card_loader.py - Scryfall bulk card loader
import os
import json
import logging
import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from mtg_rulings.config import SCRYFALL_API_URL, CARD_DATA_CONFIG

logger = logging.getLogger("CardDataLoader")

SUPERTYPES = {"Basic", "Legendary", "Snow", "World", "Ongoing", "Host", "Elite"}


def split_type_line(type_line: str):
    """Split 'Legendary Creature — Elf Druid' into supertypes, types and subtypes"""
    if not type_line:
        return [], [], []

    # Only the front face decides the card's types
    front = type_line.split('//')[0]
    if '—' in front:
        left, right = front.split('—', 1)
    elif ' - ' in front:
        left, right = front.split(' - ', 1)
    else:
        left, right = front, ''

    words = left.split()
    supertypes = [w for w in words if w in SUPERTYPES]
    types = [w for w in words if w not in SUPERTYPES]
    subtypes = right.split()
    return supertypes, types, subtypes


class CardDataLoader:
    def __init__(self, db, api_base_url=SCRYFALL_API_URL, bulk_type=None, batch_size=None):
        """Initialize the loader that refreshes the cards table from Scryfall bulk data"""
        self.db = db
        self.api_base_url = api_base_url
        self.bulk_type = bulk_type or CARD_DATA_CONFIG["BULK_TYPE"]
        self.batch_size = batch_size or CARD_DATA_CONFIG["IMPORT_BATCH_SIZE"]
        self.raw_dir = CARD_DATA_CONFIG["RAW_DIR"]
        self.raw_data_path = os.path.join(self.raw_dir, f"{self.bulk_type}.json")
        self.headers = {'User-Agent': CARD_DATA_CONFIG["USER_AGENT"], 'Accept': 'application/json'}

    def fetch_bulk_data_info(self) -> str:
        """Return the download URI of the configured bulk data file"""
        response = requests.get(f"{self.api_base_url}/bulk-data", headers=self.headers, timeout=30)
        response.raise_for_status()

        for item in response.json().get('data', []):
            if item.get('type') == self.bulk_type:
                return item['download_uri']

        raise ValueError(f"Bulk data type '{self.bulk_type}' not offered by Scryfall")

    def download_bulk_data(self, force=False) -> str:
        """Download the bulk card file, reusing a recent copy unless forced"""
        if os.path.exists(self.raw_data_path) and not force:
            file_mtime = os.path.getmtime(self.raw_data_path)
            last_modified = datetime.datetime.fromtimestamp(file_mtime)
            age_hours = (datetime.datetime.now() - last_modified).total_seconds() / 3600
            if age_hours < CARD_DATA_CONFIG["REUSE_DOWNLOAD_HOURS"]:
                logger.info(f"Using existing card data ({age_hours:.1f} hours old)")
                return self.raw_data_path

        download_url = self.fetch_bulk_data_info()
        logger.info(f"Downloading {self.bulk_type} data from {download_url}")

        Path(self.raw_dir).mkdir(parents=True, exist_ok=True)
        partial_path = self.raw_data_path + '.part'
        with requests.get(download_url, headers=self.headers, stream=True,
                          timeout=CARD_DATA_CONFIG["DOWNLOAD_TIMEOUT"]) as response:
            response.raise_for_status()
            with open(partial_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CARD_DATA_CONFIG["DOWNLOAD_CHUNK_SIZE"]):
                    if chunk:
                        f.write(chunk)
        os.replace(partial_path, self.raw_data_path)

        logger.info(f"Card data saved to {self.raw_data_path}")
        return self.raw_data_path

    def transform_card(self, raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Map a Scryfall card object to a cards row, or None for non-cards"""
        if not raw.get('id') or not raw.get('name'):
            return None
        if raw.get('layout') in CARD_DATA_CONFIG["SKIPPED_LAYOUTS"]:
            return None

        faces = raw.get('card_faces') or []
        front = faces[0] if faces else {}

        type_line = raw.get('type_line') or front.get('type_line') or ''
        supertypes, types, subtypes = split_type_line(type_line)

        oracle_text = raw.get('oracle_text')
        if oracle_text is None and faces:
            oracle_text = "\n//\n".join(face.get('oracle_text', '') for face in faces)

        image_uris = raw.get('image_uris') or front.get('image_uris') or {}

        colors = raw.get('colors')
        if colors is None:
            colors = front.get('colors', [])

        return {
            'id': raw['id'],
            'name': raw['name'],
            'mana_cost': raw.get('mana_cost') or front.get('mana_cost'),
            'cmc': raw.get('cmc'),
            'colors': colors,
            'color_identity': raw.get('color_identity', []),
            'type': type_line,
            'supertypes': supertypes,
            'types': types,
            'subtypes': subtypes,
            'rarity': raw.get('rarity'),
            'set': (raw.get('set') or '').upper(),
            'set_name': raw.get('set_name'),
            'text': oracle_text,
            'flavor': raw.get('flavor_text') or front.get('flavor_text'),
            'artist': raw.get('artist'),
            'number': raw.get('collector_number'),
            'power': raw.get('power') or front.get('power'),
            'toughness': raw.get('toughness') or front.get('toughness'),
            'loyalty': raw.get('loyalty') or front.get('loyalty'),
            'layout': raw.get('layout'),
            'image_url': image_uris.get('large') or image_uris.get('normal'),
            'legalities': raw.get('legalities', {})
        }

    def load_cards(self, path: str) -> List[Dict[str, Any]]:
        with open(path, 'r', encoding='utf-8') as f:
            raw_cards = json.load(f)

        cards = []
        skipped = 0
        for raw in raw_cards:
            card = self.transform_card(raw)
            if card is None:
                skipped += 1
                continue
            cards.append(card)

        logger.info(f"Prepared {len(cards)} cards ({skipped} skipped)")
        return cards

    def complete_card_database_update(self, force_download=False) -> Dict[str, Any]:
        """Download and import the full card set. Never raises."""
        try:
            path = self.download_bulk_data(force=force_download)
            cards = self.load_cards(path)
            if not cards:
                return {"success": False, "message": "No cards found in bulk data"}

            written = self.db.upsert_cards(cards, batch_size=self.batch_size)
            return {"success": True, "message": f"Updated {written} cards from Scryfall {self.bulk_type}"}

        except requests.exceptions.RequestException as e:
            logger.error(f"Network error fetching card data: {e}")
            return {"success": False, "message": f"Network error fetching card data: {e}"}
        except Exception as e:
            logger.error(f"Error updating card database: {e}")
            return {"success": False, "message": f"Card database update failed: {e}"}
