# mtg_rulings/rarity_repair.py - Backfill missing card rarities from Scryfall
import time
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from mtg_rulings.config import SCRYFALL_API_URL, CARD_DATA_CONFIG

logger = logging.getLogger("RarityRepair")

RARITIES = ("common", "uncommon", "rare", "mythic")


def create_scryfall_session(retries=3, backoff_factor=0.5) -> requests.Session:
    """Return a requests Session with UA headers and retry on 429/5xx"""
    retry = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({
        "User-Agent": CARD_DATA_CONFIG["USER_AGENT"],
        "Accept": "application/json"
    })
    return session


class RarityRepairService:
    def __init__(self, db, session=None, request_delay=None):
        self.db = db
        self.session = session or create_scryfall_session()
        self.request_delay = CARD_DATA_CONFIG["REQUEST_DELAY"] if request_delay is None else request_delay

    def scan_for_rarity_issues(self, sample_size=5) -> Dict[str, Any]:
        """Count cards without a rarity and sample ids of each known rarity"""
        result = {"missing_rarity": self.db.count_cards_missing_rarity()}
        for rarity in RARITIES:
            result[f"{rarity}_card_ids"] = self.db.get_card_ids_by_rarity(rarity, limit=sample_size)

        logger.info(f"Found {result['missing_rarity']} cards without rarity")
        return result

    def lookup_rarity(self, card: Dict[str, Any]) -> Optional[str]:
        """Ask Scryfall for the rarity of card, by id then by name and set"""
        response = self.session.get(f"{SCRYFALL_API_URL}/cards/{card['id']}", timeout=15)
        if response.status_code == 404 and card.get('name'):
            params = {"exact": card['name']}
            if card.get('set'):
                params["set"] = card['set'].lower()
            response = self.session.get(f"{SCRYFALL_API_URL}/cards/named", params=params, timeout=15)

        if response.status_code != 200:
            logger.warning(f"Scryfall lookup for {card.get('name', card['id'])} returned {response.status_code}")
            return None

        return response.json().get('rarity')

    def fix_card(self, card: Dict[str, Any]) -> bool:
        """Write the Scryfall rarity back if it differs. Returns True if the card changed."""
        try:
            rarity = self.lookup_rarity(card)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error looking up rarity for {card.get('name', card['id'])}: {e}")
            return False
        finally:
            if self.request_delay:
                time.sleep(self.request_delay)

        if not rarity or rarity == card.get('rarity'):
            return False

        self.db.update_card(card['id'], {"rarity": rarity})
        logger.info(f"Set rarity of {card.get('name', card['id'])} to {rarity}")
        return True

    def fix_card_by_id(self, card_id: str) -> bool:
        card = self.db.get_card(card_id)
        if not card:
            logger.warning(f"Card {card_id} not found")
            return False
        return self.fix_card(card)

    def fix_rarity_for_query(self, query: str, limit=None) -> int:
        """Fix cards without a rarity whose name matches query. Returns the number fixed."""
        limit = limit or CARD_DATA_CONFIG["FIND_CARDS_LIMIT"]
        cards = self.db.get_cards_missing_rarity(limit=limit, query=query)
        return sum(1 for card in cards if self.fix_card(card))

    def fix_missing_rarities(self, batch_size=500) -> Dict[str, int]:
        """Process one batch of cards without a rarity"""
        cards = self.db.get_cards_missing_rarity(limit=batch_size)
        fixed = 0
        for i, card in enumerate(cards, start=1):
            if self.fix_card(card):
                fixed += 1
            if i % 50 == 0:
                logger.info(f"Rarity repair progress: {i}/{len(cards)} checked, {fixed} fixed")

        logger.info(f"Rarity repair finished: {len(cards)} checked, {fixed} fixed")
        return {"processed": len(cards), "fixed": fixed}
