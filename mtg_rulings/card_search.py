# mtg_rulings/card_search.py - Autocomplete ranking and image fallbacks
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from mtg_rulings.config import SCRYFALL_API_URL, CARD_DATA_CONFIG

logger = logging.getLogger("CardSearch")

# Newest first
SET_PRIORITY = [
    'TDM', 'YTDM', 'LTK', 'YLTK', 'POW', 'YPOW',
    'OTJ', 'MKM', 'WOE', 'LCI', 'MOM', 'ONE', 'BRO', 'DMU',
    'WHO', 'SNC', 'NEO', 'VOW', 'MID', 'AFR', 'STX', 'KHM',
    'YOTJ', 'YMKM', 'YWOE', 'YLCI', 'YMOM', 'YONE', 'YBRO', 'YDMU',
    'YDFT', 'YDSK', 'YBLB', 'YSNC', 'YNEO', 'YVOW', 'YMID', 'YAFR'
]

PLACEHOLDER_IMAGE_MARKERS = ('gatherer.wizards.com', 'card-backs', '0000000-0000-0000-0000')


def _name(card: Dict[str, Any]) -> str:
    return (card.get('name') or '').lower()


def is_basic_land(card: Dict[str, Any]) -> bool:
    return 'basic land' in (card.get('type') or '').lower()


def is_prioritized_version(card: Dict[str, Any], existing: Optional[Dict[str, Any]]) -> bool:
    """True if card is a better printing to show than existing"""
    if not existing:
        return True

    if card.get('image_url') and not existing.get('image_url'):
        return True

    card_index = SET_PRIORITY.index(card['set']) if card.get('set') in SET_PRIORITY else -1
    existing_index = SET_PRIORITY.index(existing['set']) if existing.get('set') in SET_PRIORITY else -1

    if card_index != -1 and existing_index != -1:
        return card_index < existing_index
    if card_index != -1:
        return True
    return False


def prioritize_search_results(cards: List[Dict[str, Any]], query: str, include_all_sets: bool = False,
                              limit: int = CARD_DATA_CONFIG["SEARCH_RESULT_LIMIT"]) -> List[Dict[str, Any]]:
    """Order autocomplete results.

    With include_all_sets every printing is kept and only an exact name match
    (a basic land first) is moved to the front. Otherwise one printing per
    name is kept and the list is narrowed to names containing the query, with
    an exact match first. Exact basic land matches always lead.
    """
    q = query.lower()

    if include_all_sets:
        prioritized = list(cards)
        exact = next((c for c in cards if _name(c) == q), None)
        basic_exact = next((c for c in cards if _name(c) == q and is_basic_land(c)), None)
        lead = basic_exact or exact
        if lead is not None:
            prioritized = [lead] + [c for c in cards if c.get('id') != lead.get('id')]
        return prioritized[:limit]

    best_by_name = {}
    for card in cards:
        name = _name(card)
        if is_basic_land(card):
            best_by_name.setdefault(name, card)
        elif name not in best_by_name or is_prioritized_version(card, best_by_name[name]):
            best_by_name[name] = card

    prioritized = list(best_by_name.values())
    exact = next((c for c in prioritized if _name(c) == q), None)
    close_matches = [c for c in prioritized if q in _name(c)]
    basic_lands = [c for c in prioritized if is_basic_land(c) and _name(c) == q]

    if basic_lands:
        basic_ids = {c.get('id') for c in basic_lands}
        prioritized = basic_lands + [c for c in prioritized if c.get('id') not in basic_ids]
    elif exact is not None or close_matches:
        lead = [exact] if exact is not None else []
        exact_id = exact.get('id') if exact is not None else None
        prioritized = lead + [c for c in close_matches if c.get('id') != exact_id]

    return prioritized[:limit]


def scryfall_image_url(card_name: str) -> str:
    """Scryfall redirect to the large image of the named card"""
    # Double-faced cards are looked up by their front face
    if '//' in card_name:
        card_name = card_name.split('//')[0].strip()
    return f"{SCRYFALL_API_URL}/cards/named?exact={quote(card_name)}&format=image&version=large"


def ensure_image_url(card: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace a missing or placeholder image_url with a Scryfall lookup"""
    if not card:
        return card

    image_url = card.get('image_url') or ''
    if not image_url or any(marker in image_url for marker in PLACEHOLDER_IMAGE_MARKERS):
        card['image_url'] = scryfall_image_url(card.get('name') or '')
    return card
