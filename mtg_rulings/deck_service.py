# mtg_rulings/deck_service.py - Deck formats, text import, statistics and saved decks
import re
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger("DeckService")

# "legality" is the Scryfall legalities key; Limited has none, so every card is allowed
FORMATS = {
    "Standard": {"min_size": 60, "max_size": 999, "max_copies": 4, "requires_commander": False,
                 "allows_sideboard": True, "legality": "standard"},
    "Pioneer": {"min_size": 60, "max_size": 999, "max_copies": 4, "requires_commander": False,
                "allows_sideboard": True, "legality": "pioneer"},
    "Modern": {"min_size": 60, "max_size": 999, "max_copies": 4, "requires_commander": False,
               "allows_sideboard": True, "legality": "modern"},
    "Legacy": {"min_size": 60, "max_size": 999, "max_copies": 4, "requires_commander": False,
               "allows_sideboard": True, "legality": "legacy"},
    "Vintage": {"min_size": 60, "max_size": 999, "max_copies": 4, "requires_commander": False,
                "allows_sideboard": True, "legality": "vintage"},
    "Commander": {"min_size": 100, "max_size": 100, "max_copies": 1, "requires_commander": True,
                  "allows_sideboard": False, "legality": "commander"},
    "Pauper": {"min_size": 60, "max_size": 999, "max_copies": 4, "requires_commander": False,
               "allows_sideboard": True, "legality": "pauper"},
    "Limited": {"min_size": 40, "max_size": 999, "max_copies": 999, "requires_commander": False,
                "allows_sideboard": True, "legality": None}
}

MAX_SIDEBOARD_SIZE = 15

BASIC_LAND_NAMES = {
    "plains", "island", "swamp", "mountain", "forest", "wastes",
    "snow-covered plains", "snow-covered island", "snow-covered swamp",
    "snow-covered mountain", "snow-covered forest"
}

SECTION_HEADERS = {
    "commander": "commander",
    "maindeck": "maindeck",
    "main deck": "maindeck",
    "main": "maindeck",
    "deck": "maindeck",
    "sideboard": "sideboard",
    "side board": "sideboard",
    "side": "sideboard",
    "sb": "sideboard"
}

# "4 Lightning Bolt" or "4x Lightning Bolt"
CARD_LINE_PATTERN = re.compile(r'^(\d+)x?\s+(.+)$', re.I)

COLORS = ["W", "U", "B", "R", "G", "C"]


class DeckAccessError(Exception):
    """The deck exists but the caller may not read or change it"""


class DeckValidationError(ValueError):
    pass


def parse_deck_text(text: str) -> Dict[str, List]:
    """
    Parse a plain-text decklist

    Args:
        text (str): One "N Card Name" per line, optionally grouped under
            Commander / Maindeck / Sideboard headers. Lines starting with // are ignored.

    Returns:
        dict: maindeck, sideboard and commander lists of {"name", "quantity"},
            plus the lines that could not be read under "unparsed"
    """
    sections = {"maindeck": {}, "sideboard": {}, "commander": {}}
    unparsed = []
    current = "maindeck"

    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("//"):
            continue

        header = stripped.lower().rstrip(":").strip()
        if header in SECTION_HEADERS:
            current = SECTION_HEADERS[header]
            continue

        match = CARD_LINE_PATTERN.match(stripped)
        if not match:
            unparsed.append(stripped)
            continue

        quantity = int(match.group(1))
        name = match.group(2).strip()
        if quantity <= 0:
            unparsed.append(stripped)
            continue

        cards = sections[current]
        cards[name] = cards.get(name, 0) + quantity

    result = {
        section: [{"name": name, "quantity": qty} for name, qty in cards.items()]
        for section, cards in sections.items()
    }
    result["unparsed"] = unparsed
    return result


def primary_type(type_line: str) -> str:
    if not type_line:
        return "Unknown"
    if "land" in type_line.lower():
        return "Land"
    return type_line.split()[0]


def calculate_deck_stats(cards: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Card count, average mana value and colour/type/mana value distributions of the maindeck"""
    maindeck = [card for card in cards if card.get("section", "maindeck") == "maindeck"]

    color_distribution = {color: 0 for color in COLORS}
    type_distribution = {}
    cmc_distribution = {}
    total_cards = 0
    total_cmc = 0
    cards_with_cmc = 0

    for card in maindeck:
        quantity = int(card.get("quantity", 1))
        total_cards += quantity

        colors = card.get("colors")
        if colors:
            for color in colors:
                color_distribution[color] = color_distribution.get(color, 0) + quantity
        else:
            color_distribution["C"] += quantity

        card_type = primary_type(card.get("type") or "")
        type_distribution[card_type] = type_distribution.get(card_type, 0) + quantity

        # Lands and other cards without a cost stay out of the curve
        has_mana_cost = bool((card.get("mana_cost") or "").strip())
        cmc = card.get("cmc") or 0
        if has_mana_cost or cmc > 0:
            mana_value = int(cmc)
            cmc_distribution[mana_value] = cmc_distribution.get(mana_value, 0) + quantity
            total_cmc += mana_value * quantity
            cards_with_cmc += quantity

    return {
        "total_cards": total_cards,
        "avg_cmc": round(total_cmc / cards_with_cmc, 2) if cards_with_cmc else 0,
        "color_distribution": color_distribution,
        "type_distribution": type_distribution,
        "cmc_distribution": dict(sorted(cmc_distribution.items()))
    }


def resolve_format(name: str) -> Optional[str]:
    """Case-insensitive lookup of a format name, e.g. "modern" -> "Modern" """
    for format_name in FORMATS:
        if format_name.lower() == (name or "").lower():
            return format_name
    return None


def list_formats() -> List[Dict[str, Any]]:
    return [dict(rules, name=name) for name, rules in FORMATS.items()]


def is_basic_land(card: Dict[str, Any]) -> bool:
    if "basic" in (card.get("type") or "").lower():
        return True
    return (card.get("name") or "").lower() in BASIC_LAND_NAMES


def validate_deck(format_name: str, deck_cards: List[Dict[str, Any]],
                  sideboard: Optional[List[Dict[str, Any]]] = None,
                  commander: Optional[str] = None) -> List[str]:
    """Return the format violations of a deck, empty when it is legal"""
    rules = FORMATS.get(format_name)
    if rules is None:
        return [f"Unknown format: {format_name}"]

    errors = []
    sideboard = sideboard or []

    deck_size = sum(int(card.get("quantity", 1)) for card in deck_cards)
    if rules["requires_commander"]:
        if not commander:
            errors.append(f"{format_name} decks require a commander")
        else:
            deck_size += 1

    if deck_size < rules["min_size"]:
        errors.append(f"Deck has {deck_size} cards, {format_name} requires at least {rules['min_size']}")
    if deck_size > rules["max_size"]:
        errors.append(f"Deck has {deck_size} cards, {format_name} allows at most {rules['max_size']}")

    copies = {}
    for card in deck_cards + sideboard:
        if is_basic_land(card):
            continue
        name = card.get("name") or card.get("card_id")
        copies[name] = copies.get(name, 0) + int(card.get("quantity", 1))
    for name, count in copies.items():
        if count > rules["max_copies"]:
            errors.append(f"Maximum {rules['max_copies']} copies of {name} allowed in {format_name}")

    sideboard_size = sum(int(card.get("quantity", 1)) for card in sideboard)
    if sideboard_size and not rules["allows_sideboard"]:
        errors.append(f"{format_name} decks cannot have a sideboard")
    elif sideboard_size > MAX_SIDEBOARD_SIZE:
        errors.append(f"Sideboard has {sideboard_size} cards, at most {MAX_SIDEBOARD_SIZE} allowed")

    return errors


class DeckService:
    """Saved decks. Every deck belongs to one user; public decks are readable by anyone."""

    def __init__(self, db):
        self.db = db

    def save_deck(self, user_id: str, deck: Dict[str, Any], deck_id: Optional[str] = None) -> Dict[str, Any]:
        if not user_id:
            raise DeckValidationError("user_id is required")
        if not (deck.get("name") or "").strip():
            raise DeckValidationError("Deck name is required")

        format_name = deck.get("format", "Standard")
        if format_name not in FORMATS:
            raise DeckValidationError(f"Unknown format: {format_name}")

        now = datetime.now(timezone.utc).isoformat()
        record = {
            "user_id": user_id,
            "name": deck["name"].strip(),
            "description": deck.get("description", ""),
            "format": format_name,
            "commander": deck.get("commander"),
            "deck_data": deck.get("deck_data", []),
            "sideboard_data": deck.get("sideboard_data", []),
            "is_public": bool(deck.get("is_public", False)),
            "tags": deck.get("tags", []),
            "updated_at": now
        }

        if deck_id:
            existing = self.db.get_deck(deck_id)
            if existing is None:
                raise KeyError(deck_id)
            self._check_owner(existing, user_id)
            saved = self.db.update_deck(deck_id, record)
            logger.info(f"Updated deck {deck_id}")
            return saved

        record["created_at"] = now
        saved = self.db.insert_deck(record)
        logger.info(f"Saved deck {saved.get('id', 'unknown')} for user {user_id}")
        return saved

    def get_deck(self, deck_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        deck = self.db.get_deck(deck_id)
        if deck is None:
            return None
        if not deck.get("is_public") and deck.get("user_id") != user_id:
            raise DeckAccessError("This deck is private")
        return deck

    def list_user_decks(self, user_id: str) -> List[Dict[str, Any]]:
        return self.db.list_decks(user_id)

    def delete_deck(self, deck_id: str, user_id: str) -> bool:
        deck = self.db.get_deck(deck_id)
        if deck is None:
            return False
        self._check_owner(deck, user_id)
        self.db.delete_deck(deck_id)
        logger.info(f"Deleted deck {deck_id}")
        return True

    def resolve_cards(self, entries: List[Dict[str, Any]]) -> Dict[str, List]:
        """Match parsed {"name", "quantity"} entries to stored cards by exact name"""
        found = []
        missing = []
        for entry in entries:
            candidates = self.db.find_cards(entry["name"], limit=25)
            card = next((c for c in candidates if c["name"].lower() == entry["name"].lower()), None)
            if card is None:
                missing.append(entry["name"])
                continue
            found.append(dict(card, quantity=entry["quantity"]))
        return {"cards": found, "missing": missing}

    @staticmethod
    def _check_owner(deck, user_id):
        if deck.get("user_id") != user_id:
            raise DeckAccessError("Only the owner can modify this deck")
