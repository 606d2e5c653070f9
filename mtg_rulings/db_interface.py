import re
import string
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mtg_rulings.config import TABLES, UPDATE_CONFIG
from mtg_rulings.db_config import create_supabase_client, save_credentials

logger = logging.getLogger("DBInterface")


class DatabaseNotConnectedError(RuntimeError):
    """Raised by write paths that cannot degrade to an empty result"""


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp column into an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # Postgres trims trailing zeros from fractional seconds
        text = re.sub(r"\.(\d{1,6})\d*", lambda m: "." + m.group(1).ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Unparseable timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DatabaseInterface:
    """Supabase-backed persistence for cards, rules, metadata and decks.

    Read helpers used by the HTTP layer log and degrade to empty results.
    Write helpers used by the refresh jobs raise, so a failed batch aborts
    the job that issued it.
    """

    def __init__(self, client=None):
        self.client = client if client is not None else create_supabase_client()
        self.is_connected = self.client is not None

        if self.is_connected:
            logger.info("Connected to Supabase")
        else:
            logger.warning("Not connected to Supabase")

    def set_credentials(self, url, key):
        """Reconnect with new Supabase credentials, saving them once a client is created.

        Returns the new client, or None with the current connection kept.
        """
        client = create_supabase_client(url, key)
        if client is None:
            logger.error("Failed to connect to Supabase with the new credentials")
            return None

        save_credentials(url, key)
        self.client = client
        self.is_connected = True
        logger.info("Connected to Supabase")
        return client

    def _require_connection(self):
        if not self.is_connected:
            raise DatabaseNotConnectedError("Not connected to database")

    def _table(self, key):
        return self.client.table(TABLES[key])

    # ========== CARDS ==========

    def get_card_count(self) -> int:
        """Get the total count of cards in the database"""
        if not self.is_connected:
            logger.error("Cannot get card count: Not connected to database")
            return 0

        try:
            response = self._table("CARDS").select("id", count="exact").limit(1).execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Error counting cards: {e}")
            return 0

    def get_card(self, card_id: str) -> Optional[Dict[str, Any]]:
        if not self.is_connected:
            logger.error("Cannot get card: Not connected to database")
            return None

        try:
            response = self._table("CARDS").select("*").eq("id", card_id).limit(1).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error fetching card {card_id}: {e}")
            return None

    def get_cards(self, card_ids: List[str]) -> List[Dict[str, Any]]:
        """Fetch several cards, keeping the order of card_ids"""
        if not self.is_connected or not card_ids:
            return []

        try:
            response = self._table("CARDS").select("*").in_("id", list(card_ids)).execute()
        except Exception as e:
            logger.error(f"Error fetching card batch: {e}")
            return []

        by_id = {card["id"]: card for card in response.data or []}
        return [by_id[card_id] for card_id in card_ids if card_id in by_id]

    def find_cards(self, query: str = "", filters: Optional[Dict[str, str]] = None,
                   limit: int = 100) -> List[Dict[str, Any]]:
        """Find cards by name with optional set/rarity/type/color/format filters.

        The format filter is a Scryfall legalities key such as "modern".
        """
        if not self.is_connected:
            logger.error("Cannot search cards: Not connected to database")
            return []

        filters = filters or {}
        try:
            request = self._table("CARDS").select("*")
            if query:
                request = request.ilike("name", f"%{query}%")
            if filters.get("set"):
                request = request.eq("set", filters["set"].upper())
            if filters.get("rarity"):
                request = request.eq("rarity", filters["rarity"].lower())
            if filters.get("type"):
                request = request.ilike("type", f"%{filters['type']}%")
            if filters.get("color"):
                request = request.contains("colors", [filters["color"].upper()])
            if filters.get("format"):
                request = request.eq(f"legalities->>{filters['format'].lower()}", "legal")
            response = request.order("name").limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error searching cards for '{query}': {e}")
            return []

    def get_cards_by_format(self, legality: Optional[str], page: int = 1,
                            page_size: int = 20) -> List[Dict[str, Any]]:
        """One page of the cards legal under a Scryfall legalities key, all cards when legality is None"""
        if not self.is_connected:
            logger.error("Cannot list format cards: Not connected to database")
            return []

        start = (page - 1) * page_size
        try:
            request = self._table("CARDS").select("*")
            if legality:
                request = request.eq(f"legalities->>{legality}", "legal")
            response = request.order("name").order("id").range(start, start + page_size - 1).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing cards legal in {legality}: {e}")
            return []

    def get_sets(self, page_size: int = 1000) -> List[Dict[str, str]]:
        """Distinct sets of the stored printings as {"code", "name"}, ordered by code"""
        if not self.is_connected:
            logger.error("Cannot list sets: Not connected to database")
            return []

        sets = {}
        start = 0
        try:
            # PostgREST has no DISTINCT, so page through the set columns
            while True:
                response = (self._table("CARDS").select("set, set_name")
                            .order("set").order("id")
                            .range(start, start + page_size - 1).execute())
                rows = response.data or []
                for row in rows:
                    if row.get("set"):
                        sets.setdefault(row["set"], row.get("set_name") or row["set"])
                if len(rows) < page_size:
                    break
                start += page_size
        except Exception as e:
            logger.error(f"Error listing sets: {e}")
            return []

        return [{"code": code, "name": name} for code, name in sorted(sets.items())]

    def upsert_cards(self, cards: List[Dict[str, Any]], batch_size: int = 500) -> int:
        """Upsert card rows in batches, returning the number written"""
        self._require_connection()

        written = 0
        total_batches = (len(cards) + batch_size - 1) // batch_size
        for i in range(0, len(cards), batch_size):
            batch = cards[i:i + batch_size]
            self._table("CARDS").upsert(batch, on_conflict="id").execute()
            written += len(batch)
            logger.info(f"Upserted card batch {i // batch_size + 1}/{total_batches}")
        return written

    def update_card(self, card_id: str, fields: Dict[str, Any]) -> bool:
        self._require_connection()
        response = self._table("CARDS").update(fields).eq("id", card_id).execute()
        return bool(response.data)

    def get_cards_missing_rarity(self, limit: int = 500, query: str = "") -> List[Dict[str, Any]]:
        if not self.is_connected:
            return []

        try:
            request = self._table("CARDS").select("id, name, set, number, rarity").is_("rarity", "null")
            if query:
                request = request.ilike("name", f"%{query}%")
            response = request.limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error fetching cards without rarity: {e}")
            return []

    def count_cards_missing_rarity(self) -> int:
        if not self.is_connected:
            return 0

        try:
            response = self._table("CARDS").select("id", count="exact").is_("rarity", "null").limit(1).execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Error counting cards without rarity: {e}")
            return 0

    def get_card_ids_by_rarity(self, rarity: str, limit: int = 5) -> List[str]:
        if not self.is_connected:
            return []

        try:
            response = self._table("CARDS").select("id").eq("rarity", rarity).limit(limit).execute()
            return [row["id"] for row in response.data or []]
        except Exception as e:
            logger.error(f"Error sampling {rarity} cards: {e}")
            return []

    # ========== RULES ==========

    def delete_all_rules(self):
        """Remove every rule record"""
        self._require_connection()
        self._table("RULES").delete().gte("id", 0).execute()
        logger.info("Cleared existing rules")

    def insert_rules(self, rules: List[Dict[str, Any]]):
        """Insert one batch of rule records"""
        self._require_connection()
        self._table("RULES").insert(rules).execute()

    def get_latest_rule_timestamp(self) -> Optional[datetime]:
        """created_at of the most recently inserted rule, or None if there are no rules"""
        self._require_connection()
        response = self._table("RULES").select("created_at").order("created_at", desc=True).limit(1).execute()
        if not response.data:
            return None
        return parse_timestamp(response.data[0].get("created_at"))

    def get_rule_by_number(self, rule_number: str) -> Optional[Dict[str, Any]]:
        if not self.is_connected:
            logger.error("Cannot get rule: Not connected to database")
            return None

        try:
            response = self._table("RULES").select("*").eq("rule_number", rule_number).limit(1).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error fetching rule {rule_number}: {e}")
            return None

    def get_rules_by_prefix(self, prefix: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Rules whose number starts with prefix, e.g. all of 702.19"""
        if not self.is_connected:
            return []

        try:
            response = self._table("RULES").select("*").like("rule_number", f"{prefix}%").order("id").limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error fetching rules under {prefix}: {e}")
            return []

    def get_rule_with_subrules(self, rule_number: str, limit: int = 50) -> List[Dict[str, Any]]:
        """702.1 and 702.1a through 702.1z, but not 702.10"""
        if not self.is_connected:
            return []

        numbers = [rule_number] + [rule_number + letter for letter in string.ascii_lowercase]
        try:
            response = self._table("RULES").select("*").in_("rule_number", numbers).order("id").limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error fetching rule {rule_number} and its subrules: {e}")
            return []

    def search_rules_text(self, term: str, limit: int = 50) -> List[Dict[str, Any]]:
        if not self.is_connected:
            logger.error("Cannot search rules: Not connected to database")
            return []

        try:
            response = self._table("RULES").select("*").ilike("text", f"%{term}%").limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error searching rules for '{term}': {e}")
            return []

    def get_rule_count(self) -> int:
        if not self.is_connected:
            return 0

        try:
            response = self._table("RULES").select("id", count="exact").limit(1).execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Error counting rules: {e}")
            return 0

    # ========== METADATA ==========

    def get_metadata(self, metadata_id: str = UPDATE_CONFIG["METADATA_ID"]) -> Optional[Dict[str, Any]]:
        self._require_connection()
        response = self._table("METADATA").select("*").eq("id", metadata_id).limit(1).execute()
        return response.data[0] if response.data else None

    def upsert_metadata(self, record: Dict[str, Any]):
        """Insert or update a metadata row by id"""
        self._require_connection()
        self._table("METADATA").upsert(record, on_conflict="id").execute()

    # ========== DECKS ==========

    def insert_deck(self, deck: Dict[str, Any]) -> Dict[str, Any]:
        self._require_connection()
        response = self._table("DECKS").insert(deck).execute()
        return response.data[0] if response.data else deck

    def update_deck(self, deck_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._require_connection()
        response = self._table("DECKS").update(fields).eq("id", deck_id).execute()
        return response.data[0] if response.data else None

    def get_deck(self, deck_id: str) -> Optional[Dict[str, Any]]:
        self._require_connection()
        response = self._table("DECKS").select("*").eq("id", deck_id).limit(1).execute()
        return response.data[0] if response.data else None

    def list_decks(self, user_id: str) -> List[Dict[str, Any]]:
        self._require_connection()
        response = self._table("DECKS").select("*").eq("user_id", user_id).order("updated_at", desc=True).execute()
        return response.data or []

    def delete_deck(self, deck_id: str):
        self._require_connection()
        self._table("DECKS").delete().eq("id", deck_id).execute()

    # ========== STATUS ==========

    def get_status(self):
        """Get status information about the database"""
        status = {"connected": self.is_connected}

        if self.is_connected:
            try:
                status["card_count"] = self.get_card_count()
                status["rule_count"] = self.get_rule_count()
            except Exception as e:
                status["error"] = str(e)

        return status
