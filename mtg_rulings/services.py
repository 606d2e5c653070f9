# mtg_rulings/services.py - Shared component instances for the API and the scheduler
import logging
import threading

from mtg_rulings.db_interface import DatabaseInterface
from mtg_rulings.rules_updater import RulesUpdater
from mtg_rulings.card_loader import CardDataLoader
from mtg_rulings.database_update import DatabaseUpdater
from mtg_rulings.rules_service import RulesService
from mtg_rulings.rarity_repair import RarityRepairService
from mtg_rulings.ruling_assistant import ConversationStore, RulingAssistant
from mtg_rulings.deck_service import DeckService

logger = logging.getLogger("Services")

_lock = threading.RLock()
_instances = {}


def _get(name, factory):
    with _lock:
        if name not in _instances:
            _instances[name] = factory()
            logger.debug(f"Initialized {name}")
        return _instances[name]


def get_db() -> DatabaseInterface:
    return _get("db", DatabaseInterface)


def get_rules_updater() -> RulesUpdater:
    return _get("rules_updater", lambda: RulesUpdater(get_db()))


def get_card_loader() -> CardDataLoader:
    return _get("card_loader", lambda: CardDataLoader(get_db()))


def get_database_updater() -> DatabaseUpdater:
    """The single updater; its lock keeps scheduler and admin runs from overlapping"""
    return _get("database_updater", lambda: DatabaseUpdater(get_db(), get_card_loader(), get_rules_updater()))


def get_rules_service() -> RulesService:
    return _get("rules_service", lambda: RulesService(get_db()))


def get_rarity_repair() -> RarityRepairService:
    return _get("rarity_repair", lambda: RarityRepairService(get_db()))


def get_conversation_store() -> ConversationStore:
    return _get("conversation_store", ConversationStore)


def get_ruling_assistant() -> RulingAssistant:
    return _get("ruling_assistant", lambda: RulingAssistant(get_rules_service()))


def get_deck_service() -> DeckService:
    return _get("deck_service", lambda: DeckService(get_db()))


def get_instance(name):
    """Return a component that was set or built earlier, or None"""
    with _lock:
        return _instances.get(name)


def set_instance(name, instance):
    """Replace a shared component, e.g. the database interface"""
    with _lock:
        _instances[name] = instance


def reset():
    """Drop every shared component so the next getter call rebuilds it"""
    with _lock:
        _instances.clear()
