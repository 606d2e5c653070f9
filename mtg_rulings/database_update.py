# mtg_rulings/database_update.py - Periodic card and rules refresh
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict

from mtg_rulings.config import UPDATE_CONFIG
from mtg_rulings.db_interface import parse_timestamp

logger = logging.getLogger("DatabaseUpdater")

UPDATE_IN_PROGRESS_MESSAGE = "Database update already in progress"


class DatabaseUpdater:
    """Refreshes the card table and the rules, at most once per freshness window.

    A cycle runs the card refresh, then the rules refresh, then records the
    metadata row. The metadata row is only written when the card refresh
    succeeded, so a failed cycle is retried on the next trigger.
    """

    def __init__(self, db, card_loader, rules_updater, freshness_hours=None,
                 metadata_id=UPDATE_CONFIG["METADATA_ID"]):
        self.db = db
        self.card_loader = card_loader
        self.rules_updater = rules_updater
        self.freshness_hours = UPDATE_CONFIG["CARD_FRESHNESS_HOURS"] if freshness_hours is None else freshness_hours
        self.metadata_id = metadata_id
        self._lock = threading.Lock()

    @property
    def is_updating(self) -> bool:
        return self._lock.locked()

    def get_hours_since_update(self):
        """Age in hours of the metadata row, or None when it does not exist"""
        metadata = self.db.get_metadata(self.metadata_id)
        if not metadata:
            return None, None

        last_updated = parse_timestamp(metadata.get("last_updated"))
        if last_updated is None:
            return None, metadata

        hours = (datetime.now(timezone.utc) - last_updated).total_seconds() / 3600
        return hours, metadata

    def update_card_database(self, force=False) -> Dict[str, Any]:
        """Run one refresh cycle unless the data is fresh or another cycle is running"""
        if not self._lock.acquire(blocking=False):
            logger.warning("Database update already in progress, skipping")
            return {"success": False, "message": UPDATE_IN_PROGRESS_MESSAGE}

        try:
            return self._run_update(force)
        except Exception as e:
            logger.error(f"Error updating database: {e}")
            return {"success": False, "message": f"Error updating database: {e}"}
        finally:
            self._lock.release()

    def _run_update(self, force) -> Dict[str, Any]:
        if not force:
            hours_since_update, metadata = self.get_hours_since_update()
            if hours_since_update is not None and hours_since_update < self.freshness_hours:
                logger.info(f"Database was updated {hours_since_update:.1f} hours ago, skipping")
                return {
                    "success": True,
                    "message": "Database is up to date",
                    "last_updated": metadata.get("last_updated")
                }

        logger.info("Starting card database update")
        card_result = self.card_loader.complete_card_database_update()
        logger.info(f"Card update result: {card_result['message']}")

        logger.info("Starting rules update")
        try:
            rules_result = self.rules_updater.update_rules_from_wotc()
        except Exception as e:
            logger.error(f"Rules update failed: {e}")
            rules_result = {"success": False, "message": f"Rules update failed: {e}"}
        logger.info(f"Rules update result: {rules_result['message']}")

        if card_result["success"]:
            self.db.upsert_metadata({
                "id": self.metadata_id,
                "last_updated": datetime.now(timezone.utc).isoformat(),
                "description": f"{card_result['message']}. {rules_result['message']}",
                "total_cards": self.db.get_card_count()
            })
            logger.info("Database metadata updated")
        else:
            logger.warning("Card update failed, metadata left unchanged")

        return {
            "success": bool(card_result["success"] and rules_result["success"]),
            "message": f"Cards: {card_result['message']}. Rules: {rules_result['message']}",
            "cards": card_result,
            "rules": rules_result
        }


class DatabaseUpdateScheduler:
    """Runs DatabaseUpdater.update_card_database on a fixed interval in a daemon thread"""

    def __init__(self, updater, interval_hours=None, run_on_start=None):
        self.updater = updater
        self.interval_hours = interval_hours or UPDATE_CONFIG["INTERVAL_HOURS"]
        self.run_on_start = UPDATE_CONFIG["RUN_ON_START"] if run_on_start is None else run_on_start
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            logger.warning("Scheduler already running")
            return False

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="database-update-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Database update scheduler started (every {self.interval_hours} hours)")
        return True

    def stop(self, timeout=5):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        logger.info("Database update scheduler stopped")

    def run_cycle(self):
        try:
            result = self.updater.update_card_database()
            logger.info(f"Scheduled database update: {result['message']}")
            return result
        except Exception as e:
            logger.error(f"Scheduled database update failed: {e}")
            return None

    def _run(self):
        if self.run_on_start:
            self.run_cycle()

        interval_seconds = self.interval_hours * 3600
        while not self._stop_event.wait(interval_seconds):
            self.run_cycle()
