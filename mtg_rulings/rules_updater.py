# mtg_rulings/rules_updater.py - Comprehensive rules ingestion
import os
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from mtg_rulings.config import RULES_CONFIG
from mtg_rulings.rules_parser import parse_comprehensive_rules

logger = logging.getLogger("RulesUpdater")


class RulesSourceError(Exception):
    """The rulebook could not be downloaded, saved or parsed"""


class RulesUpdater:
    """Replaces the persisted rule set with a freshly parsed rulebook.

    A refresh deletes every rule and inserts the new set in independent
    batches. There is no transaction around the whole operation: if a batch
    fails the remaining batches are skipped and the table is left partially
    populated until the next successful refresh.
    """

    def __init__(self, db, source_url=None, fallback_path=None, temp_dir=None,
                 batch_size=None, freshness_days=None):
        self.db = db
        self.source_url = source_url or RULES_CONFIG["SOURCE_URL"]
        self.fallback_path = fallback_path or RULES_CONFIG["FALLBACK_PATH"]
        self.temp_dir = temp_dir or RULES_CONFIG["TEMP_DIR"]
        self.batch_size = batch_size or RULES_CONFIG["INSERT_BATCH_SIZE"]
        self.freshness_days = RULES_CONFIG["FRESHNESS_DAYS"] if freshness_days is None else freshness_days
        self.download_timeout = RULES_CONFIG["DOWNLOAD_TIMEOUT"]

    def update_rules_database(self, file_path: str) -> int:
        """Replace the stored rules with the rulebook at file_path. Returns the number of rules inserted.

        Raises RulesSourceError without touching the stored rules when the file yields no rules.
        """
        logger.info(f"Starting rules database update from {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                rules_text = f.read()

            parsed_rules = parse_comprehensive_rules(rules_text)
            logger.info(f"Parsed {len(parsed_rules)} rules")

            # The stored rules stay in place when the file is not a rulebook
            if not parsed_rules:
                raise RulesSourceError(f"No rules found in {file_path}")

            self.db.delete_all_rules()
            self.insert_rules_in_batches(parsed_rules)

            logger.info("Rules database update completed successfully")
            return len(parsed_rules)
        except Exception as e:
            logger.error(f"Error updating rules database: {e}")
            raise

    def insert_rules_in_batches(self, rules: List[Dict[str, Any]]) -> int:
        """Insert rules batch by batch. Returns the number of insert operations issued."""
        total_batches = (len(rules) + self.batch_size - 1) // self.batch_size

        for batch_number, i in enumerate(range(0, len(rules), self.batch_size), start=1):
            batch = rules[i:i + self.batch_size]
            self.db.insert_rules(batch)
            logger.info(f"Inserted batch {batch_number}/{total_batches}")

        return total_batches

    def update_rules_from_file(self, file_path: Optional[str] = None) -> int:
        """Load the bundled comprehensive rules file"""
        file_path = file_path or self.fallback_path

        if not os.path.exists(file_path):
            raise FileNotFoundError('Comprehensive rules file not found')

        return self.update_rules_database(file_path)

    def get_days_since_update(self) -> Optional[float]:
        """Age in days of the newest rule record, or None when there are no rules"""
        last_update = self.db.get_latest_rule_timestamp()
        if last_update is None:
            return None
        return (datetime.now(timezone.utc) - last_update).total_seconds() / 86400

    def download_rules(self) -> str:
        """Stream the current rulebook into a temp file and return its path"""
        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)
        temp_file_path = os.path.join(self.temp_dir, RULES_CONFIG["TEMP_FILENAME"])

        logger.info(f"Downloading latest comprehensive rules from {self.source_url}")
        try:
            with requests.get(self.source_url, stream=True, timeout=self.download_timeout) as response:
                if response.status_code != 200:
                    raise RulesSourceError(f"Failed to download rules. HTTP status: {response.status_code}")

                with open(temp_file_path, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=RULES_CONFIG["DOWNLOAD_CHUNK_SIZE"]):
                        if chunk:
                            f.write(chunk)
        except requests.exceptions.RequestException as e:
            self._remove_file(temp_file_path)
            raise RulesSourceError(f"Network error downloading rules: {e}") from e
        except OSError as e:
            self._remove_file(temp_file_path)
            raise RulesSourceError(f"Failed to save rules file: {e}") from e

        logger.info(f"Saved rules to {temp_file_path}")
        return temp_file_path

    def update_rules_from_wotc(self) -> Dict[str, Any]:
        """Refresh rules from the official source, at most once per freshness window.

        Never raises: every outcome is reported as {"success": bool, "message": str}.
        """
        try:
            days_since_update = self.get_days_since_update()
            if days_since_update is not None and days_since_update < self.freshness_days:
                return {
                    "success": True,
                    "message": f"Rules were updated {round(days_since_update)} days ago. Skipping update."
                }

            temp_file_path = self.download_rules()
            try:
                self.update_rules_database(temp_file_path)
            finally:
                self._remove_file(temp_file_path)

            return {
                "success": True,
                "message": "Comprehensive rules updated successfully from official source"
            }

        except Exception as e:
            logger.error(f"Error updating rules from WotC: {e}")

            try:
                self.update_rules_from_file()
                return {
                    "success": True,
                    "message": "Used local comprehensive rules file as fallback"
                }
            except Exception as fallback_error:
                logger.error(f"Fallback rules update failed: {fallback_error}")
                return {
                    "success": False,
                    "message": f"Failed to update rules: {e}. Fallback also failed: {fallback_error}"
                }

    @staticmethod
    def _remove_file(path):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temp file {path}: {e}")
