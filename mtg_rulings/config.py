# mtg_rulings/config.py - Application configuration

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Base directories
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = os.getenv("MTG_DATA_DIR", os.path.join(BASE_DIR, "data"))

# API Configuration
SCRYFALL_API_URL = "https://api.scryfall.com"
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "5000"))

# Database Configuration
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")

# Credentials saved through /api/config/database; they take precedence over the environment
CREDENTIALS_FILE = os.getenv("MTG_CREDENTIALS_FILE", os.path.join(BASE_DIR, "credentials.json"))

# Table names
TABLES = {
    "CARDS": "cards",
    "RULES": "rules",
    "METADATA": "db_metadata",
    "DECKS": "saved_decks"
}

# Comprehensive rules ingestion
RULES_CONFIG = {
    # Dated plain-text rulebook published by Wizards of the Coast
    "SOURCE_URL": os.getenv(
        "RULES_SOURCE_URL",
        "https://media.wizards.com/2025/downloads/MagicCompRules%2020250404.txt"
    ),

    # Bundled rulebook used when the download fails
    "FALLBACK_PATH": os.getenv("RULES_FALLBACK_PATH", os.path.join(DATA_DIR, "MagicCompRules.txt")),

    # Download target
    "TEMP_DIR": os.path.join(DATA_DIR, "temp"),
    "TEMP_FILENAME": "MagicCompRules_latest.txt",

    # Substantive content starts here (everything before is the introduction)
    "START_ANCHOR": "1. Game Concepts",

    # Rows per insert call
    "INSERT_BATCH_SIZE": 100,

    # Skip a download if the newest rule is younger than this
    "FRESHNESS_DAYS": 7,

    # Bodies this short (after trimming) are noise
    "MIN_RULE_LENGTH": 10,

    "MAX_KEYWORDS": 10,

    # Seconds
    "DOWNLOAD_TIMEOUT": 60,
    "DOWNLOAD_CHUNK_SIZE": 8192
}

# Periodic database refresh
UPDATE_CONFIG = {
    # Primary key of the singleton metadata row
    "METADATA_ID": "card_database",

    # Skip a card refresh if the metadata row is younger than this
    "CARD_FRESHNESS_HOURS": 24,

    # Scheduler period
    "INTERVAL_HOURS": 24,

    # Run one cycle as soon as the scheduler starts
    "RUN_ON_START": True
}

# Scryfall bulk card data
CARD_DATA_CONFIG = {
    "BULK_TYPE": os.getenv("SCRYFALL_BULK_TYPE", "default_cards"),
    "RAW_DIR": os.path.join(DATA_DIR, "raw"),

    # Reuse a downloaded bulk file younger than this
    "REUSE_DOWNLOAD_HOURS": 24,

    "DOWNLOAD_TIMEOUT": 300,
    "DOWNLOAD_CHUNK_SIZE": 1024 * 1024,
    "IMPORT_BATCH_SIZE": 500,
    "USER_AGENT": "MTG-Rulings/1.0",

    # Layouts that are not real cards
    "SKIPPED_LAYOUTS": ["token", "double_faced_token", "emblem", "art_series", "vanguard", "scheme", "planar"],

    # Autocomplete
    "SEARCH_MIN_QUERY_LENGTH": 2,
    "SEARCH_RESULT_LIMIT": 10,
    "FIND_CARDS_LIMIT": 100,

    # Format card browser pages
    "FORMAT_PAGE_SIZE": 20,
    "MAX_FORMAT_PAGE_SIZE": 100,

    # Delay between single-card Scryfall lookups (seconds)
    "REQUEST_DELAY": 0.1
}

# Ruling assistant
LLM_CONFIG = {
    "MODEL": os.getenv("OPENAI_MODEL", "gpt-4o"),
    "MAX_TOKENS": 1000,
    "TEMPERATURE": 0.2,

    # Messages kept per conversation
    "HISTORY_LIMIT": 10,

    # Conversations kept in memory
    "MAX_SESSIONS": 500,

    # Rules quoted into the system prompt
    "RULES_CONTEXT_LIMIT": 8
}

# Logging
LOGGING_CONFIG = {
    "LEVEL": os.getenv("LOG_LEVEL", "INFO"),
    "FORMAT": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
}

# Development/Testing Configuration
DEV_CONFIG = {
    "DEVELOPMENT_MODE": os.getenv("DEVELOPMENT_MODE", "False").lower() == "true"
}


def get_config():
    """Get configuration with environment-specific overrides"""
    config = {
        "BASE_DIR": BASE_DIR,
        "DATA_DIR": DATA_DIR,
        "SCRYFALL_API_URL": SCRYFALL_API_URL,
        "API_HOST": API_HOST,
        "API_PORT": API_PORT,
        "SUPABASE_URL": SUPABASE_URL,
        "SUPABASE_KEY": SUPABASE_KEY,
        "CREDENTIALS_FILE": CREDENTIALS_FILE,
        "TABLES": dict(TABLES),
        "RULES": dict(RULES_CONFIG),
        "UPDATE": dict(UPDATE_CONFIG),
        "CARD_DATA": dict(CARD_DATA_CONFIG),
        "LLM": dict(LLM_CONFIG),
        "LOGGING": dict(LOGGING_CONFIG),
        "DEV": dict(DEV_CONFIG)
    }

    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        config["LOGGING"]["LEVEL"] = os.getenv("LOG_LEVEL", "WARNING")
        config["DEV"]["DEVELOPMENT_MODE"] = False

    elif env == "development":
        config["DEV"]["DEVELOPMENT_MODE"] = True
        config["LOGGING"]["LEVEL"] = os.getenv("LOG_LEVEL", "DEBUG")

    return config


def validate_config():
    """Validate configuration settings"""
    errors = []

    if not os.path.exists(DATA_DIR):
        try:
            Path(DATA_DIR).mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Cannot create data directory: {e}")

    if RULES_CONFIG["INSERT_BATCH_SIZE"] <= 0:
        errors.append("INSERT_BATCH_SIZE must be positive")

    if RULES_CONFIG["FRESHNESS_DAYS"] < 0:
        errors.append("FRESHNESS_DAYS cannot be negative")

    if UPDATE_CONFIG["CARD_FRESHNESS_HOURS"] < 0:
        errors.append("CARD_FRESHNESS_HOURS cannot be negative")

    if UPDATE_CONFIG["INTERVAL_HOURS"] <= 0:
        errors.append("INTERVAL_HOURS must be positive")

    if CARD_DATA_CONFIG["IMPORT_BATCH_SIZE"] <= 0:
        errors.append("IMPORT_BATCH_SIZE must be positive")

    if LLM_CONFIG["HISTORY_LIMIT"] <= 0:
        errors.append("HISTORY_LIMIT must be positive")

    if errors:
        raise ValueError("Configuration validation failed:\n" + "\n".join(errors))

    return True


__all__ = [
    "BASE_DIR",
    "DATA_DIR",
    "SCRYFALL_API_URL",
    "API_HOST",
    "API_PORT",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "CREDENTIALS_FILE",
    "TABLES",
    "RULES_CONFIG",
    "UPDATE_CONFIG",
    "CARD_DATA_CONFIG",
    "LLM_CONFIG",
    "LOGGING_CONFIG",
    "DEV_CONFIG",
    "get_config",
    "validate_config"
]
