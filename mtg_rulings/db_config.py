# mtg_rulings/db_config.py - Supabase credentials and client construction
import os
import json
import logging
from typing import Dict, Optional, Tuple

from supabase import create_client

from mtg_rulings import config

logger = logging.getLogger("DBConfig")


def read_saved_credentials(path: Optional[str] = None) -> Dict[str, str]:
    """Credentials saved through the API, {} when there are none"""
    path = path or config.CREDENTIALS_FILE
    if not os.path.exists(path):
        return {}

    try:
        with open(path, 'r') as f:
            creds = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load credentials from {path}: {e}")
        return {}

    return creds if isinstance(creds, dict) else {}


def resolve_credentials(url: Optional[str] = None, key: Optional[str] = None,
                        path: Optional[str] = None) -> Tuple[str, str]:
    """Supabase URL and key: explicit arguments, then the saved file, then the environment"""
    saved = read_saved_credentials(path)
    return (
        url or saved.get('supabase_url') or config.SUPABASE_URL,
        key or saved.get('supabase_key') or config.SUPABASE_KEY
    )


def save_credentials(url: str, key: str, path: Optional[str] = None) -> bool:
    path = path or config.CREDENTIALS_FILE
    try:
        with open(path, 'w') as f:
            json.dump({'supabase_url': url, 'supabase_key': key}, f)
    except OSError as e:
        logger.error(f"Failed to save credentials to {path}: {e}")
        return False

    logger.info(f"Credentials saved to {path}")
    return True


def create_supabase_client(url: Optional[str] = None, key: Optional[str] = None,
                           path: Optional[str] = None):
    """Supabase client for the resolved credentials, or None when they are missing or rejected"""
    url, key = resolve_credentials(url, key, path)
    if not url or not key:
        logger.error("Supabase URL or key not set")
        return None

    try:
        return create_client(url, key)
    except Exception as e:
        logger.error(f"Failed to connect to Supabase: {e}")
        return None
